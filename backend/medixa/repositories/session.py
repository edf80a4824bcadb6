"""
Chat session repository for managing conversation threads.
Handles session creation, message list writes, renames and owner listings.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import desc, update
from datetime import datetime
import logging

from .base import BaseRepository
from ..models.base import utcnow
from ..models.chat_session import ChatSession, DEFAULT_SESSION_NAME
from ..schemas.session import SessionCreate, SessionRename

logger = logging.getLogger(__name__)


class ChatSessionRepository(BaseRepository[ChatSession, SessionCreate, SessionRename]):
    """
    Repository for chat session management operations.
    Extends BaseRepository with session-specific functionality.
    """

    def __init__(self):
        super().__init__(ChatSession)

    # ---------- Queries ----------
    def get_by_owner_id(
        self,
        db: Session,
        owner_id: str,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[ChatSession]:
        """Get chat sessions for a patient. Sorted by recency (last_activity_at desc)."""
        try:
            q = (
                db.query(ChatSession)
                  .filter(ChatSession.owner_id == owner_id)
                  .order_by(desc(ChatSession.last_activity_at), desc(ChatSession.created_at))
            )
            if skip:
                q = q.offset(skip)
            # No limit means the whole list; callers opt into paging
            if limit is not None:
                q = q.limit(limit)
            return q.all()
        except Exception as e:
            logger.error(f"Error getting sessions for owner {owner_id}: {e}")
            raise

    # ---------- Mutations ----------
    def create_session_for_owner(
        self,
        db: Session,
        owner_id: str,
        display_name: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ChatSession:
        """Create a new chat session with an empty message list. last_activity_at starts at now."""
        try:
            stamp = now or utcnow()
            session = self.create(db, {
                "owner_id": owner_id,
                "display_name": (display_name or "").strip() or DEFAULT_SESSION_NAME,
                "messages": [],
                "version": 0,
                "last_activity_at": stamp,
                "created_at": stamp,
                "updated_at": stamp,
            })
            return session
        except Exception as e:
            logger.error(f"Error creating session for owner {owner_id}: {e}")
            db.rollback()
            raise

    def replace_messages(
        self,
        db: Session,
        session_id: str,
        messages: List[Dict[str, Any]],
        *,
        now: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Overwrite the embedded message list and bump recency/version.

        Without expected_version this is a blind write (last writer wins).
        With it, the row is only written if its version still matches;
        returns False when the row is missing or the version moved.
        """
        try:
            stamp = now or utcnow()
            stmt = update(ChatSession).where(ChatSession.id == session_id)
            if expected_version is not None:
                stmt = stmt.where(ChatSession.version == expected_version)
            result = db.execute(
                stmt.values(
                    messages=list(messages),
                    version=ChatSession.version + 1,
                    last_activity_at=stamp,
                    updated_at=stamp,
                ).execution_options(synchronize_session=False)
            )
            db.flush()
            return result.rowcount == 1
        except Exception as e:
            logger.error(f"Error writing messages for session {session_id}: {e}")
            db.rollback()
            raise

    def rename(self, db: Session, session_id: str, display_name: str) -> Optional[ChatSession]:
        """Change the display name only; messages and recency stay untouched."""
        try:
            s = self.get(db, session_id)
            if not s:
                return None
            return self.update(db, s, {"display_name": display_name[:255], "updated_at": utcnow()})
        except Exception as e:
            logger.error(f"Error renaming session {session_id}: {e}")
            db.rollback()
            raise
