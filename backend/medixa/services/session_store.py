# medixa/services/session_store.py
"""
Durable CRUD for chat sessions and their embedded message lists.

Each operation opens its own short-lived DB session, so a failed write never
leaves a caller holding a broken transaction. Backend failures surface as
StorageError; a missing session is a None/False result, never an exception.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from medixa.config import settings
from medixa.database import SessionLocal, get_db_context
from medixa.models.base import utcnow
from medixa.models.chat_session import DEFAULT_SESSION_NAME
from medixa.repositories.session import ChatSessionRepository
from medixa.schemas.message import ChatMessage
from medixa.schemas.session import ChatSessionRecord
from medixa.services.errors import ConcurrentWriteError, StorageError, ValidationError

logger = logging.getLogger(__name__)


def _storage_error(op: str, exc: Exception) -> StorageError:
    return StorageError(
        code="STORAGE_UNAVAILABLE",
        public_detail="Chat history is temporarily unavailable.",
        log_detail=f"{op}: {exc}",
    )


class SessionStore:
    """
    Persistence boundary for the chat core.

    append_message is a read-modify-write across two transactions. Without a
    version check two concurrent writers on one session lose one message
    (last writer wins); that is acceptable for one active view per patient.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        repo: Optional[ChatSessionRepository] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        check_version: Optional[bool] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.repo = repo or ChatSessionRepository()
        self.clock = clock
        self.check_version = settings.SESSION_APPEND_CHECK_VERSION if check_version is None else check_version

    # ---------- Queries ----------

    def get_session(self, session_id: str) -> Optional[ChatSessionRecord]:
        try:
            with get_db_context(self.session_factory) as db:
                row = self.repo.get(db, session_id)
                return ChatSessionRecord.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise _storage_error(f"get_session({session_id})", e) from e

    def list_sessions(self, owner_id: str, skip: int = 0, limit: Optional[int] = None) -> List[ChatSessionRecord]:
        """Newest activity first. Unbounded unless a limit is passed."""
        try:
            with get_db_context(self.session_factory) as db:
                rows = self.repo.get_by_owner_id(db, owner_id, skip=skip, limit=limit)
                return [ChatSessionRecord.model_validate(r) for r in rows]
        except SQLAlchemyError as e:
            raise _storage_error(f"list_sessions({owner_id})", e) from e

    # ---------- Mutations ----------

    def create_session(self, owner_id: str, name: str = DEFAULT_SESSION_NAME) -> ChatSessionRecord:
        try:
            with get_db_context(self.session_factory) as db:
                row = self.repo.create_session_for_owner(db, owner_id, name, now=self.clock())
                record = ChatSessionRecord.model_validate(row)
            logger.info(f"Created chat session {record.id} for owner {owner_id}")
            return record
        except SQLAlchemyError as e:
            raise _storage_error(f"create_session({owner_id})", e) from e

    def append_message(
        self,
        session_id: str,
        message: ChatMessage,
        *,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Append one message and bump last_activity_at.
        Returns False if the session no longer exists.
        """
        current = self.get_session(session_id)
        if current is None:
            logger.warning(f"append_message: session {session_id} not found")
            return False

        if expected_version is None and self.check_version:
            expected_version = current.version

        updated = [m.to_storage() for m in current.messages] + [message.to_storage()]
        try:
            with get_db_context(self.session_factory) as db:
                written = self.repo.replace_messages(
                    db,
                    session_id,
                    updated,
                    now=self.clock(),
                    expected_version=expected_version,
                )
        except SQLAlchemyError as e:
            raise _storage_error(f"append_message({session_id})", e) from e

        if not written and expected_version is not None:
            if not self._exists(session_id):
                logger.warning(f"append_message: session {session_id} was deleted before the write")
                return False
            raise ConcurrentWriteError(
                code="CONCURRENT_WRITE",
                public_detail="This chat was updated elsewhere. Please reload it.",
                log_detail=f"session {session_id} moved past version {expected_version}",
            )
        return written

    def _exists(self, session_id: str) -> bool:
        try:
            with get_db_context(self.session_factory) as db:
                return self.repo.get(db, session_id) is not None
        except SQLAlchemyError as e:
            raise _storage_error(f"append_message({session_id})", e) from e

    def rename_session(self, session_id: str, new_name: str) -> bool:
        name = (new_name or "").strip()
        if not name:
            raise ValidationError(code="EMPTY_SESSION_NAME", public_detail="Please enter a name for this chat.")
        try:
            with get_db_context(self.session_factory) as db:
                return self.repo.rename(db, session_id, name) is not None
        except SQLAlchemyError as e:
            raise _storage_error(f"rename_session({session_id})", e) from e

    def delete_session(self, session_id: str) -> bool:
        """Removes the row; the embedded messages go with it."""
        try:
            with get_db_context(self.session_factory) as db:
                deleted = self.repo.delete(db, session_id)
            if deleted:
                logger.info(f"Deleted chat session {session_id}")
            return deleted
        except SQLAlchemyError as e:
            raise _storage_error(f"delete_session({session_id})", e) from e
