"""
Pydantic schemas for ChatSession entity.
"""

from typing import List, Optional
from datetime import datetime
from pydantic import Field

from .base import BaseSchema, BaseResponseSchema
from .message import ChatMessage


class SessionCreate(BaseSchema):
    """
    Schema for creating new chat sessions.
    """
    display_name: Optional[str] = Field(None, max_length=255, description="Defaults to 'New Chat'")


class SessionRename(BaseSchema):
    """
    Schema for renaming an existing chat session.
    """
    display_name: str = Field(..., min_length=1, max_length=255)


class SessionSummary(BaseResponseSchema):
    """
    Session row as shown in the history list (no message bodies).
    """
    owner_id: str
    display_name: str
    message_count: int = 0
    last_activity_at: datetime
    last_message_preview: Optional[str] = None


class ChatSessionRecord(BaseResponseSchema):
    """
    Complete session snapshot, detached from the ORM.
    """
    owner_id: str
    display_name: str
    messages: List[ChatMessage] = Field(default_factory=list)
    version: int = 0
    last_activity_at: datetime

    def summary(self) -> SessionSummary:
        preview = None
        if self.messages:
            words = self.messages[-1].content.split()
            preview = " ".join(words[:12]) + ("…" if len(words) > 12 else "")
        return SessionSummary(
            id=self.id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            owner_id=self.owner_id,
            display_name=self.display_name,
            message_count=len(self.messages),
            last_activity_at=self.last_activity_at,
            last_message_preview=preview,
        )


class SessionListResponse(BaseSchema):
    items: List[SessionSummary]
