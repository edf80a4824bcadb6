"""
Pydantic schemas for chat messages.
Messages live embedded in ChatSession.messages; these shapes are what gets
stored there and what the orchestrator renders.
"""

from datetime import datetime
from typing import Optional, Literal

from pydantic import Field

from .base import BaseSchema

MessageRole = Literal["user", "assistant"]

# ephemeral   -> never persisted (welcome message)
# unconfirmed -> rendered, persistence still pending
# confirmed   -> persisted
# local_only  -> persistence failed or no active session; visible for this view only
DeliveryStatus = Literal["ephemeral", "unconfirmed", "confirmed", "local_only"]


class ChatMessage(BaseSchema):
    """
    A single persisted message in a chat session.
    """
    id: str = Field(..., description="Time-based id, unique within the session")
    role: MessageRole = Field(..., description="Message author")
    content: str = Field(..., description="Text body (transcript for voice, caption for images)")
    timestamp: datetime = Field(..., description="Creation time, immutable")
    audio_url: Optional[str] = Field(None, description="Ephemeral recorded or synthesized audio")
    image_url: Optional[str] = Field(None, description="Uploaded image reference (placeholder once persisted)")
    is_voice_message: bool = Field(False, description="Provenance marker for rendering")

    def to_storage(self) -> dict:
        """JSON-safe dict for the embedded messages column."""
        return self.model_dump(mode="json", exclude_none=True)


class RenderedMessage(ChatMessage):
    """
    Message as the chat view shows it, tagged with its persistence status.
    """
    delivery: DeliveryStatus = Field("unconfirmed", description="Two-phase persistence status")

    def to_persisted(self) -> ChatMessage:
        return ChatMessage(**self.model_dump(exclude={"delivery"}))
