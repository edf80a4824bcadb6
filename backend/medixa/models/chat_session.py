"""
ChatSession model for representing individual chat conversations.
Messages are embedded as an ordered JSON list on the session row, so deleting
the row removes every message with it.
"""
from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, JSON
from sqlalchemy.orm import relationship
from .base import BaseModel, utcnow

DEFAULT_SESSION_NAME = "New Chat"


class ChatSession(BaseModel):
    """
    Chat session entity that represents a conversation between a patient and the assistant.
    """

    __tablename__ = "chat_sessions"

    # Human-readable label, editable by the owner
    display_name = Column(String(255), nullable=False, default=DEFAULT_SESSION_NAME)

    # Ordered message objects: {id, role, content, timestamp, audio_url?, image_url?, is_voice_message?}
    messages = Column(JSON, nullable=False, default=list)

    # Incremented on every message write (check-and-set appends)
    version = Column(Integer, nullable=False, default=0)

    # Bumped on every append; session lists sort on it
    last_activity_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Patient who owns this session
    owner_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    owner = relationship("Profile", back_populates="chat_sessions")

    def __repr__(self):
        return f"<ChatSession(id={self.id}, display_name='{self.display_name}', owner_id={self.owner_id})>"
