# Models package for database entities

from .base import Base, BaseModel
from .profile import Profile
from .chat_session import ChatSession

# Export all models for easy importing
__all__ = ["Base", "BaseModel", "Profile", "ChatSession"]
