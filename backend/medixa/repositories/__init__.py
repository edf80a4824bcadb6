# Repositories package for data access layer

# Base repository
from .base import BaseRepository

# Domain-specific repositories
from .profile import ProfileRepository
from .session import ChatSessionRepository

__all__ = [
    "BaseRepository",
    "ProfileRepository",
    "ChatSessionRepository",
]
