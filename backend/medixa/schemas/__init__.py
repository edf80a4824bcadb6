# Schemas package for API request/response validation

# Base schemas
from .base import BaseSchema, BaseResponseSchema

# Common data structures
from .common import ErrorResponse

# Profile schemas
from .profile import ProfileCreate, ProfileUpdate, ProfileResponse

# Session schemas
from .session import (
    SessionCreate, SessionRename, SessionSummary,
    ChatSessionRecord, SessionListResponse
)

# Message schemas
from .message import ChatMessage, RenderedMessage

# Export all schemas for easy importing
__all__ = [
    # Base
    "BaseSchema", "BaseResponseSchema",

    # Common
    "ErrorResponse",

    # Profile
    "ProfileCreate", "ProfileUpdate", "ProfileResponse",

    # Session
    "SessionCreate", "SessionRename", "SessionSummary",
    "ChatSessionRecord", "SessionListResponse",

    # Message
    "ChatMessage", "RenderedMessage",
]
