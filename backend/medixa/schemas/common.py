"""
Error body returned when a domain error escapes a router.
"""

from typing import Any, Dict, Optional
from datetime import datetime
from pydantic import Field

from .base import BaseSchema
from ..models.base import utcnow


class ErrorResponse(BaseSchema):
    error: str = Field(..., description="Message safe to show the patient")
    error_code: str = Field(..., description="Machine-readable code, e.g. STORAGE_UNAVAILABLE")
    details: Optional[Dict[str, Any]] = Field(None, description="Request context such as the path")
    timestamp: datetime = Field(default_factory=utcnow, description="When the error occurred (UTC)")

    @classmethod
    def from_error(cls, e: Any, **details: Any) -> "ErrorResponse":
        """Build from a ChatError; log_detail stays server-side."""
        return cls(error=e.public_detail, error_code=e.code, details=details or None)
