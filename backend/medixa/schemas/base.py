"""
Building blocks for the API and storage schemas.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """
    Common configuration: unknown keys are ignored, strings are trimmed,
    and instances can be built straight from ORM rows.
    """

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        validate_assignment=True,
        from_attributes=True,
    )


class BaseResponseSchema(BaseSchema):
    """A stored record: opaque id plus creation/update times (UTC)."""

    id: str = Field(..., description="Opaque identifier for the record")
    created_at: datetime = Field(..., description="When the record was created")
    updated_at: datetime = Field(..., description="When the record was last updated")
