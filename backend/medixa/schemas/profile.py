"""
Pydantic schemas for Profile entity.
"""
from __future__ import annotations
from datetime import datetime
from typing import Literal, Optional
from pydantic import EmailStr, Field

from .base import BaseSchema, BaseResponseSchema

ProfileRole = Literal["patient", "health-worker", "doctor"]


class ProfileCreate(BaseSchema):
    """
    Schema for creating new profiles.
    """
    email: EmailStr
    full_name: str = Field("", max_length=255)
    role: ProfileRole = "patient"
    password_hash: Optional[str] = None


class ProfileUpdate(BaseSchema):
    """
    Schema for updating profile information.
    """
    full_name: Optional[str] = Field(None, max_length=255)
    password_hash: Optional[str] = None
    last_login_at: Optional[datetime] = None


class ProfileResponse(BaseResponseSchema):
    """
    Profile data returned to the frontend.
    """
    email: EmailStr
    full_name: str
    role: ProfileRole
    last_login_at: Optional[datetime] = None
