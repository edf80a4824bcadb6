"""
Profile repository for patient/health-worker/doctor accounts.
"""

from __future__ import annotations
from typing import Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from .base import BaseRepository
from ..models.base import utcnow
from ..models.profile import Profile
from ..schemas.profile import ProfileCreate, ProfileUpdate

logger = logging.getLogger(__name__)


class ProfileRepository(BaseRepository[Profile, ProfileCreate, ProfileUpdate]):
    def __init__(self) -> None:
        super().__init__(Profile)

    def create_profile(self, db: Session, data: ProfileCreate) -> Profile:
        """Create and persist a Profile. ALWAYS commits and refreshes."""
        try:
            obj = Profile(**data.model_dump())
            obj.email = obj.email.strip().lower()
            db.add(obj)

            # Commit immediately to avoid half-written rows in case of DB errors
            db.commit()
            db.refresh(obj)

            logger.debug({"repo": "profile.create", "id": obj.id, "email": obj.email, "role": obj.role})
            return obj
        except Exception:
            db.rollback()
            logger.exception("Error in ProfileRepository.create_profile")
            raise

    def get_by_email(self, db: Session, email: str) -> Optional[Profile]:
        """Get profile by email (normalized, case-insensitive)."""
        try:
            email_norm = email.strip().lower()
            return (
                db.query(Profile)
                .filter(func.lower(Profile.email) == email_norm)
                .first()
            )
        except Exception as e:
            logger.error(f"Error getting profile by email {email}: {e}")
            raise

    def update_last_login(self, db: Session, profile: Profile) -> Profile:
        """Touch last_login_at; persist with commit+refresh (no flush-only)."""
        try:
            profile.last_login_at = utcnow()
            db.add(profile)
            db.commit()
            db.refresh(profile)

            logger.info(f"Updated last login for profile {profile.id}")
            return profile
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating last login for profile {getattr(profile, 'id', None)}: {e}")
            raise
