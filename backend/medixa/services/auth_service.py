# medixa/services/auth_service.py
from __future__ import annotations
from datetime import timedelta
from typing import Optional, Dict
import logging
from dataclasses import dataclass

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from medixa.config import settings
from medixa.models.base import utcnow
from medixa.models.profile import Profile
from medixa.repositories.profile import ProfileRepository
from medixa.schemas.profile import ProfileCreate

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)

# --- AuthError for safe, classifiable failures ---
@dataclass
class AuthError(Exception):
    code: str                 # "NO_ACCOUNT" | "BAD_PASSWORD" | "EMAIL_TAKEN" | "UNEXPECTED"
    public_detail: str        # safe message for clients
    log_detail: str = ""      # extra info for server logs

class AuthService:
    def __init__(self, profile_repo: Optional[ProfileRepository] = None):
        self.profile_repo = profile_repo or ProfileRepository()

    # ---- password helpers ----
    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain: str, hashed: str) -> bool:
        return pwd_context.verify(plain, hashed)

    # ---- JWT helpers ----
    def create_access_token(self, profile: Profile, minutes: Optional[int] = None) -> str:
        exp_min = minutes if minutes is not None else settings.JWT_EXPIRE_MIN
        payload = {
            "sub": profile.id,
            "role": profile.role,
            "exp": utcnow() + timedelta(minutes=exp_min),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

    def verify(self, token: str) -> Optional[str]:
        """Profile id from a valid token, else None."""
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
        except JWTError:
            return None
        sub = payload.get("sub")
        return str(sub) if sub else None

    # ---- high-level auth ----
    def authenticate(self, db: Session, email: str, password: str) -> Dict:
        """
        On failure, raises AuthError with a code you can safely surface to the client:
          - NO_ACCOUNT: no profile row (or no password set)
          - BAD_PASSWORD: hash check failed
        """
        email_norm = email.strip().lower()
        profile = self.profile_repo.get_by_email(db, email_norm)

        if not profile or not profile.password_hash:
            logger.warning({"step": "authenticate_failed", "reason": "no_account", "email_norm": email_norm})
            raise AuthError(
                code="NO_ACCOUNT",
                public_detail="We couldn’t find an account with that email.",
                log_detail=f"no profile or no hash for {email_norm}",
            )

        try:
            ok = self.verify_password(password, profile.password_hash)
        except ValueError as e:
            # Malformed hash or bcrypt backend problems
            logger.exception({"step": "authenticate_verify_exception", "email_norm": email_norm})
            raise AuthError(
                code="UNEXPECTED",
                public_detail="We couldn’t sign you in. Please try again.",
                log_detail=str(e),
            )

        if not ok:
            logger.warning({"step": "authenticate_failed", "reason": "bad_password", "profile_id": profile.id})
            raise AuthError(
                code="BAD_PASSWORD",
                public_detail="Incorrect email or password.",
                log_detail=f"bad password for pid={profile.id}",
            )

        self.profile_repo.update_last_login(db, profile)

        logger.info({"step": "authenticate_success", "profile_id": profile.id, "role": profile.role})
        return {
            "profile_id": profile.id,
            "role": profile.role,
            "access_token": self.create_access_token(profile),
            "token_type": "bearer",
        }

    def register_profile(
        self,
        db: Session,
        email: str,
        password: str,
        *,
        full_name: str = "",
        role: str = "patient",
    ) -> Profile:
        email_norm = email.strip().lower()
        if self.profile_repo.get_by_email(db, email_norm):
            raise AuthError(
                code="EMAIL_TAKEN",
                public_detail="Email already registered",
                log_detail=f"duplicate registration for {email_norm}",
            )

        profile = self.profile_repo.create_profile(db, ProfileCreate(
            email=email_norm,
            full_name=full_name,
            role=role,
            password_hash=self.hash_password(password),
        ))
        logger.info({"step": "register_success", "profile_id": profile.id, "role": profile.role})
        return profile
