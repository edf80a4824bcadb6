# medixa/routers/auth.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from medixa.database import get_db
from medixa.models.profile import Profile
from medixa.repositories.profile import ProfileRepository
from medixa.schemas.profile import ProfileResponse, ProfileRole
from medixa.services.auth_service import AuthService, AuthError

router = APIRouter(prefix="/auth", tags=["auth"])

# ---- DI ----
def get_auth_service() -> AuthService:
    return AuthService()

def get_profile_repo() -> ProfileRepository:
    return ProfileRepository()

# ---- Schemas ----
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = ""
    role: ProfileRole = "patient"

class TokenResponse(BaseModel):
    profile_id: str
    role: ProfileRole
    access_token: str
    token_type: str = "bearer"

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

# ---- Helpers ----
def _extract_bearer(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")
    return token

def get_current_profile(
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    profile_repo: ProfileRepository = Depends(get_profile_repo),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Profile:
    token = _extract_bearer(authorization)
    profile_id = auth.verify(token)
    if not profile_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    profile = profile_repo.get(db, profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account no longer exists")
    return profile

def get_current_owner(profile: Profile = Depends(get_current_profile)) -> str:
    """Owner id for chat sessions; only patients have chat history."""
    if not profile.is_patient:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Chat is available to patients only")
    return profile.id

# ---- Routes ----
@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED, summary="Create an account")
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    try:
        profile = auth.register_profile(
            db, payload.email, payload.password, full_name=payload.full_name, role=payload.role,
        )
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=e.public_detail,
            headers={"X-Error-Code": e.code},
        )

    return TokenResponse(
        profile_id=profile.id,
        role=profile.role,
        access_token=auth.create_access_token(profile),
    )

@router.post("/login", response_model=TokenResponse, summary="Login and receive an access token")
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    try:
        result = auth.authenticate(db, payload.email, payload.password)
        return TokenResponse(**result)
    except AuthError as e:
        # Always 401 to avoid account enumeration; the code lets the UI pick its copy
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.public_detail,
            headers={"X-Error-Code": e.code},
        )

@router.get("/me", response_model=ProfileResponse, summary="Return the current authenticated profile")
def me(profile: Profile = Depends(get_current_profile)):
    return ProfileResponse.model_validate(profile)
