"""
Profile model for patients, health workers and doctors.
"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from .base import BaseModel

PROFILE_ROLES = ("patient", "health-worker", "doctor")


class Profile(BaseModel):
    """
    Authenticated principal of the application.

    Only profiles with role 'patient' own chat sessions; the other roles
    exist so the same login serves every dashboard.
    """

    __tablename__ = "profiles"

    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default="patient", index=True)
    password_hash = Column(String(255), nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    # One patient owns many chat sessions; deleting the profile removes them
    chat_sessions = relationship("ChatSession", back_populates="owner", cascade="all, delete-orphan")

    @property
    def is_patient(self) -> bool:
        return self.role == "patient"

    def __repr__(self):
        return f"<Profile(id={self.id}, email='{self.email}', role='{self.role}')>"
