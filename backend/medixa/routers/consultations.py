# medixa/routers/consultations.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from medixa.clients.video_client import VideoClient
from medixa.routers.auth import get_current_owner
from medixa.services.consultation import ConsultationRegistry, ConsultationSession, consultations

router = APIRouter(prefix="/consultations/video", tags=["consultations"])

# ----- DI providers -----
def get_video_client() -> VideoClient:
    return VideoClient()

def get_consultations() -> ConsultationRegistry:
    return consultations

# ----- Payloads -----
class StartConsultationRequest(BaseModel):
    context: Optional[str] = Field(None, description="What the patient wants to talk about")

class ContextUpdateRequest(BaseModel):
    context: str = Field(..., min_length=1)

class ConsultationResponse(BaseModel):
    conversation_id: str
    conversation_url: str
    status: str
    placeholder: bool = Field(False, description="True when the video service was unavailable")

class ContextUpdateResponse(BaseModel):
    conversation_id: str
    updated: bool

# ----- Helpers -----
def _owned(registry: ConsultationRegistry, conversation_id: str, owner_id: str) -> ConsultationSession:
    session = registry.get(conversation_id, owner_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Consultation not found")
    return session

# ----- Routes -----
@router.post(
    "",
    response_model=ConsultationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a video consultation with Dr. Ava",
)
def start_consultation(
    payload: Optional[StartConsultationRequest] = None,
    owner_id: str = Depends(get_current_owner),
    video: VideoClient = Depends(get_video_client),
    registry: ConsultationRegistry = Depends(get_consultations),
):
    session = ConsultationSession(owner_id, video)
    conversation = session.start(payload.context if payload else None)
    registry.add(session)
    return ConsultationResponse(
        conversation_id=conversation.conversation_id,
        conversation_url=conversation.conversation_url,
        status=conversation.status,
        placeholder=conversation.is_placeholder,
    )

@router.get("/{conversation_id}", response_model=ConsultationResponse, summary="Consultation status")
def get_consultation(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    registry: ConsultationRegistry = Depends(get_consultations),
):
    session = _owned(registry, conversation_id, owner_id)
    return ConsultationResponse(
        conversation_id=conversation_id,
        conversation_url=session.conversation.conversation_url,
        status=session.status(),
        placeholder=session.conversation.is_placeholder,
    )

@router.put("/{conversation_id}/context", response_model=ContextUpdateResponse, summary="Update consultation context")
def update_context(
    conversation_id: str,
    payload: ContextUpdateRequest,
    owner_id: str = Depends(get_current_owner),
    registry: ConsultationRegistry = Depends(get_consultations),
):
    session = _owned(registry, conversation_id, owner_id)
    # Best-effort: a failed update never ends the consultation
    return ContextUpdateResponse(conversation_id=conversation_id, updated=session.update_context(payload.context))

@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT, summary="End a consultation")
def end_consultation(
    conversation_id: str,
    owner_id: str = Depends(get_current_owner),
    registry: ConsultationRegistry = Depends(get_consultations),
):
    session = _owned(registry, conversation_id, owner_id)
    registry.remove(conversation_id)
    session.close()
    return
