# medixa/routers/chat.py
from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from medixa.clients.llm_client import LLMClient
from medixa.clients.speech_client import SpeechClient
from medixa.routers.auth import get_current_owner
from medixa.routers.sessions import get_session_store, load_owned_session
from medixa.schemas.message import RenderedMessage
from medixa.services.audio_store import AudioStore, audio_store
from medixa.services.chat_orchestrator import ChatEvent, ChatOrchestrator, TurnResult
from medixa.services.context_builder import ContextBuilder
from medixa.services.errors import ValidationError
from medixa.services.session_store import SessionStore

router = APIRouter(prefix="/chat", tags=["chat"])

# ------- DI providers -------
def get_llm_client() -> LLMClient:
    return LLMClient()

def get_speech_client() -> Iterator[SpeechClient]:
    speech = SpeechClient()
    try:
        yield speech
    finally:
        speech.close()

def get_audio_store() -> AudioStore:
    return audio_store

def get_context_builder() -> ContextBuilder:
    return ContextBuilder()


class ChatView:
    """A request-scoped orchestrator plus the warnings it raised along the way."""

    def __init__(self, orchestrator: ChatOrchestrator):
        self.orchestrator = orchestrator
        self.warnings: List[Dict[str, Any]] = []
        orchestrator.subscribe(self._on_event)

    def _on_event(self, event: ChatEvent) -> None:
        if event.kind == "warning":
            self.warnings.append(dict(event.payload))


def get_chat_view(
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
    llm: LLMClient = Depends(get_llm_client),
    speech: SpeechClient = Depends(get_speech_client),
    audio: AudioStore = Depends(get_audio_store),
    context_builder: ContextBuilder = Depends(get_context_builder),
) -> Iterator[ChatView]:
    orchestrator = ChatOrchestrator(
        owner_id,
        store,
        llm,
        speech=speech,
        audio_store=audio,
        context_builder=context_builder,
    )
    try:
        yield ChatView(orchestrator)
    finally:
        orchestrator.close()

# ------- Request/response shapes -------
class StartChatRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Session to resume; omit to start a new chat")
    initial_message: Optional[str] = Field(None, description="Quick-start prompt sent once the chat has loaded")

class ChatWarning(BaseModel):
    code: str
    message: str

class ChatViewResponse(BaseModel):
    session_id: Optional[str]
    display_name: Optional[str] = None
    state: str
    messages: List[RenderedMessage]
    warnings: List[ChatWarning] = Field(default_factory=list)

class SendMessageRequest(BaseModel):
    text: str = Field(..., max_length=8000, description="User message text")

class TurnResponse(BaseModel):
    session_id: Optional[str]
    user: RenderedMessage
    assistant: RenderedMessage
    warnings: List[ChatWarning] = Field(default_factory=list)

# ------- Helpers -------
_VALIDATION_STATUS = {
    "INVALID_IMAGE_TYPE": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    "IMAGE_TOO_LARGE": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "AUDIO_TOO_LARGE": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
}

def _validation_http(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=_VALIDATION_STATUS.get(e.code, status.HTTP_400_BAD_REQUEST),
        detail=e.public_detail,
        headers={"X-Error-Code": e.code},
    )

def _read_bounded(upload: UploadFile, limit: int) -> bytes:
    # One byte past the limit is enough to know the upload is too large
    return upload.file.read(limit + 1)

def _open_owned(view: ChatView, store: SessionStore, session_id: str) -> None:
    load_owned_session(store, session_id, view.orchestrator.owner_id)
    view.orchestrator.open_session(session_id)

def _turn_response(view: ChatView, result: TurnResult) -> TurnResponse:
    return TurnResponse(
        session_id=view.orchestrator.session_id,
        user=result.user,
        assistant=result.assistant,
        warnings=view.warnings,
    )

# ------- Routes -------
@router.post("/start", response_model=ChatViewResponse, summary="Open a chat view (resume or start a session)")
def start_chat(
    payload: StartChatRequest,
    view: ChatView = Depends(get_chat_view),
):
    orchestrator = view.orchestrator
    # Deferred until loading completes, then sent exactly once
    orchestrator.set_initial_message(payload.initial_message)
    orchestrator.open_session(payload.session_id)
    snap = orchestrator.snapshot()
    return ChatViewResponse(
        session_id=snap["session_id"],
        display_name=snap["display_name"],
        state=snap["state"],
        messages=snap["messages"],
        warnings=view.warnings,
    )

@router.post("/{session_id}/messages", response_model=TurnResponse, summary="Send a text message")
def send_message(
    session_id: str,
    payload: SendMessageRequest,
    view: ChatView = Depends(get_chat_view),
    store: SessionStore = Depends(get_session_store),
):
    if not payload.text.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter a message.")
    _open_owned(view, store, session_id)
    result = view.orchestrator.send_text(payload.text)
    return _turn_response(view, result)

@router.post("/{session_id}/voice", response_model=TurnResponse, summary="Send a recorded voice message")
def send_voice(
    session_id: str,
    audio: UploadFile = File(...),
    view: ChatView = Depends(get_chat_view),
    store: SessionStore = Depends(get_session_store),
):
    orchestrator = view.orchestrator
    data = _read_bounded(audio, orchestrator.max_audio_bytes)
    try:
        orchestrator.validate_audio(data)
    except ValidationError as e:
        raise _validation_http(e)

    _open_owned(view, store, session_id)
    # An empty recording is answered with the no-speech sentence
    try:
        result = orchestrator.send_voice(data, audio.content_type or "audio/webm")
    except ValidationError as e:
        raise _validation_http(e)
    return _turn_response(view, result)

@router.post("/{session_id}/image", response_model=TurnResponse, summary="Send an image for analysis")
def send_image(
    session_id: str,
    image: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    view: ChatView = Depends(get_chat_view),
    store: SessionStore = Depends(get_session_store),
):
    orchestrator = view.orchestrator
    data = _read_bounded(image, orchestrator.max_image_bytes)
    # Reject before touching the session
    try:
        orchestrator.validate_image(data, image.content_type)
    except ValidationError as e:
        raise _validation_http(e)

    _open_owned(view, store, session_id)
    try:
        result = orchestrator.send_image(data, image.content_type, caption)
    except ValidationError as e:
        raise _validation_http(e)
    return _turn_response(view, result)
