# medixa/services/chat_orchestrator.py
"""
The chat control loop: input capture, persistence, model invocation and
voice synthesis for one chat view.

Every submission renders its messages first and persists them second
(two-phase delivery: unconfirmed -> confirmed | local_only). No failure of
storage, transcription, the model or speech synthesis reaches the caller;
only input validation does.
"""
from __future__ import annotations

import base64
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from medixa.clients.llm_client import LLMClient
from medixa.clients.speech_client import SpeechClient
from medixa.config import settings
from medixa.models.base import utcnow
from medixa.schemas.message import RenderedMessage
from medixa.services.audio_store import AudioStore
from medixa.services.context_builder import WELCOME_MESSAGE_ID, ContextBuilder
from medixa.services.errors import (
    MediaAccessError,
    ModelInvocationError,
    StorageError,
    SynthesisError,
    ValidationError,
)
from medixa.services.media import MediaDevice, MediaStream, acquire_stream, release_stream
from medixa.services.session_store import SessionStore
from medixa.services.voice_service import VOICE_MESSAGE_PLACEHOLDER, fallback_text, transcribe_or_explain

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Hello! I'm Dr. Ava, your AI health assistant. How can I help you today? "
    "You can type your message, record a voice note, or upload an image of any "
    "symptoms you'd like me to analyze."
)
MODEL_FALLBACK_REPLY = (
    "I'm experiencing technical difficulties right now. "
    "For urgent concerns, please contact a healthcare professional."
)
IMAGE_FALLBACK_REPLY = (
    "I'm having trouble analyzing the image right now. Please describe your symptoms in text."
)
UNEXPECTED_ERROR_REPLY = (
    "I apologize, but I'm experiencing technical difficulties right now. "
    "For immediate medical concerns, please contact your healthcare provider or emergency services. "
    "I'll be back to assist you shortly."
)
DEFAULT_IMAGE_CAPTION = "Please analyze this image and provide medical insights."
IMAGE_UPLOADED_TEXT = "Image uploaded"
PERSISTED_IMAGE_PLACEHOLDER = "Medical image analyzed"

INVALID_IMAGE_TYPE_TEXT = "Please select an image file (JPEG, PNG, GIF, etc.)"
IMAGE_TOO_LARGE_TEXT = "Image file is too large. Please select an image smaller than 10MB."
AUDIO_TOO_LARGE_TEXT = "This recording is too long. Please keep voice messages short or type your message instead."


class ChatState(str, Enum):
    LOADING = "loading"
    IDLE = "idle"
    AWAITING_MODEL_RESPONSE = "awaiting_model_response"


class Activity(str, Enum):
    NONE = "none"
    RECORDING = "recording"
    TRANSCRIBING_AUDIO = "transcribing_audio"
    ANALYZING_IMAGE = "analyzing_image"


@dataclass
class ChatEvent:
    kind: str  # state_changed | message_added | message_updated | session_changed | warning
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TurnResult:
    user: RenderedMessage
    assistant: RenderedMessage


Listener = Callable[[ChatEvent], None]


def _epoch_ms(ts: datetime) -> int:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


class ChatOrchestrator:
    """
    One instance per chat view, bound to one owner.

    Submissions are serialised by a re-entrant lock so messages are appended
    in user-action order. Session loads are tagged with a generation number;
    a load that finishes after a newer open_session() is discarded.
    """

    def __init__(
        self,
        owner_id: str,
        store: SessionStore,
        llm: LLMClient,
        speech: Optional[SpeechClient] = None,
        audio_store: Optional[AudioStore] = None,
        context_builder: Optional[ContextBuilder] = None,
        *,
        tts_enabled: Optional[bool] = None,
        max_image_bytes: Optional[int] = None,
        max_audio_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.owner_id = owner_id
        self.store = store
        self.llm = llm
        self.speech = speech
        self.audio_store = audio_store
        self.context_builder = context_builder or ContextBuilder()
        self.tts_enabled = settings.TTS_ENABLED if tts_enabled is None else tts_enabled
        self.max_image_bytes = max_image_bytes or settings.MAX_IMAGE_BYTES
        self.max_audio_bytes = max_audio_bytes or settings.MAX_AUDIO_BYTES
        self.clock = clock

        self.state = ChatState.LOADING
        self.activity = Activity.NONE
        self.session_id: Optional[str] = None
        self.display_name: Optional[str] = None

        self._messages: List[RenderedMessage] = [self._welcome_message()]
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()
        self._generation = 0
        self._last_id_ms = 0
        self._closed = False

        self._pending_initial: Optional[str] = None
        self._seen_initial: Set[str] = set()

        self._stream: Optional[MediaStream] = None
        self._chunks: List[bytes] = []
        self._recording_type = "audio/webm"

    # ---------- events ----------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, **payload: Any) -> None:
        event = ChatEvent(kind=kind, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Chat listener failed on {kind} event")

    def _set_state(self, state: ChatState) -> None:
        if self.state != state:
            self.state = state
            self._emit("state_changed", state=state, activity=self.activity)

    def _set_activity(self, activity: Activity) -> None:
        if self.activity != activity:
            self.activity = activity
            self._emit("state_changed", state=self.state, activity=activity)

    def _warn(self, code: str, message: str) -> None:
        self._emit("warning", code=code, message=message)

    # ---------- messages ----------

    @property
    def messages(self) -> List[RenderedMessage]:
        return list(self._messages)

    def _welcome_message(self) -> RenderedMessage:
        return RenderedMessage(
            id=WELCOME_MESSAGE_ID,
            role="assistant",
            content=WELCOME_TEXT,
            timestamp=self.clock(),
            delivery="ephemeral",
        )

    def _next_id(self, now: datetime) -> str:
        # time-based, strictly increasing within this view
        self._last_id_ms = max(_epoch_ms(now), self._last_id_ms + 1)
        return str(self._last_id_ms)

    def _new_message(self, role: str, content: str, **extra: Any) -> RenderedMessage:
        now = self.clock()
        return RenderedMessage(id=self._next_id(now), role=role, content=content, timestamp=now, **extra)

    def _add(self, message: RenderedMessage) -> None:
        self._messages.append(message)
        self._emit("message_added", message=message)

    def _persist(self, message: RenderedMessage, *, image_placeholder: bool = False) -> None:
        if self.session_id is None:
            message.delivery = "local_only"
            self._emit("message_updated", message=message)
            return

        stored = message.to_persisted()
        if image_placeholder:
            stored.image_url = PERSISTED_IMAGE_PLACEHOLDER

        try:
            written = self.store.append_message(self.session_id, stored)
        except StorageError as e:
            logger.error(f"Could not save message {message.id} to session {self.session_id}: {e}")
            written = False
            self._warn(e.code, e.public_detail)
        else:
            if not written:
                logger.warning(f"Session {self.session_id} disappeared; message {message.id} kept locally")

        message.delivery = "confirmed" if written else "local_only"
        self._emit("message_updated", message=message)

    # ---------- session lifecycle ----------

    def open_session(self, session_id: Optional[str] = None) -> Optional[str]:
        """
        Reset to the welcome message, then load `session_id` or provision a
        new session. Returns the active session id (None if storage is down).
        """
        with self._lock:
            self._ensure_open()
            self._generation += 1
            generation = self._generation

            self._release_recording()
            self.session_id = None
            self.display_name = None
            self._messages = [self._welcome_message()]
            self._set_state(ChatState.LOADING)

            try:
                record = self.store.get_session(session_id) if session_id else None
                if session_id and (record is None or record.owner_id != self.owner_id):
                    logger.warning(f"Session {session_id} not available for owner {self.owner_id}; starting a new one")
                    record = None
                if record is None:
                    if generation != self._generation:
                        return self.session_id
                    record = self.store.create_session(self.owner_id)
            except StorageError as e:
                if generation != self._generation:
                    return self.session_id
                logger.error(f"Loading chat session failed, continuing in memory: {e}")
                self._warn(e.code, e.public_detail)
                self._set_state(ChatState.IDLE)
                self._flush_initial_message()
                return None

            if generation != self._generation:
                logger.info(f"Discarding stale load of session {record.id}")
                return self.session_id

            self.session_id = record.id
            self.display_name = record.display_name
            for stored in record.messages:
                self._messages.append(RenderedMessage(**stored.model_dump(), delivery="confirmed"))
                if stored.id.isdigit():
                    self._last_id_ms = max(self._last_id_ms, int(stored.id))

            self._emit("session_changed", session_id=record.id, display_name=record.display_name)
            self._set_state(ChatState.IDLE)
            self._flush_initial_message()
            return self.session_id

    def set_initial_message(self, text: Optional[str]) -> Optional[TurnResult]:
        """
        Quick-start message. Each distinct value is sent at most once, and
        only after loading has finished.
        """
        with self._lock:
            text = (text or "").strip()
            if not text or text in self._seen_initial:
                return None
            self._seen_initial.add(text)
            if self.state == ChatState.LOADING:
                self._pending_initial = text
                return None
            return self.send_text(text)

    def _flush_initial_message(self) -> None:
        text, self._pending_initial = self._pending_initial, None
        if text:
            self.send_text(text)

    def rename_session(self, name: str) -> bool:
        """Blank names raise ValidationError; storage failures return False."""
        with self._lock:
            if self.session_id is None:
                return False
            try:
                renamed = self.store.rename_session(self.session_id, name)
            except StorageError as e:
                logger.error(f"Renaming session {self.session_id} failed: {e}")
                self._warn(e.code, e.public_detail)
                return False
            if renamed:
                self.display_name = name.strip()
                self._emit("session_changed", session_id=self.session_id, display_name=self.display_name)
            return renamed

    def delete_session(self, session_id: Optional[str] = None) -> bool:
        with self._lock:
            target = session_id or self.session_id
            if target is None:
                return False
            try:
                record = self.store.get_session(target)
                if record is None or record.owner_id != self.owner_id:
                    return False
                deleted = self.store.delete_session(target)
            except StorageError as e:
                logger.error(f"Deleting session {target} failed: {e}")
                self._warn(e.code, e.public_detail)
                return False

            if deleted and target == self.session_id:
                self.open_session(None)
            return deleted

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._release_recording()
            self._generation += 1
            self._closed = True
            self._listeners.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("chat view is closed")

    # ---------- text ----------

    def send_text(self, text: Optional[str]) -> Optional[TurnResult]:
        content = (text or "").strip()
        if not content:
            return None
        with self._lock:
            self._ensure_open()
            return self._submit(content)

    # ---------- voice ----------

    def send_voice(self, audio: bytes, content_type: str = "audio/webm") -> TurnResult:
        """
        An empty recording still gets a turn: the no-speech sentence and a reply.
        Raises ValidationError for an oversized recording; nothing changes in that case.
        """
        audio = audio or b""
        with self._lock:
            self._ensure_open()
            try:
                self.validate_audio(audio)
            except ValidationError as e:
                self._warn(e.code, e.public_detail)
                raise
            audio_url = None
            if audio and self.audio_store is not None:
                audio_url = self.audio_store.url_for(self.audio_store.put(audio, content_type))

            self._set_activity(Activity.TRANSCRIBING_AUDIO)
            try:
                if self.speech is None and audio:
                    transcript = fallback_text("NOT_CONFIGURED")
                else:
                    transcript = transcribe_or_explain(self.speech, audio, content_type)
            finally:
                self._set_activity(Activity.NONE)

            return self._submit(transcript or VOICE_MESSAGE_PLACEHOLDER, audio_url=audio_url, is_voice=True)

    def validate_audio(self, audio: bytes) -> None:
        if len(audio) > self.max_audio_bytes:
            raise ValidationError(
                code="AUDIO_TOO_LARGE",
                public_detail=AUDIO_TOO_LARGE_TEXT,
                log_detail=f"{len(audio)} bytes > {self.max_audio_bytes}",
            )

    def start_recording(self, device: MediaDevice, content_type: str = "audio/webm") -> None:
        """Raises MediaAccessError (after a warning event) if the microphone is unavailable."""
        with self._lock:
            self._ensure_open()
            if self._stream is not None:
                return
            try:
                stream = acquire_stream(device, audio=True, video=False)
            except MediaAccessError as e:
                logger.warning(f"Microphone unavailable ({e.code}) for owner {self.owner_id}")
                self._warn(e.code, e.public_detail)
                raise
            self._stream = stream
            self._chunks = []
            self._recording_type = content_type
            self._set_activity(Activity.RECORDING)

    @property
    def is_recording(self) -> bool:
        return self._stream is not None

    def add_audio_chunk(self, chunk: bytes) -> None:
        with self._lock:
            if self._stream is None:
                logger.debug("Dropping audio chunk received while not recording")
                return
            if chunk:
                self._chunks.append(chunk)

    def stop_recording(self) -> Optional[TurnResult]:
        with self._lock:
            if self._stream is None:
                return None
            audio = b"".join(self._chunks)
            content_type = self._recording_type
            self._release_recording()
            return self.send_voice(audio, content_type)

    def cancel_recording(self) -> None:
        with self._lock:
            self._release_recording()

    def _release_recording(self) -> None:
        stream, self._stream = self._stream, None
        self._chunks = []
        if stream is not None:
            release_stream(stream)
            if self.activity == Activity.RECORDING:
                self._set_activity(Activity.NONE)

    # ---------- image ----------

    def validate_image(self, data: bytes, content_type: Optional[str]) -> None:
        if not (content_type or "").startswith("image/"):
            raise ValidationError(code="INVALID_IMAGE_TYPE", public_detail=INVALID_IMAGE_TYPE_TEXT, log_detail=str(content_type))
        if not data:
            raise ValidationError(code="EMPTY_IMAGE", public_detail=INVALID_IMAGE_TYPE_TEXT, log_detail="empty upload")
        if len(data) > self.max_image_bytes:
            raise ValidationError(
                code="IMAGE_TOO_LARGE",
                public_detail=IMAGE_TOO_LARGE_TEXT,
                log_detail=f"{len(data)} bytes > {self.max_image_bytes}",
            )

    def send_image(self, data: bytes, content_type: str, caption: Optional[str] = None) -> TurnResult:
        """Raises ValidationError for a bad type or size; nothing changes in that case."""
        with self._lock:
            self._ensure_open()
            try:
                self.validate_image(data, content_type)
            except ValidationError as e:
                self._warn(e.code, e.public_detail)
                raise

            data_url = f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"
            caption = (caption or "").strip()
            return self._submit(caption or IMAGE_UPLOADED_TEXT, image_data_url=data_url, caption=caption)

    # ---------- the turn ----------

    def _submit(
        self,
        content: str,
        *,
        audio_url: Optional[str] = None,
        is_voice: bool = False,
        image_data_url: Optional[str] = None,
        caption: str = "",
    ) -> TurnResult:
        history = self.context_builder.build(self._messages)

        user = self._new_message(
            "user",
            content,
            audio_url=audio_url,
            image_url=image_data_url,
            is_voice_message=is_voice,
        )
        self._add(user)
        self._persist(user, image_placeholder=image_data_url is not None)

        self._set_state(ChatState.AWAITING_MODEL_RESPONSE)
        try:
            if image_data_url is not None:
                reply = self._analyze_image(image_data_url, caption or DEFAULT_IMAGE_CAPTION)
            else:
                reply = self._generate(content, history, is_voice)

            assistant = self._new_message("assistant", reply)
            self._add(assistant)
            self._persist(assistant)
            self._attach_speech(assistant)
        finally:
            self._set_state(ChatState.IDLE)

        return TurnResult(user=user, assistant=assistant)

    def _generate(self, content: str, history, is_voice: bool) -> str:
        try:
            return self.llm.generate_response(content, history, has_image=False, is_voice=is_voice)
        except ModelInvocationError as e:
            logger.error(f"Model call failed for session {self.session_id}: {e}")
            return MODEL_FALLBACK_REPLY
        except Exception:
            logger.exception(f"Unexpected error getting a reply for session {self.session_id}")
            return UNEXPECTED_ERROR_REPLY

    def _analyze_image(self, data_url: str, caption: str) -> str:
        self._set_activity(Activity.ANALYZING_IMAGE)
        try:
            return self.llm.analyze_image(data_url, caption)
        except ModelInvocationError as e:
            logger.error(f"Image analysis failed for session {self.session_id}: {e}")
            return IMAGE_FALLBACK_REPLY
        except Exception:
            logger.exception(f"Unexpected error analyzing image for session {self.session_id}")
            return IMAGE_FALLBACK_REPLY
        finally:
            self._set_activity(Activity.NONE)

    def _attach_speech(self, message: RenderedMessage) -> None:
        """Voice for the rendered reply only; the stored copy never gets it."""
        if not (self.tts_enabled and self.speech is not None and self.audio_store is not None):
            return
        if not self.speech.is_configured():
            return
        try:
            audio = self.speech.synthesize(message.content)
        except SynthesisError as e:
            logger.warning(f"Speech synthesis skipped for message {message.id}: {e}")
            return
        message.audio_url = self.audio_store.url_for(self.audio_store.put(audio, "audio/mpeg"))
        self._emit("message_updated", message=message)

    # ---------- views ----------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "display_name": self.display_name,
            "state": self.state.value,
            "activity": self.activity.value,
            "messages": self.messages,
        }
