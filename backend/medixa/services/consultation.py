# medixa/services/consultation.py
"""
Video consultations with Dr. Ava.

A ConsultationSession owns the camera/microphone stream (when a device is
given) and the remote conversation; both are released on end() or on any
failure while starting.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from cachetools import TTLCache

from medixa.config import settings

from medixa.clients.video_client import VideoClient, VideoConversation
from medixa.services.errors import MediaAccessError
from medixa.services.media import MediaDevice, MediaStream, acquire_stream, release_stream

logger = logging.getLogger(__name__)

DEFAULT_CONSULTATION_CONTEXT = (
    "The patient has started a video consultation with Dr. Ava. "
    "Greet them warmly and ask how you can help with their health today."
)


class ConsultationSession:
    def __init__(self, owner_id: str, video: VideoClient, device: Optional[MediaDevice] = None):
        self.owner_id = owner_id
        self.video = video
        self.device = device
        self.stream: Optional[MediaStream] = None
        self.conversation: Optional[VideoConversation] = None
        self.error: Optional[MediaAccessError] = None

    @property
    def active(self) -> bool:
        return self.conversation is not None

    def start(self, context: Optional[str] = None) -> VideoConversation:
        """
        Acquire media first, then provision the conversation.
        MediaAccessError propagates (with an actionable message) and leaves
        nothing held.
        """
        if self.conversation is not None:
            return self.conversation
        try:
            if self.device is not None:
                self.stream = acquire_stream(self.device, audio=True, video=True)
            conversation = self.video.create_conversation()
            self.video.update_context(conversation.conversation_id, context or DEFAULT_CONSULTATION_CONTEXT)
        except MediaAccessError as e:
            self.error = e
            logger.warning(f"Consultation for {self.owner_id} could not access media: {e.code}")
            self._release()
            raise
        except Exception:
            self._release()
            raise
        self.conversation = conversation
        logger.info(f"Consultation {conversation.conversation_id} started for {self.owner_id}")
        return conversation

    def update_context(self, context: str) -> bool:
        if self.conversation is None:
            return False
        return self.video.update_context(self.conversation.conversation_id, context)

    def status(self) -> str:
        if self.conversation is None:
            return "ended"
        return self.video.get_status(self.conversation.conversation_id)

    def end(self) -> None:
        conversation, self.conversation = self.conversation, None
        try:
            if conversation is not None:
                self.video.end_conversation(conversation.conversation_id)
        finally:
            self._release()

    def close(self) -> None:
        """End the consultation and close its video client."""
        try:
            self.end()
        finally:
            self.video.close()

    def _release(self) -> None:
        stream, self.stream = self.stream, None
        release_stream(stream)


class _ExpiringSessions(TTLCache):
    """TTLCache that hands every expired or evicted consultation to `on_evict`."""

    def __init__(self, maxsize: int, ttl: float, on_evict: Callable[[ConsultationSession], None], timer=time.monotonic):
        super().__init__(maxsize=maxsize, ttl=ttl, timer=timer)
        self._on_evict = on_evict

    def expire(self, time=None):
        expired = super().expire(time)
        for _, session in expired:
            self._on_evict(session)
        return expired

    def popitem(self):
        key, session = super().popitem()
        self._on_evict(session)
        return key, session


class ConsultationRegistry:
    """
    Active consultations per owner, so the HTTP layer can find them again.

    Entries live at most `ttl` seconds (the provider's call limit). A
    consultation that is never ended explicitly is ended and its video
    client closed when it expires or is pushed out by newer ones.
    """

    def __init__(self, ttl: Optional[float] = None, maxsize: Optional[int] = None, timer=time.monotonic):
        self._sessions = _ExpiringSessions(
            maxsize=maxsize or settings.CONSULTATION_MAX_ACTIVE,
            ttl=ttl or settings.TAVUS_MAX_CALL_DURATION_S,
            on_evict=self._dispose,
            timer=timer,
        )
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            self._sessions.expire()
            return len(self._sessions)

    def add(self, session: ConsultationSession) -> None:
        if session.conversation is None:
            raise ValueError("consultation has not been started")
        with self._lock:
            self._sessions[session.conversation.conversation_id] = session

    def get(self, conversation_id: str, owner_id: str) -> Optional[ConsultationSession]:
        with self._lock:
            self._sessions.expire()
            session = self._sessions.get(conversation_id)
        if session is None or session.owner_id != owner_id:
            return None
        return session

    def for_owner(self, owner_id: str) -> List[ConsultationSession]:
        with self._lock:
            self._sessions.expire()
            return [s for s in self._sessions.values() if s.owner_id == owner_id]

    def remove(self, conversation_id: str) -> Optional[ConsultationSession]:
        """Forget a consultation; the caller is responsible for closing it."""
        with self._lock:
            return self._sessions.pop(conversation_id, None)

    @staticmethod
    def _dispose(session: ConsultationSession) -> None:
        conversation_id = session.conversation.conversation_id if session.conversation else None
        logger.info(f"Consultation {conversation_id} for {session.owner_id} expired; closing it")
        try:
            session.close()
        except Exception as e:
            # Runs inside cache bookkeeping; one bad session must not break the registry
            logger.error(f"Error closing expired consultation {conversation_id}: {e}")


consultations = ConsultationRegistry()
