"""In-memory TTL store for recorded and synthesized audio clips."""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache

from medixa.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioClip:
    data: bytes
    content_type: str


class AudioStore:
    """
    Holds audio blobs for a limited time and hands out `/audio/{id}` URLs.
    Clips do not survive a restart, the TTL, or eviction when the cache is full.
    """

    def __init__(self, maxsize: Optional[int] = None, ttl: Optional[int] = None, url_prefix: str = "/audio"):
        self._cache = TTLCache(
            maxsize=maxsize or settings.AUDIO_CACHE_MAX_ITEMS,
            ttl=ttl or settings.AUDIO_CACHE_TTL_S,
        )
        self._lock = threading.Lock()
        self.url_prefix = url_prefix.rstrip("/")

    def put(self, data: bytes, content_type: str = "audio/mpeg") -> str:
        audio_id = uuid.uuid4().hex
        with self._lock:
            self._cache[audio_id] = AudioClip(data=data, content_type=content_type)
        logger.debug(f"Audio SET: {audio_id[:8]} ({len(data)} bytes)")
        return audio_id

    def get(self, audio_id: str) -> Optional[AudioClip]:
        with self._lock:
            return self._cache.get(audio_id)

    def url_for(self, audio_id: str) -> str:
        return f"{self.url_prefix}/{audio_id}"


# Shared by the chat routers and the audio endpoint
audio_store = AudioStore()
