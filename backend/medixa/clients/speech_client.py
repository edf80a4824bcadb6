# medixa/clients/speech_client.py
"""
ElevenLabs speech-to-text and text-to-speech client.
"""
from __future__ import annotations
from typing import Optional
import logging

import httpx

from medixa.config import settings
from medixa.services.errors import SynthesisError, TranscriptionError

logger = logging.getLogger(__name__)

_STATUS_CODES = {401: "UNAUTHORIZED", 403: "FORBIDDEN", 429: "RATE_LIMITED"}

_STATUS_DETAILS = {
    401: "Invalid ElevenLabs API key. Please check your API key configuration.",
    403: "ElevenLabs API access forbidden. Please check your subscription status.",
    429: "ElevenLabs API rate limit exceeded. Please try again later.",
}


class SpeechClient:
    """Client for the ElevenLabs speech APIs."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        voice_id: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[httpx.Client] = None,
    ):
        self.api_key = settings.ELEVENLABS_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.ELEVENLABS_BASE_URL).rstrip("/")
        self.voice_id = voice_id or settings.ELEVENLABS_VOICE_ID
        self.http = http or httpx.Client(timeout=timeout or settings.SPEECH_TIMEOUT_S)

    def close(self) -> None:
        self.http.close()

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def transcribe(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
    ) -> str:
        """Returns the trimmed transcript. Raises TranscriptionError, including for silence."""
        if not self.api_key:
            raise TranscriptionError(code="NOT_CONFIGURED", public_detail="Speech-to-text service is not configured")

        try:
            response = self.http.post(
                f"{self.base_url}/speech-to-text",
                headers={"xi-api-key": self.api_key},
                files={"file": (filename, audio, content_type)},
                data={"model_id": settings.ELEVENLABS_STT_MODEL, "language_code": "en"},
            )
        except httpx.HTTPError as e:
            logger.error(f"ElevenLabs Speech-to-Text request failed: {e}")
            raise TranscriptionError(code="UNEXPECTED", public_detail="Speech-to-text request failed", log_detail=str(e)) from e

        if response.status_code >= 400:
            logger.error(f"ElevenLabs Speech-to-Text API error: {response.status_code} {response.text[:300]}")
            raise TranscriptionError(
                code=_STATUS_CODES.get(response.status_code, "UNEXPECTED"),
                public_detail=_STATUS_DETAILS.get(
                    response.status_code,
                    f"ElevenLabs Speech-to-Text API error: {response.status_code}",
                ),
                log_detail=response.text[:300],
            )

        try:
            text = (response.json().get("text") or "").strip()
        except ValueError as e:
            raise TranscriptionError(code="UNEXPECTED", public_detail="Invalid speech-to-text response", log_detail=str(e)) from e

        if not text:
            raise TranscriptionError(code="NO_SPEECH", public_detail="No speech detected in audio")
        return text

    def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Returns MPEG audio for `text`."""
        if not self.api_key:
            raise SynthesisError(code="NOT_CONFIGURED", public_detail="ElevenLabs API key not configured")

        try:
            response = self.http.post(
                f"{self.base_url}/text-to-speech/{voice_id or self.voice_id}",
                headers={
                    "Accept": "audio/mpeg",
                    "xi-api-key": self.api_key,
                },
                json={
                    "text": text,
                    "model_id": settings.ELEVENLABS_TTS_MODEL,
                    "voice_settings": {
                        "stability": 0.5,
                        "similarity_boost": 0.75,
                        "style": 0.0,
                        "use_speaker_boost": True,
                    },
                },
            )
        except httpx.HTTPError as e:
            raise SynthesisError(code="UNEXPECTED", public_detail="Text-to-speech request failed", log_detail=str(e)) from e

        if response.status_code >= 400:
            raise SynthesisError(
                code=_STATUS_CODES.get(response.status_code, "UNEXPECTED"),
                public_detail=_STATUS_DETAILS.get(
                    response.status_code,
                    f"ElevenLabs TTS API error: {response.status_code}",
                ),
                log_detail=response.text[:300],
            )
        return response.content
