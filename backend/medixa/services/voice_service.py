# medixa/services/voice_service.py
"""
Turns a voice recording into text the chat can always use.
Transcription failures become fixed, readable sentences instead of errors.
"""
import logging
from typing import Optional

from medixa.clients.speech_client import SpeechClient
from medixa.services.errors import TranscriptionError

logger = logging.getLogger(__name__)

TRANSCRIPTION_FALLBACKS = {
    "NOT_CONFIGURED": "Speech-to-text service is not available. Please type your message instead.",
    "UNAUTHORIZED": "Speech-to-text service is not configured properly. Please type your message instead.",
    "FORBIDDEN": "Speech-to-text service access is restricted. Please type your message instead.",
    "RATE_LIMITED": "Speech-to-text service is temporarily unavailable. Please try again later or type your message.",
    "NO_SPEECH": "I couldn't detect any speech in your recording. Please try speaking more clearly or closer to the microphone.",
    "UNEXPECTED": "I had trouble understanding your voice message. Please try speaking more clearly or type your message instead.",
}

NO_SPEECH_TEXT = TRANSCRIPTION_FALLBACKS["NO_SPEECH"]
VOICE_MESSAGE_PLACEHOLDER = "Voice message"


def fallback_text(code: str) -> str:
    return TRANSCRIPTION_FALLBACKS.get(code, TRANSCRIPTION_FALLBACKS["UNEXPECTED"])


def transcribe_or_explain(
    speech: Optional[SpeechClient],
    audio: bytes,
    content_type: str = "audio/webm",
) -> str:
    """Never raises for speech-service failures."""
    if not audio:
        return NO_SPEECH_TEXT
    extension = content_type.split("/")[-1].split(";")[0] or "webm"
    try:
        return speech.transcribe(audio, filename=f"recording.{extension}", content_type=content_type)
    except TranscriptionError as e:
        logger.warning(f"Transcription degraded ({e.code}): {e.log_detail or e.public_detail}")
        return fallback_text(e.code)
