# medixa/services/errors.py
"""
Classifiable failures for the chat core and its external collaborators.

Every error carries a machine code, a message that is safe to show to a
patient, and extra detail for server logs only.
"""
from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ChatError(Exception):
    code: str                 # machine-readable, e.g. "IMAGE_TOO_LARGE"
    public_detail: str        # safe message for clients
    log_detail: str = ""      # extra info for server logs

    def __str__(self) -> str:
        return f"{self.code}: {self.log_detail or self.public_detail}"


class ValidationError(ChatError):
    """Rejected input; raised before any state change."""


class TranscriptionError(ChatError):
    """Speech-to-text failed. Codes: NOT_CONFIGURED | UNAUTHORIZED | FORBIDDEN | RATE_LIMITED | NO_SPEECH | UNEXPECTED."""


class SynthesisError(ChatError):
    """Text-to-speech failed; the text reply is unaffected."""


class ModelInvocationError(ChatError):
    """Language-model call failed (timeout, auth, quota, empty config)."""


class StorageError(ChatError):
    """Session store backend unreachable or write rejected."""


class ConcurrentWriteError(StorageError):
    """Check-and-set append lost against another writer."""


class VideoServiceError(ChatError):
    """Video-session provisioning failed."""


# ---- media access (camera / microphone) ----

MEDIA_ERROR_MESSAGES = {
    "PERMISSION_DENIED": "Camera and microphone access denied. Please allow access in your browser settings and try again.",
    "NOT_FOUND": "No camera or microphone found. Please connect a camera and microphone and try again.",
    "DEVICE_BUSY": "Camera or microphone is already in use by another application. Please close other applications and try again.",
    "CONSTRAINT_VIOLATION": "Camera or microphone does not meet the required specifications. Please try with different settings.",
    "SECURITY_BLOCKED": "Camera and microphone access blocked due to security restrictions. Please check your browser settings.",
    "UNSUPPORTED": "Your browser does not support camera and microphone access. Please use a modern browser like Chrome, Firefox, or Safari.",
    "UNEXPECTED": "Unable to access camera and microphone.",
}

# Names reported by the browser media APIs
_DEVICE_ERROR_CODES = {
    "NotAllowedError": "PERMISSION_DENIED",
    "PermissionDeniedError": "PERMISSION_DENIED",
    "NotFoundError": "NOT_FOUND",
    "DevicesNotFoundError": "NOT_FOUND",
    "NotReadableError": "DEVICE_BUSY",
    "TrackStartError": "DEVICE_BUSY",
    "OverconstrainedError": "CONSTRAINT_VIOLATION",
    "SecurityError": "SECURITY_BLOCKED",
    "NotSupportedError": "UNSUPPORTED",
}


class MediaAccessError(ChatError):
    """Camera/microphone could not be acquired."""

    @classmethod
    def from_device_error(cls, name: str, message: str = "") -> "MediaAccessError":
        code = _DEVICE_ERROR_CODES.get(name or "", "UNEXPECTED")
        public = MEDIA_ERROR_MESSAGES[code]
        if code == "UNEXPECTED" and message:
            public = message
        return cls(code=code, public_detail=public, log_detail=f"{name}: {message}")
