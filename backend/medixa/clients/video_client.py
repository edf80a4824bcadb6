# medixa/clients/video_client.py
"""
Tavus conversational-video client for Dr. Ava consultations.

Provisioning never blocks the consultation: without an API key the client
hands out a `mock_` conversation, and on any failure a `fallback_` one, both
pointing at a local placeholder page. Follow-up calls skip placeholders and
never raise.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import logging
import time

import httpx

from medixa.config import settings
from medixa.services.errors import VideoServiceError

logger = logging.getLogger(__name__)

PLACEHOLDER_KEY = "your_tavus_api_key_here"
PLACEHOLDER_PREFIXES = ("mock_", "fallback_")

MEDICAL_SYSTEM_PROMPT = """You are Dr. Ava, a professional and empathetic AI medical assistant. Your role is to provide helpful medical guidance while maintaining the highest standards of care.

MEDICAL GUIDELINES:
- Provide helpful medical information and guidance
- Always recommend consulting healthcare professionals for serious concerns
- If symptoms seem severe or emergency-related, immediately suggest emergency care
- Use simple, understandable language that patients can easily follow
- Ask relevant follow-up questions to better understand symptoms

SAFETY PROTOCOLS:
- Never provide specific diagnoses - only general medical information
- Always emphasize the need for professional medical evaluation
- For emergencies, immediately direct to emergency services
- Be honest about limitations as an AI assistant

Remember: You are here to support and guide patients, but professional medical care is irreplaceable for proper diagnosis and treatment."""

_STATUS_DETAILS = {
    401: "Invalid Tavus API key. Please check your TAVUS_API_KEY environment variable.",
    403: "Tavus API access forbidden. Please check your API key permissions.",
    404: "Persona not found. Please verify the persona exists in your Tavus account.",
    422: "Invalid conversation configuration. Please check the persona ID and settings.",
}


@dataclass
class VideoConversation:
    conversation_id: str
    conversation_url: str
    status: str = "active"

    @property
    def is_placeholder(self) -> bool:
        return is_placeholder_id(self.conversation_id)


def is_placeholder_id(conversation_id: str) -> bool:
    return conversation_id.startswith(PLACEHOLDER_PREFIXES)


class VideoClient:
    """Client for the Tavus v2 conversations API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        persona_id: Optional[str] = None,
        timeout: Optional[float] = None,
        http: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_key = settings.TAVUS_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.TAVUS_BASE_URL).rstrip("/")
        self.persona_id = persona_id or settings.TAVUS_PERSONA_ID
        self.http = http or httpx.Client(timeout=timeout or settings.TAVUS_TIMEOUT_S)
        self.clock = clock

    def close(self) -> None:
        self.http.close()

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key != PLACEHOLDER_KEY)

    def _headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "Content-Type": "application/json"}

    def _placeholder(self, prefix: str) -> VideoConversation:
        return VideoConversation(
            conversation_id=f"{prefix}{int(self.clock() * 1000)}",
            conversation_url=f"{settings.PUBLIC_BASE_URL.rstrip('/')}/mock-tavus-conversation",
            status="active",
        )

    def _skip(self, conversation_id: str) -> bool:
        return not self.is_configured() or is_placeholder_id(conversation_id)

    # ---- provisioning ----

    def _request_conversation(self) -> VideoConversation:
        config = {
            "persona_id": self.persona_id,
            "properties": {
                "max_call_duration": settings.TAVUS_MAX_CALL_DURATION_S,
                "participant_left_timeout": 60,
                "enable_recording": False,
                "language": "English",
            },
        }
        try:
            response = self.http.post(f"{self.base_url}/v2/conversations", headers=self._headers(), json=config)
        except httpx.HTTPError as e:
            raise VideoServiceError(code="NETWORK", public_detail="Unable to reach the video service.", log_detail=str(e)) from e

        if response.status_code >= 400:
            detail = _STATUS_DETAILS.get(response.status_code)
            if detail is None:
                detail = f"Tavus API error: {response.status_code}"
                try:
                    body = response.json()
                    detail = body.get("message") or body.get("error") or body.get("detail") or detail
                except ValueError:
                    pass
            raise VideoServiceError(code=f"HTTP_{response.status_code}", public_detail=detail, log_detail=response.text[:300])

        try:
            data: Dict[str, Any] = response.json()
        except ValueError as e:
            raise VideoServiceError(code="INVALID_RESPONSE", public_detail="Invalid JSON response from Tavus API") from e

        return VideoConversation(
            conversation_id=data["conversation_id"],
            conversation_url=data.get("conversation_url") or "",
            status=data.get("status") or "active",
        )

    def create_conversation(self) -> VideoConversation:
        if not self.is_configured():
            logger.warning("Tavus API key not configured, using mock conversation")
            return self._placeholder("mock_")
        try:
            conversation = self._request_conversation()
            logger.info(f"Tavus conversation {conversation.conversation_id} created with persona {self.persona_id}")
            return conversation
        except (VideoServiceError, KeyError) as e:
            logger.error(f"Error creating Tavus conversation: {e}")
            return self._placeholder("fallback_")

    # ---- follow-up calls (best-effort) ----

    def update_context(self, conversation_id: str, context: str) -> bool:
        if self._skip(conversation_id):
            logger.info("Skipping conversation context update - using mock/fallback mode")
            return True
        try:
            response = self.http.put(
                f"{self.base_url}/v2/conversations/{conversation_id}/context",
                headers=self._headers(),
                json={"context": context, "system_prompt": MEDICAL_SYSTEM_PROMPT},
            )
        except httpx.HTTPError as e:
            logger.error(f"Tavus context update failed for {conversation_id}: {e}")
            return False
        if response.status_code >= 400:
            logger.error(f"Failed to update conversation context: {response.status_code} {response.text[:300]}")
            return False
        return True

    def send_message(self, conversation_id: str, message: str) -> bool:
        if self._skip(conversation_id):
            return True
        try:
            response = self.http.post(
                f"{self.base_url}/v2/conversations/{conversation_id}/messages",
                headers=self._headers(),
                json={"message": message, "sender": "system"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Error sending message to conversation {conversation_id}: {e}")
            return False
        if response.status_code >= 400:
            logger.error(f"Failed to send message: {response.status_code} {response.text[:300]}")
            return False
        return True

    def end_conversation(self, conversation_id: str) -> bool:
        if self._skip(conversation_id):
            return True
        try:
            response = self.http.delete(f"{self.base_url}/v2/conversations/{conversation_id}", headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Error ending Tavus conversation {conversation_id}: {e}")
            return False
        if response.status_code >= 400:
            logger.error(f"Failed to end conversation: {response.status_code} {response.text[:300]}")
            return False
        logger.info(f"Conversation {conversation_id} ended")
        return True

    def get_status(self, conversation_id: str) -> str:
        if self._skip(conversation_id):
            return "active"
        try:
            response = self.http.get(f"{self.base_url}/v2/conversations/{conversation_id}", headers=self._headers())
            response.raise_for_status()
            return response.json().get("status") or "unknown"
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error getting conversation status for {conversation_id}: {e}")
            return "error"
