# medixa/clients/llm_client.py
"""
OpenRouter chat-completions client (OpenAI-compatible wire format).
Handles the Dr. Medixa system prompt, history mapping, vision requests and
latency measurement. Every failure surfaces as ModelInvocationError.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import time

from openai import OpenAI, OpenAIError

from medixa.config import settings
from medixa.services.context_builder import ConversationTurn
from medixa.services.errors import ModelInvocationError

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "No response received."


def build_system_prompt(has_image: bool = False, is_voice_message: bool = False) -> str:
    prompt = """You are Dr. Medixa, a concise, empathetic, and professional medical assistant. Follow these rules:

1. Role & Objective: Provide clear, accurate, and actionable medical guidance.
2. Style: Professional yet warm. Be empathetic but brief: 3 to 5 sentences max unless more detail is explicitly requested.
3. Safety: Highlight if symptoms are serious. Advise seeing a doctor when needed.
4. Language: Simple and direct. Avoid jargon; use bullet points for clarity.
5. Best Practices:
   - Start with a one-sentence summary.
   - Offer 1–2 recommended next steps.
   - Include a short note reinforcing that this does not replace professional medical care.
6. When uncertain: Say "Not enough detail, please mention [missing info]".
"""
    if has_image:
        prompt += "\nThe user has shared an image. Acknowledge that you can see it."
    if is_voice_message:
        prompt += "\nThe user sent a voice message. Acknowledge appropriately."
    return prompt


class LLMClient:
    def __init__(
        self,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.model = model or settings.OPENROUTER_MODEL
        self.temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
        self.api_key = settings.OPENROUTER_API_KEY if api_key is None else api_key
        self.base_url = base_url or settings.OPENROUTER_BASE_URL
        self.timeout = timeout or settings.LLM_TIMEOUT_S
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ModelInvocationError(
                    code="NOT_CONFIGURED",
                    public_detail="The assistant is not configured right now.",
                    log_detail="OPENROUTER_API_KEY is not set",
                )
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=1,
                default_headers={
                    "HTTP-Referer": settings.PUBLIC_BASE_URL,
                    "X-Title": "Medixa",
                },
            )
        return self._client

    def chat(
        self,
        system_prompt: str,
        user_content: Union[str, List[Dict[str, Any]]],
        *,
        messages_history: Optional[List[Dict[str, str]]] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Returns a dict with: {"text", "model", "tokens_in", "tokens_out", "latency_ms"}
        """
        msgs: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        if messages_history:
            msgs.extend(messages_history)
        msgs.append({"role": "user", "content": user_content})

        started = time.time()
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=max_tokens,
                messages=msgs,
            )
        except ModelInvocationError:
            raise
        except OpenAIError as e:
            logger.error(f"LLM call failed (model={self.model}): {e}")
            raise ModelInvocationError(
                code=type(e).__name__,
                public_detail="The assistant is unavailable right now.",
                log_detail=str(e),
            ) from e

        choices = getattr(resp, "choices", None) or []
        txt = ((choices[0].message.content if choices else None) or "").strip() or NO_RESPONSE_TEXT
        usage = getattr(resp, "usage", None)
        latency_ms = (time.time() - started) * 1000.0

        return {
            "text": txt,
            "model": self.model,
            "tokens_in": getattr(usage, "prompt_tokens", None),
            "tokens_out": getattr(usage, "completion_tokens", None),
            "latency_ms": latency_ms,
        }

    # ---- chat-core entry points ----

    @staticmethod
    def history_to_messages(history: Sequence[ConversationTurn]) -> List[Dict[str, str]]:
        return [
            {"role": "assistant" if t.role == "model" else "user", "content": t.text}
            for t in history
        ]

    def generate_response(
        self,
        user_message: str,
        history: Sequence[ConversationTurn] = (),
        *,
        has_image: bool = False,
        is_voice: bool = False,
    ) -> str:
        result = self.chat(
            build_system_prompt(has_image, is_voice),
            user_message,
            messages_history=self.history_to_messages(history),
        )
        logger.debug(f"LLM reply in {result['latency_ms']:.0f}ms (tokens_out={result['tokens_out']})")
        return result["text"]

    def analyze_image(self, image_data_url: str, caption: str) -> str:
        if not image_data_url:
            raise ModelInvocationError(code="INVALID_IMAGE", public_detail="Invalid image data")
        result = self.chat(
            build_system_prompt(True, False),
            [
                {"type": "text", "text": caption},
                {"type": "image_url", "image_url": {"url": image_data_url}},
            ],
        )
        return result["text"]
