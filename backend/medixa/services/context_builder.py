"""
Projects a session's message list into the turns sent to the language model.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional

from medixa.config import settings
from medixa.schemas.message import ChatMessage

WELCOME_MESSAGE_ID = "welcome"


@dataclass(frozen=True)
class ConversationTurn:
    role: Literal["user", "model"]
    text: str


class ContextBuilder:
    """
    Sliding window over the conversation.

    Keeps the newest `max_turns` turns, then drops the oldest until the
    combined text fits in `max_chars`. The newest turn is always kept.
    Either bound can be None to disable it.
    """

    def __init__(self, max_turns: Optional[int] = None, max_chars: Optional[int] = None):
        self.max_turns = settings.CONTEXT_MAX_TURNS if max_turns is None else max_turns
        self.max_chars = settings.CONTEXT_MAX_CHARS if max_chars is None else max_chars

    @classmethod
    def unbounded(cls) -> "ContextBuilder":
        builder = cls()
        builder.max_turns = None
        builder.max_chars = None
        return builder

    def project(self, messages: Iterable[ChatMessage]) -> List[ConversationTurn]:
        """Every non-welcome message as a turn, in chronological order."""
        turns: List[ConversationTurn] = []
        for m in messages:
            if m.id == WELCOME_MESSAGE_ID:
                continue
            turns.append(ConversationTurn(role="user" if m.role == "user" else "model", text=m.content))
        return turns

    def build(self, messages: Iterable[ChatMessage]) -> List[ConversationTurn]:
        turns = self.project(messages)

        if self.max_turns is not None and self.max_turns >= 0:
            turns = turns[-self.max_turns:] if self.max_turns else []

        if self.max_chars is not None and turns:
            total = sum(len(t.text) for t in turns)
            start = 0
            while total > self.max_chars and start < len(turns) - 1:
                total -= len(turns[start].text)
                start += 1
            turns = turns[start:]

        return turns
