from datetime import datetime

from medixa.schemas.message import ChatMessage
from medixa.services.context_builder import ContextBuilder, ConversationTurn

T0 = datetime(2025, 3, 1, 9, 0, 0)


def _conversation(n, size=10):
    welcome = ChatMessage(id="welcome", role="assistant", content="Hello! I'm Dr. Ava", timestamp=T0)
    rest = [
        ChatMessage(
            id=str(i + 1),
            role="user" if i % 2 == 0 else "assistant",
            content=f"{i:0{size}d}",
            timestamp=T0,
        )
        for i in range(n)
    ]
    return [welcome] + rest


def test_welcome_is_never_sent_and_roles_map_to_model():
    turns = ContextBuilder.unbounded().build(_conversation(2))
    assert turns == [
        ConversationTurn(role="user", text="0000000000"),
        ConversationTurn(role="model", text="0000000001"),
    ]


def test_keeps_the_most_recent_turns():
    turns = ContextBuilder(max_turns=4, max_chars=None).build(_conversation(10))
    assert [t.text for t in turns] == ["0000000006", "0000000007", "0000000008", "0000000009"]


def test_character_budget_drops_oldest_first():
    # 10 chars per turn, budget for three
    turns = ContextBuilder(max_turns=None, max_chars=35).build(_conversation(6))
    assert [t.text for t in turns] == ["0000000003", "0000000004", "0000000005"]


def test_newest_turn_survives_a_tiny_budget():
    turns = ContextBuilder(max_turns=20, max_chars=5).build(_conversation(3))
    assert [t.text for t in turns] == ["0000000002"]


def test_zero_turns_means_no_history():
    assert ContextBuilder(max_turns=0, max_chars=None).build(_conversation(4)) == []


def test_unbounded_keeps_everything_in_order():
    turns = ContextBuilder.unbounded().build(_conversation(50))
    assert len(turns) == 50
    assert [t.text for t in turns] == [f"{i:010d}" for i in range(50)]


def test_defaults_come_from_settings():
    builder = ContextBuilder()
    assert builder.max_turns == 20
    assert builder.max_chars == 12000


def test_empty_conversation():
    assert ContextBuilder().build([]) == []
