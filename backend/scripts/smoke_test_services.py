#!/usr/bin/env python3
"""
Smoke test for the service layer:
- Session store (create, append, rename, list, delete)
- Context window
- Chat orchestration (text, voice, image)
- Video consultation placeholders

Set USE_FAKES=1 to run without hitting OpenRouter/ElevenLabs/Tavus.
Needs a migrated database (alembic upgrade head) with one patient profile.
"""

import os
import sys
from pathlib import Path

# Make "backend" importable
backend_dir = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(backend_dir))

from medixa.clients.llm_client import LLMClient
from medixa.clients.speech_client import SpeechClient
from medixa.clients.video_client import VideoClient
from medixa.database import get_db_context
from medixa.repositories.profile import ProfileRepository
from medixa.schemas.message import ChatMessage
from medixa.schemas.profile import ProfileCreate
from medixa.models.base import utcnow
from medixa.services.audio_store import AudioStore
from medixa.services.chat_orchestrator import ChatOrchestrator
from medixa.services.consultation import ConsultationSession
from medixa.services.context_builder import ContextBuilder
from medixa.services.session_store import SessionStore


USE_FAKES = os.getenv("USE_FAKES", "1") == "1"
SMOKE_EMAIL = "smoke.patient@medixa.io"

# ---------- Optional fakes to keep tests local & deterministic ----------
class _FakeLLMClient:
    def __init__(self, reply="Try resting and hydrating.", model="fake-llm"):
        self._reply = reply
        self.model = model
        self.calls = []
    def generate_response(self, user_message, history=(), *, has_image=False, is_voice=False):
        self.calls.append((user_message, len(history), is_voice))
        return self._reply
    def analyze_image(self, image_data_url, caption):
        return "The area looks mildly irritated. Keep it clean and dry."

class _FakeSpeechClient:
    def is_configured(self):
        return True
    def transcribe(self, audio, filename="recording.webm", content_type="audio/webm"):
        return "I have had a sore throat since yesterday"
    def synthesize(self, text, voice_id=None):
        return b"ID3-fake-mpeg"

# ---------- Wiring helpers ----------
def make_orchestrator(owner_id: str) -> ChatOrchestrator:
    if USE_FAKES:
        return ChatOrchestrator(
            owner_id,
            SessionStore(),
            _FakeLLMClient(),  # type: ignore[arg-type]
            speech=_FakeSpeechClient(),  # type: ignore[arg-type]
            audio_store=AudioStore(),
        )
    return ChatOrchestrator(owner_id, SessionStore(), LLMClient(), speech=SpeechClient(), audio_store=AudioStore())

def smoke_owner() -> str:
    repo = ProfileRepository()
    with get_db_context() as db:
        profile = repo.get_by_email(db, SMOKE_EMAIL)
        if profile is None:
            profile = repo.create_profile(db, ProfileCreate(email=SMOKE_EMAIL, full_name="Smoke Patient"))
        return profile.id

# ---------- Tests ----------
def test_session_store(owner_id: str):
    print("🗂  Session Store")
    store = SessionStore()
    s = store.create_session(owner_id, "Store Smoke")
    for i, text in enumerate(["first", "second", "third"]):
        msg = ChatMessage(id=str(1000 + i), role="user", content=text, timestamp=utcnow())
        assert store.append_message(s.id, msg)
    loaded = store.get_session(s.id)
    print(f"  {s.id}: {[m.content for m in loaded.messages]} (version={loaded.version})")
    assert [m.content for m in loaded.messages] == ["first", "second", "third"]

    assert store.rename_session(s.id, "Renamed Smoke")
    assert store.get_session(s.id).display_name == "Renamed Smoke"
    assert store.list_sessions(owner_id)[0].id == s.id, "most recent activity first"

    assert store.delete_session(s.id)
    assert store.get_session(s.id) is None
    print("✅ Store OK\n")

def test_context_builder():
    print("🧵 Context Builder")
    msgs = [
        ChatMessage(id=str(i), role="user" if i % 2 == 0 else "assistant", content=f"turn {i}", timestamp=utcnow())
        for i in range(30)
    ]
    turns = ContextBuilder(max_turns=6).build(msgs)
    print(f"  kept {len(turns)} turns: {[t.text for t in turns]}")
    assert len(turns) == 6 and turns[-1].text == "turn 29"
    print("✅ Context OK\n")

def test_orchestrator(owner_id: str):
    print("💬 Chat Orchestrator")
    chat = make_orchestrator(owner_id)
    session_id = chat.open_session()
    turns = [
        "I have a headache",
        "It started this morning",
        "Should I take ibuprofen?",
    ]
    for t in turns:
        out = chat.send_text(t)
        print(f"  U: {t!r}\n  A: {out.assistant.content[:90]}... ({out.assistant.delivery})\n")

    voice = chat.send_voice(b"\x1a\x45\xdf\xa3fake-webm", "audio/webm")
    print(f"  🎙  {voice.user.content!r} -> {voice.assistant.content[:60]}...")
    image = chat.send_image(b"\x89PNG\r\n\x1a\nfake", "image/png", "Rash on my arm")
    print(f"  🖼  {image.user.content!r} -> {image.assistant.content[:60]}...")

    stored = SessionStore().get_session(session_id)
    print(f"  Messages persisted in this session: {len(stored.messages)}")
    assert len(stored.messages) == (len(turns) + 2) * 2
    assert stored.messages[-2].image_url == "Medical image analyzed"
    chat.close()
    print("✅ Chat OK\n")

def test_consultation(owner_id: str):
    print("📹 Video Consultation")
    video = VideoClient(api_key="") if USE_FAKES else VideoClient()
    consult = ConsultationSession(owner_id, video)
    conv = consult.start()
    print(f"  {conv.conversation_id} -> {conv.conversation_url} (placeholder={conv.is_placeholder})")
    print(f"  status: {consult.status()}")
    consult.end()
    assert not consult.active
    print("✅ Consultation OK\n")

def main():
    print("🚀 Smoke testing services (USE_FAKES=%s)" % ("1" if USE_FAKES else "0"))
    print("=" * 52)
    owner_id = smoke_owner()
    test_session_store(owner_id)
    test_context_builder()
    test_orchestrator(owner_id)
    test_consultation(owner_id)
    print("🎉 All service-layer smoke tests passed!")

if __name__ == "__main__":
    main()
