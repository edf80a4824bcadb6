import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_MIGRATIONS"] = "0"
os.environ["TTS_ENABLED"] = "0"
os.environ["JWT_SECRET"] = "test-secret"
for key in ("OPENROUTER_API_KEY", "ELEVENLABS_API_KEY", "TAVUS_API_KEY"):
    os.environ[key] = ""

from datetime import datetime, timedelta
from typing import List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medixa.models import Base
from medixa.services.audio_store import AudioStore
from medixa.services.chat_orchestrator import ChatOrchestrator
from medixa.services.context_builder import ContextBuilder
from medixa.services.errors import MediaAccessError
from medixa.services.media import MediaStream, MediaTrack
from medixa.services.session_store import SessionStore


class FakeClock:
    def __init__(self, start: datetime = datetime(2025, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeLLM:
    """Records every call; `fail` / `image_fail` make the next calls raise."""

    def __init__(self, clock: Optional[FakeClock] = None):
        self.reply = "Try resting and hydrating."
        self.image_reply = "The rash looks like mild contact dermatitis."
        self.fail: Optional[Exception] = None
        self.image_fail: Optional[Exception] = None
        self.calls: List[dict] = []
        self.image_calls: List[dict] = []
        self.clock = clock
        self.on_call = None

    def generate_response(self, user_message, history=(), *, has_image=False, is_voice=False):
        self.calls.append({"message": user_message, "history": list(history), "is_voice": is_voice})
        if self.on_call:
            self.on_call()
        if self.clock:
            self.clock.advance(2)
        if self.fail:
            raise self.fail
        return self.reply

    def analyze_image(self, image_data_url, caption):
        self.image_calls.append({"image": image_data_url, "caption": caption})
        if self.clock:
            self.clock.advance(2)
        if self.image_fail:
            raise self.image_fail
        return self.image_reply


class FakeSpeech:
    def __init__(self):
        self.transcript = "I have had a sore throat since yesterday"
        self.transcribe_error: Optional[Exception] = None
        self.synth_error: Optional[Exception] = None
        self.configured = True
        self.transcribed: List[tuple] = []
        self.synthesized: List[str] = []

    def is_configured(self):
        return self.configured

    def transcribe(self, audio, filename="recording.webm", content_type="audio/webm"):
        self.transcribed.append((audio, filename, content_type))
        if self.transcribe_error:
            raise self.transcribe_error
        return self.transcript

    def synthesize(self, text, voice_id=None):
        self.synthesized.append(text)
        if self.synth_error:
            raise self.synth_error
        return b"ID3-fake-mpeg"


class FakeDevice:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.streams: List[MediaStream] = []

    def acquire(self, audio=True, video=False):
        if self.error:
            raise self.error
        tracks = []
        if audio:
            tracks.append(MediaTrack("audio", "Built-in microphone"))
        if video:
            tracks.append(MediaTrack("video", "FaceTime HD Camera"))
        stream = MediaStream(tracks)
        self.streams.append(stream)
        return stream


class DeviceError(Exception):
    """Shaped like the errors a browser bridge forwards."""

    def __init__(self, name, message=""):
        super().__init__(message)
        self.name = name


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(session_factory, clock):
    return SessionStore(session_factory, clock=clock)


@pytest.fixture
def llm(clock):
    return FakeLLM(clock)


@pytest.fixture
def speech():
    return FakeSpeech()


@pytest.fixture
def audio_store():
    return AudioStore(maxsize=32, ttl=60)


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def make_chat(store, llm, speech, audio_store, clock):
    created = []

    def _make(owner_id="patient-1", chat_store=None, **kwargs):
        options = dict(
            speech=speech,
            audio_store=audio_store,
            context_builder=ContextBuilder(max_turns=20, max_chars=12000),
            tts_enabled=False,
            max_image_bytes=1024,
            clock=clock,
        )
        options.update(kwargs)
        chat = ChatOrchestrator(owner_id, chat_store or store, llm, **options)
        created.append(chat)
        return chat

    yield _make
    for chat in created:
        chat.close()


@pytest.fixture
def media_error():
    return lambda name, message="": DeviceError(name, message)


@pytest.fixture
def denied_device():
    return FakeDevice(error=MediaAccessError.from_device_error("NotAllowedError", "Permission denied"))
