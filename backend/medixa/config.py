import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[2]
env_path = BASE_DIR / ".env"
load_dotenv(dotenv_path=env_path)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./medixa.db")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    RUN_MIGRATIONS = _flag("RUN_MIGRATIONS", "1")
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5173")
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

    # Language model (OpenRouter speaks the OpenAI wire format)
    OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
    OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "openai/gpt-4o-mini")
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", 0.4))
    LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", 60))

    # Speech (ElevenLabs)
    ELEVENLABS_API_KEY = os.getenv("ELEVENLABS_API_KEY", "")
    ELEVENLABS_BASE_URL = os.getenv("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io/v1")
    ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "paRTfYnetOrTukxfEm1J")
    ELEVENLABS_STT_MODEL = os.getenv("ELEVENLABS_STT_MODEL", "scribe_v1")
    ELEVENLABS_TTS_MODEL = os.getenv("ELEVENLABS_TTS_MODEL", "eleven_monolingual_v1")
    SPEECH_TIMEOUT_S = float(os.getenv("SPEECH_TIMEOUT_S", 30))
    TTS_ENABLED = _flag("TTS_ENABLED", "1")

    # Video consultations (Tavus)
    TAVUS_API_KEY = os.getenv("TAVUS_API_KEY", "")
    TAVUS_BASE_URL = os.getenv("TAVUS_BASE_URL", "https://tavusapi.com")
    TAVUS_PERSONA_ID = os.getenv("TAVUS_PERSONA_ID", "p9863a04af01")
    TAVUS_TIMEOUT_S = float(os.getenv("TAVUS_TIMEOUT_S", 10))
    TAVUS_MAX_CALL_DURATION_S = int(os.getenv("TAVUS_MAX_CALL_DURATION_S", 1800))
    # Unended consultations are dropped (and their clients closed) after the call limit
    CONSULTATION_MAX_ACTIVE = int(os.getenv("CONSULTATION_MAX_ACTIVE", 512))

    # Chat core
    CONTEXT_MAX_TURNS = int(os.getenv("CONTEXT_MAX_TURNS", 20))
    CONTEXT_MAX_CHARS = int(os.getenv("CONTEXT_MAX_CHARS", 12000))
    MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", 10 * 1024 * 1024))
    MAX_AUDIO_BYTES = int(os.getenv("MAX_AUDIO_BYTES", 10 * 1024 * 1024))
    SESSION_APPEND_CHECK_VERSION = _flag("SESSION_APPEND_CHECK_VERSION", "0")
    AUDIO_CACHE_TTL_S = int(os.getenv("AUDIO_CACHE_TTL_S", 3600))
    AUDIO_CACHE_MAX_ITEMS = int(os.getenv("AUDIO_CACHE_MAX_ITEMS", 256))

    # JWT config
    JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
    JWT_ALG = os.getenv("JWT_ALG", "HS256")
    JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", 60))

settings = Settings()
