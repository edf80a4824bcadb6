import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError

from medixa.clients.llm_client import LLMClient, NO_RESPONSE_TEXT, build_system_prompt
from medixa.clients.speech_client import SpeechClient
from medixa.clients.video_client import VideoClient, is_placeholder_id
from medixa.services.context_builder import ConversationTurn
from medixa.services.errors import ModelInvocationError, SynthesisError, TranscriptionError


def _http(handler):
    return httpx.Client(transport=httpx.MockTransport(handler))


def _completion(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=34),
    )


# ---------- LLM ----------

def test_generate_response_sends_history_as_chat_messages():
    llm = LLMClient(model="test-model", api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create.return_value = _completion("  Drink water.  ")

    history = [ConversationTurn("user", "I have a headache"), ConversationTurn("model", "How long?")]
    reply = llm.generate_response("Since this morning", history, is_voice=True)

    assert reply == "Drink water."
    kwargs = llm._client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    msgs = kwargs["messages"]
    assert msgs[0]["role"] == "system"
    assert "voice message" in msgs[0]["content"]
    assert msgs[1:] == [
        {"role": "user", "content": "I have a headache"},
        {"role": "assistant", "content": "How long?"},
        {"role": "user", "content": "Since this morning"},
    ]


def test_analyze_image_sends_data_url_and_caption():
    llm = LLMClient(api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create.return_value = _completion("Looks like a mild rash.")

    assert llm.analyze_image("data:image/png;base64,AAAA", "What is this?") == "Looks like a mild rash."
    content = llm._client.chat.completions.create.call_args.kwargs["messages"][-1]["content"]
    assert content[0] == {"type": "text", "text": "What is this?"}
    assert content[1]["image_url"]["url"] == "data:image/png;base64,AAAA"


def test_empty_completion_gets_placeholder_text():
    llm = LLMClient(api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create.return_value = SimpleNamespace(choices=[], usage=None)
    assert llm.generate_response("hi") == NO_RESPONSE_TEXT


def test_sdk_failures_become_model_invocation_errors():
    llm = LLMClient(api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create.side_effect = APIConnectionError(
        request=httpx.Request("POST", "https://openrouter.ai/api/v1/chat/completions")
    )
    with pytest.raises(ModelInvocationError) as exc:
        llm.generate_response("hi")
    assert exc.value.code == "APIConnectionError"


def test_missing_api_key_is_a_model_invocation_error():
    with pytest.raises(ModelInvocationError) as exc:
        LLMClient(api_key="").generate_response("hi")
    assert exc.value.code == "NOT_CONFIGURED"


def test_system_prompt_flags():
    assert "shared an image" in build_system_prompt(has_image=True)
    assert "shared an image" not in build_system_prompt()


# ---------- speech ----------

def test_transcribe_posts_audio_and_trims_text():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = request.content
        return httpx.Response(200, json={"text": "  I have a cough \n"})

    speech = SpeechClient(api_key="xi-test", base_url="https://speech.test/v1", http=_http(handler))

    assert speech.transcribe(b"RIFF-audio", "recording.wav", "audio/wav") == "I have a cough"
    assert seen["url"] == "https://speech.test/v1/speech-to-text"
    assert seen["key"] == "xi-test"
    assert b"RIFF-audio" in seen["body"]
    assert b"scribe_v1" in seen["body"]


@pytest.mark.parametrize(
    "status_code,code",
    [(401, "UNAUTHORIZED"), (403, "FORBIDDEN"), (429, "RATE_LIMITED"), (500, "UNEXPECTED")],
)
def test_transcribe_http_errors_are_classified(status_code, code):
    speech = SpeechClient(api_key="xi-test", http=_http(lambda r: httpx.Response(status_code, text="nope")))
    with pytest.raises(TranscriptionError) as exc:
        speech.transcribe(b"audio")
    assert exc.value.code == code


def test_blank_transcript_is_no_speech():
    speech = SpeechClient(api_key="xi-test", http=_http(lambda r: httpx.Response(200, json={"text": "   "})))
    with pytest.raises(TranscriptionError) as exc:
        speech.transcribe(b"audio")
    assert exc.value.code == "NO_SPEECH"


def test_transcribe_without_key():
    with pytest.raises(TranscriptionError) as exc:
        SpeechClient(api_key="").transcribe(b"audio")
    assert exc.value.code == "NOT_CONFIGURED"


def test_synthesize_returns_audio_bytes():
    def handler(request):
        assert request.url.path.endswith("/text-to-speech/voice-123")
        assert json.loads(request.content)["text"] == "Rest well."
        return httpx.Response(200, content=b"ID3-mpeg")

    speech = SpeechClient(api_key="xi-test", http=_http(handler))
    assert speech.synthesize("Rest well.", voice_id="voice-123") == b"ID3-mpeg"


def test_synthesize_failure():
    speech = SpeechClient(api_key="xi-test", http=_http(lambda r: httpx.Response(429)))
    with pytest.raises(SynthesisError) as exc:
        speech.synthesize("hello")
    assert exc.value.code == "RATE_LIMITED"


# ---------- video ----------

def _no_network(request):
    raise AssertionError(f"unexpected request to {request.url}")


def test_create_conversation_without_key_is_mock():
    video = VideoClient(api_key="", http=_http(_no_network), clock=lambda: 1700000000.5)
    conv = video.create_conversation()
    assert conv.conversation_id == "mock_1700000000500"
    assert conv.conversation_url.endswith("/mock-tavus-conversation")
    assert conv.is_placeholder


def test_placeholder_key_counts_as_missing():
    video = VideoClient(api_key="your_tavus_api_key_here", http=_http(_no_network))
    assert video.create_conversation().conversation_id.startswith("mock_")


def test_create_conversation_success():
    def handler(request):
        assert request.headers["x-api-key"] == "tv-test"
        body = json.loads(request.content)
        assert body["persona_id"] == "p9863a04af01"
        assert body["properties"]["max_call_duration"] == 1800
        return httpx.Response(200, json={
            "conversation_id": "c123",
            "conversation_url": "https://tavus.daily.co/c123",
            "status": "active",
        })

    video = VideoClient(api_key="tv-test", base_url="https://tavus.test", http=_http(handler))
    conv = video.create_conversation()
    assert conv.conversation_id == "c123"
    assert conv.conversation_url == "https://tavus.daily.co/c123"
    assert not conv.is_placeholder


@pytest.mark.parametrize("response", [httpx.Response(401), httpx.Response(500, json={"message": "down"}), httpx.Response(200, json={})])
def test_create_conversation_failure_falls_back(response):
    video = VideoClient(api_key="tv-test", http=_http(lambda r: response), clock=lambda: 5.0)
    conv = video.create_conversation()
    assert conv.conversation_id == "fallback_5000"
    assert is_placeholder_id(conv.conversation_id)


def test_follow_up_calls_skip_placeholders():
    video = VideoClient(api_key="tv-test", http=_http(_no_network))
    assert video.update_context("mock_1", "context") is True
    assert video.send_message("fallback_1", "hi") is True
    assert video.end_conversation("mock_1") is True
    assert video.get_status("fallback_1") == "active"


def test_follow_up_calls_never_raise():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    video = VideoClient(api_key="tv-test", http=_http(handler))
    assert video.update_context("c1", "context") is False
    assert video.send_message("c1", "hi") is False
    assert video.end_conversation("c1") is False
    assert video.get_status("c1") == "error"


def test_update_context_sends_system_prompt():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    video = VideoClient(api_key="tv-test", base_url="https://tavus.test", http=_http(handler))
    assert video.update_context("c1", "Patient reports a headache")
    assert seen["method"] == "PUT"
    assert seen["path"] == "/v2/conversations/c1/context"
    assert seen["body"]["context"] == "Patient reports a headache"
    assert "Dr. Ava" in seen["body"]["system_prompt"]
