import pytest
from fastapi.testclient import TestClient

from medixa.clients.video_client import VideoClient
from medixa.database import get_db
from medixa.main import app
from medixa.repositories.profile import ProfileRepository
from medixa.routers import chat as chat_router
from medixa.routers import consultations as consultations_router
from medixa.routers import sessions as sessions_router
from medixa.schemas.profile import ProfileCreate
from medixa.services.auth_service import AuthService
from medixa.services.chat_orchestrator import MODEL_FALLBACK_REPLY, PERSISTED_IMAGE_PLACEHOLDER
from medixa.services.consultation import ConsultationRegistry
from medixa.services.voice_service import NO_SPEECH_TEXT
from medixa.schemas.common import ErrorResponse
from medixa.services.errors import ModelInvocationError, StorageError
from medixa.config import settings

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def client(session_factory, store, llm, speech, audio_store):
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        finally:
            db.close()

    registry = ConsultationRegistry()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[sessions_router.get_session_store] = lambda: store
    app.dependency_overrides[chat_router.get_llm_client] = lambda: llm
    app.dependency_overrides[chat_router.get_speech_client] = lambda: speech
    app.dependency_overrides[chat_router.get_audio_store] = lambda: audio_store
    app.dependency_overrides[consultations_router.get_video_client] = lambda: VideoClient(api_key="")
    app.dependency_overrides[consultations_router.get_consultations] = lambda: registry
    # No context manager: startup (migrations) is not run
    yield TestClient(app)
    app.dependency_overrides.clear()


def _profile(session_factory, email, role="patient"):
    with session_factory() as db:
        return ProfileRepository().create_profile(db, ProfileCreate(email=email, full_name="Test User", role=role))


@pytest.fixture
def patient(session_factory):
    return _profile(session_factory, "patient@medixa.io")


@pytest.fixture
def auth_headers(patient):
    return {"Authorization": f"Bearer {AuthService().create_access_token(patient)}"}


# ---------- health & auth ----------

def test_health_and_root(client):
    assert client.get("/healthz").json() == {"status": "ok", "database": "ok"}
    assert client.get("/").json()["status"] == "ok"


def test_register_login_me(client):
    r = client.post("/auth/register", json={"email": "New.Patient@medixa.io", "password": "s3cret!", "full_name": "New Patient"})
    assert r.status_code == 201
    assert r.json()["role"] == "patient"

    dup = client.post("/auth/register", json={"email": "new.patient@medixa.io", "password": "s3cret!"})
    assert dup.status_code == 409

    bad = client.post("/auth/login", json={"email": "new.patient@medixa.io", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.headers["X-Error-Code"] == "BAD_PASSWORD"

    ok = client.post("/auth/login", json={"email": "new.patient@medixa.io", "password": "s3cret!"})
    assert ok.status_code == 200
    token = ok.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "new.patient@medixa.io"
    assert me.json()["last_login_at"] is not None


def test_requests_without_token_are_rejected(client):
    assert client.get("/sessions").status_code == 401
    assert client.get("/sessions", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_only_patients_own_chats(client, session_factory):
    doctor = _profile(session_factory, "doctor@medixa.io", role="doctor")
    headers = {"Authorization": f"Bearer {AuthService().create_access_token(doctor)}"}
    assert client.get("/sessions", headers=headers).status_code == 403
    assert client.get("/auth/me", headers=headers).json()["role"] == "doctor"


# ---------- sessions ----------

def test_session_crud(client, auth_headers):
    created = client.post("/sessions", json={"display_name": "Migraine"}, headers=auth_headers)
    assert created.status_code == 201
    sid = created.json()["id"]
    assert created.json()["messages"] == []

    default = client.post("/sessions", headers=auth_headers)
    assert default.json()["display_name"] == "New Chat"

    listed = client.get("/sessions", headers=auth_headers).json()["items"]
    assert {s["id"] for s in listed} == {sid, default.json()["id"]}

    renamed = client.patch(f"/sessions/{sid}", json={"display_name": "Migraine diary"}, headers=auth_headers)
    assert renamed.status_code == 200
    assert renamed.json()["display_name"] == "Migraine diary"

    assert client.patch(f"/sessions/{sid}", json={"display_name": "   "}, headers=auth_headers).status_code == 422

    assert client.delete(f"/sessions/{sid}", headers=auth_headers).status_code == 204
    assert client.get(f"/sessions/{sid}", headers=auth_headers).status_code == 404


def test_foreign_sessions_look_missing(client, store, auth_headers):
    theirs = store.create_session("someone-else")
    assert client.get(f"/sessions/{theirs.id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/sessions/{theirs.id}", headers=auth_headers).status_code == 404
    assert client.post(f"/chat/{theirs.id}/messages", json={"text": "hi"}, headers=auth_headers).status_code == 404
    assert store.get_session(theirs.id) is not None


# ---------- chat ----------

def test_start_chat_with_quick_start_message(client, auth_headers, llm):
    r = client.post("/chat/start", json={"initial_message": "I have a fever"}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["state"] == "idle"
    assert [m["id"] for m in body["messages"]][0] == "welcome"
    assert [m["content"] for m in body["messages"][1:]] == ["I have a fever", llm.reply]
    assert [c["message"] for c in llm.calls] == ["I have a fever"]


def test_send_message_persists_turn(client, auth_headers, store, patient):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    r = client.post(f"/chat/{sid}/messages", json={"text": "I have a headache"}, headers=auth_headers)

    assert r.status_code == 200
    body = r.json()
    assert body["user"]["delivery"] == "confirmed"
    assert body["assistant"]["content"] == "Try resting and hydrating."
    stored = store.get_session(sid)
    assert stored.owner_id == patient.id
    assert [m.content for m in stored.messages] == ["I have a headache", "Try resting and hydrating."]


def test_resume_chat_returns_history(client, auth_headers):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]
    client.post(f"/chat/{sid}/messages", json={"text": "first"}, headers=auth_headers)

    resumed = client.post("/chat/start", json={"session_id": sid}, headers=auth_headers).json()

    assert resumed["session_id"] == sid
    assert [m["content"] for m in resumed["messages"][1:]] == ["first", "Try resting and hydrating."]


def test_model_outage_still_answers(client, auth_headers, llm):
    llm.fail = ModelInvocationError(code="APITimeoutError", public_detail="timeout")
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]
    r = client.post(f"/chat/{sid}/messages", json={"text": "hello?"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["assistant"]["content"] == MODEL_FALLBACK_REPLY


def test_blank_message_is_rejected(client, auth_headers):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]
    assert client.post(f"/chat/{sid}/messages", json={"text": "   "}, headers=auth_headers).status_code == 400


def test_voice_upload(client, auth_headers, speech, audio_store):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    r = client.post(
        f"/chat/{sid}/voice",
        files={"audio": ("recording.webm", b"webm-bytes", "audio/webm")},
        headers=auth_headers,
    )

    assert r.status_code == 200
    user = r.json()["user"]
    assert user["content"] == speech.transcript
    assert user["is_voice_message"] is True
    audio = client.get(user["audio_url"])
    assert audio.status_code == 200
    assert audio.content == b"webm-bytes"
    assert audio.headers["content-type"].startswith("audio/webm")


def test_empty_recording_gets_the_no_speech_turn(client, auth_headers, speech, llm):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    r = client.post(
        f"/chat/{sid}/voice",
        files={"audio": ("recording.webm", b"", "audio/webm")},
        headers=auth_headers,
    )

    assert r.status_code == 200
    assert r.json()["user"]["content"] == NO_SPEECH_TEXT
    assert r.json()["assistant"]["content"] == llm.reply
    assert speech.transcribed == []


def test_oversized_recording_is_rejected(client, auth_headers, store, speech, audio_store, monkeypatch):
    monkeypatch.setattr(settings, "MAX_AUDIO_BYTES", 16)
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    r = client.post(
        f"/chat/{sid}/voice",
        files={"audio": ("recording.webm", b"x" * 4096, "audio/webm")},
        headers=auth_headers,
    )

    assert r.status_code == 413
    assert r.headers["X-Error-Code"] == "AUDIO_TOO_LARGE"
    assert speech.transcribed == []
    assert len(audio_store._cache) == 0
    assert store.get_session(sid).messages == []


def test_image_upload(client, auth_headers, store, llm):
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    r = client.post(
        f"/chat/{sid}/image",
        files={"image": ("rash.png", PNG, "image/png")},
        data={"caption": "Rash on my arm"},
        headers=auth_headers,
    )

    assert r.status_code == 200
    assert r.json()["assistant"]["content"] == llm.image_reply
    assert store.get_session(sid).messages[0].image_url == PERSISTED_IMAGE_PLACEHOLDER


def test_image_rejections(client, auth_headers, store, llm, monkeypatch):
    monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 32)
    sid = client.post("/chat/start", json={}, headers=auth_headers).json()["session_id"]

    wrong_type = client.post(
        f"/chat/{sid}/image",
        files={"image": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers,
    )
    too_big = client.post(
        f"/chat/{sid}/image",
        files={"image": ("rash.png", PNG, "image/png")},
        headers=auth_headers,
    )

    assert wrong_type.status_code == 415
    assert wrong_type.json()["detail"] == "Please select an image file (JPEG, PNG, GIF, etc.)"
    assert too_big.status_code == 413
    assert llm.image_calls == []
    assert store.get_session(sid).messages == []


def test_unknown_audio_is_404(client):
    assert client.get("/audio/does-not-exist").status_code == 404


# ---------- consultations ----------

def test_video_consultation_lifecycle(client, auth_headers, session_factory):
    r = client.post("/consultations/video", json={"context": "Follow-up on fever"}, headers=auth_headers)
    assert r.status_code == 201
    conv = r.json()
    assert conv["placeholder"] is True
    assert conv["conversation_id"].startswith("mock_")

    cid = conv["conversation_id"]
    assert client.get(f"/consultations/video/{cid}", headers=auth_headers).json()["status"] == "active"
    updated = client.put(f"/consultations/video/{cid}/context", json={"context": "Now a cough"}, headers=auth_headers)
    assert updated.json()["updated"] is True

    other = _profile(session_factory, "other@medixa.io")
    other_headers = {"Authorization": f"Bearer {AuthService().create_access_token(other)}"}
    assert client.get(f"/consultations/video/{cid}", headers=other_headers).status_code == 404

    assert client.delete(f"/consultations/video/{cid}", headers=auth_headers).status_code == 204
    assert client.get(f"/consultations/video/{cid}", headers=auth_headers).status_code == 404


def test_error_body_keeps_log_detail_private():
    e = StorageError(code="STORAGE_UNAVAILABLE", public_detail="Chat history is unavailable", log_detail="db timeout")
    body = ErrorResponse.from_error(e, path="/sessions").model_dump()
    assert body["error"] == "Chat history is unavailable"
    assert body["error_code"] == "STORAGE_UNAVAILABLE"
    assert body["details"] == {"path": "/sessions"}
    assert "db timeout" not in str(body)
