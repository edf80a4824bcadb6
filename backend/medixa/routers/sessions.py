# medixa/routers/sessions.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from medixa.routers.auth import get_current_owner
from medixa.schemas.session import (
    ChatSessionRecord,
    SessionCreate,
    SessionListResponse,
    SessionRename,
)
from medixa.services.errors import StorageError, ValidationError
from medixa.services.session_store import SessionStore

router = APIRouter(prefix="/sessions", tags=["sessions"])

# ----- DI providers -----
def get_session_store() -> SessionStore:
    return SessionStore()

# ----- Helpers -----
def _storage_unavailable(e: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=e.public_detail,
        headers={"X-Error-Code": e.code},
    )

def load_owned_session(store: SessionStore, session_id: str, owner_id: str) -> ChatSessionRecord:
    """404 for both missing and foreign sessions so ids cannot be probed."""
    try:
        record = store.get_session(session_id)
    except StorageError as e:
        raise _storage_unavailable(e)
    if record is None or record.owner_id != owner_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return record

# ----- Routes -----
@router.post(
    "",
    response_model=ChatSessionRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new, empty chat session",
)
def create_session(
    payload: Optional[SessionCreate] = None,
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
):
    try:
        if payload and payload.display_name:
            return store.create_session(owner_id, payload.display_name)
        return store.create_session(owner_id)
    except StorageError as e:
        raise _storage_unavailable(e)

@router.get(
    "",
    response_model=SessionListResponse,
    summary="List the patient's sessions, most recent activity first",
)
def list_sessions(
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=200, description="Omit for the full history"),
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
):
    try:
        records = store.list_sessions(owner_id, skip=skip, limit=limit)
    except StorageError as e:
        raise _storage_unavailable(e)
    return SessionListResponse(items=[r.summary() for r in records])

@router.get("/{session_id}", response_model=ChatSessionRecord, summary="Get a session with its messages")
def get_session(
    session_id: str,
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
):
    return load_owned_session(store, session_id, owner_id)

@router.patch("/{session_id}", response_model=ChatSessionRecord, summary="Rename a session")
def rename_session(
    session_id: str,
    payload: SessionRename,
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
):
    load_owned_session(store, session_id, owner_id)
    try:
        store.rename_session(session_id, payload.display_name)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.public_detail, headers={"X-Error-Code": e.code})
    except StorageError as e:
        raise _storage_unavailable(e)
    return load_owned_session(store, session_id, owner_id)

@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a session and its messages")
def delete_session(
    session_id: str,
    owner_id: str = Depends(get_current_owner),
    store: SessionStore = Depends(get_session_store),
):
    load_owned_session(store, session_id, owner_id)
    try:
        store.delete_session(session_id)
    except StorageError as e:
        raise _storage_unavailable(e)
    return
