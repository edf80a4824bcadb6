"""
Serves recorded and synthesized audio clips held in memory.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from medixa.routers.chat import get_audio_store
from medixa.services.audio_store import AudioStore

router = APIRouter(prefix="/audio", tags=["audio"])

@router.get("/{audio_id}")
def get_audio(audio_id: str, store: AudioStore = Depends(get_audio_store)):
    clip = store.get(audio_id)
    if clip is None:
        # Expired, evicted, or lost on restart
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audio not available")
    return Response(content=clip.data, media_type=clip.content_type)
