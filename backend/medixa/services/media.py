# medixa/services/media.py
"""
Exclusive ownership of microphone / camera streams.

A stream is acquired on start and every track is stopped on every exit
path: normal stop, cancel, error, session switch and teardown.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Protocol

from medixa.services.errors import MediaAccessError

logger = logging.getLogger(__name__)


@dataclass
class MediaTrack:
    kind: str  # "audio" | "video"
    label: str = ""
    live: bool = True

    def stop(self) -> None:
        self.live = False


@dataclass
class MediaStream:
    tracks: List[MediaTrack] = field(default_factory=list)

    @property
    def active(self) -> bool:
        return any(t.live for t in self.tracks)

    def stop_all(self) -> None:
        for t in self.tracks:
            t.stop()


class MediaDevice(Protocol):
    """Something that can hand out a stream (a browser bridge, a test fake)."""

    def acquire(self, audio: bool = True, video: bool = False) -> MediaStream:
        """Raise MediaAccessError when the device cannot be opened."""
        ...


def acquire_stream(device: MediaDevice, audio: bool = True, video: bool = False) -> MediaStream:
    try:
        return device.acquire(audio=audio, video=video)
    except MediaAccessError:
        raise
    except Exception as e:
        # Device bridges report the browser error name on the exception
        name = getattr(e, "name", type(e).__name__)
        raise MediaAccessError.from_device_error(name, str(e)) from e


def release_stream(stream: Optional[MediaStream]) -> None:
    if stream is None:
        return
    stream.stop_all()
    logger.debug(f"Released media stream ({len(stream.tracks)} tracks)")


@contextmanager
def recording(device: MediaDevice, audio: bool = True, video: bool = False) -> Iterator[MediaStream]:
    stream = acquire_stream(device, audio=audio, video=video)
    try:
        yield stream
    finally:
        release_stream(stream)
