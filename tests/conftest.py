from __future__ import annotations

import os
import wave
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication

from musiq.core.errors import BackendError
from musiq.core.models import TrackDescriptor
from musiq.db.catalog import Catalog
from musiq.player.backend import AudioBackend, ChannelState


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def write_wav(path: Path, seconds: float = 0.1, rate: int = 8000) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(rate)
        w.writeframes(b"\x00\x00" * int(seconds * rate))
    return path


def make_descriptor(path: str, **overrides) -> TrackDescriptor:
    fields = dict(
        file_path=path,
        title=os.path.splitext(os.path.basename(path))[0],
        artist="Artist",
        album="Album",
        duration=180.5,
        format=os.path.splitext(path)[1].lstrip(".") or "mp3",
    )
    fields.update(overrides)
    return TrackDescriptor(**fields)


@pytest.fixture
def catalog(tmp_path: Path):
    c = Catalog(str(tmp_path / "library.sqlite3"))
    yield c
    c.close()


class FakeBackend(AudioBackend):
    """In-memory decode engine that records every handle it hands out."""
    name = "fake"

    def __init__(self, length: float = 200.0):
        self.default_length = length
        self.open_handles: set[int] = set()
        self.opened: list[str] = []
        self.fail_open: set[str] = set()
        self.volume: float | None = None
        self.closed = False
        self._next = 0
        self._state: dict[int, ChannelState] = {}
        self._pos: dict[int, float] = {}

    def _check(self, handle):
        if handle not in self.open_handles:
            raise BackendError(f"Invalid handle {handle}")

    def open(self, path):
        if path in self.fail_open:
            raise BackendError(f"Cannot decode {path}")
        self._next += 1
        self.open_handles.add(self._next)
        self.opened.append(path)
        self._state[self._next] = ChannelState.STOPPED
        self._pos[self._next] = 0.0
        return self._next

    def play(self, handle):
        self._check(handle)
        self._state[handle] = ChannelState.PLAYING

    def pause(self, handle):
        self._check(handle)
        self._state[handle] = ChannelState.PAUSED

    def stop(self, handle):
        self._check(handle)
        self._state[handle] = ChannelState.STOPPED

    def free(self, handle):
        self.open_handles.discard(handle)

    def position(self, handle):
        self._check(handle)
        return self._pos[handle]

    def set_position(self, handle, seconds):
        self._check(handle)
        self._pos[handle] = seconds

    def length(self, handle):
        self._check(handle)
        return self.default_length

    def channel_state(self, handle):
        self._check(handle)
        return self._state[handle]

    def set_volume(self, handle, volume):
        self._check(handle)
        self.volume = volume

    def close(self):
        self.closed = True

    # test helpers
    def advance(self, handle, seconds: float) -> None:
        self._pos[handle] += seconds

    def finish(self, handle) -> None:
        self._state[handle] = ChannelState.STOPPED
