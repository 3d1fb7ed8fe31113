# player/backend.py
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Hashable

# Opaque stream handle handed out by a backend.
Handle = Hashable


class ChannelState(Enum):
    STOPPED = auto()
    PLAYING = auto()
    PAUSED = auto()
    STALLED = auto()


class AudioBackend(ABC):
    """
    Decode/render engine the Player sequences commands against.

    Every method taking a handle raises BackendError when the handle is not
    the one currently open.
    """
    name = "abstract"

    @abstractmethod
    def open(self, path: str) -> Handle: ...

    @abstractmethod
    def play(self, handle: Handle) -> None: ...

    @abstractmethod
    def pause(self, handle: Handle) -> None: ...

    @abstractmethod
    def stop(self, handle: Handle) -> None: ...

    @abstractmethod
    def free(self, handle: Handle) -> None: ...

    @abstractmethod
    def position(self, handle: Handle) -> float: ...

    @abstractmethod
    def set_position(self, handle: Handle, seconds: float) -> None: ...

    @abstractmethod
    def length(self, handle: Handle) -> float: ...

    @abstractmethod
    def channel_state(self, handle: Handle) -> ChannelState: ...

    @abstractmethod
    def set_volume(self, handle: Handle, volume: float) -> None: ...

    def close(self) -> None:
        """Release the engine itself. Called once at shutdown."""
