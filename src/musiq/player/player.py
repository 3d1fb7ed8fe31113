# player/player.py
from __future__ import annotations

import logging
import math
import os
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional

from PySide6.QtCore import QObject, QTimer, Signal

from musiq.core.config import POLL_INTERVAL_MS
from musiq.core.errors import BackendError, PlaybackError
from musiq.player.backend import AudioBackend, ChannelState, Handle

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    IDLE = auto()
    LOADING = auto()
    PLAYING = auto()
    PAUSED = auto()


@dataclass
class NowPlaying:
    title: str
    artist: str
    album: str
    duration: float
    path: str
    track_id: Optional[int] = None

    @classmethod
    def from_track(cls, track: Any) -> "NowPlaying":
        """Accepts a catalog Track, a TrackDescriptor or an InboxTrack."""
        return cls(
            title=track.title,
            artist=track.artist,
            album=track.album,
            duration=float(track.duration or 0.0),
            path=track.file_path,
            track_id=getattr(track, "id", None),
        )


class Player(QObject):
    stateChanged = Signal(object)       # PlaybackState
    positionChanged = Signal(float)     # seconds
    durationChanged = Signal(float)     # seconds
    trackChanged = Signal(object)       # NowPlaying | None
    volumeChanged = Signal(float)       # 0..1
    ended = Signal()

    def __init__(self, backend: AudioBackend, poll_interval_ms: int = POLL_INTERVAL_MS, volume: float = 1.0):
        super().__init__()
        self.backend = backend

        self._lock = threading.RLock()
        self._handle: Optional[Handle] = None
        self._state = PlaybackState.IDLE
        self._track: Optional[NowPlaying] = None
        self._position: float = 0.0
        self._duration: float = 0.0
        self._volume: float = _clamp(volume, 0.0, 1.0)

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(int(poll_interval_ms))
        self._poll_timer.timeout.connect(self.poll_once)

    # ----------------------------
    # Observable state
    # ----------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    @property
    def current_track(self) -> Optional[NowPlaying]:
        return self._track

    @property
    def current_time(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def has_handle(self) -> bool:
        return self._handle is not None

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_timer.interval()

    @poll_interval_ms.setter
    def poll_interval_ms(self, value: int) -> None:
        self._poll_timer.setInterval(max(1, int(value)))

    # ----------------------------
    # Helpers
    # ----------------------------

    def _set_state(self, new_state: PlaybackState) -> None:
        if self._state != new_state:
            self._state = new_state
            self.stateChanged.emit(new_state)

    def _set_position(self, seconds: float) -> None:
        if seconds != self._position:
            self._position = seconds
            self.positionChanged.emit(seconds)

    def _set_duration(self, seconds: float) -> None:
        if seconds != self._duration:
            self._duration = seconds
            self.durationChanged.emit(seconds)

    def _release(self) -> None:
        """Stop and free the open handle, if any. Backend errors are logged."""
        self._poll_timer.stop()
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self.backend.stop(handle)
        except BackendError as e:
            logger.debug("Backend stop failed: %s", e)
        try:
            self.backend.free(handle)
        except BackendError as e:
            logger.warning("Backend free failed: %s", e)

    # ----------------------------
    # Transport
    # ----------------------------

    def play(self, track: Any) -> None:
        """
        Start `track` from the beginning, replacing whatever is loaded.

        Raises PlaybackError when the file is missing or the backend cannot
        open it; the controller is then IDLE with no handle.
        """
        now_playing = track if isinstance(track, NowPlaying) else NowPlaying.from_track(track)

        with self._lock:
            self._release()
            self._set_position(0.0)

            if not os.path.isfile(now_playing.path):
                self._set_state(PlaybackState.IDLE)
                raise PlaybackError(f"File not found: {now_playing.path}")

            self._set_state(PlaybackState.LOADING)
            try:
                handle = self.backend.open(now_playing.path)
            except BackendError as e:
                self._set_state(PlaybackState.IDLE)
                logger.error("Cannot open %s: %s", now_playing.path, e)
                raise PlaybackError(f"Cannot play {now_playing.path}: {e}") from e
            self._handle = handle

            try:
                probed = self.backend.length(handle)
                if not (probed and math.isfinite(probed) and probed > 0):
                    probed = now_playing.duration
                self.backend.set_volume(handle, self._volume)
                self.backend.play(handle)
            except BackendError as e:
                self._release()
                self._set_state(PlaybackState.IDLE)
                raise PlaybackError(f"Cannot play {now_playing.path}: {e}") from e

            self._track = now_playing
            self.trackChanged.emit(now_playing)
            self._set_duration(float(probed))
            self._set_state(PlaybackState.PLAYING)
            self._poll_timer.start()
            logger.info("Playing %s - %s", now_playing.artist, now_playing.title)

    def pause(self) -> bool:
        with self._lock:
            if self._state != PlaybackState.PLAYING or self._handle is None:
                return False
            try:
                self.backend.pause(self._handle)
            except BackendError as e:
                raise PlaybackError(f"Cannot pause: {e}") from e
            self._poll_timer.stop()
            self._set_state(PlaybackState.PAUSED)
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state != PlaybackState.PAUSED or self._handle is None:
                return False
            try:
                self.backend.play(self._handle)
            except BackendError as e:
                raise PlaybackError(f"Cannot resume: {e}") from e
            self._set_state(PlaybackState.PLAYING)
            self._poll_timer.start()
            return True

    def toggle_play_pause(self) -> bool:
        with self._lock:
            if self._state == PlaybackState.PLAYING:
                return self.pause()
            return self.resume()

    def stop(self) -> bool:
        with self._lock:
            if self._state == PlaybackState.IDLE:
                return False
            self._release()
            self._set_position(0.0)
            self._set_state(PlaybackState.IDLE)
            return True

    def seek(self, seconds: float) -> bool:
        with self._lock:
            if self._handle is None:
                return False
            seconds = float(seconds)
            if math.isnan(seconds):
                return False
            target = _clamp(seconds, 0.0, self._duration)
            try:
                self.backend.set_position(self._handle, target)
            except BackendError as e:
                raise PlaybackError(f"Cannot seek: {e}") from e
            self._set_position(target)
            return True

    def set_volume(self, volume: float) -> float:
        with self._lock:
            v = float(volume)
            if math.isnan(v):
                return self._volume
            v = _clamp(v, 0.0, 1.0)
            if self._handle is not None:
                try:
                    self.backend.set_volume(self._handle, v)
                except BackendError as e:
                    logger.warning("Backend rejected volume %.2f: %s", v, e)
            if v != self._volume:
                self._volume = v
                self.volumeChanged.emit(v)
            return v

    # ----------------------------
    # Polling
    # ----------------------------

    def poll_once(self) -> None:
        """One position tick. Natural end of stream leaves the player IDLE."""
        with self._lock:
            if self._handle is None or self._state != PlaybackState.PLAYING:
                return
            try:
                channel = self.backend.channel_state(self._handle)
                if channel != ChannelState.STOPPED:
                    pos = self.backend.position(self._handle)
                    if math.isfinite(pos):
                        self._set_position(_clamp(pos, 0.0, self._duration or pos))
                    return
            except BackendError as e:
                logger.warning("Lost playback stream: %s", e)

            self._finish()

    def _finish(self) -> None:
        self._release()
        self._set_position(0.0)
        self._set_state(PlaybackState.IDLE)
        logger.debug("Reached end of %s", self._track.path if self._track else "stream")
        self.ended.emit()

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def shutdown(self) -> None:
        with self._lock:
            self.stop()
            self.backend.close()


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
