"""Tests for the playback controller against an in-memory backend."""

from pathlib import Path

import pytest

from conftest import FakeBackend, make_descriptor
from musiq.core.errors import PlaybackError
from musiq.player.player import NowPlaying, PlaybackState, Player


@pytest.fixture
def backend():
    return FakeBackend(length=200.0)


@pytest.fixture
def player(backend):
    p = Player(backend, poll_interval_ms=50)
    yield p
    p.shutdown()


@pytest.fixture
def track_a(tmp_path: Path):
    path = tmp_path / "a.mp3"
    path.write_bytes(b"a")
    return make_descriptor(str(path), title="A", duration=180.0)


@pytest.fixture
def track_b(tmp_path: Path):
    path = tmp_path / "b.mp3"
    path.write_bytes(b"b")
    return make_descriptor(str(path), title="B", duration=90.0)


class TestPlay:
    def test_play_enters_playing(self, player, backend, track_a):
        player.play(track_a)

        assert player.state == PlaybackState.PLAYING
        assert player.is_playing
        assert player.current_track.title == "A"
        assert player.current_time == 0.0
        assert len(backend.open_handles) == 1

    def test_probed_length_overrides_stored_duration(self, player, track_a):
        player.play(track_a)
        assert player.duration == 200.0

    def test_stored_duration_used_when_backend_length_is_empty(self, backend, player, track_a):
        backend.default_length = 0.0
        player.play(track_a)
        assert player.duration == 180.0

    def test_play_replaces_handle(self, player, backend, track_a, track_b):
        player.play(track_a)
        player.play(track_b)

        assert len(backend.open_handles) == 1
        assert backend.opened[-1] == track_b.file_path
        assert player.current_track.title == "B"

    def test_missing_file(self, player, backend, tmp_path):
        ghost = make_descriptor(str(tmp_path / "ghost.mp3"))

        with pytest.raises(PlaybackError):
            player.play(ghost)

        assert player.state == PlaybackState.IDLE
        assert player.current_track is None
        assert backend.opened == []

    def test_open_failure_leaves_idle(self, player, backend, track_a, track_b):
        player.play(track_a)
        backend.fail_open.add(track_b.file_path)

        with pytest.raises(PlaybackError):
            player.play(track_b)

        assert player.state == PlaybackState.IDLE
        assert not player.has_handle
        assert backend.open_handles == set()
        assert player.current_track.title == "A"

    def test_accepts_now_playing(self, player, track_a):
        player.play(NowPlaying.from_track(track_a))
        assert player.current_track.path == track_a.file_path

    def test_signals(self, player, track_a):
        states, tracks = [], []
        player.stateChanged.connect(states.append)
        player.trackChanged.connect(tracks.append)

        player.play(track_a)

        assert states == [PlaybackState.LOADING, PlaybackState.PLAYING]
        assert [t.title for t in tracks] == ["A"]


class TestTransport:
    def test_pause_and_resume(self, player, backend, track_a):
        player.play(track_a)

        assert player.pause() is True
        assert player.state == PlaybackState.PAUSED
        assert player.pause() is False

        assert player.resume() is True
        assert player.state == PlaybackState.PLAYING
        assert player.resume() is False

    def test_pause_and_resume_when_idle_are_noops(self, player):
        assert player.pause() is False
        assert player.resume() is False
        assert player.state == PlaybackState.IDLE
        assert player.current_time == 0.0
        assert player.current_track is None

    def test_stop_releases_handle(self, player, backend, track_a):
        player.play(track_a)
        player.seek(30)

        assert player.stop() is True
        assert player.state == PlaybackState.IDLE
        assert player.current_time == 0.0
        assert backend.open_handles == set()
        assert player.stop() is False

    def test_toggle(self, player, track_a):
        player.play(track_a)
        player.toggle_play_pause()
        assert player.state == PlaybackState.PAUSED
        player.toggle_play_pause()
        assert player.state == PlaybackState.PLAYING


class TestSeek:
    def test_seek_updates_position_immediately(self, player, track_a):
        player.play(track_a)
        assert player.seek(42.5) is True
        assert player.current_time == 42.5

    def test_seek_clamps(self, player, track_a):
        player.play(track_a)

        player.seek(10_000)
        assert player.current_time == player.duration

        player.seek(-5)
        assert player.current_time == 0.0

    def test_seek_without_handle_is_noop(self, player):
        assert player.seek(10) is False
        assert player.current_time == 0.0

    def test_seek_nan_is_ignored(self, player, track_a):
        player.play(track_a)
        player.seek(12)
        assert player.seek(float("nan")) is False
        assert player.current_time == 12


class TestVolume:
    def test_volume_is_clamped_and_stored_without_handle(self, player, backend):
        assert player.set_volume(1.7) == 1.0
        assert player.set_volume(-0.2) == 0.0
        assert player.volume == 0.0
        assert backend.volume is None

    def test_volume_applies_to_open_handle(self, player, backend, track_a):
        player.set_volume(0.4)
        player.play(track_a)
        assert backend.volume == 0.4

        player.set_volume(0.8)
        assert backend.volume == 0.8

    def test_nan_volume_is_ignored(self, player, backend, track_a):
        changes = []
        player.set_volume(0.2)
        player.play(track_a)
        player.volumeChanged.connect(changes.append)

        assert player.set_volume(float("nan")) == 0.2
        assert player.volume == 0.2
        assert backend.volume == 0.2
        assert changes == []


class TestPolling:
    def test_poll_reads_position(self, player, backend, track_a):
        player.play(track_a)
        backend.advance(max(backend.open_handles), 3.25)

        player.poll_once()

        assert player.current_time == 3.25

    def test_end_of_stream(self, player, backend, track_a):
        ended = []
        player.ended.connect(lambda: ended.append(True))
        player.set_volume(0.3)
        player.play(track_a)
        backend.finish(max(backend.open_handles))

        player.poll_once()

        assert ended == [True]
        assert player.state == PlaybackState.IDLE
        assert player.current_time == 0.0
        assert backend.open_handles == set()
        assert player.volume == 0.3
        assert player.current_track.title == "A"

    def test_poll_while_paused_does_nothing(self, player, backend, track_a):
        player.play(track_a)
        player.pause()
        backend.finish(max(backend.open_handles))

        player.poll_once()

        assert player.state == PlaybackState.PAUSED

    def test_poll_interval_is_configurable(self, player):
        player.poll_interval_ms = 250
        assert player.poll_interval_ms == 250


class TestShutdown:
    def test_shutdown_closes_backend(self, backend, track_a):
        p = Player(backend)
        p.play(track_a)
        p.shutdown()

        assert backend.closed
        assert backend.open_handles == set()
