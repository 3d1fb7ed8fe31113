"""Tests for the mutagen-backed metadata extractor."""

import math
from pathlib import Path
from types import SimpleNamespace

import pytest

from conftest import write_wav
from musiq.library import metadata
from musiq.library.metadata import UNKNOWN_ALBUM, UNKNOWN_ARTIST, extract_track


class FakeAudio(dict):
    """Stands in for an easy-mode mutagen file: tag dict plus `.info`."""

    def __init__(self, length, tags=None, bitrate=320000, sample_rate=44100):
        super().__init__(tags or {})
        self.info = SimpleNamespace(length=length, bitrate=bitrate, sample_rate=sample_rate)


@pytest.fixture
def audio_file(tmp_path: Path) -> Path:
    path = tmp_path / "Some Song.mp3"
    path.write_bytes(b"\x00" * 64)
    return path


def _patch(monkeypatch, audio):
    monkeypatch.setattr(metadata, "MutagenFile", lambda path, easy=True: audio)


class TestDuration:
    def test_keeps_exact_duration(self, monkeypatch, audio_file):
        _patch(monkeypatch, FakeAudio(length=241.337))
        d = extract_track(str(audio_file))
        assert d is not None
        assert d.duration == 241.337

    @pytest.mark.parametrize("length", [0.0, -1.0, math.inf, math.nan, None])
    def test_skips_unusable_duration(self, monkeypatch, audio_file, length):
        _patch(monkeypatch, FakeAudio(length=length))
        assert extract_track(str(audio_file)) is None

    def test_skips_unrecognised_file(self, monkeypatch, audio_file):
        _patch(monkeypatch, None)
        assert extract_track(str(audio_file)) is None

    def test_reader_errors_are_skips(self, monkeypatch, audio_file):
        def boom(path, easy=True):
            raise OSError("corrupt header")

        monkeypatch.setattr(metadata, "MutagenFile", boom)
        assert extract_track(str(audio_file)) is None


class TestTags:
    def test_missing_tags_fall_back(self, monkeypatch, audio_file):
        _patch(monkeypatch, FakeAudio(length=10.0))
        d = extract_track(str(audio_file))

        assert d.title == "Some Song"
        assert d.artist == UNKNOWN_ARTIST
        assert d.album == UNKNOWN_ALBUM
        assert d.format == "mp3"
        assert d.file_path == str(audio_file)
        assert d.file_size == 64
        assert d.date_modified is not None

    def test_reads_tags(self, monkeypatch, audio_file):
        tags = {
            "title": ["  Hello  "],
            "artist": ["Beyoncé"],
            "album": ["Lemonade"],
            "albumartist": ["Beyoncé"],
            "genre": ["Pop"],
            "date": ["2016-04-23"],
            "tracknumber": ["3/12"],
            "discnumber": ["1/1"],
        }
        _patch(monkeypatch, FakeAudio(length=200.0, tags=tags))
        d = extract_track(str(audio_file))

        assert d.title == "Hello"
        assert d.artist == "Beyoncé"
        assert d.album == "Lemonade"
        assert d.album_artist == "Beyoncé"
        assert d.genre == "Pop"
        assert d.year == 2016
        assert d.track_number == 3
        assert d.disc_number == 1
        assert d.bitrate == 320
        assert d.sample_rate == 44100

    def test_year_from_original_date(self, monkeypatch, audio_file):
        _patch(monkeypatch, FakeAudio(length=5.0, tags={"originaldate": ["1999"]}))
        assert extract_track(str(audio_file)).year == 1999

    def test_blank_tags_are_missing(self, monkeypatch, audio_file):
        _patch(monkeypatch, FakeAudio(length=5.0, tags={"artist": ["   "], "tracknumber": ["A1"]}))
        d = extract_track(str(audio_file))
        assert d.artist == UNKNOWN_ARTIST
        assert d.track_number is None


class TestRealFiles:
    def test_reads_wav(self, tmp_path: Path):
        path = write_wav(tmp_path / "tone.wav", seconds=0.5, rate=8000)
        d = extract_track(str(path))

        assert d is not None
        assert d.duration == pytest.approx(0.5)
        assert d.format == "wav"
        assert d.sample_rate == 8000
        assert d.title == "tone"

    def test_empty_wav_is_skipped(self, tmp_path: Path):
        path = write_wav(tmp_path / "silence.wav", seconds=0)
        assert extract_track(str(path)) is None

    def test_garbage_with_audio_extension_is_skipped(self, tmp_path: Path):
        path = tmp_path / "broken.flac"
        path.write_bytes(b"definitely not flac" * 10)
        assert extract_track(str(path)) is None
