# library/metadata.py
from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timezone

from mutagen import File as MutagenFile

from musiq.core.models import TrackDescriptor
from musiq.core.utils import parse_leading_int, parse_year

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"

_DATE_KEYS = ("date", "originaldate", "year")


def _first(easy, key: str) -> str | None:
    try:
        v = easy.get(key)
    except (KeyError, ValueError):
        return None
    if not v:
        return None
    if isinstance(v, list):
        return (str(v[0]).strip() if v else None) or None
    s = str(v).strip()
    return s or None


def _read_duration(audio) -> float:
    info = getattr(audio, "info", None)
    if info is None:
        return 0.0
    try:
        return float(getattr(info, "length", 0.0) or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _read_int(obj, attr: str) -> int | None:
    value = getattr(obj, attr, None)
    try:
        value = int(value) if value else None
    except (TypeError, ValueError):
        return None
    return value if value and value > 0 else None


def read_track(path: str) -> TrackDescriptor | None:
    audio = MutagenFile(path, easy=True)
    if audio is None:
        return None

    duration = _read_duration(audio)
    if not math.isfinite(duration) or duration <= 0:
        return None

    title = _first(audio, "title") or os.path.splitext(os.path.basename(path))[0]
    artist = _first(audio, "artist") or UNKNOWN_ARTIST
    album = _first(audio, "album") or UNKNOWN_ALBUM

    album_artist = _first(audio, "albumartist") or _first(audio, "album artist")
    genre = _first(audio, "genre")

    year = None
    for key in _DATE_KEYS:
        year = parse_year(_first(audio, key))
        if year is not None:
            break

    bitrate = _read_int(audio.info, "bitrate")
    st = os.stat(path)

    return TrackDescriptor(
        file_path=path,
        title=title,
        artist=artist,
        album=album,
        duration=duration,
        format=os.path.splitext(path)[1].lstrip(".").lower(),
        album_artist=album_artist,
        genre=genre,
        year=year,
        track_number=parse_leading_int(_first(audio, "tracknumber")),
        disc_number=parse_leading_int(_first(audio, "discnumber")),
        bitrate=bitrate // 1000 if bitrate else None,
        sample_rate=_read_int(audio.info, "sample_rate"),
        file_size=st.st_size,
        date_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
    )


def extract_track(path: str) -> TrackDescriptor | None:
    """
    Read one audio file. Returns None ("skip") for anything that is not a
    playable file with a finite positive duration; never raises.
    """
    try:
        return read_track(path)
    except Exception as e:
        logger.debug("Failed to read metadata from %s: %s", path, e)
        return None
