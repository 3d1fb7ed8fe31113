from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional
import sqlite3

from musiq.core.models import TrackDescriptor


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Track:
    id: int
    title: str
    artist: str
    album: str
    duration: float
    format: str
    file_path: str
    date_added: datetime
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    bitrate: Optional[int] = None
    sample_rate: Optional[int] = None
    file_size: Optional[int] = None
    date_modified: Optional[datetime] = None
    play_count: int = 0
    rating: int = 0
    last_played: Optional[datetime] = None

    @staticmethod
    def from_row(row: sqlite3.Row) -> "Track":
        return Track(
            id=row["id"],
            title=row["title"],
            artist=row["artist"],
            album=row["album"],
            album_artist=row["album_artist"],
            genre=row["genre"],
            year=row["year"],
            track_number=row["track_number"],
            disc_number=row["disc_number"],
            duration=float(row["duration"]),
            bitrate=row["bitrate"],
            sample_rate=row["sample_rate"],
            format=row["format"],
            file_path=row["file_path"],
            file_size=row["file_size"],
            date_added=_dt(row["date_added"]),
            date_modified=_dt(row["date_modified"]),
            play_count=int(row["play_count"]),
            rating=int(row["rating"]),
            last_played=_dt(row["last_played"]),
        )

    def to_descriptor(self) -> TrackDescriptor:
        return TrackDescriptor(
            file_path=self.file_path,
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration=self.duration,
            format=self.format,
            album_artist=self.album_artist,
            genre=self.genre,
            year=self.year,
            track_number=self.track_number,
            disc_number=self.disc_number,
            bitrate=self.bitrate,
            sample_rate=self.sample_rate,
            file_size=self.file_size,
            date_modified=self.date_modified,
        )

    def copy(self, **changes) -> "Track":
        return replace(self, **changes)


@dataclass(frozen=True)
class ArtistSummary:
    artist: str
    track_count: int

    @staticmethod
    def from_row(row: sqlite3.Row) -> "ArtistSummary":
        return ArtistSummary(artist=row["artist"], track_count=int(row["track_count"]))


@dataclass(frozen=True)
class AlbumSummary:
    album: str
    artist: str
    track_count: int
    year: Optional[int]

    @staticmethod
    def from_row(row: sqlite3.Row) -> "AlbumSummary":
        return AlbumSummary(
            album=row["album"],
            artist=row["artist"],
            track_count=int(row["track_count"]),
            year=row["year"],
        )
