# core/models.py
from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrackDescriptor:
    """Metadata read from one audio file, before it reaches the catalog."""
    file_path: str
    title: str
    artist: str
    album: str
    duration: float
    format: str
    album_artist: str | None = None
    genre: str | None = None
    year: int | None = None
    track_number: int | None = None
    disc_number: int | None = None
    bitrate: int | None = None        # kbps
    sample_rate: int | None = None    # Hz
    file_size: int | None = None      # bytes
    date_modified: datetime | None = None

    @property
    def file_name(self) -> str:
        return os.path.basename(self.file_path)


@dataclass(frozen=True)
class ImportProgress:
    processed: int
    total: int
    label: str


# -------------------------------
# INBOX
# -------------------------------
class InboxStatus(str, Enum):
    PENDING = "Pending"
    SCANNING = "Scanning"
    READY = "Ready"
    IMPORTING = "Importing"
    FAILED = "Failed"


@dataclass
class InboxItem:
    folder_path: str
    folder_name: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    date_added: datetime = field(default_factory=utc_now)
    status: InboxStatus = InboxStatus.PENDING
    track_count: Optional[int] = None
    total_size: Optional[int] = None

    @staticmethod
    def for_folder(path: str) -> "InboxItem":
        path = os.path.abspath(path)
        return InboxItem(folder_path=path, folder_name=os.path.basename(path.rstrip(os.sep)) or path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "folder_path": self.folder_path,
            "folder_name": self.folder_name,
            "date_added": self.date_added.isoformat(),
            "status": self.status.value,
            "track_count": self.track_count,
            "total_size": self.total_size,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "InboxItem":
        return InboxItem(
            id=str(data["id"]),
            folder_path=data["folder_path"],
            folder_name=data.get("folder_name") or os.path.basename(data["folder_path"]),
            date_added=datetime.fromisoformat(data["date_added"]),
            status=InboxStatus(data.get("status", InboxStatus.PENDING.value)),
            track_count=data.get("track_count"),
            total_size=data.get("total_size"),
        )


@dataclass(frozen=True)
class InboxTrack:
    inbox_item_id: str
    file_path: str
    title: str
    artist: str
    album: str
    duration: float
    format: str
    file_size: int
    genre: str | None = None
    year: int | None = None
    track_number: int | None = None

    @staticmethod
    def from_descriptor(item_id: str, d: TrackDescriptor) -> "InboxTrack":
        return InboxTrack(
            inbox_item_id=item_id,
            file_path=d.file_path,
            title=d.title,
            artist=d.artist,
            album=d.album,
            duration=d.duration,
            format=d.format,
            file_size=d.file_size or 0,
            genre=d.genre,
            year=d.year,
            track_number=d.track_number,
        )
