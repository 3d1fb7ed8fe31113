# inbox/store.py
from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Tuple

from PySide6.QtCore import QObject, Signal

from musiq.core.errors import MusiqError
from musiq.core.models import InboxItem, InboxStatus, InboxTrack
from musiq.library.importer import LibraryImporter, ProgressHandler
from musiq.library.metadata import extract_track
from musiq.library.scanner import iter_audio_paths

logger = logging.getLogger(__name__)

INDEX_VERSION = 1

_IMPORTABLE = (InboxStatus.READY, InboxStatus.FAILED)
_RESCANNABLE = (InboxStatus.PENDING, InboxStatus.READY, InboxStatus.FAILED)


def scan_folder(path: str, item_id: str, extractor=extract_track) -> Tuple[int, int, List[InboxTrack]]:
    """Returns (track_count, total_size, tracks) for one staged folder."""
    track_count = 0
    total_size = 0
    tracks: List[InboxTrack] = []

    for file_path in iter_audio_paths(path):
        track_count += 1
        try:
            total_size += os.path.getsize(file_path)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", file_path, e)

        descriptor = extractor(file_path)
        if descriptor is not None:
            tracks.append(InboxTrack.from_descriptor(item_id, descriptor))

    return track_count, total_size, tracks


class InboxStore(QObject):
    """
    Folders that were scanned but not yet imported.

    The item list is written to `index_path` after every mutation; per-track
    descriptors stay in memory and are rebuilt on demand after a restart.
    """
    items_changed = Signal()

    def __init__(
        self,
        index_path: str,
        importer: LibraryImporter,
        extractor=extract_track,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        super().__init__()
        self.index_path = index_path
        self.importer = importer
        self.extractor = extractor

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="inbox-scan")

        self._lock = threading.RLock()
        self._items: dict[str, InboxItem] = {}
        self._tracks: dict[str, List[InboxTrack]] = {}

        self._load()

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # -------------------------------
    # ADD / SCAN
    # -------------------------------
    def add_folder(self, path: str) -> "Future[InboxItem]":
        item = InboxItem.for_folder(path)
        item.status = InboxStatus.SCANNING

        with self._lock:
            self._items[item.id] = item
            self._save()
        self.items_changed.emit()
        logger.info("Added to inbox: %s", item.folder_name)

        return self._executor.submit(self._scan, item.id)

    def rescan_item(self, item_id: str) -> "Optional[Future[InboxItem]]":
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status not in _RESCANNABLE:
                return None
            item.status = InboxStatus.SCANNING
            self._tracks.pop(item_id, None)
            self._save()
        self.items_changed.emit()
        return self._executor.submit(self._scan, item_id)

    def _scan(self, item_id: str) -> Optional[InboxItem]:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return None
            folder = item.folder_path

        try:
            track_count, total_size, tracks = scan_folder(folder, item_id, self.extractor)
            ok = track_count > 0
        except MusiqError as e:
            logger.warning("Scan of %s failed: %s", folder, e)
            track_count, total_size, tracks, ok = 0, 0, [], False

        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                # removed while scanning
                return None
            item.track_count = track_count
            item.total_size = total_size
            item.status = InboxStatus.READY if ok else InboxStatus.FAILED
            self._tracks[item_id] = tracks
            self._save()
            snapshot = replace(item)
        self.items_changed.emit()
        logger.info("Scanned %s: %d tracks (%s)", snapshot.folder_name, track_count, snapshot.status.value)
        return snapshot

    # -------------------------------
    # IMPORT
    # -------------------------------
    def import_item(self, item_id: str, progress: Optional[ProgressHandler] = None) -> bool:
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status not in _IMPORTABLE:
                return False
            item.status = InboxStatus.IMPORTING
            self._save()
            folder, name = item.folder_path, item.folder_name
        self.items_changed.emit()

        try:
            count = self.importer.import_folder(folder, progress)
        except Exception as e:
            logger.error("Failed to import %s: %s", name, e)
            with self._lock:
                item = self._items.get(item_id)
                if item is not None:
                    item.status = InboxStatus.FAILED
                    self._save()
            self.items_changed.emit()
            if not isinstance(e, MusiqError):
                raise
            return False

        self.remove_item(item_id)
        logger.info("Successfully imported %d tracks from %s", count, name)
        return True

    # -------------------------------
    # REMOVE
    # -------------------------------
    def remove_item(self, item_id: str) -> bool:
        with self._lock:
            item = self._items.pop(item_id, None)
            self._tracks.pop(item_id, None)
            if item is None:
                return False
            self._save()
        self.items_changed.emit()
        logger.info("Removed from inbox: %s", item.folder_name)
        return True

    def clear_all(self) -> None:
        with self._lock:
            self._items.clear()
            self._tracks.clear()
            self._save()
        self.items_changed.emit()
        logger.info("Cleared inbox")

    # -------------------------------
    # QUERIES
    # -------------------------------
    def list_items(self) -> List[InboxItem]:
        with self._lock:
            return [replace(item) for item in self._items.values()]

    def get_item(self, item_id: str) -> Optional[InboxItem]:
        with self._lock:
            item = self._items.get(item_id)
            return replace(item) if item else None

    def tracks_for(self, item_id: str) -> List[InboxTrack]:
        with self._lock:
            cached = self._tracks.get(item_id)
            if cached is not None:
                return list(cached)
            item = self._items.get(item_id)
            if item is None or item.status != InboxStatus.READY:
                return []
            folder = item.folder_path

        # Descriptors are not persisted; rebuild them after a restart.
        try:
            _, _, tracks = scan_folder(folder, item_id, self.extractor)
        except MusiqError as e:
            logger.warning("Cannot rebuild inbox tracks for %s: %s", folder, e)
            return []
        with self._lock:
            if item_id not in self._items:
                return []
            self._tracks[item_id] = tracks
        return list(tracks)

    # -------------------------------
    # PERSISTENCE
    # -------------------------------
    def _load(self) -> None:
        if not os.path.exists(self.index_path):
            return
        try:
            with open(self.index_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            items = [InboxItem.from_dict(d) for d in data.get("items", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error("Cannot read inbox index %s: %s", self.index_path, e)
            return

        interrupted = False
        for item in items:
            if item.status == InboxStatus.SCANNING:
                item.status = InboxStatus.PENDING
                interrupted = True
            elif item.status == InboxStatus.IMPORTING:
                item.status = InboxStatus.FAILED
                interrupted = True
            self._items[item.id] = item

        logger.info("Loaded %d inbox items", len(items))
        if interrupted:
            self._save()

    def _save(self) -> None:
        os.makedirs(os.path.dirname(os.path.abspath(self.index_path)), exist_ok=True)
        payload = {
            "version": INDEX_VERSION,
            "items": [item.to_dict() for item in self._items.values()],
        }
        tmp_path = self.index_path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, self.index_path)
