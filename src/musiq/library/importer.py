# library/importer.py
from __future__ import annotations

import logging
import os
import threading
import time
from typing import Callable, Iterator, List, Optional

from musiq.core.config import BATCH_SIZE
from musiq.core.errors import (
    CatalogError,
    ImportCancelledError,
    ImportFailedError,
    ImportInProgressError,
)
from musiq.core.models import ImportProgress, TrackDescriptor
from musiq.db.catalog import Catalog
from musiq.library.metadata import extract_track
from musiq.library.scanner import iter_audio_paths

logger = logging.getLogger(__name__)

Extractor = Callable[[str], Optional[TrackDescriptor]]
ProgressHandler = Callable[[int, int, str], None]


class ImportSession:
    """
    One import run, consumed as a stream of ImportProgress events.

    A progress event follows every committed batch. The importer's
    one-at-a-time guard is taken when iteration starts, so a second session
    raises ImportInProgressError on its first step while another runs.
    """

    def __init__(self, importer: "LibraryImporter", root: str, cancel: threading.Event | None = None):
        self._importer = importer
        self.root = root
        self._cancel = cancel or threading.Event()
        self.total = 0
        self.processed = 0
        self.imported = 0
        self.skipped = 0
        self.batches = 0

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def __iter__(self) -> Iterator[ImportProgress]:
        importer = self._importer
        if not importer._lock.acquire(blocking=False):
            raise ImportInProgressError()
        try:
            yield from self._run()
        finally:
            importer._lock.release()
            # connections opened off the owning thread end with the session
            importer.catalog.release_thread_connection()

    def _commit(self, batch: List[TrackDescriptor]) -> None:
        try:
            self._importer.catalog.insert_batch(list(batch))
        except CatalogError as e:
            logger.error("Batch insert failed after %d committed tracks: %s", self.imported, e)
            raise ImportFailedError(self.imported, e) from e
        self.imported += len(batch)
        self.batches += 1
        logger.info("Batch inserted %d tracks", len(batch))
        batch.clear()

    def _run(self) -> Iterator[ImportProgress]:
        importer = self._importer
        start_time = time.time()

        paths = iter_audio_paths(self.root)
        self.total = len(paths)
        logger.info("Found %d audio files in %s", self.total, self.root)

        known = importer.catalog.existing_paths(paths)
        batch: List[TrackDescriptor] = []
        label = ""
        last_reported = -1

        for path in paths:
            if self._cancel.is_set():
                logger.info("Import of %s cancelled; %d tracks committed", self.root, self.imported)
                raise ImportCancelledError(self.imported)

            label = os.path.basename(path)
            self.processed += 1

            if path in known:
                logger.debug("Already in library: %s", path)
                self.skipped += 1
                continue

            track = importer.extractor(path)
            if track is None:
                logger.info("Skipped (no duration/metadata): %s", label)
                self.skipped += 1
                continue

            batch.append(track)
            if len(batch) >= importer.batch_size:
                self._commit(batch)
                last_reported = self.processed
                yield ImportProgress(self.processed, self.total, label)

        if batch:
            self._commit(batch)
        if self.total and last_reported != self.processed:
            yield ImportProgress(self.processed, self.total, label)

        logger.info(
            "Imported %d tracks from %s (%d skipped) in %dms",
            self.imported, self.root, self.skipped, int((time.time() - start_time) * 1000),
        )


class LibraryImporter:
    """Turns filesystem trees into catalog rows, one import at a time."""

    def __init__(self, catalog: Catalog, extractor: Extractor = extract_track, batch_size: int = BATCH_SIZE):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.catalog = catalog
        self.extractor = extractor
        self.batch_size = batch_size
        self._lock = threading.Lock()

    @property
    def is_importing(self) -> bool:
        return self._lock.locked()

    def start(self, root: str, cancel: threading.Event | None = None) -> ImportSession:
        return ImportSession(self, root, cancel)

    def import_folder(
        self,
        root: str,
        progress: Optional[ProgressHandler] = None,
        cancel: threading.Event | None = None,
    ) -> int:
        session = self.start(root, cancel)
        events = iter(session)
        try:
            for event in events:
                if progress:
                    progress(event.processed, event.total, event.label)
        finally:
            # a raising progress handler must not leave the import lock held
            events.close()
        return session.imported
