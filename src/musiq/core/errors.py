# core/errors.py
from __future__ import annotations


class MusiqError(Exception):
    """Base class for every error surfaced to callers of musiq services."""


# -------------------------------
# IMPORT
# -------------------------------
class LibraryImportError(MusiqError):
    pass


class ImportInProgressError(LibraryImportError):
    def __init__(self) -> None:
        super().__init__("An import operation is already in progress")


class DirectoryAccessError(LibraryImportError):
    def __init__(self, path: str, reason: str | None = None):
        self.path = path
        msg = f"Cannot access the specified directory: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ImportFailedError(LibraryImportError):
    """A batch commit failed. `imported` rows from earlier batches stay committed."""

    def __init__(self, imported: int, cause: Exception):
        self.imported = imported
        self.cause = cause
        super().__init__(f"Import failed after {imported} tracks: {cause}")


class ImportCancelledError(LibraryImportError):
    def __init__(self, imported: int):
        self.imported = imported
        super().__init__(f"Import cancelled after {imported} tracks")


# -------------------------------
# CATALOG
# -------------------------------
class CatalogError(MusiqError):
    pass


class DuplicateTrackError(CatalogError):
    def __init__(self, file_path: str | None = None):
        self.file_path = file_path
        if file_path:
            super().__init__(f"Track already in library: {file_path}")
        else:
            super().__init__("Track already in library")


class InvalidTrackError(CatalogError):
    pass


# -------------------------------
# PLAYBACK
# -------------------------------
class PlaybackError(MusiqError):
    pass


class BackendError(PlaybackError):
    """Raised by decode backends when a stream cannot be opened or commanded."""
