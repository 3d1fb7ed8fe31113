# library/scanner.py
from __future__ import annotations

import logging
import os

from musiq.core.errors import DirectoryAccessError

logger = logging.getLogger(__name__)

AUDIO_EXTS = {
    ".mp3", ".flac", ".wav", ".aiff", ".aif", ".m4a", ".ogg", ".opus",
    ".dsd", ".dsf", ".dff", ".ape", ".wv",
}

# Directories that behave like single documents (macOS packages and friends).
BUNDLE_EXTS = {
    ".app", ".bundle", ".framework", ".plugin", ".musiclibrary",
    ".photoslibrary", ".logicx", ".band",
}


def is_audio_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in AUDIO_EXTS


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def _is_bundle(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in BUNDLE_EXTS


def _log_walk_error(err: OSError) -> None:
    logger.warning("Skipping unreadable path %s: %s", err.filename, err.strerror or err)


def iter_audio_paths(root: str) -> list[str]:
    """
    Resolve an import root into the audio files it covers, in walk order.

    A single supported file is a one-file list; an unsupported file is empty.
    Hidden entries, bundle directories and non-regular files are skipped.
    Only the root being unreadable is fatal; deeper errors are logged.
    """
    if os.path.isfile(root):
        return [os.path.abspath(root)] if is_audio_path(root) else []
    if not os.path.isdir(root):
        raise DirectoryAccessError(root, "not found")
    try:
        os.listdir(root)
    except OSError as e:
        raise DirectoryAccessError(root, e.strerror or str(e)) from e

    paths: list[str] = []
    for dirpath, dirnames, filenames in os.walk(os.path.abspath(root), onerror=_log_walk_error):
        dirnames[:] = sorted(d for d in dirnames if not _is_hidden(d) and not _is_bundle(d))
        for fn in sorted(filenames):
            if _is_hidden(fn) or not is_audio_path(fn):
                continue
            full = os.path.join(dirpath, fn)
            if os.path.isfile(full):
                paths.append(full)
    return paths
