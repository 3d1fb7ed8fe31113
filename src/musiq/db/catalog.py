from __future__ import annotations

import logging
import math
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, Iterator, List, Optional

from PySide6.QtCore import QObject, Signal

from musiq.core.errors import CatalogError, DuplicateTrackError, InvalidTrackError
from musiq.core.models import TrackDescriptor, utc_now
from musiq.core.utils import escape_like, prepare_input
from musiq.db.database import connect, initialize_database
from musiq.db.models import AlbumSummary, ArtistSummary, Track
from musiq.db.schema import TRACK_COLUMNS

logger = logging.getLogger(__name__)

BatchProgress = Callable[[int, int], None]

_INSERT_SQL = """
    INSERT INTO tracks (
        title, title_lower, artist, artist_lower, album, album_lower,
        album_artist, genre, genre_lower, year, track_number, disc_number,
        duration, bitrate, sample_rate, format, file_path, file_name,
        file_size, date_added, date_modified
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

_SELECT_SQL = f"SELECT {TRACK_COLUMNS} FROM tracks"

# SQLite caps bound parameters per statement; stay well under it.
_IN_CHUNK = 500


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _validate(d: TrackDescriptor) -> None:
    if not isinstance(d.duration, (int, float)) or not math.isfinite(d.duration) or d.duration <= 0:
        raise InvalidTrackError(f"Invalid duration {d.duration!r} for {d.file_path}")
    for name in ("title", "artist", "album", "format", "file_path"):
        if not getattr(d, name):
            raise InvalidTrackError(f"Missing {name} for {d.file_path or '<no path>'}")


def _descriptor_params(d: TrackDescriptor, date_added: datetime) -> tuple:
    return (
        d.title,
        prepare_input(d.title),
        d.artist,
        prepare_input(d.artist),
        d.album,
        prepare_input(d.album),
        d.album_artist,
        d.genre,
        prepare_input(d.genre) if d.genre else None,
        d.year,
        d.track_number,
        d.disc_number,
        float(d.duration),
        d.bitrate,
        d.sample_rate,
        d.format,
        d.file_path,
        d.file_name,
        d.file_size,
        _iso(date_added),
        _iso(d.date_modified),
    )


def _translate(e: sqlite3.Error, file_path: str | None = None) -> CatalogError:
    if isinstance(e, sqlite3.IntegrityError) and "tracks.file_path" in str(e):
        return DuplicateTrackError(file_path)
    if isinstance(e, sqlite3.IntegrityError) and "CHECK constraint" in str(e):
        return InvalidTrackError(str(e))
    return CatalogError(str(e))


def _close_quietly(db: sqlite3.Connection) -> None:
    try:
        db.close()
    except sqlite3.Error:
        logger.debug("Error closing catalog connection", exc_info=True)


class Catalog(QObject):
    """
    Committed track library on top of one sqlite file.

    Every thread talks to the file through its own connection. Writes are
    serialised by `_write_lock`; reads go straight through (WAL isolation).
    """
    changed = Signal()

    def __init__(self, db_path: str):
        super().__init__()
        self.db_path = db_path
        self._local = threading.local()
        self._owner = threading.current_thread()
        self._connections: list[tuple[threading.Thread, sqlite3.Connection]] = []
        self._connections_lock = threading.Lock()
        self._write_lock = threading.Lock()

        db = initialize_database(db_path)
        self._register(db)

    # ---- connections ----

    def _register(self, db: sqlite3.Connection) -> None:
        self._local.db = db
        with self._connections_lock:
            self._prune_dead_threads()
            self._connections.append((threading.current_thread(), db))

    def _prune_dead_threads(self) -> None:
        alive = []
        for thread, db in self._connections:
            if thread.is_alive():
                alive.append((thread, db))
            else:
                _close_quietly(db)
        self._connections = alive

    def _db(self) -> sqlite3.Connection:
        db = getattr(self._local, "db", None)
        if db is None:
            db = connect(self.db_path)
            self._register(db)
        return db

    def release_thread_connection(self) -> None:
        """Close the calling thread's connection unless it is the owning thread."""
        if threading.current_thread() is self._owner:
            return
        db = getattr(self._local, "db", None)
        if db is None:
            return
        self._local.db = None
        with self._connections_lock:
            self._connections = [(t, c) for t, c in self._connections if c is not db]
        _close_quietly(db)

    def close(self) -> None:
        with self._connections_lock:
            for _thread, db in self._connections:
                _close_quietly(db)
            self._connections.clear()
        self._local = threading.local()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            db = self._db()
            db.execute("BEGIN IMMEDIATE")
            try:
                yield db
            except BaseException:
                db.rollback()
                raise
            else:
                db.commit()

    def _fetch_tracks(self, sql: str, params: Iterable[object] = ()) -> List[Track]:
        rows = self._db().execute(sql, tuple(params)).fetchall()
        return [Track.from_row(row) for row in rows]

    # -------------------------------
    # WRITES
    # -------------------------------
    def insert(self, descriptor: TrackDescriptor) -> Track:
        _validate(descriptor)
        try:
            with self._write() as db:
                cur = db.execute(_INSERT_SQL, _descriptor_params(descriptor, utc_now()))
                track_id = int(cur.lastrowid)
        except sqlite3.Error as e:
            raise _translate(e, descriptor.file_path) from e

        self.changed.emit()
        return self.get(track_id)

    def insert_batch(
        self,
        descriptors: List[TrackDescriptor],
        progress: Optional[BatchProgress] = None,
    ) -> List[int]:
        """
        Insert all descriptors in one transaction.
        Any failure rolls the whole batch back; nothing from it is kept.
        """
        if not descriptors:
            return []
        for d in descriptors:
            _validate(d)

        total = len(descriptors)
        ids: list[int] = []
        current: TrackDescriptor | None = None
        logger.debug("Adding %d tracks to %s", total, self.db_path)
        try:
            with self._write() as db:
                for index, d in enumerate(descriptors):
                    current = d
                    cur = db.execute(_INSERT_SQL, _descriptor_params(d, utc_now()))
                    ids.append(int(cur.lastrowid))
                    if progress:
                        progress(index + 1, total)
        except sqlite3.Error as e:
            raise _translate(e, current.file_path if current else None) from e

        self.changed.emit()
        return ids

    def update(self, track: Track) -> Track:
        _validate(track.to_descriptor())
        if not 0 <= int(track.rating) <= 5:
            raise ValueError(f"Rating must be between 0 and 5, got {track.rating}")
        if int(track.play_count) < 0:
            raise ValueError(f"Play count cannot be negative, got {track.play_count}")
        try:
            with self._write() as db:
                cur = db.execute("""
                    UPDATE tracks
                    SET title = ?, title_lower = ?, artist = ?, artist_lower = ?,
                        album = ?, album_lower = ?, album_artist = ?, genre = ?,
                        genre_lower = ?, year = ?, track_number = ?, disc_number = ?,
                        duration = ?, bitrate = ?, sample_rate = ?, format = ?,
                        file_path = ?, file_name = ?, file_size = ?, date_added = ?,
                        date_modified = ?, play_count = ?, rating = ?, last_played = ?
                    WHERE id = ?
                """, _descriptor_params(track.to_descriptor(), track.date_added) + (
                    int(track.play_count),
                    int(track.rating),
                    _iso(track.last_played),
                    track.id,
                ))
                if cur.rowcount == 0:
                    raise KeyError(f"Track not found: {track.id}")
        except sqlite3.Error as e:
            raise _translate(e, track.file_path) from e

        self.changed.emit()
        return self.get(track.id)

    def delete(self, track_id: int) -> bool:
        try:
            with self._write() as db:
                deleted = db.execute("DELETE FROM tracks WHERE id = ?", (int(track_id),)).rowcount > 0
        except sqlite3.Error as e:
            raise _translate(e) from e

        if deleted:
            self.changed.emit()
        return deleted

    def record_play(self, track_id: int) -> Track:
        with self._write() as db:
            cur = db.execute("""
                UPDATE tracks
                SET play_count = play_count + 1, last_played = ?
                WHERE id = ?
            """, (_iso(utc_now()), int(track_id)))
            if cur.rowcount == 0:
                raise KeyError(f"Track not found: {track_id}")

        self.changed.emit()
        return self.get(track_id)

    def set_rating(self, track_id: int, rating: int) -> Track:
        if not isinstance(rating, int) or not 0 <= rating <= 5:
            raise ValueError(f"Rating must be an integer between 0 and 5, got {rating!r}")
        with self._write() as db:
            cur = db.execute("UPDATE tracks SET rating = ? WHERE id = ?", (rating, int(track_id)))
            if cur.rowcount == 0:
                raise KeyError(f"Track not found: {track_id}")

        self.changed.emit()
        return self.get(track_id)

    # -------------------------------
    # TRACK LOOKUPS
    # -------------------------------
    def get(self, track_id: int) -> Optional[Track]:
        row = self._db().execute(f"{_SELECT_SQL} WHERE id = ? LIMIT 1", (int(track_id),)).fetchone()
        return Track.from_row(row) if row else None

    def get_by_path(self, file_path: str) -> Optional[Track]:
        row = self._db().execute(f"{_SELECT_SQL} WHERE file_path = ? LIMIT 1", (file_path,)).fetchone()
        return Track.from_row(row) if row else None

    def existing_paths(self, paths: Iterable[str]) -> set[str]:
        paths = list(paths)
        found: set[str] = set()
        db = self._db()
        for start in range(0, len(paths), _IN_CHUNK):
            chunk = paths[start:start + _IN_CHUNK]
            marks = ", ".join("?" for _ in chunk)
            rows = db.execute(f"SELECT file_path FROM tracks WHERE file_path IN ({marks})", chunk).fetchall()
            found.update(row["file_path"] for row in rows)
        return found

    def all(self) -> List[Track]:
        return self._fetch_tracks(f"{_SELECT_SQL} ORDER BY title_lower ASC, id ASC")

    def search(self, query: str) -> List[Track]:
        q = prepare_input(query or "")
        if not q:
            return self.all()
        like = f"%{escape_like(q)}%"
        return self._fetch_tracks(f"""
            {_SELECT_SQL}
            WHERE title_lower LIKE ? ESCAPE '\\'
               OR artist_lower LIKE ? ESCAPE '\\'
               OR album_lower LIKE ? ESCAPE '\\'
               OR genre_lower LIKE ? ESCAPE '\\'
            ORDER BY title_lower ASC, id ASC
        """, (like, like, like, like))

    def by_artist(self, artist: str) -> List[Track]:
        return self._fetch_tracks(f"""
            {_SELECT_SQL}
            WHERE artist = ?
            ORDER BY album_lower ASC, disc_number ASC, track_number ASC, title_lower ASC
        """, (artist,))

    def by_album(self, album: str, artist: str | None = None) -> List[Track]:
        sql = f"{_SELECT_SQL} WHERE album = ?"
        params: list[object] = [album]
        if artist is not None:
            sql += " AND artist = ?"
            params.append(artist)
        sql += " ORDER BY disc_number ASC, track_number ASC, title_lower ASC"
        return self._fetch_tracks(sql, params)

    def recently_added(self, limit: int = 100) -> List[Track]:
        return self._fetch_tracks(
            f"{_SELECT_SQL} ORDER BY date_added DESC, id DESC LIMIT ?",
            (int(limit),),
        )

    # -------------------------------
    # ARTISTS / ALBUMS / STATS
    # -------------------------------
    def all_artists(self) -> List[ArtistSummary]:
        rows = self._db().execute("""
            SELECT artist, COUNT(*) AS track_count
            FROM tracks
            GROUP BY artist
            ORDER BY artist COLLATE NOCASE ASC, artist ASC
        """).fetchall()
        return [ArtistSummary.from_row(row) for row in rows]

    def all_albums(self) -> List[AlbumSummary]:
        rows = self._db().execute("""
            SELECT album, artist, COUNT(*) AS track_count, MAX(year) AS year
            FROM tracks
            GROUP BY album, artist
            ORDER BY artist COLLATE NOCASE ASC, album COLLATE NOCASE ASC
        """).fetchall()
        return [AlbumSummary.from_row(row) for row in rows]

    def total_count(self) -> int:
        return int(self._db().execute("SELECT COUNT(*) FROM tracks").fetchone()[0])

    def total_duration(self) -> float:
        return float(self._db().execute("SELECT COALESCE(SUM(duration), 0) FROM tracks").fetchone()[0])

    # -------------------------------
    # LIBRARY ROOTS
    # -------------------------------
    def get_library_roots(self) -> List[str]:
        cursor = self._db().execute("SELECT path FROM directories ORDER BY id")
        return [row["path"] for row in cursor.fetchall()]

    def set_library_roots(self, directories: List[str]) -> None:
        with self._write() as db:
            db.execute("DELETE FROM directories")
            for path in dict.fromkeys(directories):
                db.execute("INSERT INTO directories (path) VALUES (?)", (path,))
