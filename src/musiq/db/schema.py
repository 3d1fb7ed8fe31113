from __future__ import annotations

# Keep the v1 schema in one place for readability.
SCHEMA_V1_SQL = """
CREATE TABLE directories (
    id INTEGER PRIMARY KEY,
    path TEXT NOT NULL UNIQUE
);

CREATE TABLE tracks (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL,
    title_lower TEXT NOT NULL,
    artist TEXT NOT NULL,
    artist_lower TEXT NOT NULL,
    album TEXT NOT NULL,
    album_lower TEXT NOT NULL,
    album_artist TEXT,
    genre TEXT,
    genre_lower TEXT,
    year INTEGER,
    track_number INTEGER,
    disc_number INTEGER,
    duration FLOAT NOT NULL CHECK (duration > 0),
    bitrate INTEGER,
    sample_rate INTEGER,
    format TEXT NOT NULL,
    file_path TEXT NOT NULL UNIQUE,
    file_name TEXT NOT NULL,
    file_size INTEGER,
    date_added TEXT NOT NULL,
    date_modified TEXT,
    play_count INTEGER NOT NULL DEFAULT 0 CHECK (play_count >= 0),
    rating INTEGER NOT NULL DEFAULT 0 CHECK (rating BETWEEN 0 AND 5),
    last_played TEXT
);

CREATE INDEX idx_tracks_artist ON tracks(artist);
CREATE INDEX idx_tracks_album ON tracks(album);
CREATE INDEX idx_tracks_genre ON tracks(genre);
CREATE INDEX idx_tracks_date_added ON tracks(date_added);
"""

TRACK_COLUMNS = """
    id, title, artist, album, album_artist, genre, year,
    track_number, disc_number, duration, bitrate, sample_rate,
    format, file_path, file_size, date_added, date_modified,
    play_count, rating, last_played
"""
