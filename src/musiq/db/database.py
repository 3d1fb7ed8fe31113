import logging
import os
import sqlite3

from musiq.db.schema import SCHEMA_V1_SQL

logger = logging.getLogger(__name__)

CURRENT_DB_VERSION = 1


def connect(sqlite_path: str) -> sqlite3.Connection:
    # Each thread gets its own connection; closing happens from the owning Catalog.
    db = sqlite3.connect(sqlite_path, timeout=30.0, check_same_thread=False)
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA foreign_keys=ON")
    return db


def initialize_database(sqlite_path: str) -> sqlite3.Connection:
    os.makedirs(os.path.dirname(os.path.abspath(sqlite_path)), exist_ok=True)
    logger.info("Database file path: %s", sqlite_path)

    db = connect(sqlite_path)

    existing_version = int(db.execute("PRAGMA user_version").fetchone()[0])
    upgrade_database_if_needed(db, existing_version)

    return db


def upgrade_database_if_needed(db: sqlite3.Connection, existing_version: int) -> None:
    logger.debug("Existing database version: %s", existing_version)

    if existing_version >= CURRENT_DB_VERSION:
        return

    # v1
    if existing_version <= 0:
        logger.info("Migrate database version 1...")
        db.execute("PRAGMA journal_mode=WAL")
        db.execute("PRAGMA user_version=1")
        db.executescript(SCHEMA_V1_SQL)
        db.commit()


def debug_print_schema(db: sqlite3.Connection) -> None:
    for table in ("tracks", "directories"):
        cur = db.execute(f"PRAGMA table_info({table})")
        print(f"\n[{table} table schema]")
        for _cid, name, col_type, _notnull, _default, _pk in cur.fetchall():
            print(f"- {name} ({col_type})")
