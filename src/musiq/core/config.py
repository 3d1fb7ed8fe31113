# core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QStandardPaths

BATCH_SIZE = 100
POLL_INTERVAL_MS = 100


def get_app_data_dir() -> str:
    override = os.getenv("MUSIQ_DATA_DIR")
    if override:
        base = override
    else:
        base = QStandardPaths.writableLocation(QStandardPaths.AppDataLocation)
        if not base:
            base = str(Path.home() / ".musiq")
    os.makedirs(base, exist_ok=True)
    return base


@dataclass
class AppConfig:
    data_dir: str
    import_batch_size: int = BATCH_SIZE
    poll_interval_ms: int = POLL_INTERVAL_MS
    default_volume: float = 1.0
    mpv_path: Optional[str] = None
    debug_schema: bool = False
    db_path: str = field(init=False)
    inbox_index_path: str = field(init=False)

    def __post_init__(self) -> None:
        self.db_path = os.path.join(self.data_dir, "musiq.sqlite3")
        self.inbox_index_path = os.path.join(self.data_dir, "inbox.json")


def load_config(data_dir: str | None = None) -> AppConfig:
    return AppConfig(
        data_dir=data_dir or get_app_data_dir(),
        mpv_path=os.getenv("MUSIQ_MPV") or None,
        debug_schema=os.getenv("MUSIQ_DEBUG_SCHEMA") == "1",
    )
