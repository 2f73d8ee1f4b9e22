"""
Progress Store - Persistent save slots for sort progress

A small key-value store in SQLite. Each sorter URL owns two keys:
"<url>_saveData" with the encoded save string and "<url>_saveType" with
a readable label of what kind of save it was.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

SAVE_TYPES = ('Autosave', 'Progress', 'Last Result')

DATA_SUFFIX = '_saveData'
TYPE_SUFFIX = '_saveType'


class ProgressStore:
    """SQLite-backed save slots."""

    def __init__(self, db_path: str = "data/sorter_saves.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS save_slots (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP
                );
            """)
            conn.commit()
        logger.debug(f"Save store ready at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM save_slots WHERE key = ?", (key,)).fetchone()
        return row['value'] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO save_slots (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                  updated_at = excluded.updated_at""",
                (key, value, datetime.now().isoformat())
            )
            conn.commit()

    def remove(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM save_slots WHERE key = ?", (key,))
            conn.commit()

    def save_progress(self, sorter_url: str, save_data: str, save_type: str) -> None:
        """
        Store a save string under a sorter URL.

        Args:
            sorter_url: Host and path identifying the sorter
            save_data: Encoded save string
            save_type: One of SAVE_TYPES
        """
        if save_type not in SAVE_TYPES:
            raise ValueError(f"Unknown save type: {save_type}")
        self.set(sorter_url + DATA_SUFFIX, save_data)
        self.set(sorter_url + TYPE_SUFFIX, save_type)
        logger.info(f"Saved {save_type.lower()} for {sorter_url}")

    def load_progress(self, sorter_url: str) -> Optional[Tuple[str, str]]:
        """Returns (save data, save type) or None when nothing is stored."""
        data = self.get(sorter_url + DATA_SUFFIX)
        if not data:
            return None
        return data, self.get(sorter_url + TYPE_SUFFIX) or ''

    def saved_type(self, sorter_url: str) -> Optional[str]:
        return self.get(sorter_url + TYPE_SUFFIX)

    def clear_progress(self, sorter_url: str) -> None:
        self.remove(sorter_url + DATA_SUFFIX)
        self.remove(sorter_url + TYPE_SUFFIX)
        logger.info(f"Cleared saved progress for {sorter_url}")
