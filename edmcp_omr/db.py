"""Thin sqlite3 connection wrapper shared by the exam store."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Union


class DatabaseManager:
    """Owns one sqlite connection with dict-like rows."""

    def __init__(self, db_path: Union[str, Path]):
        """
        Open (and create if needed) the database file.

        Args:
            db_path: Path to the sqlite file, or ":memory:".
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

    def close(self):
        """Close the connection."""
        self.conn.close()
