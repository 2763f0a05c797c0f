"""SQLite connection helper shared by the vector store and the task reader."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open the project database, creating its parent directory if needed.

    ``":memory:"`` opens a private in-memory database.
    """
    if str(db_path) != ":memory:":
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Opening database %s", db_path)
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
