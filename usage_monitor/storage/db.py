"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import os
import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "usage_monitor.db"


def default_db_path() -> str:
    """Database path from ``USAGE_MONITOR_DB``, or the default file name."""
    return os.getenv("USAGE_MONITOR_DB", DEFAULT_DB_PATH)


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection in autocommit mode.

    Transactions are opened explicitly by the repository so that
    read-modify-write sequences can take the write lock up front.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=30, isolation_level=None)
    return conn
