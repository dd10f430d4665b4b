"""
Database connection management.

Provides SQLite connections shared by the audit ledger and the rate-limit store.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "ai_story_gateway.db"

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT_SECONDS = 10.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Each request handler opens its own connection; SQLite serializes writers,
    so concurrent handlers wait up to BUSY_TIMEOUT_SECONDS for the lock.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
