"""
Rate-limit counter storage.

Holds one quota window per (caller identity, endpoint) in SQLite. The
check-and-consume step is a single conditional upsert so that concurrent
handlers can never both take the last slot of a window.
"""

from typing import Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import RateLimitWindow

# The DO UPDATE branch only fires when the window has expired (reset to 1)
# or when quota remains (increment). Otherwise no row changes and the
# request is denied.
_CONSUME_SQL = """
    INSERT INTO rate_limit_window
        (identity_key, endpoint, count, window_start, window_seconds, max_requests)
    VALUES (:key, :endpoint, 1, :now, :window_seconds, :max_requests)
    ON CONFLICT(identity_key, endpoint) DO UPDATE SET
        count = CASE
            WHEN :now - window_start > :window_seconds THEN 1
            ELSE count + 1
        END,
        window_start = CASE
            WHEN :now - window_start > :window_seconds THEN :now
            ELSE window_start
        END,
        window_seconds = :window_seconds,
        max_requests = :max_requests
    WHERE :now - window_start > :window_seconds OR count < :max_requests
"""


class SqliteRateLimitStore:
    """Rate-limit windows persisted in the gateway's SQLite database."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def try_consume(
        self,
        identity_key: str,
        endpoint: str,
        now: float,
        window_seconds: int,
        max_requests: int
    ) -> bool:
        """Atomically take one request slot from the caller's window.

        Args:
            identity_key: Stable key of the caller (e.g. "ip:1.2.3.4")
            endpoint: Endpoint the quota applies to
            now: Current time in epoch seconds
            window_seconds: Length of the sliding window
            max_requests: Requests allowed per window

        Returns:
            True if a slot was consumed, False if the window is exhausted
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(_CONSUME_SQL, {
                "key": identity_key,
                "endpoint": endpoint,
                "now": now,
                "window_seconds": window_seconds,
                "max_requests": max_requests,
            })
            conn.commit()
            return cursor.rowcount == 1
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_window(self, identity_key: str, endpoint: str) -> Optional[RateLimitWindow]:
        """Return the stored window for a caller, or None if never seen."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT identity_key, endpoint, count, window_start,
                       window_seconds, max_requests
                FROM rate_limit_window
                WHERE identity_key = ? AND endpoint = ?
            """, (identity_key, endpoint))
            row = cursor.fetchone()
            if row is None:
                return None
            return RateLimitWindow(
                identity_key=row[0],
                endpoint=row[1],
                count=row[2],
                window_start=row[3],
                window_seconds=row[4],
                max_requests=row[5]
            )
        finally:
            conn.close()
