"""
Repository pattern for the audit ledger.

Handles database operations and data persistence logic for audit records.
"""

import json
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import AuditRecord

_AUDIT_COLUMNS = """
    user_id, is_anonymous, story_level, input_data, output_data,
    token_count, execution_time_ms, success, error_message,
    ip_address, user_agent, created_at
"""


def _row_to_record(row) -> AuditRecord:
    return AuditRecord(
        user_id=row[0],
        is_anonymous=bool(row[1]),
        story_level=row[2],
        input_data=json.loads(row[3]),
        output_data=json.loads(row[4]) if row[4] is not None else None,
        token_count=row[5],
        execution_time_ms=row[6],
        success=bool(row[7]),
        error_message=row[8],
        ip_address=row[9],
        user_agent=row[10],
        created_at=datetime.fromisoformat(row[11])
    )


class AuditRepository:
    """Read access to the audit ledger.

    Used by the CLI audit viewer; write access goes through
    insert_audit_record only.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_recent_records(
        self,
        story_level: Optional[str] = None,
        success: Optional[bool] = None,
        days: Optional[int] = None,
        limit: int = 100
    ) -> List[AuditRecord]:
        """Get recent audit records with optional filtering.

        Args:
            story_level: Optional filter for a specific level
            success: Optional filter on outcome
            days: Optional number of days to look back
            limit: Maximum number of records to return

        Returns:
            List of audit records ordered by creation time (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_AUDIT_COLUMNS} FROM ai_generation_audit"
            params = []
            conditions = []

            if story_level:
                conditions.append("story_level = ?")
                params.append(story_level)
            if success is not None:
                conditions.append("success = ?")
                params.append(1 if success else 0)
            if days is not None:
                cutoff = (datetime.now() - timedelta(days=days)).isoformat()
                conditions.append("created_at >= ?")
                params.append(cutoff)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY created_at DESC, id DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_row_to_record(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_audit_stats(self, days: int = 30) -> Dict[str, float]:
        """Get aggregate request statistics for the specified time period.

        Args:
            days: Number of days to include in the statistics

        Returns:
            Dictionary containing request statistics
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()
            cursor = conn.execute("""
                SELECT
                    COUNT(*) as total_requests,
                    SUM(success) as successful_requests,
                    AVG(token_count) as avg_tokens,
                    AVG(execution_time_ms) as avg_execution_ms
                FROM ai_generation_audit
                WHERE created_at >= ?
            """, (cutoff,))
            row = cursor.fetchone()

            return {
                "total_requests": row[0] or 0,
                "successful_requests": row[1] or 0,
                "avg_tokens": float(row[2] or 0),
                "avg_execution_ms": float(row[3] or 0)
            }
        finally:
            conn.close()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the audit and rate-limit tables if they don't exist.

    The audit table is an append-only ledger. No UPDATE or DELETE
    operations should ever be performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_generation_audit (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT,
                is_anonymous INTEGER NOT NULL,
                story_level TEXT NOT NULL,
                input_data TEXT NOT NULL,
                output_data TEXT,
                token_count INTEGER,
                execution_time_ms INTEGER NOT NULL,
                success INTEGER NOT NULL,
                error_message TEXT,
                ip_address TEXT,
                user_agent TEXT,
                created_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS rate_limit_window (
                identity_key TEXT NOT NULL,
                endpoint TEXT NOT NULL,
                count INTEGER NOT NULL,
                window_start REAL NOT NULL,
                window_seconds INTEGER NOT NULL,
                max_requests INTEGER NOT NULL,
                PRIMARY KEY (identity_key, endpoint)
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_audit_record(record: AuditRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single audit record into the append-only ledger.

    Args:
        record: The audit record to store
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(f"""
            INSERT INTO ai_generation_audit ({_AUDIT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            record.user_id,
            1 if record.is_anonymous else 0,
            record.story_level,
            json.dumps(record.input_data),
            json.dumps(record.output_data) if record.output_data is not None else None,
            record.token_count,
            record.execution_time_ms,
            1 if record.success else 0,
            record.error_message,
            record.ip_address,
            record.user_agent,
            record.created_at.isoformat()
        ))
        conn.commit()
    finally:
        conn.close()
