"""
Audit logging for generation requests.

Writes exactly one AuditRecord per request, on every success and failure
path. Audit writes are best-effort relative to the caller-visible result:
a failed write is logged and never replaces the original response.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

import structlog

from ai_story_gateway.storage.db import DEFAULT_DB_PATH
from ai_story_gateway.storage.models import AuditRecord
from ai_story_gateway.storage.repository import insert_audit_record

from .identity import CallerIdentity, user_id_of

logger = structlog.get_logger(__name__)


class AuditLogger:
    """Builds audit records and appends them to the ledger."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        writer: Callable[[AuditRecord, str], None] = insert_audit_record
    ):
        self.db_path = db_path
        self.writer = writer

    def record(
        self,
        identity: CallerIdentity,
        story_level: str,
        input_data: Dict[str, Any],
        execution_time_ms: int,
        success: bool,
        output_data: Optional[Dict[str, Any]] = None,
        token_count: Optional[int] = None,
        error_message: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> bool:
        """Append one audit record.

        Returns:
            True if the record was written, False if the write failed
        """
        record = AuditRecord(
            user_id=user_id_of(identity),
            is_anonymous=identity.is_anonymous,
            story_level=story_level,
            input_data=input_data,
            output_data=output_data,
            token_count=token_count,
            execution_time_ms=execution_time_ms,
            success=success,
            error_message=error_message,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.now()
        )

        try:
            self.writer(record, self.db_path)
        except Exception as e:
            logger.error(
                "audit_write_failed",
                story_level=story_level,
                success=success,
                error=str(e),
            )
            return False
        return True
