"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AuditRecord:
    """Immutable record of a single generation request.

    Append-only entries that form the audit trail of every request,
    successful or not. Once written, these records must never be modified.
    """
    story_level: str
    input_data: Dict[str, Any]
    execution_time_ms: int
    success: bool
    created_at: datetime
    user_id: Optional[str] = None
    is_anonymous: bool = True
    output_data: Optional[Dict[str, Any]] = None
    token_count: Optional[int] = None
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class RateLimitWindow:
    """Snapshot of one caller's quota window for an endpoint."""
    identity_key: str
    endpoint: str
    count: int
    window_start: float
    window_seconds: int
    max_requests: int

    @property
    def remaining(self) -> int:
        """Requests left in the current window."""
        return max(self.max_requests - self.count, 0)

    def is_expired(self, now: float) -> bool:
        return now - self.window_start > self.window_seconds
