"""
Structured logging setup.

Diagnostic events are rendered as JSON lines through structlog. These logs
are observability only; the audit ledger is the durable request trail.
"""

import logging
import sys

import structlog

SENSITIVE_FIELDS = ['authorization', 'token', 'secret', 'api_key']


def filter_sensitive_data(logger, log_method, event_dict):
    """A structlog processor that masks sensitive values in the event."""
    for field in SENSITIVE_FIELDS:
        if field in event_dict:
            event_dict[field] = '[FILTERED]'
    return event_dict


def configure_logging(log_level: int = logging.INFO, stream=None) -> None:
    """Configure structlog-based JSON logging.

    Args:
        log_level: Minimum stdlib level to emit
        stream: Output stream (defaults to stdout)
    """
    if stream is None:
        stream = sys.stdout

    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=log_level,
        force=True
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            filter_sensitive_data,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
