"""
Input sanitization.

Neutralizes unsafe user input before it is interpolated into a prompt.
The injection filter is a small fixed heuristic, not a security boundary.
"""

import re
from typing import Any, Dict

import structlog

from .request import GenerationRequest

logger = structlog.get_logger(__name__)

MAX_INPUT_LENGTH = 2000
FILTERED_PLACEHOLDER = "[FILTERED]"
PREVIEW_LENGTH = 100

# Control characters except tab (\x09), newline (\x0A) and carriage return (\x0D)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

INJECTION_PATTERNS = [
    re.compile(r"ignore previous instructions", re.IGNORECASE),
    re.compile(r"disregard all previous", re.IGNORECASE),
    re.compile(r"forget everything", re.IGNORECASE),
    re.compile(r"new instruction:", re.IGNORECASE),
    re.compile(r"system:", re.IGNORECASE),
    re.compile(r"assistant:", re.IGNORECASE),
]


def sanitize_input(text: Any) -> str:
    """Sanitize a single user-supplied string.

    Trims whitespace, strips NUL and control characters (newlines and tabs
    survive), truncates to MAX_INPUT_LENGTH and replaces known injection
    phrases with FILTERED_PLACEHOLDER.

    Args:
        text: Raw input; anything that is not a string sanitizes to ""

    Returns:
        Sanitized string
    """
    if not text or not isinstance(text, str):
        return ""

    sanitized = text.strip()
    sanitized = sanitized.replace("\0", "")

    if len(sanitized) > MAX_INPUT_LENGTH:
        sanitized = sanitized[:MAX_INPUT_LENGTH]

    sanitized = _CONTROL_CHARS.sub("", sanitized)

    for pattern in INJECTION_PATTERNS:
        if pattern.search(sanitized):
            logger.warning(
                "prompt_injection_detected",
                pattern=pattern.pattern,
                preview=sanitized[:PREVIEW_LENGTH],
            )
            sanitized = pattern.sub(FILTERED_PLACEHOLDER, sanitized)

    return sanitized


def sanitize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize every string value of a mapping, recursing into nested
    mappings and string lists. Other values are copied unchanged."""
    sanitized = {}
    for key, value in obj.items():
        if isinstance(value, str):
            sanitized[key] = sanitize_input(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_input(item) if isinstance(item, str) else item
                for item in value
            ]
        elif isinstance(value, dict):
            sanitized[key] = sanitize_object(value)
        else:
            sanitized[key] = value
    return sanitized


def sanitize_request(request: GenerationRequest) -> GenerationRequest:
    """Return a copy of the request with all string fields sanitized."""
    raw = request.model_dump(mode="json")
    return GenerationRequest.model_validate(sanitize_object(raw))
