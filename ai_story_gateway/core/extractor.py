"""
Structured output extraction.

Recovers the JSON work item from the model's raw text response.
"""

import json
import re
from typing import Any, Dict

import structlog

from .errors import MalformedOutput

logger = structlog.get_logger(__name__)

PREVIEW_LENGTH = 200

_CODE_FENCE = re.compile(r"```(?:[A-Za-z0-9_-]+)?\s*([\s\S]*?)```")

_NOT_JSON = object()


def _decode(text: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _NOT_JSON


def extract_json(raw_text: str) -> Dict[str, Any]:
    """Extract and decode the JSON object from a model response.

    Text that is already valid JSON is decoded as is, so fences inside
    string values are left alone. Otherwise the first fenced code block,
    with or without a language tag, is unwrapped and decoded.

    Args:
        raw_text: Raw completion text

    Returns:
        The decoded JSON object

    Raises:
        MalformedOutput: If the text is empty, is not valid JSON, or does
            not decode to an object
    """
    if not raw_text or not raw_text.strip():
        raise MalformedOutput("Empty response from AI")

    cleaned = raw_text.strip()
    result = _decode(cleaned)

    if result is _NOT_JSON:
        match = _CODE_FENCE.search(cleaned)
        if match:
            cleaned = match.group(1).strip()
            result = _decode(cleaned)

    preview = cleaned[:PREVIEW_LENGTH]
    if result is _NOT_JSON:
        logger.error("json_parse_failed", preview=preview)
        raise MalformedOutput("Invalid JSON response from AI", preview=preview)

    if not isinstance(result, dict):
        logger.error("json_not_an_object", preview=preview)
        raise MalformedOutput("AI response JSON is not an object", preview=preview)

    return result
