"""
Request field validation.

Checks that run after sanitization and before any prompt is built.
"""

from typing import List, Optional

from .errors import ValidationError
from .prompts import get_level_spec
from .request import GenerationRequest, StoryLevel

MIN_INPUT_LENGTH = 5


def validate_required_fields(
    level: StoryLevel,
    user_input: Optional[str],
    parent_id: Optional[str] = None
) -> List[str]:
    """Validate required fields based on story level.

    Args:
        level: Level being generated
        user_input: Sanitized free-text input
        parent_id: Identifier of the parent work item, if any

    Returns:
        List of error messages (empty if valid)
    """
    errors = []
    text = (user_input or "").strip()

    if not text:
        errors.append("Input description is required")
    elif len(text) < MIN_INPUT_LENGTH:
        errors.append(f"Input description must be at least {MIN_INPUT_LENGTH} characters")

    if get_level_spec(level).requires_parent and not (parent_id or "").strip():
        errors.append(f"A parent is required for {level.value} generation")

    return errors


def validate_request(request: GenerationRequest) -> None:
    """Raise ValidationError if the request fails any field check."""
    errors = validate_required_fields(
        request.story_level,
        request.user_input,
        request.parent_id
    )
    if errors:
        raise ValidationError(errors)
