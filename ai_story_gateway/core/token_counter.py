"""
Token estimation and prompt budget checks.

Approximates completion-model token counts without a provider tokenizer.
"""

import math
from dataclasses import dataclass
from typing import Optional

DEFAULT_MAX_PROMPT_TOKENS = 4000


@dataclass(frozen=True)
class BudgetCheck:
    """Result of checking a prompt against a token ceiling."""
    valid: bool
    token_count: int
    message: Optional[str] = None


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text.

    Weighted blend of two cheap signals: roughly four characters per token
    for English text (70%) and one token per whitespace-separated word (30%),
    rounded up.

    Args:
        text: Text to estimate

    Returns:
        Estimated token count (0 for empty text)
    """
    if not text:
        return 0

    char_count = len(text)
    word_count = len(text.split())

    return math.ceil((char_count / 4) * 0.7 + word_count * 0.3)


def validate_token_limit(text: str, max_tokens: int = DEFAULT_MAX_PROMPT_TOKENS) -> BudgetCheck:
    """Validate that the estimated token count is within limits.

    Args:
        text: Composed prompt text
        max_tokens: Ceiling on estimated tokens

    Returns:
        BudgetCheck quoting both numbers when the ceiling is exceeded
    """
    token_count = estimate_tokens(text)

    if token_count > max_tokens:
        return BudgetCheck(
            valid=False,
            token_count=token_count,
            message=(
                f"Prompt is too long ({token_count} tokens). "
                f"Maximum is {max_tokens} tokens. Please shorten your input."
            )
        )

    return BudgetCheck(valid=True, token_count=token_count)
