"""
Error kinds raised by the generation pipeline.

Listed in the order the pipeline can produce them. All are terminal:
the pipeline audits the failure and reports it without retrying.
"""

from typing import List, Optional


class GenerationError(Exception):
    """Base class for caller-visible generation failures."""
    status_code = 500
    kind = "generation_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RateLimitExceeded(GenerationError):
    """Raised when the caller's quota window is exhausted."""
    status_code = 429
    kind = "rate_limit_exceeded"

    def __init__(self, message: str, anonymous: bool):
        super().__init__(message)
        self.anonymous = anonymous


class ValidationError(GenerationError):
    """Raised when the request is missing or has malformed fields."""
    status_code = 400
    kind = "validation_error"

    def __init__(self, errors: List[str]):
        super().__init__(format_validation_errors(errors))
        self.errors = list(errors)


class BudgetExceeded(GenerationError):
    """Raised when the composed prompt's estimated tokens exceed the ceiling."""
    status_code = 400
    kind = "budget_exceeded"

    def __init__(self, message: str, token_count: int, max_tokens: int):
        super().__init__(message)
        self.token_count = token_count
        self.max_tokens = max_tokens


class ProviderError(GenerationError):
    """Raised when the completion service fails or cannot be reached."""
    status_code = 500
    kind = "provider_error"

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.provider_status = status_code
        self.body = body


class MalformedOutput(GenerationError):
    """Raised when no valid JSON object can be recovered from the model."""
    status_code = 500
    kind = "malformed_output"

    def __init__(self, message: str, preview: str = ""):
        super().__init__(message)
        self.preview = preview


def format_validation_errors(errors: List[str]) -> str:
    """Format validation errors into a user-friendly message."""
    if not errors:
        return ""
    if len(errors) == 1:
        return errors[0]
    numbered = "\n".join(f"{i}. {error}" for i, error in enumerate(errors, start=1))
    return f"Validation errors:\n{numbered}"
