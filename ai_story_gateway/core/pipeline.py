"""
Generation request orchestration.

Runs one request through the pipeline stages in order:

1. Rate check - reject early when the caller's quota is spent
2. Validation - sanitize every string field, then check required fields
3. Prompt build - render the level's system and user prompts
4. Budget check - reject prompts whose estimated tokens exceed the ceiling
5. Completion call - one call to the completion service
6. Extraction - recover the JSON work item from the raw text

Every exit, success or rejection, is audited exactly once before the
response is returned. Nothing is retried.
"""

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from ai_story_gateway.config.loader import GenerationConfig

from .audit import AuditLogger
from .errors import BudgetExceeded, GenerationError, ValidationError
from .extractor import extract_json
from .identity import CallerIdentity
from .prompts import PromptContext, build_prompt
from .rate_limiter import RateLimiter
from .request import GenerationRequest
from .sanitizer import sanitize_object, sanitize_request
from .token_counter import validate_token_limit
from .validation import validate_request
from ..sdk.openai_client import CompletionClient

logger = structlog.get_logger(__name__)

GENERATE_ENDPOINT = "generate-user-story"


class PipelineStage(Enum):
    """Stages a request passes through, in order."""
    RECEIVED = "received"
    RATE_CHECK = "rate_check"
    VALIDATING = "validating"
    BUILDING = "building"
    BUDGET_CHECK = "budget_check"
    CALLING = "calling"
    EXTRACTING = "extracting"
    AUDITING = "auditing"
    RESPONDED = "responded"


@dataclass(frozen=True)
class PipelineResponse:
    """HTTP-level outcome of a request."""
    status_code: int
    body: Dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.body.get("success"))


class GenerationPipeline:
    """Composes rate limiting, sanitization, prompting, completion,
    extraction and auditing into a single request handler.

    Holds no per-request state; one instance serves concurrent requests.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        completion_client: CompletionClient,
        audit_logger: AuditLogger,
        config: Optional[GenerationConfig] = None,
        endpoint: str = GENERATE_ENDPOINT,
        timer: Callable[[], float] = time.perf_counter
    ):
        self.rate_limiter = rate_limiter
        self.completion_client = completion_client
        self.audit_logger = audit_logger
        self.config = config or GenerationConfig()
        self.endpoint = endpoint
        self.timer = timer

    def handle(
        self,
        request: GenerationRequest,
        identity: CallerIdentity,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> PipelineResponse:
        """Handle one generation request end to end.

        Args:
            request: Parsed (not yet sanitized) request
            identity: Caller identity for rate limiting and audit
            ip_address: Client address recorded in the audit trail
            user_agent: Client user agent recorded in the audit trail

        Returns:
            PipelineResponse with the status code and JSON body
        """
        started = self.timer()
        log = logger.bind(
            request_id=uuid.uuid4().hex,
            level=request.story_level.value,
            anonymous=identity.is_anonymous,
        )
        stage = PipelineStage.RECEIVED
        sanitized: Optional[GenerationRequest] = None
        token_count: Optional[int] = None
        data: Optional[Dict[str, Any]] = None
        error: Optional[GenerationError] = None

        try:
            stage = PipelineStage.RATE_CHECK
            self.rate_limiter.enforce(identity, self.endpoint)

            stage = PipelineStage.VALIDATING
            sanitized = sanitize_request(request)
            validate_request(sanitized)

            stage = PipelineStage.BUILDING
            prompt = build_prompt(PromptContext.from_request(sanitized))

            stage = PipelineStage.BUDGET_CHECK
            budget = validate_token_limit(
                f"{prompt.system_prompt}\n{prompt.user_prompt}",
                self.config.max_prompt_tokens
            )
            token_count = budget.token_count
            if not budget.valid:
                raise BudgetExceeded(budget.message, budget.token_count, self.config.max_prompt_tokens)

            stage = PipelineStage.CALLING
            raw_text = self.completion_client.complete(
                prompt.system_prompt,
                prompt.user_prompt,
                self.config.max_output_tokens,
                self.config.temperature
            )

            stage = PipelineStage.EXTRACTING
            data = extract_json(raw_text)
        except GenerationError as e:
            error = e
        except Exception:
            log.exception("generation_unexpected_error", stage=stage.value)
            error = GenerationError("An unexpected error occurred while generating")

        execution_time_ms = int((self.timer() - started) * 1000)

        if sanitized is None:
            sanitized = sanitize_request(request)

        if error is not None:
            log.warning(
                "generation_rejected",
                stage=stage.value,
                kind=error.kind,
                status_code=error.status_code,
                error=error.message,
            )
            response = PipelineResponse(
                status_code=error.status_code,
                body={"success": False, "error": error.message}
            )
        else:
            response = PipelineResponse(
                status_code=200,
                body={
                    "success": True,
                    "data": data,
                    "metadata": {
                        "level": request.story_level.value,
                        "tokenCount": token_count,
                        "executionTime": execution_time_ms,
                    },
                }
            )

        stage = PipelineStage.AUDITING
        self.audit_logger.record(
            identity=identity,
            story_level=request.story_level.value,
            input_data=sanitized.to_wire(),
            execution_time_ms=execution_time_ms,
            success=error is None,
            output_data=data if error is None else None,
            token_count=token_count,
            error_message=error.message if error is not None else None,
            ip_address=ip_address,
            user_agent=user_agent
        )

        stage = PipelineStage.RESPONDED
        log.info(
            "generation_completed",
            stage=stage.value,
            token_count=token_count,
            execution_time_ms=execution_time_ms,
            success=error is None,
        )
        return response

    def reject_unparseable(
        self,
        raw_body: Any,
        errors: List[str],
        identity: CallerIdentity,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> PipelineResponse:
        """Reject a body that could not be parsed into a GenerationRequest.

        Quota is still consumed and the attempt is audited.
        """
        started = self.timer()
        input_data = sanitize_object(raw_body) if isinstance(raw_body, dict) else {}
        story_level = input_data.get("storyLevel")
        if not isinstance(story_level, str) or not story_level:
            story_level = "unknown"

        try:
            self.rate_limiter.enforce(identity, self.endpoint)
            raise ValidationError(errors)
        except GenerationError as e:
            error = e

        execution_time_ms = int((self.timer() - started) * 1000)
        logger.warning(
            "generation_rejected",
            stage=PipelineStage.VALIDATING.value,
            kind=error.kind,
            status_code=error.status_code,
            error=error.message,
        )
        self.audit_logger.record(
            identity=identity,
            story_level=story_level,
            input_data=input_data,
            execution_time_ms=execution_time_ms,
            success=False,
            error_message=error.message,
            ip_address=ip_address,
            user_agent=user_agent
        )
        return PipelineResponse(
            status_code=error.status_code,
            body={"success": False, "error": error.message}
        )
