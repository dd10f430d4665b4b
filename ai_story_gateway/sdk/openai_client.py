"""
Completion clients.

Single blocking call to an LLM completion service that returns raw text.
Retry policy is the caller's concern; clients here never retry.
"""

from typing import Optional, Protocol

import structlog
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..core.errors import ProviderError

logger = structlog.get_logger(__name__)

BODY_PREVIEW_LENGTH = 500


class CompletionClient(Protocol):
    """Anything that can turn a system + user prompt into raw text."""

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float
    ) -> str:
        ...


class OpenAICompletionClient:
    """OpenAI chat-completions client configured for JSON output.

    All provider failures surface as ProviderError carrying the status code
    and response body when the service answered at all.
    """

    def __init__(
        self,
        model: str,
        timeout_seconds: float = 60.0,
        api_key: Optional[str] = None
    ):
        """Initialize the completion client.

        Args:
            model: OpenAI model name (required)
            timeout_seconds: Upper bound on a single completion call
            api_key: API key (defaults to the OPENAI_API_KEY environment variable)

        Raises:
            ValueError: If model is missing/empty or timeout is not positive
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.model = model
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key
        self._client: Optional[OpenAI] = None

    @property
    def client(self) -> OpenAI:
        """The underlying SDK client, created on first use."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                timeout=self.timeout_seconds,
                max_retries=0
            )
        return self._client

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: int,
        temperature: float
    ) -> str:
        """Create a chat completion and return the assistant's text.

        Args:
            system_prompt: Persona and output-format instruction
            user_prompt: Rendered level template
            max_output_tokens: Completion token ceiling
            temperature: Sampling temperature

        Returns:
            Raw completion text

        Raises:
            ProviderError: On non-2xx responses, network failure, timeout,
                missing credentials or an empty completion
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_output_tokens,
                temperature=temperature,
                response_format={"type": "json_object"}
            )
        except APIStatusError as e:
            body = e.response.text[:BODY_PREVIEW_LENGTH] if e.response is not None else None
            logger.error("provider_error", status_code=e.status_code, body=body)
            raise ProviderError(
                f"OpenAI API error: {e.status_code}",
                status_code=e.status_code,
                body=body
            )
        except APITimeoutError:
            logger.error("provider_timeout", timeout_seconds=self.timeout_seconds)
            raise ProviderError(
                f"OpenAI API did not respond within {self.timeout_seconds:g} seconds"
            )
        except APIConnectionError as e:
            logger.error("provider_unreachable", error=str(e))
            raise ProviderError(f"Could not reach OpenAI API: {e}")
        except OpenAIError as e:
            logger.error("provider_misconfigured", error=str(e))
            raise ProviderError(f"OpenAI client error: {e}")

        choices = response.choices or []
        content = choices[0].message.content if choices else None
        if not content:
            logger.error("provider_empty_response", response_id=getattr(response, "id", None))
            raise ProviderError("Empty response from OpenAI API")

        usage = response.usage
        if usage is not None:
            logger.debug(
                "provider_usage",
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )

        return content
