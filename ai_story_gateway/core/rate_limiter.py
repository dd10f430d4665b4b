"""
Per-caller rate limiting.

Anonymous callers are keyed by IP address and authenticated callers by user
id, each with its own sliding-window policy. Counters live in an external
store; this module holds no cross-request state of its own.
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ai_story_gateway.config.loader import RateLimitConfig, RateLimitPolicyConfig

from .errors import RateLimitExceeded
from .identity import CallerIdentity


class RateLimitStore(Protocol):
    """Narrow atomic-increment interface over the shared counter store."""

    def try_consume(
        self,
        identity_key: str,
        endpoint: str,
        now: float,
        window_seconds: int,
        max_requests: int
    ) -> bool:
        ...


@dataclass(frozen=True)
class RateLimitPolicy:
    """A named quota applied to one class of caller."""
    name: str
    max_requests: int
    window_seconds: int

    @classmethod
    def from_config(cls, name: str, config: RateLimitPolicyConfig) -> "RateLimitPolicy":
        return cls(name=name, max_requests=config.max_requests, window_seconds=config.window_seconds)

    def describe_window(self) -> str:
        """Human-readable window length, e.g. '24 hours' or '60 minutes'."""
        seconds = self.window_seconds
        if seconds % 3600 == 0 and seconds >= 24 * 3600:
            return f"{seconds // 3600} hours"
        if seconds % 60 == 0:
            return f"{seconds // 60} minutes"
        return f"{seconds} seconds"


class RateLimiter:
    """Applies the anonymous or authenticated policy to each request."""

    def __init__(
        self,
        store: RateLimitStore,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.time
    ):
        """Initialize the limiter.

        Args:
            store: Shared counter store with an atomic try_consume
            config: Policy configuration (defaults: 3/24h anonymous, 50/60min authenticated)
            clock: Source of the current epoch time in seconds
        """
        config = config or RateLimitConfig()
        self.store = store
        self.clock = clock
        self.anonymous_policy = RateLimitPolicy.from_config("anonymous", config.anonymous)
        self.authenticated_policy = RateLimitPolicy.from_config("authenticated", config.authenticated)

    def policy_for(self, identity: CallerIdentity) -> RateLimitPolicy:
        if identity.is_anonymous:
            return self.anonymous_policy
        return self.authenticated_policy

    def check_and_consume(self, identity: CallerIdentity, endpoint: str) -> bool:
        """Take one request from the caller's quota if any remains.

        The check and the increment are a single store operation, so two
        concurrent requests cannot both take the last slot.

        Returns:
            True if the request is allowed
        """
        policy = self.policy_for(identity)
        return self.store.try_consume(
            identity_key=identity.rate_limit_key,
            endpoint=endpoint,
            now=self.clock(),
            window_seconds=policy.window_seconds,
            max_requests=policy.max_requests
        )

    def enforce(self, identity: CallerIdentity, endpoint: str) -> None:
        """Consume quota or raise RateLimitExceeded with a caller-facing message."""
        if self.check_and_consume(identity, endpoint):
            return

        policy = self.policy_for(identity)
        if identity.is_anonymous:
            message = (
                f"Free generation limit reached ({policy.max_requests} per "
                f"{policy.describe_window()}). Sign in to continue generating."
            )
        else:
            message = (
                f"Rate limit exceeded. You can make up to {policy.max_requests} requests "
                f"per {policy.describe_window()}. Please try again later."
            )
        raise RateLimitExceeded(message, anonymous=identity.is_anonymous)
