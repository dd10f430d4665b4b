"""
Caller identity.

Every request is made either by an authenticated user or by an anonymous
caller known only by IP address. The variant selects the rate-limit policy.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class AuthenticatedCaller:
    """A caller with a verified bearer credential."""
    user_id: str

    def __post_init__(self):
        if not self.user_id or not self.user_id.strip():
            raise ValueError("user_id is required and cannot be empty")

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def rate_limit_key(self) -> str:
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class AnonymousCaller:
    """A caller without a valid credential, keyed by IP address."""
    ip_address: Optional[str]

    @property
    def is_anonymous(self) -> bool:
        return True

    @property
    def rate_limit_key(self) -> str:
        return f"ip:{self.ip_address or 'unknown'}"


CallerIdentity = Union[AuthenticatedCaller, AnonymousCaller]


def user_id_of(identity: CallerIdentity) -> Optional[str]:
    """Return the user id for authenticated callers, None otherwise."""
    if isinstance(identity, AuthenticatedCaller):
        return identity.user_id
    return None
