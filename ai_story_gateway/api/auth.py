"""
Caller identity resolution for HTTP requests.

A valid bearer token makes the caller authenticated (keyed by the token's
``sub`` claim); anything else, including a missing or invalid token, falls
back to an anonymous caller keyed by client IP.
"""

from typing import Optional

import structlog
from fastapi import Request
from jose import JWTError, jwt

from ai_story_gateway.config.loader import AuthConfig
from ai_story_gateway.core.identity import AnonymousCaller, AuthenticatedCaller, CallerIdentity

logger = structlog.get_logger(__name__)

BEARER_PREFIX = "bearer "


def client_ip_from(request: Request) -> Optional[str]:
    """Socket peer address of the request.

    Forwarding headers are never read here. When the gateway runs behind a
    proxy, uvicorn rewrites the peer from X-Forwarded-For, and only for
    connections from its trusted forwarded_allow_ips.
    """
    if request.client is not None:
        return request.client.host
    return None


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


def resolve_identity(
    authorization: Optional[str],
    client_ip: Optional[str],
    config: AuthConfig
) -> CallerIdentity:
    """Resolve the caller from an Authorization header.

    Args:
        authorization: Raw Authorization header value, if any
        client_ip: Client address used for anonymous callers
        config: Token verification settings

    Returns:
        AuthenticatedCaller for a verified token with a subject,
        otherwise AnonymousCaller
    """
    token = _bearer_token(authorization)
    if token is None:
        return AnonymousCaller(ip_address=client_ip)

    if not config.jwt_secret:
        logger.debug("bearer_token_ignored", reason="no jwt secret configured")
        return AnonymousCaller(ip_address=client_ip)

    try:
        claims = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            options={"verify_aud": False}
        )
    except JWTError as e:
        logger.info("bearer_token_rejected", error=str(e))
        return AnonymousCaller(ip_address=client_ip)

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        logger.info("bearer_token_rejected", error="token has no subject")
        return AnonymousCaller(ip_address=client_ip)

    return AuthenticatedCaller(user_id=subject)
