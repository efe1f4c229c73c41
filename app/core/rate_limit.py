"""Rate limiting dependency for FastAPI routes.

This module wires the RateLimiter service into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(rate_limit("files:upload"))``.
- Swap-friendly: the limiter and its counter store are built in the service
  container and read from ``app.state``, never from a module global.
- Every response carries the remaining budget so clients can back off.

Caller identity, in order of preference:
1. The user id header set by the upstream authentication layer, only when
   ``APP_TRUST_USER_ID_HEADER`` is enabled.
2. The first address in ``X-Forwarded-For``.
3. The socket peer address.
4. The literal "anonymous".
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request, Response

from app.core.config import settings
from app.core.container import get_rate_limiter
from app.core.errors import RateLimitedAppError
from app.core.logging import digest
from app.services.rate_limiter import ANONYMOUS_IDENTIFIER, RateLimitDecision

logger = logging.getLogger(__name__)


def resolve_user_id(request: Request) -> str | None:
    """Return the authenticated user id forwarded by the auth layer, if any.

    The header is ignored unless it is trusted, since a client could otherwise
    send a fresh value on every request.
    """

    if not settings.app.trust_user_id_header:
        return None

    value = request.headers.get(settings.app.user_id_header)
    if value and value.strip():
        return value.strip()
    return None


def resolve_identifier(request: Request) -> tuple[str, str]:
    """Resolve the rate limit identifier for the current request.

    Returns:
        Tuple of (identifier, identifier_type) where identifier_type is one of
        "user", "ip" or "anonymous".
    """

    user_id = resolve_user_id(request)
    if user_id:
        return user_id, "user"

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first, "ip"

    if request.client and request.client.host:
        return request.client.host, "ip"

    return ANONYMOUS_IDENTIFIER, "anonymous"


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at),
    }


def rate_limit(endpoint: str) -> Callable[[Request, Response], RateLimitDecision | None]:
    """Build a route dependency enforcing the policy for ``endpoint``.

    The dependency is a plain function so FastAPI runs it in the thread pool;
    the counter store round-trip never blocks the event loop.

    Args:
        endpoint: Logical endpoint name, e.g. "files:upload".

    Returns:
        Dependency callable returning the RateLimitDecision (None when rate
        limiting is disabled).

    Raises:
        RateLimitedAppError: 429 via the global handler when limited.
    """

    def enforce_rate_limit(request: Request, response: Response) -> RateLimitDecision | None:
        if not settings.rate_limit.enabled:
            return None

        limiter = get_rate_limiter(request)
        identifier, identifier_type = resolve_identifier(request)
        decision = limiter.check(endpoint, identifier)
        request.state.rate_limit = decision

        log_extra = {
            "endpoint": endpoint,
            "identifier_type": identifier_type,
            "identifier_hash": digest(identifier),
            "limit": decision.limit,
            "remaining": decision.remaining,
            "degraded": decision.degraded,
        }

        if not decision.limited:
            logger.info("rate_limit.allowed", extra=log_extra)
            if settings.rate_limit.include_headers:
                response.headers.update(rate_limit_headers(decision))
            return decision

        retry_after = decision.retry_after_seconds or 0
        logger.info("rate_limit.exceeded", extra={**log_extra, "retry_after_s": retry_after})

        raise RateLimitedAppError(
            code="rate_limited",
            message="Too many requests. Please try again later.",
            details={
                "endpoint": endpoint,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "reset_at": decision.reset_at,
                "retry_after": retry_after,
            },
        )

    enforce_rate_limit.__name__ = f"enforce_rate_limit_{endpoint.replace(':', '_')}"
    return enforce_rate_limit
