"""Per-endpoint rate limiting service.

Admission is decided per ``(endpoint, identifier)`` pair with a fixed window
that starts on the first request and lasts the endpoint's ``window_ms``.
Counters live in a shared counter store whose increment-and-expire is atomic,
so concurrent requests for the same key are serialized by the store.

Fixed windows allow a burst at a window boundary: up to ``2 * max_requests``
requests can be admitted across the end of one window and the start of the
next.

When the counter store fails, the configured failure strategy decides. The
default is fail-open: the request is admitted and the failure is logged.
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractCounterStore,
    AbstractPolicyStore,
    RateLimitPolicy,
)
from app.core.errors import (
    CounterStoreUnavailable,
    InvalidConfigurationError,
    PolicyStoreUnavailable,
)
from app.core.logging import digest

logger = logging.getLogger(__name__)


ANONYMOUS_IDENTIFIER = "anonymous"
DEFAULT_MAX_REQUESTS = 100
DEFAULT_WINDOW_MS = 60_000


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check.

    Attributes:
        limited: True when the request must be rejected.
        remaining: Requests left in the current window (0 when limited).
        limit: Max requests per window for the endpoint.
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait in seconds when limited.
        degraded: True when the decision was made without the counter store.
    """

    limited: bool
    remaining: int
    limit: int
    reset_at: int
    retry_after_seconds: int | None = None
    degraded: bool = False


@dataclass(frozen=True)
class EffectivePolicy:
    policy: RateLimitPolicy
    is_default: bool


class StoreFailureStrategy(ABC):
    """Decides admission when the counter store cannot be used."""

    @abstractmethod
    def decide(self, policy: RateLimitPolicy, *, now: float) -> RateLimitDecision:
        raise NotImplementedError


class FailOpen(StoreFailureStrategy):
    """Admit the request; availability wins over strict enforcement."""

    def decide(self, policy: RateLimitPolicy, *, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            limited=False,
            remaining=policy.max_requests,
            limit=policy.max_requests,
            reset_at=int(math.ceil(now + policy.window_ms / 1000)),
            degraded=True,
        )


class FailClosed(StoreFailureStrategy):
    """Reject the request until the counter store is reachable again."""

    def decide(self, policy: RateLimitPolicy, *, now: float) -> RateLimitDecision:
        retry_after = max(1, int(math.ceil(policy.window_ms / 1000)))
        return RateLimitDecision(
            limited=True,
            remaining=0,
            limit=policy.max_requests,
            reset_at=int(math.ceil(now)) + retry_after,
            retry_after_seconds=retry_after,
            degraded=True,
        )


class RateLimiter:
    """Admission-control gate keyed by endpoint and caller identifier."""

    def __init__(
        self,
        *,
        counter_store: AbstractCounterStore,
        policy_store: AbstractPolicyStore,
        default_max_requests: int = DEFAULT_MAX_REQUESTS,
        default_window_ms: int = DEFAULT_WINDOW_MS,
        key_prefix: str = "rate_limit",
        on_store_failure: StoreFailureStrategy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter with explicit collaborators.

        Args:
            counter_store: Shared store providing atomic increment-and-expire.
            policy_store: Durable store of per-endpoint policies.
            default_max_requests: Requests per window for unconfigured endpoints.
            default_window_ms: Window length for unconfigured endpoints.
            key_prefix: Namespace prefix for counter keys.
            on_store_failure: Strategy used when the counter store fails
                (defaults to FailOpen).
            clock: Time source returning UNIX time in seconds.

        Raises:
            InvalidConfigurationError: If the default policy values are invalid.
        """
        self._counter_store = counter_store
        self._policy_store = policy_store
        self._default_max_requests = default_max_requests
        self._default_window_ms = default_window_ms
        self._key_prefix = key_prefix
        self._on_store_failure = on_store_failure or FailOpen()
        self._clock = clock

        # Validate defaults once so a bad setting fails at startup
        self._default_policy("default")

    def _default_policy(self, endpoint: str) -> RateLimitPolicy:
        return RateLimitPolicy(
            endpoint=endpoint,
            max_requests=self._default_max_requests,
            window_ms=self._default_window_ms,
        )

    def build_key(self, endpoint: str, identifier: str) -> str:
        return f"{self._key_prefix}:{endpoint}:{identifier or ANONYMOUS_IDENTIFIER}"

    def get_policy(self, endpoint: str) -> EffectivePolicy:
        """Return the policy in force for ``endpoint``.

        The default policy is applied here and only here: a missing row, or a
        policy store that cannot be read, both resolve to the default.
        """
        try:
            configured = self._policy_store.get(endpoint)
        except PolicyStoreUnavailable as exc:
            logger.error(
                "rate_limit.policy_store_unavailable",
                extra={"endpoint": endpoint, "error_code": exc.code},
            )
            configured = None

        if configured is None:
            return EffectivePolicy(policy=self._default_policy(endpoint), is_default=True)
        return EffectivePolicy(policy=configured, is_default=False)

    def list_policies(self) -> list[RateLimitPolicy]:
        return self._policy_store.list()

    def check(self, endpoint: str, identifier: str) -> RateLimitDecision:
        """Count one request and decide whether it may proceed.

        Args:
            endpoint: Logical operation name (e.g. "files:upload").
            identifier: User id, network address, or "anonymous".

        Returns:
            RateLimitDecision; ``limited`` is True once the post-increment
            count exceeds the policy's ``max_requests``.

        Raises:
            InvalidConfigurationError: If endpoint is empty.
        """
        if not endpoint:
            raise InvalidConfigurationError(
                code="invalid_configuration",
                message="endpoint must be a non-empty string",
                details={"field": "endpoint"},
            )

        policy = self.get_policy(endpoint).policy
        key = self.build_key(endpoint, identifier)
        now = self._clock()

        try:
            snapshot = self._counter_store.increment(key, window_ms=policy.window_ms)
        except (CounterStoreUnavailable, OSError) as exc:
            decision = self._on_store_failure.decide(policy, now=now)
            logger.error(
                "rate_limit.store_unavailable",
                extra={
                    "endpoint": endpoint,
                    "key_hash": digest(key),
                    "error_type": type(exc).__name__,
                    "strategy": type(self._on_store_failure).__name__,
                    "admitted": not decision.limited,
                },
            )
            return decision

        limited = snapshot.count > policy.max_requests
        remaining = max(0, policy.max_requests - snapshot.count)
        reset_at = int(math.ceil(now + snapshot.ttl_ms / 1000))
        retry_after = max(1, int(math.ceil(snapshot.ttl_ms / 1000))) if limited else None

        return RateLimitDecision(
            limited=limited,
            remaining=remaining,
            limit=policy.max_requests,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def reset(self, endpoint: str, identifier: str) -> None:
        """Clear the counter for the pair immediately.

        Raises:
            CounterStoreUnavailable: If the counter store cannot be reached.
        """
        key = self.build_key(endpoint, identifier)
        self._counter_store.reset(key)
        logger.info(
            "rate_limit.reset",
            extra={"endpoint": endpoint, "key_hash": digest(key)},
        )

    def set_policy(
        self,
        endpoint: str,
        *,
        max_requests: int,
        window_ms: int,
        description: str | None = None,
    ) -> RateLimitPolicy:
        """Validate and upsert the policy for ``endpoint``.

        Takes effect on the next check; counters already in flight keep the
        expiry they were created with.

        Raises:
            InvalidConfigurationError: If any value is invalid.
            PolicyStoreUnavailable: If the policy cannot be persisted.
        """
        policy = RateLimitPolicy(
            endpoint=endpoint,
            max_requests=max_requests,
            window_ms=window_ms,
            description=description,
        )
        stored = self._policy_store.upsert(policy)
        logger.info(
            "rate_limit.policy_updated",
            extra={
                "endpoint": endpoint,
                "max_requests": stored.max_requests,
                "window_ms": stored.window_ms,
            },
        )
        return stored
