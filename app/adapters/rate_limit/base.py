"""Counter store and policy store interfaces.

The rate limiter depends on these abstractions (not the concrete backends) so
the shared Redis store and the per-process in-memory store are
interchangeable, and tests can substitute a fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.core.errors import InvalidConfigurationError


@dataclass(frozen=True)
class CounterSnapshot:
    """State of a window counter right after an increment.

    Attributes:
        count: Post-increment value of the counter.
        ttl_ms: Milliseconds until the counter expires (the window resets).
    """

    count: int
    ttl_ms: int


class AbstractCounterStore(ABC):
    """Key/value counter with atomic increment-and-expire semantics."""

    @abstractmethod
    def increment(self, key: str, *, window_ms: int) -> CounterSnapshot:
        """Atomically increment ``key`` and start its window if new.

        The expiry is set to ``window_ms`` only on the first increment of a
        window; later increments never extend it. Concurrent callers must
        never observe the same post-increment value.

        Args:
            key: Fully namespaced counter key.
            window_ms: Window length in milliseconds.

        Returns:
            CounterSnapshot with the post-increment count and remaining TTL.

        Raises:
            CounterStoreUnavailable: If the store cannot be reached or errors.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Delete the counter so the next increment starts a fresh window.

        Raises:
            CounterStoreUnavailable: If the store cannot be reached or errors.
        """
        raise NotImplementedError

    def ping(self) -> bool:
        """Return True when the store can serve increments."""
        return True


def _require_positive_int(name: str, value: object) -> int:
    # bool is an int subclass; a policy of True requests is a caller bug
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidConfigurationError(
            code="invalid_configuration",
            message=f"{name} must be a positive integer",
            details={"field": name, "actual_value": value},
        )
    return value


@dataclass(frozen=True)
class RateLimitPolicy:
    """Admission policy for one logical endpoint.

    Attributes:
        endpoint: Stable key naming the protected operation (e.g. "files:upload").
        max_requests: Requests admitted per window.
        window_ms: Window length in milliseconds.
        description: Optional free-form note shown to administrators.

    Raises:
        InvalidConfigurationError: If any value is out of range.
    """

    endpoint: str
    max_requests: int
    window_ms: int
    description: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.endpoint, str) or not self.endpoint.strip():
            raise InvalidConfigurationError(
                code="invalid_configuration",
                message="endpoint must be a non-empty string",
                details={"field": "endpoint"},
            )
        _require_positive_int("max_requests", self.max_requests)
        _require_positive_int("window_ms", self.window_ms)


class AbstractPolicyStore(ABC):
    """Durable store of per-endpoint policies."""

    @abstractmethod
    def get(self, endpoint: str) -> RateLimitPolicy | None:
        """Return the configured policy, or None when the endpoint has none.

        Raises:
            PolicyStoreUnavailable: If the store cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def upsert(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        """Create or overwrite the policy row for ``policy.endpoint``.

        Raises:
            PolicyStoreUnavailable: If the store cannot be written.
        """
        raise NotImplementedError

    @abstractmethod
    def list(self) -> list[RateLimitPolicy]:
        """Return every configured policy ordered by endpoint."""
        raise NotImplementedError
