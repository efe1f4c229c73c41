"""Pydantic schemas for rate limit administration."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.adapters.rate_limit.base import RateLimitPolicy


class RateLimitPolicyUpdate(BaseModel):
    """Body of ``PUT /v1/admin/rate-limits/{endpoint}``.

    Numbers are passed through untouched and validated by the service, so
    out-of-range values, ``true`` or ``"60000"`` are reported as
    ``invalid_configuration`` instead of being coerced.
    """

    max_requests: Any = Field(
        ...,
        description="Requests admitted per window.",
        json_schema_extra={"type": "integer", "minimum": 1},
    )
    window_ms: Any = Field(
        ...,
        description="Window length in milliseconds.",
        json_schema_extra={"type": "integer", "minimum": 1},
    )
    description: str | None = Field(
        default=None,
        description="Optional note for administrators.",
        max_length=1000,
    )


class RateLimitPolicyResponse(BaseModel):
    endpoint: str
    max_requests: int
    window_ms: int
    description: str | None = None
    is_default: bool = Field(
        False,
        description="True when no policy is configured and the default applies.",
    )

    @classmethod
    def from_policy(cls, policy: RateLimitPolicy, *, is_default: bool = False) -> "RateLimitPolicyResponse":
        return cls(
            endpoint=policy.endpoint,
            max_requests=policy.max_requests,
            window_ms=policy.window_ms,
            description=policy.description,
            is_default=is_default,
        )


class RateLimitPolicyList(BaseModel):
    policies: list[RateLimitPolicyResponse] = Field(default_factory=list)
