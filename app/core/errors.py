"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Business-rule rejections (rate limited, quota exceeded, unknown department)
are returned by the services as structured decisions; the HTTP layer turns
them into the errors below so the global handlers render them uniformly.
Infrastructure errors (counter store, policy store) are raised by adapters
and handled inside the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    min_value: int
    actual_value: Any
    http_status: int
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    endpoint: str
    department_id: str
    current: int
    allocated: int
    required: int
    max_bytes: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input validation fails."""


class InvalidConfigurationError(ValidationAppError):
    """Raised when a rate limit policy or quota value fails validation.

    Rejected at configuration-write time; values are never coerced.
    """


class UploadTooLargeError(ValidationAppError):
    """Raised when an upload exceeds the per-request size ceiling."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a referenced entity does not exist."""


class DepartmentNotFoundError(NotFoundAppError):
    """Raised when a department id does not reference an existing department."""


class QuotaExceededAppError(AppError):
    """Raised by the upload flow when the department quota rejects a file."""


class RateLimitedAppError(AppError):
    """Raised by the HTTP layer when the caller exhausted its window."""


class ServiceUnavailableAppError(AppError):
    """Raised when a required backing service cannot answer."""


class CounterStoreUnavailable(AppError):
    """Raised by counter stores on connection errors, timeouts or bad replies."""


class PolicyStoreUnavailable(AppError):
    """Raised by the policy store when the database cannot be read or written."""


class StorageSourceUnavailable(AppError):
    """Raised by the department storage source when usage cannot be computed."""
