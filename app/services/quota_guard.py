"""Department storage quota guard.

Checked once, synchronously, right before a file record is written. Usage is
re-read from the file records on every check. No reservation is held between
the check and the write, so two concurrent uploads to the same department can
both pass and together exceed the quota.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.adapters.quota.base import (
    AbstractDepartmentStorageSource,
    DepartmentRecord,
    DepartmentUsage,
)
from app.core.errors import (
    DepartmentNotFoundError,
    InvalidConfigurationError,
    StorageSourceUnavailable,
    ValidationAppError,
)

logger = logging.getLogger(__name__)


REASON_NOT_FOUND = "not found"
REASON_QUOTA_EXCEEDED = "quota exceeded"
REASON_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of a quota check.

    Attributes:
        allowed: True when the write may proceed.
        reason: None when allowed, else "not found", "quota exceeded" or
            "unavailable".
        message: Human-readable explanation for the end user.
        current: Bytes currently used by the department's active files.
        allocated: Department ceiling in bytes (0 when none granted).
        required: Size of the incoming file in bytes.
    """

    allowed: bool
    reason: str | None
    message: str
    current: int = 0
    allocated: int = 0
    required: int = 0


def _require_non_negative_int(value: object, *, field: str, code: str, error_cls: type) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise error_cls(
            code=code,
            message=f"{field} must be a non-negative integer",
            details={"field": field, "actual_value": value},
        )
    return value


class QuotaGuard:
    """Gates prospective file writes against department storage ceilings."""

    def __init__(self, *, storage_source: AbstractDepartmentStorageSource) -> None:
        self._source = storage_source

    def check(self, department_id: str, incoming_size: int) -> QuotaDecision:
        """Decide whether ``incoming_size`` bytes fit in the department quota.

        Args:
            department_id: Department that will own the file.
            incoming_size: Byte size of the file about to be written.

        Returns:
            QuotaDecision. A department without allocation (None or 0) has
            zero quota and every upload is rejected.

        Raises:
            ValidationAppError: If incoming_size is not a non-negative integer.
        """
        size = _require_non_negative_int(
            incoming_size, field="incoming_size", code="invalid_file_size", error_cls=ValidationAppError
        )

        try:
            department = self._source.find_department(department_id)
            if department is None:
                logger.info(
                    "quota.department_not_found",
                    extra={"department_id": department_id},
                )
                return QuotaDecision(
                    allowed=False,
                    reason=REASON_NOT_FOUND,
                    message="Department not found",
                    required=size,
                )
            used = self._source.sum_active_file_sizes(department_id)
        except StorageSourceUnavailable as exc:
            logger.error(
                "quota.source_unavailable",
                extra={"department_id": department_id, "error_code": exc.code},
            )
            return QuotaDecision(
                allowed=False,
                reason=REASON_UNAVAILABLE,
                message="Error checking storage quota",
                required=size,
            )

        allocated = department.allocated_storage or 0
        new_total = used + size

        if allocated <= 0 or new_total > allocated:
            logger.info(
                "quota.rejected",
                extra={
                    "department_id": department_id,
                    "current": used,
                    "allocated": allocated,
                    "required": size,
                },
            )
            message = (
                "Department has no storage allocated"
                if allocated <= 0
                else "Upload would exceed department storage quota"
            )
            return QuotaDecision(
                allowed=False,
                reason=REASON_QUOTA_EXCEEDED,
                message=message,
                current=used,
                allocated=allocated,
                required=size,
            )

        return QuotaDecision(
            allowed=True,
            reason=None,
            message="Upload fits within department storage quota",
            current=used,
            allocated=allocated,
            required=size,
        )

    def set_allocation(self, department_id: str, allocated_storage: int) -> DepartmentRecord:
        """Overwrite the department's storage ceiling.

        Raises:
            InvalidConfigurationError: If allocated_storage is negative or not an int.
            DepartmentNotFoundError: If the department does not exist.
        """
        value = _require_non_negative_int(
            allocated_storage,
            field="allocated_storage",
            code="invalid_configuration",
            error_cls=InvalidConfigurationError,
        )
        record = self._source.update_allocation(department_id, value)
        if record is None:
            raise DepartmentNotFoundError(
                code="department_not_found",
                message="Department not found",
                details={"department_id": department_id},
            )
        logger.info(
            "quota.allocation_updated",
            extra={"department_id": department_id, "allocated": value},
        )
        return record

    def usage_report(self) -> list[DepartmentUsage]:
        return self._source.usage_by_department()
