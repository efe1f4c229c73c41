"""Pydantic schemas for department storage and file uploads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.adapters.db.file_repository import FileRecord
from app.adapters.quota.base import DepartmentUsage


class AllocationUpdate(BaseModel):
    """Body of ``PATCH /v1/admin/storage/departments/{department_id}/allocation``."""

    # Validated by QuotaGuard.set_allocation; never coerced here
    allocated_storage: Any = Field(
        ...,
        description="Storage ceiling in bytes.",
        json_schema_extra={"type": "integer", "minimum": 0},
    )


class AllocationResponse(BaseModel):
    department_id: str
    allocated_storage: int


class DepartmentUsageResponse(BaseModel):
    department_id: str
    name: str
    allocated_storage: int = Field(..., description="Ceiling in bytes (0 = none granted).")
    used_storage: int = Field(..., description="Live sum of active file sizes in bytes.")
    file_count: int

    @classmethod
    def from_usage(cls, usage: DepartmentUsage) -> "DepartmentUsageResponse":
        return cls(
            department_id=usage.department_id,
            name=usage.name,
            allocated_storage=usage.allocated_storage,
            used_storage=usage.used_storage,
            file_count=usage.file_count,
        )


class DepartmentUsageList(BaseModel):
    departments: list[DepartmentUsageResponse] = Field(default_factory=list)


class FileResponse(BaseModel):
    """File record created by an admitted upload."""

    id: str
    name: str
    type: str
    size: int
    department_id: str | None
    user_id: str
    status: str
    created_at: datetime | None = None

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileResponse":
        return cls(
            id=record.file_id,
            name=record.name,
            type=record.type,
            size=record.size,
            department_id=record.department_id,
            user_id=record.user_id,
            status=record.status,
            created_at=record.created_at,
        )
