"""SQL-backed department storage source (``departments`` and ``files``)."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.db.models import FILE_STATUS_DELETED, DepartmentRow, FileRow
from app.adapters.quota.base import (
    AbstractDepartmentStorageSource,
    DepartmentRecord,
    DepartmentUsage,
)
from app.core.errors import StorageSourceUnavailable


def _to_record(row: DepartmentRow) -> DepartmentRecord:
    return DepartmentRecord(
        department_id=row.id,
        name=row.name,
        allocated_storage=row.allocated_storage,
    )


def _unavailable(action: str, exc: SQLAlchemyError, department_id: str | None = None) -> StorageSourceUnavailable:
    details = {"department_id": department_id} if department_id else None
    return StorageSourceUnavailable(
        code="storage_source_unavailable",
        message=f"Could not {action}: {type(exc).__name__}",
        details=details,  # type: ignore[arg-type]
    )


class SqlDepartmentStorageSource(AbstractDepartmentStorageSource):
    """Computes department usage with aggregate queries on every call."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_department(self, department_id: str) -> DepartmentRecord | None:
        try:
            with self._session_factory() as session:
                row = session.get(DepartmentRow, department_id)
                return _to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _unavailable("read department", exc, department_id) from exc

    def sum_active_file_sizes(self, department_id: str) -> int:
        stmt = select(func.coalesce(func.sum(FileRow.size), 0)).where(
            FileRow.department_id == department_id,
            FileRow.status != FILE_STATUS_DELETED,
        )
        try:
            with self._session_factory() as session:
                return int(session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise _unavailable("sum department file sizes", exc, department_id) from exc

    def update_allocation(self, department_id: str, allocated_storage: int) -> DepartmentRecord | None:
        try:
            with self._session_factory() as session, session.begin():
                row = session.get(DepartmentRow, department_id)
                if row is None:
                    return None
                row.allocated_storage = allocated_storage
                session.flush()
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise _unavailable("update department allocation", exc, department_id) from exc

    def usage_by_department(self) -> list[DepartmentUsage]:
        active = (
            select(
                FileRow.department_id.label("department_id"),
                func.coalesce(func.sum(FileRow.size), 0).label("used"),
                func.count(FileRow.id).label("file_count"),
            )
            .where(FileRow.status != FILE_STATUS_DELETED)
            .group_by(FileRow.department_id)
            .subquery()
        )
        stmt = (
            select(
                DepartmentRow,
                func.coalesce(active.c.used, 0),
                func.coalesce(active.c.file_count, 0),
            )
            .outerjoin(active, active.c.department_id == DepartmentRow.id)
            .order_by(DepartmentRow.name)
        )
        try:
            with self._session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise _unavailable("compute department usage", exc) from exc

        return [
            DepartmentUsage(
                department_id=dept.id,
                name=dept.name,
                allocated_storage=dept.allocated_storage or 0,
                used_storage=int(used),
                file_count=int(count),
            )
            for dept, used, count in rows
        ]
