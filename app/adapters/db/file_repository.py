"""File metadata records written after an upload is admitted.

Object storage of the file content is handled by the upload pipeline; this
repository only records what the quota guard sums over.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.db.models import FILE_STATUS_ACTIVE, FILE_STATUS_DELETED, FileRow
from app.core.errors import ServiceUnavailableAppError


@dataclass(frozen=True)
class FileRecord:
    file_id: str
    name: str
    type: str
    size: int
    user_id: str
    department_id: str | None
    status: str
    created_at: datetime | None


def _to_record(row: FileRow) -> FileRecord:
    return FileRecord(
        file_id=row.id,
        name=row.name,
        type=row.type,
        size=row.size,
        user_id=row.user_id,
        department_id=row.department_id,
        status=row.status,
        created_at=row.created_at,
    )


class FileRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        name: str,
        file_type: str,
        size: int,
        user_id: str,
        department_id: str | None,
    ) -> FileRecord:
        try:
            with self._session_factory() as session, session.begin():
                row = FileRow(
                    name=name,
                    type=file_type,
                    size=size,
                    user_id=user_id,
                    department_id=department_id,
                    status=FILE_STATUS_ACTIVE,
                )
                session.add(row)
                session.flush()
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise ServiceUnavailableAppError(
                code="file_store_unavailable",
                message="Could not record the uploaded file",
            ) from exc

    def mark_deleted(self, file_id: str) -> FileRecord | None:
        """Soft-delete a file so it no longer counts towards usage.

        Returns:
            The updated record, or None if no such file exists.
        """
        try:
            with self._session_factory() as session, session.begin():
                row = session.get(FileRow, file_id)
                if row is None:
                    return None
                row.status = FILE_STATUS_DELETED
                session.flush()
                return _to_record(row)
        except SQLAlchemyError as exc:
            raise ServiceUnavailableAppError(
                code="file_store_unavailable",
                message="Could not update the file record",
            ) from exc
