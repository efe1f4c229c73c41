"""File upload and removal routes.

An upload passes the ``files:upload`` rate limit first, then the department
quota guard, and only then is the file record written. Object storage of the
content belongs to the upload pipeline behind this service.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status

from app.adapters.db.file_repository import FileRecord
from app.core.container import get_file_repository, get_quota_guard
from app.core.errors import (
    DepartmentNotFoundError,
    NotFoundAppError,
    QuotaExceededAppError,
    ServiceUnavailableAppError,
)
from app.core.file_validation import read_upload_file_limited
from app.core.rate_limit import rate_limit, resolve_user_id
from app.schemas.storage import FileResponse
from app.services.quota_guard import (
    REASON_NOT_FOUND,
    REASON_QUOTA_EXCEEDED,
    QuotaDecision,
)
from app.services.rate_limiter import ANONYMOUS_IDENTIFIER

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"])

UPLOAD_ENDPOINT = "files:upload"
DELETE_ENDPOINT = "files:delete"


def _rejection_error(decision: QuotaDecision, department_id: str) -> Exception:
    """Map a rejected quota decision to the error the caller sees."""

    if decision.reason == REASON_NOT_FOUND:
        return DepartmentNotFoundError(
            code="department_not_found",
            message=decision.message,
            details={"department_id": department_id},
        )
    if decision.reason == REASON_QUOTA_EXCEEDED:
        return QuotaExceededAppError(
            code="quota_exceeded",
            message=decision.message,
            details={
                "department_id": department_id,
                "current": decision.current,
                "allocated": decision.allocated,
                "required": decision.required,
            },
        )
    return ServiceUnavailableAppError(
        code="quota_unavailable",
        message=decision.message,
        details={"department_id": department_id},
    )


async def _run_sync(func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))


@router.post(
    "/files",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit(UPLOAD_ENDPOINT))],
)
async def upload_file(
    request: Request,
    department_id: Annotated[str, Form(min_length=1, description="Owning department id")],
    file: Annotated[UploadFile, File(description="File to upload")],
) -> FileResponse:
    """Upload a file into a department, subject to its storage quota.

    Raises:
        QuotaExceededAppError: 413 with current/allocated/required figures.
        DepartmentNotFoundError: 404 when the department does not exist.
        UploadTooLargeError: 413 when the file exceeds the upload size limit.
        ServiceUnavailableAppError: 503 when usage cannot be computed.
    """
    content = await read_upload_file_limited(file)
    size = len(content)

    quota_guard = get_quota_guard(request)
    decision = await _run_sync(quota_guard.check, department_id, size)
    if not decision.allowed:
        raise _rejection_error(decision, department_id)

    user_id = resolve_user_id(request) or ANONYMOUS_IDENTIFIER
    repository = get_file_repository(request)
    record: FileRecord = await _run_sync(
        repository.create,
        name=file.filename or "upload",
        file_type=file.content_type or "application/octet-stream",
        size=size,
        user_id=user_id,
        department_id=department_id,
    )

    logger.info(
        "files.uploaded",
        extra={
            "file_id": record.file_id,
            "department_id": department_id,
            "size": size,
            "user_id": user_id,
        },
    )
    return FileResponse.from_record(record)


@router.delete(
    "/files/{file_id}",
    response_model=FileResponse,
    dependencies=[Depends(rate_limit(DELETE_ENDPOINT))],
)
async def delete_file(request: Request, file_id: str) -> FileResponse:
    """Soft-delete a file; it stops counting towards department usage."""

    repository = get_file_repository(request)
    record = await _run_sync(repository.mark_deleted, file_id)
    if record is None:
        raise NotFoundAppError(
            code="file_not_found",
            message="File not found",
        )

    logger.info(
        "files.deleted",
        extra={"file_id": file_id, "department_id": record.department_id},
    )
    return FileResponse.from_record(record)
