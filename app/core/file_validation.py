"""Bounded reading of uploaded files.

The exact byte size is what the quota guard checks, so uploads are read
fully (in chunks) rather than trusting the multipart size header alone.
"""
from __future__ import annotations

import logging

from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import UploadTooLargeError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _too_large(max_bytes: int, actual: int) -> UploadTooLargeError:
    return UploadTooLargeError(
        code="file_too_large",
        message=f"File too large. Maximum size: {settings.app.max_upload_size_mb}MB",
        details={"max_bytes": max_bytes, "actual_value": actual},
    )


async def read_upload_file_limited(file: UploadFile) -> bytes:
    """Read an uploaded file in chunks enforcing the max size limit.

    Uses file.size if available (multipart headers) to reject early, then
    enforces the limit again while reading.

    Args:
        file: FastAPI upload file instance.

    Returns:
        File content as bytes if within the allowed size limit.

    Raises:
        UploadTooLargeError: If the file exceeds the configured size limit.
    """
    max_bytes = settings.app.max_upload_size_mb * 1024 * 1024

    file_size = getattr(file, "size", None)
    if file_size is not None and file_size > max_bytes:
        logger.info(
            "upload.rejected_by_header",
            extra={"file_size": file_size, "max_bytes": max_bytes},
        )
        raise _too_large(max_bytes, file_size)

    size = 0
    chunks: list[bytes] = []

    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break

        size += len(chunk)
        if size > max_bytes:
            logger.info(
                "upload.rejected_by_chunked_read",
                extra={"size": size, "max_bytes": max_bytes},
            )
            raise _too_large(max_bytes, size)
        chunks.append(chunk)

    return b"".join(chunks)
