from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.container import get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check(request: Request) -> JSONResponse:
    """Readiness check: the database must answer.

    The counter store is reported but does not affect readiness; the limiter
    fails open without it.
    """

    container = get_container(request)
    counter_store = "up" if container.counter_store.ping() else "down"

    try:
        with container.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("health.database_unavailable", extra={"error_type": type(exc).__name__})
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": "down", "counter_store": counter_store},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "ok", "database": "up", "counter_store": counter_store},
    )
