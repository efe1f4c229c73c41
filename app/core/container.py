"""Service composition.

Collaborators (counter store, database engine) are created here, passed to
the services through their constructors and attached to ``app.state``.
Routes reach them through the small getters below, so tests can build a
container around fakes and hand it to ``create_app``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request
from sqlalchemy import Engine

from app.adapters.db.file_repository import FileRepository
from app.adapters.db.policy_store import SqlRateLimitPolicyStore
from app.adapters.db.session import build_session_factory, engine_from_settings
from app.adapters.db.storage_source import SqlDepartmentStorageSource
from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.adapters.rate_limit.redis_store import RedisCounterStore
from app.core.config import Settings, settings as default_settings
from app.services.quota_guard import QuotaGuard
from app.services.rate_limiter import FailClosed, FailOpen, RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    rate_limiter: RateLimiter
    quota_guard: QuotaGuard
    file_repository: FileRepository
    engine: Engine
    counter_store: AbstractCounterStore


def build_counter_store(cfg: Settings) -> AbstractCounterStore:
    """Use Redis when configured, else a per-process in-memory store."""

    if cfg.redis.url:
        logger.info("counter_store.redis")
        return RedisCounterStore.from_settings(cfg.redis)

    logger.warning(
        "counter_store.in_memory",
        extra={"hint": "Set REDIS_URL to share rate limit counters across workers"},
    )
    return InMemoryCounterStore()


def build_container(
    cfg: Settings | None = None,
    *,
    engine: Engine | None = None,
    counter_store: AbstractCounterStore | None = None,
    clock: Callable[[], float] = time.time,
) -> ServiceContainer:
    """Build every service from settings, overriding collaborators if given.

    Args:
        cfg: Settings to build from; defaults to the global settings.
        engine: SQLAlchemy engine; built from ``cfg.database`` when omitted.
        counter_store: Counter store; built from ``cfg.redis`` when omitted.
        clock: Time source for the rate limiter.

    Returns:
        ServiceContainer with explicitly wired services.
    """

    cfg = cfg or default_settings
    engine = engine if engine is not None else engine_from_settings(cfg.database)
    session_factory = build_session_factory(engine)

    if counter_store is None:
        counter_store = build_counter_store(cfg)

    rate_limiter = RateLimiter(
        counter_store=counter_store,
        policy_store=SqlRateLimitPolicyStore(session_factory),
        default_max_requests=cfg.rate_limit.default_max_requests,
        default_window_ms=cfg.rate_limit.default_window_ms,
        key_prefix=cfg.rate_limit.key_prefix,
        on_store_failure=FailOpen() if cfg.rate_limit.fail_open else FailClosed(),
        clock=clock,
    )
    quota_guard = QuotaGuard(storage_source=SqlDepartmentStorageSource(session_factory))

    return ServiceContainer(
        rate_limiter=rate_limiter,
        quota_guard=quota_guard,
        file_repository=FileRepository(session_factory),
        engine=engine,
        counter_store=counter_store,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_rate_limiter(request: Request) -> RateLimiter:
    return get_container(request).rate_limiter


def get_quota_guard(request: Request) -> QuotaGuard:
    return get_container(request).quota_guard


def get_file_repository(request: Request) -> FileRepository:
    return get_container(request).file_repository
