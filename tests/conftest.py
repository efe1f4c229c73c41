"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set here, before any app import, because settings
are resolved once at import time.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("APP_TRUST_USER_ID_HEADER", "true")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.pop("REDIS_URL", None)

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.adapters.db.models import DepartmentRow, FileRow
from app.adapters.db.session import build_engine, build_session_factory, init_db
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.core.app_factory import create_app
from app.core.container import ServiceContainer, build_container


class FakeClock:
    """Manually advanced time source returning UNIX seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Fresh in-memory database per test."""
    eng = build_engine("sqlite:///:memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture
def counter_store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def container(
    engine: Engine,
    counter_store: InMemoryCounterStore,
    clock: FakeClock,
) -> ServiceContainer:
    return build_container(engine=engine, counter_store=counter_store, clock=clock)


@pytest.fixture
def client(container: ServiceContainer) -> TestClient:
    """Test client around an app wired to the in-memory test services."""
    return TestClient(create_app(container))


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Valid admin API key headers."""
    return {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def add_department(session_factory: sessionmaker[Session]):
    """Insert a department row and return its id."""

    def _add(department_id: str, name: str, allocated_storage: int | None) -> str:
        with session_factory() as session, session.begin():
            session.add(
                DepartmentRow(id=department_id, name=name, allocated_storage=allocated_storage)
            )
        return department_id

    return _add


@pytest.fixture
def add_file(session_factory: sessionmaker[Session]):
    """Insert a file row for a department and return its id."""

    def _add(department_id: str, size: int, *, status: str = "active") -> str:
        with session_factory() as session, session.begin():
            row = FileRow(
                name="existing.pdf",
                type="application/pdf",
                size=size,
                user_id="user-1",
                department_id=department_id,
                status=status,
            )
            session.add(row)
            session.flush()
            return row.id

    return _add
