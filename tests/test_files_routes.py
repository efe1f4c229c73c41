"""Tests for the upload and removal routes.

Covers the admission order on upload: rate limit first, then the
department quota, then the file record write.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import AbstractCounterStore
from app.core.app_factory import create_app
from app.core.config import settings
from app.core.container import build_container
from app.core.errors import CounterStoreUnavailable


USER_HEADERS = {"X-User-ID": "user-1"}


def _upload(client: TestClient, department_id: str, size: int, headers: dict | None = None):
    return client.post(
        "/v1/files",
        data={"department_id": department_id},
        files={"file": ("report.pdf", b"x" * size, "application/pdf")},
        headers=headers if headers is not None else USER_HEADERS,
    )


@pytest.fixture
def legal(add_department, add_file) -> str:
    """Department with 1000 bytes allocated and 900 already used."""
    add_department("dept-7", "Legal", 1_000)
    add_file("dept-7", 900)
    return "dept-7"


class TestUpload:
    def test_upload_within_quota_returns_201(self, client: TestClient, legal: str) -> None:
        response = _upload(client, legal, 100)

        assert response.status_code == 201
        data = response.json()
        assert data["size"] == 100
        assert data["department_id"] == legal
        assert data["user_id"] == "user-1"
        assert data["status"] == "active"
        assert data["type"] == "application/pdf"

    def test_success_carries_rate_limit_headers(self, client: TestClient, legal: str) -> None:
        response = _upload(client, legal, 10)

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert "X-RateLimit-Reset" in response.headers

    def test_over_quota_returns_413_with_figures(self, client: TestClient, legal: str) -> None:
        response = _upload(client, legal, 101)

        assert response.status_code == 413
        error = response.json()["error"]
        assert error["code"] == "quota_exceeded"
        assert error["details"]["current"] == 900
        assert error["details"]["allocated"] == 1_000
        assert error["details"]["required"] == 101

    def test_admitted_uploads_count_towards_usage(self, client: TestClient, legal: str) -> None:
        assert _upload(client, legal, 60).status_code == 201
        assert _upload(client, legal, 60).status_code == 413

    def test_unknown_department_returns_404(self, client: TestClient) -> None:
        response = _upload(client, "missing", 10)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "department_not_found"

    def test_missing_department_field_returns_422(self, client: TestClient) -> None:
        response = client.post(
            "/v1/files",
            files={"file": ("report.pdf", b"x", "application/pdf")},
            headers=USER_HEADERS,
        )
        assert response.status_code == 422

    def test_upload_over_size_limit_returns_413(
        self, client: TestClient, legal: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.app, "max_upload_size_mb", 0)

        response = _upload(client, legal, 1)

        assert response.status_code == 413
        assert response.json()["error"]["code"] == "file_too_large"

    def test_anonymous_upload_records_anonymous_user(self, client: TestClient, legal: str) -> None:
        response = _upload(client, legal, 1, headers={})

        assert response.status_code == 201
        assert response.json()["user_id"] == "anonymous"


class TestUploadRateLimit:
    def test_exhausted_window_returns_429(self, client: TestClient, container, clock, legal: str) -> None:
        container.rate_limiter.set_policy("files:upload", max_requests=2, window_ms=60_000)

        assert _upload(client, legal, 1).status_code == 201
        assert _upload(client, legal, 1).status_code == 201
        response = _upload(client, legal, 1)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "rate_limited"
        assert response.headers["Retry-After"] == "60"
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.headers["X-RateLimit-Reset"] == str(int(clock.now) + 60)

    def test_rate_limit_runs_before_quota(self, client: TestClient, container) -> None:
        container.rate_limiter.set_policy("files:upload", max_requests=1, window_ms=60_000)

        assert _upload(client, "missing", 1).status_code == 404
        assert _upload(client, "missing", 1).status_code == 429

    def test_limits_are_per_user(self, client: TestClient, container, legal: str) -> None:
        container.rate_limiter.set_policy("files:upload", max_requests=1, window_ms=60_000)

        assert _upload(client, legal, 1).status_code == 201
        assert _upload(client, legal, 1).status_code == 429
        assert _upload(client, legal, 1, headers={"X-User-ID": "user-2"}).status_code == 201

    def test_window_expiry_admits_again(self, client: TestClient, container, clock, legal: str) -> None:
        container.rate_limiter.set_policy("files:upload", max_requests=1, window_ms=10_000)

        assert _upload(client, legal, 1).status_code == 201
        assert _upload(client, legal, 1).status_code == 429
        clock.advance(10)
        assert _upload(client, legal, 1).status_code == 201

    def test_disabled_rate_limit_sends_no_headers(
        self, client: TestClient, legal: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)

        response = _upload(client, legal, 1)

        assert response.status_code == 201
        assert "X-RateLimit-Limit" not in response.headers

    def test_counter_store_outage_fails_open(self, engine, clock, add_department) -> None:
        class DownStore(AbstractCounterStore):
            def increment(self, key: str, *, window_ms: int):
                raise CounterStoreUnavailable(code="counter_store_unavailable", message="down")

            def reset(self, key: str) -> None:
                raise CounterStoreUnavailable(code="counter_store_unavailable", message="down")

        add_department("d1", "Finance", 1_000)
        client = TestClient(
            create_app(build_container(engine=engine, counter_store=DownStore(), clock=clock))
        )

        response = _upload(client, "d1", 10)

        assert response.status_code == 201
        assert response.headers["X-RateLimit-Remaining"] == "100"


class TestDelete:
    def test_delete_frees_quota(self, client: TestClient, legal: str) -> None:
        created = _upload(client, legal, 100).json()
        assert _upload(client, legal, 100).status_code == 413

        response = client.delete(f"/v1/files/{created['id']}", headers=USER_HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "deleted"
        assert _upload(client, legal, 100).status_code == 201

    def test_delete_unknown_file_returns_404(self, client: TestClient) -> None:
        response = client.delete("/v1/files/missing", headers=USER_HEADERS)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "file_not_found"


class TestRejectionsKeepRateLimitHeaders:
    """Uploads admitted by the limiter but rejected later still report budget."""

    def test_quota_rejection_carries_headers(self, client: TestClient, legal: str) -> None:
        response = _upload(client, legal, 101)

        assert response.status_code == 413
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert "X-RateLimit-Reset" in response.headers
        assert "Retry-After" not in response.headers

    def test_unknown_department_carries_headers(self, client: TestClient) -> None:
        _upload(client, "missing", 1)
        response = _upload(client, "missing", 1)

        assert response.status_code == 404
        assert response.headers["X-RateLimit-Remaining"] == "98"

    def test_headers_omitted_when_disabled(self, client: TestClient, legal: str, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "include_headers", False)

        response = _upload(client, legal, 101)

        assert response.status_code == 413
        assert "X-RateLimit-Remaining" not in response.headers


class TestUserIdHeaderTrust:
    def test_untrusted_header_cannot_rotate_identity(
        self, client: TestClient, container, legal: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.app, "trust_user_id_header", False)
        container.rate_limiter.set_policy("files:upload", max_requests=1, window_ms=60_000)

        statuses = [
            _upload(client, legal, 1, headers={"X-User-ID": f"user-{i}"}).status_code
            for i in range(5)
        ]

        assert statuses == [201, 429, 429, 429, 429]

    def test_untrusted_header_is_not_recorded(
        self, client: TestClient, legal: str, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings.app, "trust_user_id_header", False)

        response = _upload(client, legal, 1)

        assert response.status_code == 201
        assert response.json()["user_id"] == "anonymous"
