"""Tests for the rate-limited ping routes and health endpoints.

The limiter is swapped through ``app.dependency_overrides`` so each test runs
against its own in-memory counters and a controllable clock.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter
from app.adapters.rate_limit.store import AbstractCounterStore, InMemoryCounterStore
from app.core.config import settings
from app.core.errors import CorruptStateError, StoreUnavailableError
from app.core.rate_limit import get_rate_limiter
from app.main import app


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(clock: Mock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(InMemoryCounterStore(clock=clock), limit=3, window_seconds=60)


@pytest.fixture
def client(limiter: FixedWindowRateLimiter):
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield TestClient(app)
    app.dependency_overrides.clear()


def _failing_limiter(error: Exception) -> FixedWindowRateLimiter:
    store = Mock(spec=AbstractCounterStore)
    store.backend_name = "mock"
    store.get = AsyncMock(side_effect=error)
    return FixedWindowRateLimiter(store)


def test_ping_allowed_returns_pong(client: TestClient) -> None:
    resp = client.get("/v1/ping", headers={"user_id": "u1"})

    assert resp.status_code == 200
    assert resp.json() == {"message": "pong", "echo": None}
    assert resp.headers["X-RateLimit-Limit"] == "3"
    assert resp.headers["X-RateLimit-Remaining"] == "2"


def test_ping_echoes_message(client: TestClient) -> None:
    resp = client.get("/v1/ping", params={"message": "hello"}, headers={"user_id": "u1"})

    assert resp.status_code == 200
    assert resp.json()["echo"] == "hello"


def test_ping_rejects_overlong_message(client: TestClient) -> None:
    resp = client.get("/v1/ping", params={"message": "x" * 201}, headers={"user_id": "u1"})

    assert resp.status_code == 422


def test_missing_client_id_returns_400(client: TestClient) -> None:
    resp = client.get("/v1/ping")

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "missing_client_id"


def test_limit_exceeded_returns_429_until_window_resets(client: TestClient, clock: Mock) -> None:
    headers = {"user_id": "u1"}

    for _ in range(3):
        assert client.get("/v1/ping", headers=headers).status_code == 200

    clock.return_value = 1015.0
    blocked = client.get("/v1/ping", headers=headers)
    assert blocked.status_code == 429
    assert blocked.headers["Retry-After"] == "45"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert blocked.headers["X-RateLimit-Reset"] == "45"
    assert blocked.json()["detail"] == "Rate limit exceeded. Try again later."

    clock.return_value = 1061.0
    assert client.get("/v1/ping", headers=headers).status_code == 200


def test_clients_do_not_share_quota(client: TestClient) -> None:
    for _ in range(3):
        client.get("/v1/ping", headers={"user_id": "u1"})

    assert client.get("/v1/ping", headers={"user_id": "u1"}).status_code == 429
    resp = client.get("/v1/ping", headers={"user_id": "u2"})
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "2"


def test_headers_can_be_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_include_headers", False)

    for _ in range(3):
        client.get("/v1/ping", headers={"user_id": "u1"})
    blocked = client.get("/v1/ping", headers={"user_id": "u1"})

    assert blocked.status_code == 429
    assert "Retry-After" not in blocked.headers
    assert "X-RateLimit-Limit" not in blocked.headers


def test_rate_limit_disabled_skips_client_check(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_enabled", False)

    assert client.get("/v1/ping").status_code == 200


def test_store_unavailable_fails_closed_by_default() -> None:
    app.dependency_overrides[get_rate_limiter] = lambda: _failing_limiter(
        StoreUnavailableError(code="rate_limit_store_unavailable", message="Rate limit store is unavailable")
    )
    try:
        resp = TestClient(app).get("/v1/ping", headers={"user_id": "u1"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "rate_limit_store_unavailable"


def test_store_unavailable_fails_open_when_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_fail_open", True)
    app.dependency_overrides[get_rate_limiter] = lambda: _failing_limiter(
        StoreUnavailableError(code="rate_limit_store_unavailable", message="Rate limit store is unavailable")
    )
    try:
        resp = TestClient(app).get("/v1/ping", headers={"user_id": "u1"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json()["message"] == "pong"


def test_corrupt_state_returns_500() -> None:
    app.dependency_overrides[get_rate_limiter] = lambda: _failing_limiter(
        CorruptStateError(code="rate_limit_state_corrupt", message="Stored rate limit counter is malformed")
    )
    try:
        resp = TestClient(app).get("/v1/ping", headers={"user_id": "u1"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "rate_limit_state_corrupt"


def test_default_limiter_uses_configured_store() -> None:
    client = TestClient(app)

    statuses = [client.get("/v1/ping", headers={"user_id": "default-u"}).status_code for _ in range(11)]

    assert statuses == [200] * 10 + [429]


def test_ping_health_is_not_rate_limited(client: TestClient) -> None:
    for _ in range(5):
        resp = client.get("/v1/ping/health")
        assert resp.status_code == 200
        assert resp.text == "OK"


def test_liveness() -> None:
    resp = TestClient(app).get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readiness_ok_with_memory_store() -> None:
    resp = TestClient(app).get("/health/ready")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_readiness_reports_unreachable_store(monkeypatch: pytest.MonkeyPatch) -> None:
    store = Mock(spec=AbstractCounterStore)
    store.ping = AsyncMock(return_value=False)
    monkeypatch.setattr("app.api.routes.health.get_counter_store", lambda: store)

    resp = TestClient(app).get("/health/ready")

    assert resp.status_code == 503
    assert resp.json() == {"status": "unavailable"}


def test_openapi_documents_client_header() -> None:
    schema = TestClient(app).get("/openapi.json").json()

    scheme = schema["components"]["securitySchemes"]["ClientId"]
    assert scheme["name"] == "user_id"
    assert schema["paths"]["/health"]["get"]["security"] == []
