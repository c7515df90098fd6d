"""
Name: App Infrastructure Endpoint Tests

Responsibilities:
  - /healthz and /readyz report dependency status
  - /metrics exposes Prometheus text (optionally gated by system.config)
  - Global per-IP "api" limit adds X-RateLimit-* and answers 429
  - X-Request-Id is propagated
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

pytestmark = pytest.mark.unit


class TestHealth:
    def test_healthz_in_memory(self, client):
        res = client.get("/healthz")

        body = res.json()
        assert res.status_code == 200
        assert body["ok"] is True
        assert body["db"] == "connected"
        assert body["counter_store"] == "connected"

    def test_readyz_503_when_not_ready(self, app, client, container):
        app.state.container.readiness = AsyncMock(
            return_value={"db": "disconnected", "counter_store": "connected", "ready": False}
        )

        res = client.get("/readyz")

        assert res.status_code == 503
        assert res.json()["ok"] is False

    def test_request_id_is_echoed(self, client):
        res = client.get("/healthz", headers={"X-Request-Id": "req-123"})

        assert res.headers["x-request-id"] == "req-123"
        assert res.json()["request_id"] == "req-123"


class TestMetrics:
    def test_metrics_open_by_default(self, client):
        res = client.get("/metrics")

        assert res.status_code == 200
        assert "eccb_" in res.text

    def test_metrics_gated_when_configured(self, app, container):
        container.settings = container.settings.model_copy(
            update={"metrics_require_auth": True}
        )

        res = TestClient(app, raise_server_exceptions=False).get("/metrics")

        assert res.status_code == 401


class TestGlobalRateLimit:
    def test_api_preset_per_ip(self, app, container):
        container.settings = container.settings.model_copy(
            update={"api_rate_limit_enabled": True}
        )
        client = TestClient(app, raise_server_exceptions=False)
        headers = {"X-Forwarded-For": "10.3.3.3"}

        first = client.get("/auth/me", headers=headers)
        assert first.headers["X-RateLimit-Limit"] == "100"
        assert first.headers["X-RateLimit-Remaining"] == "99"

        for _ in range(99):
            client.get("/auth/me", headers=headers)
        blocked = client.get("/auth/me", headers=headers)

        assert blocked.status_code == 429
        assert "Retry-After" in blocked.headers
        # R: /healthz queda excluido del límite global.
        assert client.get("/healthz", headers=headers).status_code == 200
