"""Integration tests for the /metrics endpoint and request instrumentation.

Uses TestClient with fake settings: answers come from the local fallback and
the audit store is in-memory SQLite.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from src.observability.metrics import COMPONENT_HEALTHY

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client(mock_settings: object) -> TestClient:  # noqa: ARG001
    from src.api.main import app

    with TestClient(app) as tc:
        yield tc  # type: ignore[misc]


def _sample(metric_name: str, labels: dict[str, str] | None = None) -> float | None:
    return REGISTRY.get_sample_value(metric_name, labels or {})


# ---------------------------------------------------------------------------
# GET /metrics
# ---------------------------------------------------------------------------


class TestMetricsEndpoint:
    """Tests for GET /metrics."""

    @pytest.mark.integration
    def test_metrics_contains_expected_metric_names(self, client: TestClient) -> None:
        client.post("/ask", json={"question": "hello", "caller_id": "names"})
        body = client.get("/metrics").text
        assert "coaching_request_duration_seconds" in body
        assert "coaching_requests_total" in body
        assert "coaching_provider_attempts_total" in body
        assert "coaching_generations_total" in body
        assert "coaching_pipeline_info" in body


# ---------------------------------------------------------------------------
# Request counting on /ask
# ---------------------------------------------------------------------------


class TestRequestInstrumentation:
    """Test that /ask increments request metrics."""

    @pytest.mark.integration
    def test_successful_request_increments_counter(self, client: TestClient) -> None:
        before = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "success"})

        resp = client.post("/ask", json={"question": "hello", "caller_id": "u1"})

        assert resp.status_code == 200
        after = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "success"})
        assert after is not None
        assert after - (before or 0.0) == 1.0

    @pytest.mark.integration
    def test_rate_limited_request_counted_separately(self, client: TestClient) -> None:
        for _ in range(10):
            client.post("/ask", json={"question": "q", "caller_id": "limited"})
        before = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "rate_limited"})

        resp = client.post("/ask", json={"question": "q", "caller_id": "limited"})

        assert resp.status_code == 429
        after = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "rate_limited"})
        assert after is not None
        assert after - (before or 0.0) == 1.0

    @pytest.mark.integration
    def test_failed_request_increments_error_counter(self, client: TestClient) -> None:
        before = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "error"})

        with patch.object(
            client.app.state.service,  # type: ignore[attr-defined]
            "handle_detailed",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            resp = client.post("/ask", json={"question": "fail", "caller_id": "u1"})

        assert resp.status_code == 500
        after = _sample("coaching_requests_total", {"endpoint": "/ask", "status": "error"})
        assert after is not None
        assert after - (before or 0.0) == 1.0

    @pytest.mark.integration
    def test_request_duration_recorded(self, client: TestClient) -> None:
        before = _sample("coaching_request_duration_seconds_count", {"endpoint": "/ask"})

        client.post("/ask", json={"question": "hello", "caller_id": "u2"})

        after = _sample("coaching_request_duration_seconds_count", {"endpoint": "/ask"})
        assert after is not None
        assert after - (before or 0.0) == 1.0

    @pytest.mark.integration
    def test_in_progress_gauge_returns_to_zero(self, client: TestClient) -> None:
        client.post("/ask", json={"question": "hello", "caller_id": "u3"})

        val = _sample("coaching_requests_in_progress", {"endpoint": "/ask"})
        assert val == 0.0


# ---------------------------------------------------------------------------
# Component health gauges
# ---------------------------------------------------------------------------


class TestHealthGauges:
    """Test that /health updates the component_healthy gauge."""

    @pytest.mark.integration
    def test_reachable_store_sets_gauge_to_one(self, client: TestClient) -> None:
        client.get("/health")
        assert COMPONENT_HEALTHY.labels(component="audit_store")._value.get() == 1.0

    @pytest.mark.integration
    def test_fallback_only_sets_provider_gauge_to_zero(self, client: TestClient) -> None:
        client.get("/health")
        assert COMPONENT_HEALTHY.labels(component="providers")._value.get() == 0.0
