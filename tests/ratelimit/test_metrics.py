"""
Tests for rate-limit Prometheus metrics.

Metrics must stay low-cardinality: no endpoint/path/method labels.
"""

from __future__ import annotations

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

from revenuecat_api.ratelimit import EndpointKey, ThrottleCoordinator, ThrottleMetrics
from revenuecat_api.ratelimit.metrics import OUTCOMES
from revenuecat_api.ratelimit.state import EndpointStateRegistry
from revenuecat_api.transport import ApiRequest, ApiResponse, TransportError

FORBIDDEN_LABELS = frozenset({"endpoint", "path", "method", "url", "query", "api_key"})

REQUEST = ApiRequest(method="POST", url="https://api.revenuecat.com/v2/projects/p/customers")


async def _no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


def _coordinator(metrics: ThrottleMetrics, *responses: ApiResponse | Exception) -> ThrottleCoordinator:
    transport = MagicMock()
    transport.send = AsyncMock(side_effect=list(responses))
    return ThrottleCoordinator(transport, metrics=metrics, _time_fn=lambda: 0, _sleep_fn=_no_sleep)


def _sample(registry: CollectorRegistry, name: str, **labels: str) -> float | None:
    return registry.get_sample_value(name, labels or None)


class TestThrottleMetrics:
    """Tests for ThrottleMetrics."""

    def test_outcomes_exported_as_zero(self) -> None:
        registry = CollectorRegistry()
        ThrottleMetrics(registry=registry)
        for outcome in OUTCOMES:
            assert _sample(registry, "revenuecat_ratelimit_outcomes_total", outcome=outcome) == 0.0

    def test_no_forbidden_labels(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        metrics.record_outcome("recovered")

        output = generate_latest(registry).decode("utf-8")
        found: set[str] = set()
        for match in re.finditer(r"\{([^}]+)\}", output):
            for pair in match.group(1).split(","):
                if "=" in pair:
                    found.add(pair.split("=")[0].strip())

        assert found == {"outcome"}
        assert not found & FORBIDDEN_LABELS

    def test_update_throttled_gauge(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        states = EndpointStateRegistry()
        states.get_or_create(EndpointKey("GET", "/a")).mark_throttled(1, 0)
        states.get_or_create(EndpointKey("GET", "/b")).mark_throttled(1, 0)

        metrics.update_throttled(states)

        assert _sample(registry, "revenuecat_ratelimit_throttled_endpoints") == 2.0

    def test_record_wait_ignores_zero(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        metrics.record_wait(0)
        metrics.record_wait(1.5)
        assert _sample(registry, "revenuecat_ratelimit_wait_seconds_total") == 1.5


class TestCoordinatorMetrics:
    """Metrics recorded by ThrottleCoordinator."""

    @pytest.mark.asyncio
    async def test_recovered(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        coordinator = _coordinator(metrics, ApiResponse(status=429), ApiResponse(status=200))

        await coordinator.after_receive(REQUEST, ApiResponse(status=429, headers={"Retry-After": "2"}))

        assert _sample(registry, "revenuecat_ratelimit_signals_total") == 2.0
        assert _sample(registry, "revenuecat_ratelimit_retries_total") == 2.0
        assert _sample(registry, "revenuecat_ratelimit_outcomes_total", outcome="recovered") == 1.0
        assert _sample(registry, "revenuecat_ratelimit_wait_seconds_total") == 3.0
        assert _sample(registry, "revenuecat_ratelimit_throttled_endpoints") == 0.0

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        coordinator = _coordinator(metrics, *[ApiResponse(status=429) for _ in range(3)])

        await coordinator.after_receive(REQUEST, ApiResponse(status=429))

        assert _sample(registry, "revenuecat_ratelimit_signals_total") == 4.0
        assert _sample(registry, "revenuecat_ratelimit_retries_total") == 3.0
        assert _sample(registry, "revenuecat_ratelimit_outcomes_total", outcome="exhausted") == 1.0

    @pytest.mark.asyncio
    async def test_not_retryable(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        coordinator = _coordinator(metrics)

        await coordinator.after_receive(
            REQUEST, ApiResponse(status=429, body=b'{"retryable": false}')
        )

        assert _sample(registry, "revenuecat_ratelimit_outcomes_total", outcome="not_retryable") == 1.0
        assert _sample(registry, "revenuecat_ratelimit_retries_total") == 0.0

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        coordinator = _coordinator(metrics, TransportError("down"))

        with pytest.raises(TransportError):
            await coordinator.after_receive(REQUEST, ApiResponse(status=429))

        assert (
            _sample(registry, "revenuecat_ratelimit_outcomes_total", outcome="transport_error")
            == 1.0
        )
        assert _sample(registry, "revenuecat_ratelimit_throttled_endpoints") == 0.0
