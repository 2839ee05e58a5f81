"""
Prometheus metrics for rate-limit handling.

Low cardinality only: no endpoint, path or method labels. The single label
is the outcome of a retry loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from revenuecat_api.ratelimit.state import EndpointStateRegistry

Outcome = Literal["recovered", "exhausted", "not_retryable", "transport_error"]

OUTCOMES: tuple[Outcome, ...] = ("recovered", "exhausted", "not_retryable", "transport_error")


class ThrottleMetrics:
    """
    Prometheus counters and gauges for the throttle coordinator.

    Usage:
        registry = CollectorRegistry()
        metrics = ThrottleMetrics(registry=registry)
        coordinator = ThrottleCoordinator(transport, metrics=metrics)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._signals = Counter(
            "revenuecat_ratelimit_signals",
            "Total 429 responses observed",
            registry=self._registry,
        )
        self._retries = Counter(
            "revenuecat_ratelimit_retries",
            "Total automatic re-sends after a 429",
            registry=self._registry,
        )
        self._outcomes = Counter(
            "revenuecat_ratelimit_outcomes",
            "Rate-limited requests by final outcome",
            ["outcome"],
            registry=self._registry,
        )
        self._wait_seconds = Counter(
            "revenuecat_ratelimit_wait_seconds",
            "Total seconds spent waiting on throttle windows",
            registry=self._registry,
        )
        self._throttled_endpoints = Gauge(
            "revenuecat_ratelimit_throttled_endpoints",
            "Endpoints currently marked throttled",
            registry=self._registry,
        )

        # Pre-create outcome series so they export as 0
        for outcome in OUTCOMES:
            self._outcomes.labels(outcome=outcome)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_signal(self) -> None:
        self._signals.inc()

    def record_retry(self) -> None:
        self._retries.inc()

    def record_outcome(self, outcome: Outcome) -> None:
        self._outcomes.labels(outcome=outcome).inc()

    def record_wait(self, seconds: float) -> None:
        if seconds > 0:
            self._wait_seconds.inc(seconds)

    def update_throttled(self, registry: EndpointStateRegistry) -> None:
        self._throttled_endpoints.set(registry.throttled_count())
