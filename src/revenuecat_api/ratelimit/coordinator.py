"""
Per-endpoint throttle coordinator.

Intercepts requests before they are sent and responses after they arrive:
- before_send: if the endpoint is inside a throttle window, wait it out
- after_receive: on a retryable 429, mark the endpoint throttled, wait
  Retry-After seconds and re-send, up to max_retries times

Concurrent callers to a throttled endpoint each wait independently; there
is no FIFO queue and no ordering guarantee between them. State is only
touched between await points, so no lock is needed on a single event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from revenuecat_api.ratelimit.policy import (
    RATE_LIMIT_STATUS,
    ThrottleConfig,
    is_retryable,
    parse_rate_limit_usage,
    parse_retry_after,
)
from revenuecat_api.ratelimit.state import EndpointKey, EndpointState, EndpointStateRegistry

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from revenuecat_api.ratelimit.metrics import Outcome, ThrottleMetrics
    from revenuecat_api.transport import ApiRequest, ApiResponse, Transport

logger = logging.getLogger(__name__)


class ThrottleCoordinator:
    """
    Coordinates waits and retries for rate-limited endpoints.

    State lives in a registry owned by this instance, so two coordinators
    (e.g. two clients) never share throttle windows.
    """

    def __init__(
        self,
        transport: Transport,
        config: ThrottleConfig | None = None,
        metrics: ThrottleMetrics | None = None,
        *,
        _time_fn: Callable[[], int] | None = None,
        _sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            transport: Used to re-send rate-limited requests.
            config: Retry ceiling and warning threshold.
            metrics: Optional Prometheus metrics sink.
            _time_fn: Millisecond clock override for deterministic tests.
            _sleep_fn: Async sleep (seconds) override for deterministic tests.
        """
        self._transport = transport
        self._config = config or ThrottleConfig()
        self._metrics = metrics
        self._registry = EndpointStateRegistry()
        self._time_fn = _time_fn
        self._sleep_fn = _sleep_fn

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    @property
    def registry(self) -> EndpointStateRegistry:
        return self._registry

    def _now_ms(self) -> int:
        """Get current monotonic time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.monotonic() * 1000)

    async def _sleep_ms(self, delay_ms: int) -> None:
        if self._metrics is not None:
            self._metrics.record_wait(delay_ms / 1000)
        if self._sleep_fn is not None:
            await self._sleep_fn(delay_ms / 1000)
        else:
            await asyncio.sleep(delay_ms / 1000)

    def _release(self, state: EndpointState, outcome: Outcome | None = None) -> None:
        state.clear()
        if self._metrics is not None:
            if outcome is not None:
                self._metrics.record_outcome(outcome)
            self._metrics.update_throttled(self._registry)

    def _mark_throttled(self, state: EndpointState, response: ApiResponse) -> int:
        retry_after_s = parse_retry_after(response, self._config.default_retry_after_s)
        state.mark_throttled(retry_after_s, self._now_ms())
        if self._metrics is not None:
            self._metrics.update_throttled(self._registry)
        return retry_after_s

    async def before_send(self, request: ApiRequest) -> None:
        """
        Delay the request until its endpoint's throttle window has passed.

        Returns immediately for endpoints that are not throttled. After
        waiting, the endpoint is released without re-checking the server.
        """
        key = EndpointKey.from_request(request)
        state = self._registry.get_or_create(key)
        if not state.throttled:
            return

        remaining_ms = state.remaining_ms(self._now_ms())
        if remaining_ms > 0:
            state.waiters += 1
            if state.waiters >= self._config.max_queue_size:
                logger.warning(
                    "Rate limit waiters reached maximum, consider additional throttling",
                    extra={
                        "endpoint": str(key),
                        "waiters": state.waiters,
                        "max_queue_size": self._config.max_queue_size,
                    },
                )
            logger.debug(
                "Waiting for throttle window",
                extra={"endpoint": str(key), "wait_ms": remaining_ms},
            )
            try:
                await self._sleep_ms(remaining_ms)
            finally:
                state.waiters -= 1

        self._release(state)

    async def after_receive(
        self,
        request: ApiRequest,
        response: ApiResponse,
    ) -> ApiResponse | None:
        """
        Handle a received response, retrying retryable 429s.

        Args:
            request: The request that produced response.
            response: The received response.

        Returns:
            None for non-429 responses (pass through). Otherwise the response
            the caller should see: the original 429 if it is not retryable,
            the first non-429 retry result, or the last 429 once retries are
            exhausted.

        Raises:
            Exception: Whatever the transport raised during a retry.
        """
        if response.status != RATE_LIMIT_STATUS:
            usage = parse_rate_limit_usage(response)
            if usage is not None and usage.exhausted:
                logger.debug(
                    "Rate limit budget used up for current window",
                    extra={
                        "method": request.method,
                        "url": request.url,
                        "usage": usage.current_usage,
                        "limit": usage.current_limit,
                    },
                )
            return None

        key = EndpointKey.from_request(request)
        if self._metrics is not None:
            self._metrics.record_signal()

        if not is_retryable(response):
            logger.info("Rate limited, not retryable", extra={"endpoint": str(key)})
            if self._metrics is not None:
                self._metrics.record_outcome("not_retryable")
            return response

        state = self._registry.get_or_create(key)
        retry_after_s = self._mark_throttled(state, response)
        logger.warning(
            "Rate limit hit",
            extra={"endpoint": str(key), "retry_after_s": retry_after_s},
        )

        last_response = response
        for attempt in range(self._config.max_retries):
            await self._sleep_ms(retry_after_s * 1000)
            if self._metrics is not None:
                self._metrics.record_retry()

            try:
                retry_response = await self._transport.send(request)
            except Exception as e:
                self._release(state, "transport_error")
                logger.warning(
                    "Retry failed",
                    extra={"endpoint": str(key), "attempt": attempt + 1, "error": str(e)},
                )
                raise

            if retry_response.status != RATE_LIMIT_STATUS:
                self._release(state, "recovered")
                logger.info(
                    "Rate limit cleared",
                    extra={
                        "endpoint": str(key),
                        "attempt": attempt + 1,
                        "status": retry_response.status,
                    },
                )
                return retry_response

            if self._metrics is not None:
                self._metrics.record_signal()
            if not is_retryable(retry_response):
                self._release(state, "not_retryable")
                logger.info(
                    "Rate limited, not retryable",
                    extra={"endpoint": str(key), "attempt": attempt + 1},
                )
                return retry_response

            retry_after_s = self._mark_throttled(state, retry_response)
            last_response = retry_response
            logger.debug(
                "Still rate limited",
                extra={
                    "endpoint": str(key),
                    "attempt": attempt + 1,
                    "retry_after_s": retry_after_s,
                },
            )

        self._release(state, "exhausted")
        logger.warning(
            "Rate limit retries exhausted",
            extra={"endpoint": str(key), "max_retries": self._config.max_retries},
        )
        return last_response
