"""Request/response middleware contract and the rate-limit middleware."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from revenuecat_api.ratelimit.coordinator import ThrottleCoordinator
from revenuecat_api.ratelimit.policy import RATE_LIMIT_STATUS

if TYPE_CHECKING:
    from revenuecat_api.ratelimit.metrics import ThrottleMetrics
    from revenuecat_api.ratelimit.policy import ThrottleConfig
    from revenuecat_api.transport import ApiRequest, ApiResponse, Transport


class Middleware(Protocol):
    """
    Interception hooks run by RevenueCatClient around every send.

    on_request may delay but never replaces the request. on_response returns
    None to pass the response through, or a replacement response.
    """

    async def on_request(self, request: ApiRequest) -> None: ...

    async def on_response(
        self,
        request: ApiRequest,
        response: ApiResponse,
    ) -> ApiResponse | None: ...


class RateLimitMiddleware:
    """Middleware that delegates to a ThrottleCoordinator."""

    def __init__(self, coordinator: ThrottleCoordinator) -> None:
        self._coordinator = coordinator

    @property
    def coordinator(self) -> ThrottleCoordinator:
        return self._coordinator

    async def on_request(self, request: ApiRequest) -> None:
        await self._coordinator.before_send(request)

    async def on_response(
        self,
        request: ApiRequest,
        response: ApiResponse,
    ) -> ApiResponse | None:
        if response.status != RATE_LIMIT_STATUS:
            return None
        return await self._coordinator.after_receive(request, response)


def create_rate_limit_middleware(
    transport: Transport,
    config: ThrottleConfig | None = None,
    metrics: ThrottleMetrics | None = None,
) -> RateLimitMiddleware:
    """
    Build a rate-limit middleware with its own endpoint state.

    Args:
        transport: Transport used for automatic re-sends.
        config: Optional throttle configuration.
        metrics: Optional Prometheus metrics.

    Returns:
        A new RateLimitMiddleware; instances never share state.
    """
    return RateLimitMiddleware(ThrottleCoordinator(transport, config=config, metrics=metrics))
