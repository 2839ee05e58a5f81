"""
Async client for the RevenueCat REST API (v2).

Every request goes through the middleware chain; by default that is a
single RateLimitMiddleware, so callers get automatic handling of 429
responses per endpoint.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import orjson
from yarl import URL

from revenuecat_api.config import ClientConfig
from revenuecat_api.ratelimit.middleware import create_rate_limit_middleware
from revenuecat_api.transport import AiohttpTransport, ApiRequest, ApiResponse

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from types import TracebackType

    from revenuecat_api.ratelimit.metrics import ThrottleMetrics
    from revenuecat_api.ratelimit.middleware import Middleware
    from revenuecat_api.transport import Transport

logger = logging.getLogger(__name__)


class RevenueCatClient:
    """
    RevenueCat API client.

    Usage:
        async with RevenueCatClient(ClientConfig(api_key="sk_...")) as client:
            response = await client.get("/projects")
            projects = response.json()
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: Transport | None = None,
        middlewares: Sequence[Middleware] | None = None,
        metrics: ThrottleMetrics | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Client configuration (API key, base URL, rate limits).
            transport: Transport override. Defaults to AiohttpTransport.
            middlewares: Middleware chain override. Defaults to a single
                         rate-limit middleware bound to the transport.
            metrics: Optional Prometheus metrics for the default middleware.
        """
        self._config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport: Transport = transport or AiohttpTransport(
            request_timeout_s=self._config.request_timeout_s
        )
        if middlewares is None:
            middlewares = [
                create_rate_limit_middleware(
                    self._transport,
                    config=self._config.rate_limit,
                    metrics=metrics,
                )
            ]
        self._middlewares: list[Middleware] = list(middlewares)

    @property
    def middlewares(self) -> list[Middleware]:
        return self._middlewares

    def build_request(
        self,
        method: str,
        path: str,
        params: Mapping[str, str | int] | None = None,
        json: Any = None,
    ) -> ApiRequest:
        """Build an authenticated request for an API path such as "/projects"."""
        url = URL(f"{self._config.base_url}/{path.lstrip('/')}")
        if params:
            url = url.update_query(params)
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Accept": "application/json",
        }
        body = None
        if json is not None:
            headers["Content-Type"] = "application/json"
            body = orjson.dumps(json)
        return ApiRequest(method=method.upper(), url=str(url), headers=headers, body=body)

    async def send(self, request: ApiRequest) -> ApiResponse:
        """
        Send a request through the middleware chain.

        on_request hooks run in order, on_response hooks in reverse order.
        A hook returning a response replaces the current one.

        Raises:
            TransportError: On network-level failure.
        """
        for middleware in self._middlewares:
            await middleware.on_request(request)

        response = await self._transport.send(request)

        for middleware in reversed(self._middlewares):
            replacement = await middleware.on_response(request, response)
            if replacement is not None:
                response = replacement

        if response.status >= 400:
            logger.debug(
                "API error response",
                extra={"method": request.method, "url": request.url, "status": response.status},
            )
        return response

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str | int] | None = None,
        json: Any = None,
    ) -> ApiResponse:
        return await self.send(self.build_request(method, path, params=params, json=json))

    async def get(self, path: str, *, params: Mapping[str, str | int] | None = None) -> ApiResponse:
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, str | int] | None = None,
    ) -> ApiResponse:
        return await self.request("POST", path, params=params, json=json)

    async def delete(self, path: str, *, params: Mapping[str, str | int] | None = None) -> ApiResponse:
        return await self.request("DELETE", path, params=params)

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport and isinstance(self._transport, AiohttpTransport):
            await self._transport.close()

    async def __aenter__(self) -> RevenueCatClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
