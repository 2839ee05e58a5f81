"""
HTTP transport boundary for the RevenueCat client.

The rate-limit coordinator only needs "send(request, options) -> response".
ApiResponse buffers the body eagerly so it can be inspected any number of
times (retryability check first, caller later).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import urlsplit

import aiohttp
import orjson
from multidict import CIMultiDict, CIMultiDictProxy

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a request fails to complete at the network level."""

    def __init__(self, message: str, method: str = "", path: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.path = path


@dataclass(frozen=True)
class ApiRequest:
    """
    An outgoing HTTP request.

    Attributes:
        method: HTTP method (e.g. "GET").
        url: Absolute URL including any query string.
        headers: Request headers.
        body: Raw request body, if any.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes | None = None

    @property
    def path(self) -> str:
        """URL path without query string or fragment."""
        return urlsplit(self.url).path or "/"


@dataclass(frozen=True)
class ApiResponse:
    """A fully-read HTTP response."""

    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        # Header lookups are case-insensitive regardless of what was passed in
        object.__setattr__(self, "headers", CIMultiDictProxy(CIMultiDict(self.headers)))

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            orjson.JSONDecodeError: If the body is not valid JSON.
        """
        return orjson.loads(self.body)


class Transport(Protocol):
    """Anything that can perform the actual network exchange."""

    async def send(
        self,
        request: ApiRequest,
        options: Mapping[str, Any] | None = None,
    ) -> ApiResponse: ...


class AiohttpTransport:
    """
    Transport backed by a lazily created aiohttp.ClientSession.

    Network-level failures (connection errors, timeouts) are raised as
    TransportError. HTTP error statuses are returned, never raised.
    """

    def __init__(
        self,
        request_timeout_s: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._request_timeout_s = request_timeout_s
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def send(
        self,
        request: ApiRequest,
        options: Mapping[str, Any] | None = None,
    ) -> ApiResponse:
        """
        Perform the request and buffer the full response.

        Args:
            request: Request to send.
            options: Extra keyword arguments for ClientSession.request.

        Returns:
            ApiResponse with status, headers and body.

        Raises:
            TransportError: On connection failure or timeout.
        """
        session = await self._get_session()
        try:
            async with session.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                data=request.body,
                **dict(options or {}),
            ) as response:
                body = await response.read()
                return ApiResponse(
                    status=response.status,
                    headers=CIMultiDict(response.headers),
                    body=body,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Transport failure",
                extra={"method": request.method, "url": request.url, "error": str(e)},
            )
            raise TransportError(
                f"{request.method} {request.path} failed: {e}",
                method=request.method,
                path=request.path,
            ) from e
