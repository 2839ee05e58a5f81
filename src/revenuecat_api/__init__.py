"""Async RevenueCat API client with automatic per-endpoint rate-limit handling."""

from revenuecat_api.client import RevenueCatClient
from revenuecat_api.config import ClientConfig
from revenuecat_api.ratelimit import (
    RateLimitMiddleware,
    ThrottleConfig,
    ThrottleCoordinator,
    ThrottleMetrics,
    create_rate_limit_middleware,
)
from revenuecat_api.transport import (
    AiohttpTransport,
    ApiRequest,
    ApiResponse,
    Transport,
    TransportError,
)

__version__ = "1.0.4"

__all__ = [
    "AiohttpTransport",
    "ApiRequest",
    "ApiResponse",
    "ClientConfig",
    "RateLimitMiddleware",
    "RevenueCatClient",
    "ThrottleConfig",
    "ThrottleCoordinator",
    "ThrottleMetrics",
    "Transport",
    "TransportError",
    "create_rate_limit_middleware",
]
