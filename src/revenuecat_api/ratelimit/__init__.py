"""Per-endpoint rate-limit handling for RevenueCat API responses (HTTP 429)."""

from revenuecat_api.ratelimit.coordinator import ThrottleCoordinator
from revenuecat_api.ratelimit.metrics import ThrottleMetrics
from revenuecat_api.ratelimit.middleware import (
    Middleware,
    RateLimitMiddleware,
    create_rate_limit_middleware,
)
from revenuecat_api.ratelimit.policy import (
    RateLimitErrorBody,
    RateLimitUsage,
    ThrottleConfig,
    is_retryable,
    parse_rate_limit_usage,
    parse_retry_after,
)
from revenuecat_api.ratelimit.state import EndpointKey, EndpointState, EndpointStateRegistry

__all__ = [
    "EndpointKey",
    "EndpointState",
    "EndpointStateRegistry",
    "Middleware",
    "RateLimitErrorBody",
    "RateLimitMiddleware",
    "RateLimitUsage",
    "ThrottleConfig",
    "ThrottleCoordinator",
    "ThrottleMetrics",
    "create_rate_limit_middleware",
    "is_retryable",
    "parse_rate_limit_usage",
    "parse_retry_after",
]
