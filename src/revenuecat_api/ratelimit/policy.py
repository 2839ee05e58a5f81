"""
Retry policy for RevenueCat rate-limit responses.

Per https://www.revenuecat.com/docs/api-v2#tag/Rate-Limit:
- 429 means the endpoint's per-minute limit was reached
- Retry-After carries the wait in whole seconds
- The JSON error body carries a "retryable" flag, e.g.

    {
      "type": "rate_limit_error",
      "message": "Rate limit exceeded",
      "retryable": true,
      "doc_url": "https://errors.rev.cat/rate-limit-error",
      "backoff_ms": 1000
    }

- Successful responses carry RevenueCat-Rate-Limit-Current-Usage and
  RevenueCat-Rate-Limit-Current-Limit (requests per minute).
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, StrictBool, ValidationError

if TYPE_CHECKING:
    from revenuecat_api.transport import ApiResponse

RATE_LIMIT_STATUS = 429
RETRY_AFTER_HEADER = "Retry-After"
USAGE_HEADER = "RevenueCat-Rate-Limit-Current-Usage"
LIMIT_HEADER = "RevenueCat-Rate-Limit-Current-Limit"
DEFAULT_RETRY_AFTER_S = 1

# ASCII only: int() would also accept "1_0" and non-ASCII digits
_RETRY_AFTER_PATTERN = re.compile(r"[0-9]+")

MAX_RETRIES_ENV = "REVENUECAT_RATE_LIMIT_MAX_RETRIES"
MAX_QUEUE_SIZE_ENV = "REVENUECAT_RATE_LIMIT_MAX_QUEUE_SIZE"


@dataclass
class ThrottleConfig:
    """
    Configuration for the throttle coordinator.

    Attributes:
        max_retries: Automatic re-sends after the original 429.
        max_queue_size: Waiter count per endpoint at which a warning is logged.
        default_retry_after_s: Wait used when Retry-After is missing or invalid.
    """

    max_retries: int = 3
    max_queue_size: int = 100
    default_retry_after_s: int = DEFAULT_RETRY_AFTER_S

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.max_queue_size <= 0:
            raise ValueError(f"max_queue_size must be > 0, got {self.max_queue_size}")
        if self.default_retry_after_s < 0:
            raise ValueError(
                f"default_retry_after_s must be >= 0, got {self.default_retry_after_s}"
            )

    @classmethod
    def from_env(cls) -> ThrottleConfig:
        """Build config, overriding defaults from REVENUECAT_RATE_LIMIT_* env vars."""
        values: dict[str, int] = {}
        for env_var, name in (
            (MAX_RETRIES_ENV, "max_retries"),
            (MAX_QUEUE_SIZE_ENV, "max_queue_size"),
        ):
            raw = os.environ.get(env_var, "").strip()
            if not raw:
                continue
            try:
                values[name] = int(raw)
            except ValueError:
                raise ValueError(f"{env_var} must be an integer, got {raw!r}") from None
        return cls(**values)


class RateLimitErrorBody(BaseModel):
    """Body of a RevenueCat 429 response. Only "retryable" is checked strictly."""

    model_config = ConfigDict(extra="ignore")

    type: Any = None
    message: Any = None
    retryable: StrictBool | None = None
    doc_url: Any = None
    backoff_ms: Any = None


@dataclass(frozen=True)
class RateLimitUsage:
    """Requests used / allowed in the current one-minute window."""

    current_usage: int
    current_limit: int

    @property
    def remaining(self) -> int:
        return max(0, self.current_limit - self.current_usage)

    @property
    def exhausted(self) -> bool:
        return self.current_usage >= self.current_limit


def parse_retry_after(
    response: ApiResponse,
    default_s: int = DEFAULT_RETRY_AFTER_S,
) -> int:
    """
    Read the Retry-After header as whole seconds.

    Only plain ASCII digits are accepted; "0" is honored as zero. Anything
    else falls back to default_s: missing headers, HTTP-date and negative
    values, and fractional values such as "2.5" (not truncated to 2).

    Args:
        response: Rate-limited response.
        default_s: Fallback wait in seconds.

    Returns:
        Seconds to wait before retrying.
    """
    raw = response.headers.get(RETRY_AFTER_HEADER)
    if raw is None:
        return default_s
    match = _RETRY_AFTER_PATTERN.fullmatch(raw.strip())
    if match is None:
        return default_s
    return int(match.group(0))


def is_retryable(response: ApiResponse) -> bool:
    """
    Check whether a 429 response allows an automatic retry.

    Fail-open: only an explicit boolean "retryable": false blocks retry.
    Missing field, invalid JSON, non-object bodies and non-boolean values
    are all treated as retryable. The response body is not consumed.
    """
    try:
        body = RateLimitErrorBody.model_validate_json(response.body)
    except ValidationError:
        return True
    return body.retryable is not False


def parse_rate_limit_usage(response: ApiResponse) -> RateLimitUsage | None:
    """Read the usage headers, or None if either is missing or malformed."""
    usage = response.headers.get(USAGE_HEADER)
    limit = response.headers.get(LIMIT_HEADER)
    if usage is None or limit is None:
        return None
    try:
        return RateLimitUsage(current_usage=int(usage), current_limit=int(limit))
    except ValueError:
        return None
