"""
Client configuration.

The API key comes from the caller or the REVENUECAT_API_KEY env var and is
never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from revenuecat_api.ratelimit.policy import ThrottleConfig

API_KEY_ENV = "REVENUECAT_API_KEY"
DEFAULT_BASE_URL = "https://api.revenuecat.com/v2"


@dataclass
class ClientConfig:
    """RevenueCat client configuration."""

    api_key: str = ""  # From REVENUECAT_API_KEY env var
    base_url: str = DEFAULT_BASE_URL
    request_timeout_s: float = 30.0
    rate_limit: ThrottleConfig = field(default_factory=ThrottleConfig.from_env)

    def __post_init__(self) -> None:
        if not self.api_key:
            self.api_key = os.environ.get(API_KEY_ENV, "")
        if not self.api_key:
            raise ValueError(f"{API_KEY_ENV} required when api_key is not given")
        if self.request_timeout_s <= 0:
            raise ValueError(f"request_timeout_s must be > 0, got {self.request_timeout_s}")
        self.base_url = self.base_url.rstrip("/")

    def __repr__(self) -> str:
        return (
            f"ClientConfig(api_key='***', base_url={self.base_url!r}, "
            f"request_timeout_s={self.request_timeout_s!r}, rate_limit={self.rate_limit!r})"
        )
