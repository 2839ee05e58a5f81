"""
Per-endpoint throttle state.

An endpoint is the (method, path) pair of a request; query string and body
do not matter. State is created lazily on first observation and is kept for
the lifetime of the owning coordinator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from revenuecat_api.transport import ApiRequest


@dataclass(frozen=True)
class EndpointKey:
    """Throttling identity of a request."""

    method: str
    path: str

    @classmethod
    def from_request(cls, request: ApiRequest) -> EndpointKey:
        return cls(method=request.method.upper(), path=request.path)

    def __str__(self) -> str:
        return f"{self.method}:{self.path}"


@dataclass
class EndpointState:
    """
    Mutable throttle state for one endpoint.

    While throttled, requests must wait until
    last_signal_ms + retry_after_s * 1000.
    """

    throttled: bool = False
    retry_after_s: int = 0
    last_signal_ms: int = 0
    waiters: int = field(default=0)

    def mark_throttled(self, retry_after_s: int, now_ms: int) -> None:
        """Record a rate-limit signal observed at now_ms."""
        self.throttled = True
        self.retry_after_s = retry_after_s
        self.last_signal_ms = now_ms

    def clear(self) -> None:
        self.throttled = False

    def remaining_ms(self, now_ms: int) -> int:
        """Milliseconds left in the throttle window (0 if not throttled)."""
        if not self.throttled:
            return 0
        return max(0, self.last_signal_ms + self.retry_after_s * 1000 - now_ms)

    def get_status(self) -> dict[str, int | bool]:
        return {
            "throttled": self.throttled,
            "retry_after_s": self.retry_after_s,
            "last_signal_ms": self.last_signal_ms,
            "waiters": self.waiters,
        }


class EndpointStateRegistry:
    """
    Mapping of EndpointKey to EndpointState.

    No eviction: endpoint cardinality is bounded by the number of API routes.
    """

    def __init__(self) -> None:
        self._states: dict[EndpointKey, EndpointState] = {}

    def get_or_create(self, key: EndpointKey) -> EndpointState:
        # setdefault keeps a single entry even if two callers race on creation
        return self._states.setdefault(key, EndpointState())

    def get(self, key: EndpointKey) -> EndpointState | None:
        return self._states.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._states

    def __len__(self) -> int:
        return len(self._states)

    def throttled_count(self) -> int:
        """Number of endpoints currently marked throttled."""
        return sum(1 for state in self._states.values() if state.throttled)

    def get_status(self) -> dict[str, dict[str, int | bool]]:
        """Snapshot of every known endpoint, keyed by "METHOD:/path"."""
        return {str(key): state.get_status() for key, state in self._states.items()}
