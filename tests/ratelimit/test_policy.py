"""
Tests for the retry policy.

Retry-After parsing falls back to 1 second; retryability is fail-open and
only an explicit boolean false blocks retry.
"""

from __future__ import annotations

import pytest

from revenuecat_api.ratelimit.policy import (
    MAX_QUEUE_SIZE_ENV,
    MAX_RETRIES_ENV,
    RateLimitErrorBody,
    RateLimitUsage,
    ThrottleConfig,
    is_retryable,
    parse_rate_limit_usage,
    parse_retry_after,
)
from revenuecat_api.transport import ApiResponse


def _with_retry_after(value: str) -> ApiResponse:
    return ApiResponse(status=429, headers={"Retry-After": value})


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2", 2),
            ("60", 60),
            (" 5 ", 5),
            ("0", 0),
        ],
    )
    def test_integer_seconds(self, value: str, expected: int) -> None:
        assert parse_retry_after(_with_retry_after(value)) == expected

    @pytest.mark.parametrize(
        "value",
        ["", "abc", "1.5", "-3", "+5", "1_0", "\u0663", "Wed, 21 Oct 2015 07:28:00 GMT"],
    )
    def test_invalid_falls_back_to_one_second(self, value: str) -> None:
        assert parse_retry_after(_with_retry_after(value)) == 1

    def test_missing_header_falls_back(self) -> None:
        assert parse_retry_after(ApiResponse(status=429)) == 1

    def test_header_lookup_is_case_insensitive(self) -> None:
        response = ApiResponse(status=429, headers={"retry-after": "7"})
        assert parse_retry_after(response) == 7

    def test_custom_default(self) -> None:
        assert parse_retry_after(ApiResponse(status=429), default_s=4) == 4


class TestIsRetryable:
    """Tests for is_retryable."""

    def test_explicit_false_blocks_retry(self) -> None:
        body = (
            b'{"type": "rate_limit_error", "message": "Rate limit exceeded", '
            b'"retryable": false, "doc_url": "https://errors.rev.cat/rate-limit-error", '
            b'"backoff_ms": 1000}'
        )
        assert is_retryable(ApiResponse(status=429, body=body)) is False

    @pytest.mark.parametrize(
        "body",
        [
            b'{"retryable": true}',
            b'{"type": "rate_limit_error"}',
            b"{}",
            b"Rate limit exceeded",
            b"",
            b"[false]",
            b"null",
            b'{"retryable": "false"}',
            b'{"retryable": 0}',
            b'{"retryable": null}',
        ],
    )
    def test_everything_else_is_retryable(self, body: bytes) -> None:
        assert is_retryable(ApiResponse(status=429, body=body)) is True

    def test_unexpected_field_types_do_not_hide_false(self) -> None:
        body = b'{"retryable": false, "backoff_ms": "soon", "type": 5}'
        assert is_retryable(ApiResponse(status=429, body=body)) is False

    def test_body_readable_after_check(self) -> None:
        response = ApiResponse(status=429, body=b'{"retryable": false, "message": "slow"}')
        is_retryable(response)
        assert response.json()["message"] == "slow"

    def test_error_body_model(self) -> None:
        body = RateLimitErrorBody.model_validate_json(b'{"retryable": true, "backoff_ms": 250}')
        assert body.retryable is True
        assert body.backoff_ms == 250


class TestRateLimitUsage:
    """Tests for usage header parsing."""

    def test_parses_headers(self) -> None:
        response = ApiResponse(
            status=200,
            headers={
                "RevenueCat-Rate-Limit-Current-Usage": "12",
                "RevenueCat-Rate-Limit-Current-Limit": "480",
            },
        )
        usage = parse_rate_limit_usage(response)
        assert usage == RateLimitUsage(current_usage=12, current_limit=480)
        assert usage.remaining == 468
        assert usage.exhausted is False

    def test_exhausted(self) -> None:
        usage = RateLimitUsage(current_usage=481, current_limit=480)
        assert usage.exhausted is True
        assert usage.remaining == 0

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"RevenueCat-Rate-Limit-Current-Usage": "1"},
            {
                "RevenueCat-Rate-Limit-Current-Usage": "x",
                "RevenueCat-Rate-Limit-Current-Limit": "480",
            },
        ],
    )
    def test_missing_or_invalid(self, headers: dict[str, str]) -> None:
        assert parse_rate_limit_usage(ApiResponse(status=200, headers=headers)) is None


class TestThrottleConfig:
    """Tests for ThrottleConfig."""

    def test_default_values(self) -> None:
        config = ThrottleConfig()
        assert config.max_retries == 3
        assert config.max_queue_size == 100
        assert config.default_retry_after_s == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"max_queue_size": 0},
            {"default_retry_after_s": -1},
        ],
    )
    def test_invalid_values_rejected(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ValueError):
            ThrottleConfig(**kwargs)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MAX_RETRIES_ENV, "5")
        monkeypatch.setenv(MAX_QUEUE_SIZE_ENV, "10")
        config = ThrottleConfig.from_env()
        assert config.max_retries == 5
        assert config.max_queue_size == 10

    def test_from_env_defaults_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(MAX_RETRIES_ENV, raising=False)
        monkeypatch.delenv(MAX_QUEUE_SIZE_ENV, raising=False)
        assert ThrottleConfig.from_env() == ThrottleConfig()

    def test_from_env_rejects_non_integer(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(MAX_RETRIES_ENV, "three")
        with pytest.raises(ValueError, match=MAX_RETRIES_ENV):
            ThrottleConfig.from_env()
