"""
Structured logging configuration for the RevenueCat client.

Log records carry structured fields via ``extra={...}``. Formatters:
- drop credential fields (authorization headers, API keys, tokens)
- reduce ``url`` fields to the endpoint path (no query strings)
- redact bearer tokens and RevenueCat secret keys from free text

Usage:
    from revenuecat_api.logging_config import setup_logging

    setup_logging()  # Call once at startup
    logger = logging.getLogger(__name__)
    logger.warning("Rate limit hit", extra={"endpoint": "GET:/v2/projects"})
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

_URL_PATTERN = re.compile(r"(https?://[^\s\"'<>]+)")
_SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bbearer\s+[\w\-\.]+", re.I), "Bearer [TOKEN]"),
    # RevenueCat secret (sk_) and public (appl_, goog_, amzn_, strp_) keys
    (re.compile(r"\b(sk|appl|goog|amzn|strp)_[A-Za-z0-9]{8,}\b"), "[API_KEY]"),
    (re.compile(r"\b(api[_-]?key|apikey)[=:]\s*['\"]?[\w\-]+['\"]?", re.I), "[API_KEY]"),
]

# Fields that never appear in logs (exact match, lowercased)
BLOCKED_FIELDS: frozenset[str] = frozenset(
    {
        "api_key",
        "authorization",
        "headers",
        "password",
        "secret",
        "token",
        "email",
    }
)

# Any field containing one of these is dropped as well
_BLOCKED_SUBSTRINGS: tuple[str, ...] = ("secret", "token", "password", "authorization", "api_key")

# Raw payloads are replaced by a placeholder
REDACTED_FIELDS: dict[str, str] = {
    "body": "[BODY]",
    "json": "[BODY]",
    "params": "[PARAMS]",
}

_MAX_DEPTH = 3
_MAX_LIST_ITEMS = 10

_STANDARD_ATTRS: frozenset[str] = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "message",
        "taskName",
    }
)


def _normalize_url(url: str) -> str:
    """Reduce a URL to its path."""
    return urlsplit(url).path or "/"


def _sanitize_text(text: str) -> str:
    """Strip query strings from URLs and redact credentials in free text."""
    if not text:
        return text
    result = _URL_PATTERN.sub(lambda m: _normalize_url(m.group(1)), text)
    for pattern, replacement in _SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _is_blocked(key: str) -> bool:
    key_lower = key.lower()
    return key_lower in BLOCKED_FIELDS or any(s in key_lower for s in _BLOCKED_SUBSTRINGS)


def _filter_log_record(record: dict[str, Any], *, _depth: int = 0) -> dict[str, Any]:
    """Filter credential and payload fields from structured log data."""
    if _depth > _MAX_DEPTH:
        return {"_truncated": "max depth exceeded"}

    filtered: dict[str, Any] = {}
    for key, value in record.items():
        if _is_blocked(key):
            continue

        key_lower = key.lower()
        if key_lower == "url" and isinstance(value, str):
            filtered["endpoint_path"] = _normalize_url(value)
            continue
        if key_lower in REDACTED_FIELDS:
            filtered[key] = REDACTED_FIELDS[key_lower]
            continue

        if isinstance(value, (int, float, bool, type(None))):
            filtered[key] = value
        elif isinstance(value, str):
            filtered[key] = _sanitize_text(value)
        elif isinstance(value, (list, tuple)):
            if len(value) <= _MAX_LIST_ITEMS:
                filtered[key] = list(value)
            else:
                filtered[key] = f"[list:{len(value)} items]"
        elif isinstance(value, dict):
            filtered[key] = _filter_log_record(value, _depth=_depth + 1)
        else:
            filtered[key] = _sanitize_text(str(value))

    return filtered


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"ts":"2024-01-01T00:00:00.000+00:00","level":"WARNING","logger":"...","msg":"...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": _sanitize_text(record.getMessage()),
        }

        if record.levelno >= logging.WARNING:
            log_dict["file"] = record.filename
            log_dict["line"] = record.lineno

        if record.exc_info:
            log_dict["exc"] = _sanitize_text(self.formatException(record.exc_info))

        extra = _extra_fields(record)
        if extra:
            log_dict.update(_filter_log_record(extra))

        return json.dumps(log_dict, default=str, ensure_ascii=False)


class SimpleFormatter(logging.Formatter):
    """Human-readable single-line output for development."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname:8s} {record.name}: {_sanitize_text(record.getMessage())}"
        filtered = _filter_log_record(_extra_fields(record))
        if filtered:
            base = f"{base} | " + " ".join(f"{k}={v}" for k, v in filtered.items())
        return base


def setup_logging(
    *,
    level: int | str = logging.INFO,
    json_format: bool = True,
    stream: Any = None,
) -> None:
    """
    Configure root logging. Call once at application startup.

    Args:
        level: Log level (default INFO).
        json_format: Use JsonFormatter (default) or SimpleFormatter.
        stream: Output stream (default stderr).
    """
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else SimpleFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
