"""Redaction helpers for structured log payloads.

Upstream clients log request context (paths, query parameters, error text)
through ``extra=``. Credentials for GitHub, Qloo and the LLM providers must
never reach the log sink, and raw response bodies are reduced to a size marker.
"""

from __future__ import annotations

import re
from typing import Any, Optional

REDACTED = "***REDACTED***"

_SECRET_FIELDS = ("authorization", "token", "api_key", "apikey", "api-key", "secret", "password", "cookie")
_BODY_FIELDS = ("body", "raw", "content", "payload", "response", "text", "prompt")
_SECRET_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s+)[A-Za-z0-9_\-]{16,}"),
    re.compile(r"(?i)(x-api-key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;&]+"),
    re.compile(r"(?i)(access_token=)[^&\s]+"),
    re.compile(r"(?i)(secret\s*[=:]\s*)[^\s,;]+"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a recursively sanitized copy of ``value``."""

    if isinstance(value, dict):
        cleaned: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            if _matches(field, _SECRET_FIELDS):
                cleaned[field] = REDACTED
            elif _matches(field, _BODY_FIELDS) and isinstance(raw_value, str):
                cleaned[field] = _body_marker(raw_value)
            else:
                cleaned[field] = sanitize_for_log(raw_value, key=field)
        return cleaned

    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, str):
        text = redact_text(value)
        if key and _matches(key, _BODY_FIELDS):
            return _body_marker(text)
        return text

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Build a sanitized mapping for ``logger.<level>(..., extra=...)``."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def redact_text(raw: str) -> str:
    redacted = raw
    for pattern in _SECRET_PATTERNS:
        redacted = pattern.sub(rf"\1{REDACTED}", redacted)
    return redacted


def _matches(field_name: str, keywords: tuple[str, ...]) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in keywords)


def _body_marker(raw: str) -> str:
    if not raw.strip():
        return ""
    return f"<redacted payload ({len(raw)} chars)>"
