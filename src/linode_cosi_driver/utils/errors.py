"""Redaction of credentials from error messages and log fields."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

# Fields whose value is never logged; matched as substrings of lowercased keys
SENSITIVE_FIELDS = frozenset({
    "access_key",
    "accesskeyid",
    "accesssecretkey",
    "credentials",
    "password",
    "secret",
    "secret_key",
    "token",
})

_VALUE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"(authorization[:\s]+bearer\s+)[A-Za-z0-9\-_\.]+", re.IGNORECASE), rf"\1{REDACTED}"),
    # Presigned URLs echoed back by botocore
    (re.compile(r"(X-Amz-(?:Credential|Signature|Security-Token)=)[^&\s]+", re.IGNORECASE), rf"\1{REDACTED}"),
    (re.compile(r"(access[_\s]?key[_\s]?id[:\s=]+)[A-Z0-9]{20}\b", re.IGNORECASE), rf"\1{REDACTED}"),
    # Linode personal access tokens
    (re.compile(r"\b[0-9a-f]{64}\b"), REDACTED),
]

_FIELD_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(SENSITIVE_FIELDS, key=len, reverse=True)) + r")\s*[:=]\s*[^\s,;\)]+",
    re.IGNORECASE,
)


def sanitize_error_message(message: str) -> str:
    """Redact credentials from a free-form message.

    Bearer tokens, presigned URL signatures, access key ids and Linode
    tokens are replaced wherever they appear; ``field: value`` and
    ``field=value`` pairs naming a sensitive field lose their value.
    """
    for pattern, replacement in _VALUE_PATTERNS:
        message = pattern.sub(replacement, message)
    return _FIELD_PATTERN.sub(rf"\1: {REDACTED}", message)


def sanitize_exception(error: BaseException) -> str:
    return sanitize_error_message(str(error))


def _sanitize_value(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, dict):
        return _sanitize_mapping(value, sensitive_keys)
    if isinstance(value, (list, tuple)):
        return [_sanitize_value(item, sensitive_keys) for item in value]
    if isinstance(value, str):
        return sanitize_error_message(value)
    return value


def _sanitize_mapping(data: dict[str, Any], sensitive_keys: frozenset[str]) -> dict[str, Any]:
    sanitized = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in sensitive_keys):
            sanitized[key] = REDACTED
        else:
            sanitized[key] = _sanitize_value(value, sensitive_keys)
    return sanitized


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values redacted.

    Args:
        data: Structured log fields, nested dicts and lists are walked
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized copy, ``data`` is left untouched
    """
    return _sanitize_mapping(data, SENSITIVE_FIELDS | frozenset(sensitive_keys or ()))
