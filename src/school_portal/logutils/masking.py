"""Masking of credentials and personal data in log output.

Student and guardian records carry emails and phone numbers, and the invite
flow carries signed tokens; none of them should reach log storage verbatim.
"""

from __future__ import annotations

import re
from typing import Any

MASK = "***MASKED***"

# Key/value style secrets: group 1 keeps the key, the value is replaced.
_SECRET_VALUE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r'(["\']?password["\']?\s*[:=]\s*)["\']?[^"\'\s,}\]]+["\']?', re.IGNORECASE),
    re.compile(r'(["\']?(?:smtp[_-]?)?secret["\']?\s*[:=]\s*)["\']?[\w\-]+["\']?', re.IGNORECASE),
    re.compile(
        r'(["\']?(?:invite[_-]?|access[_-]?|bearer[_-]?)?token["\']?\s*[:=]\s*)["\']?[\w\-\.]+["\']?',
        re.IGNORECASE,
    ),
)

_URL_CREDENTIALS = re.compile(r"((?:https?|redis|rediss|smtp)://)[^:/@\s]+:[^@\s]+(@)", re.IGNORECASE)
_EMAIL = re.compile(r"([a-zA-Z0-9._%+-]+)@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_PHONE = re.compile(r"\+\d{6,}(\d{4})\b")

SENSITIVE_KEYWORDS: frozenset[str] = frozenset(
    {
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "private_key",
    }
)


def mask_sensitive_string(text: str) -> str:
    """Return ``text`` with secrets removed and personal data truncated."""
    if not text:
        return text

    result = text
    for pattern in _SECRET_VALUE_PATTERNS:
        result = pattern.sub(r"\g<1>" + MASK, result)

    result = _URL_CREDENTIALS.sub(r"\1" + MASK + r"\2", result)
    # Keep the first two characters of the local part and the domain.
    result = _EMAIL.sub(lambda m: f"{m.group(1)[:2]}***@{m.group(2)}", result)
    # Keep the last four digits of phone numbers.
    result = _PHONE.sub(lambda m: f"+***{m.group(1)}", result)
    return result


def is_sensitive_key(key: str) -> bool:
    lower_key = key.lower()
    return any(keyword in lower_key for keyword in SENSITIVE_KEYWORDS)


def mask_dict(data: dict[str, Any], depth: int = 0, max_depth: int = 10) -> dict[str, Any]:
    """Recursively mask a structured log payload."""
    if depth >= max_depth:
        return data

    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_key(str(key)):
            result[key] = MASK
        elif isinstance(value, dict):
            result[key] = mask_dict(value, depth + 1, max_depth)
        elif isinstance(value, list):
            result[key] = [
                mask_dict(item, depth + 1, max_depth)
                if isinstance(item, dict)
                else mask_sensitive_string(item)
                if isinstance(item, str)
                else item
                for item in value
            ]
        elif isinstance(value, str):
            result[key] = mask_sensitive_string(value)
        else:
            result[key] = value
    return result


class SensitiveValue:
    """Wrap a secret so that formatting it never reveals the value.

    Usage:
        secret = SensitiveValue(settings.invite_secret)
        logger.info(f"Signing with {secret}")  # "Signing with ***MASKED***"
    """

    def __init__(self, value: Any) -> None:
        self._value = value

    def get(self) -> Any:
        return self._value

    def __str__(self) -> str:
        return MASK

    def __repr__(self) -> str:
        return f"SensitiveValue({MASK})"

    def __bool__(self) -> bool:
        return bool(self._value)
