"""Secret redaction for safe logging and error responses.

Platform tokens travel in headers and occasionally come back echoed in
error bodies. Everything that reaches a log line, a persisted execution
result, or an API error envelope passes through here first.
"""

import re
from typing import Any

REDACTED = "***REDACTED***"

# Dict keys containing any of these (case-insensitive) have their value replaced
SECRET_KEY_FRAGMENTS = (
    "secret",
    "token",
    "password",
    "api_key",
    "consumer_key",
    "authorization",
    "credential",
)

# Dict keys whose whole value is replaced, even when it is a nested dict
OPAQUE_KEYS = frozenset({"credentials", "headers"})

_KEY_WORDS = "|".join(
    ["access_token", "refresh_token", "consumer_secret", *SECRET_KEY_FRAGMENTS]
)

# Order matters: header and JSON forms before the generic key=value form.
_TEXT_RULES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("auth_header", re.compile(r"Authorization\s*:\s*(?:Bearer|Basic)\s+\S+", re.I)),
    ("platform_header", re.compile(r"X-(?:Shopify-Access-Token|FAIRE-ACCESS-TOKEN)\s*:\s*\S+", re.I)),
    ("json_pair", re.compile(rf'"(?:{_KEY_WORDS})"\s*:\s*"[^"]*"', re.I)),
    ("quoted_pair", re.compile(rf'(?:{_KEY_WORDS})\s*[=:]\s*"[^"]*"', re.I)),
    ("bare_pair", re.compile(rf"(?:{_KEY_WORDS})\s*[=:]\s*\S+", re.I)),
    ("shopify_token", re.compile(r"shp(?:at|ca|pa|ss)_[A-Za-z0-9]+")),
)


def _key_is_secret(key: str) -> bool:
    lowered = key.lower()
    return lowered in OPAQUE_KEYS or any(f in lowered for f in SECRET_KEY_FRAGMENTS)


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if _key_is_secret(str(k)) else _redact_value(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def redact_for_logging(obj: dict) -> dict:
    """Return a copy of ``obj`` with secret-looking values replaced.

    Keys are matched by substring, so ``shopify_access_token`` and
    ``X-Api-Key`` are both caught. Nested dicts and lists are walked;
    the input is never mutated.
    """
    return _redact_value(obj)


def redact_text(msg: str) -> str:
    """Redact secrets from free text without truncation."""
    for _name, pattern in _TEXT_RULES:
        msg = pattern.sub(REDACTED, msg)
    return msg


def sanitize_error_message(msg: str | None, max_length: int = 2000) -> str | None:
    """Redact and truncate an error message before it is stored or returned.

    Args:
        msg: Error message to sanitize (None passes through).
        max_length: Maximum length of the result, ellipsis included.

    Returns:
        Sanitized message, or None.
    """
    if msg is None:
        return None
    cleaned = redact_text(msg)
    if len(cleaned) <= max_length:
        return cleaned
    return cleaned[: max_length - 3] + "..."
