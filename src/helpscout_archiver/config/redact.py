"""Redaction of OAuth credentials in config dumps, log events and error text."""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, SecretStr

REDACTED_VALUE = "[redacted]"

_SENSITIVE_KEYS = frozenset(
    {
        "app_secret",
        "client_secret",
        "access_token",
        "refresh_token",
        "authorization",
        "code",
    }
)

# Contain a sensitive fragment but only ever hold locations or labels.
_NON_SENSITIVE_KEYS = frozenset(
    {"tokens", "token_url", "token_filename", "token_type", "token_path"}
)

_SENSITIVE_KEY_FRAGMENTS = ("password", "token", "secret", "authorization", "api_key", "apikey")

_Replacement = str | Callable[[re.Match[str]], str]

# Applied in order to free-form text (exception messages, response bodies, URLs).
_TEXT_RULES: tuple[tuple[re.Pattern[str], _Replacement], ...] = (
    # Authorization: Bearer <...> / Basic <...>
    (
        re.compile(r"(?i)\b(authorization)\s*[:=]\s*(bearer|token|basic)\s+([^\s,;]+)"),
        r"\1: \2 " + REDACTED_VALUE,
    ),
    # Bare "Bearer <token>", e.g. the repr of a header dict.
    (
        re.compile(r"(?i)\bBearer\s+([A-Za-z0-9\-._~+/]+=*)"),
        "Bearer " + REDACTED_VALUE,
    ),
    # Token endpoint bodies echoing JSON fields.
    (
        re.compile(
            r'(?i)("(?:access_token|refresh_token|client_secret|app_secret)"\s*:\s*")([^"]*)(")'
        ),
        lambda m: f"{m.group(1)}{REDACTED_VALUE}{m.group(3)}",
    ),
    # key=value / key: value
    (
        re.compile(
            r"(?i)\b(token|access[_-]?token|refresh[_-]?token|client[_-]?secret|"
            r"app[_-]?secret|secret|password|passwd)\s*[:=]\s*([^\s,;&]+)"
        ),
        lambda m: f"{m.group(1)}={REDACTED_VALUE}",
    ),
    # Form bodies and callback URLs.
    (
        re.compile(
            r"(?i)([?&](?:access[_-]?token|refresh[_-]?token|client[_-]?secret|token|secret|code)=)"
            r"([^&\s]+)"
        ),
        lambda m: f"{m.group(1)}{REDACTED_VALUE}",
    ),
)


def scrub_secrets_in_text(text: str) -> str:
    """Best-effort redaction of credentials embedded in free-form text."""
    if not text:
        return text
    for pattern, replacement in _TEXT_RULES:
        text = pattern.sub(replacement, text)
    return text


def _is_sensitive_key(key: str) -> bool:
    normalized = key.strip().lower()
    if normalized in _NON_SENSITIVE_KEYS:
        return False
    return normalized in _SENSITIVE_KEYS or any(
        fragment in normalized for fragment in _SENSITIVE_KEY_FRAGMENTS
    )


def _redact_value(value: Any) -> Any:
    if isinstance(value, SecretStr):
        return REDACTED_VALUE
    if isinstance(value, str):
        return scrub_secrets_in_text(value)
    if isinstance(value, BaseModel):
        return redact_settings_dict(value.model_dump())
    if isinstance(value, Mapping):
        return redact_settings_dict(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(item) for item in value)
    return value


def redact_settings_dict(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Deep-redacted copy of `data`; the input is not mutated.

    - Values under sensitive keys become `REDACTED_VALUE`.
    - `SecretStr` values become `REDACTED_VALUE` under any key.
    - Nested pydantic models (e.g. a token record) are dumped and redacted.
    """
    return {
        str(key): REDACTED_VALUE if _is_sensitive_key(str(key)) else _redact_value(value)
        for key, value in data.items()
    }
