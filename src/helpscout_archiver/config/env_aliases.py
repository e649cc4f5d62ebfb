"""Flat environment variable names mapped onto nested settings fields.

`.env` files written by `helpscout-archiver setup` use short flat names
(`APP_ID`, `PORT`, ...); this module lifts them into the nested shape that
`Settings` expects.
"""
from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Any


def _set_nested(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = data
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[path[-1]] = value


def _apply_alias_mappings(
    env: Mapping[str, str],
    data: dict[str, Any],
    mappings: Iterable[tuple[str, tuple[str, ...]]],
) -> None:
    for env_name, path in mappings:
        value = env.get(env_name)
        if value:
            _set_nested(data, path, value)


_CANONICAL_MAPPINGS: tuple[tuple[str, tuple[str, ...]], ...] = (
    # Help Scout app credentials / OAuth callback
    ("APP_ID", ("helpscout", "app_id")),
    ("APP_SECRET", ("helpscout", "app_secret")),
    ("PORT", ("helpscout", "port")),
    ("REDIRECT_URI", ("helpscout", "redirect_uri")),
    ("CALLBACK_HOST", ("helpscout", "callback_host")),
    ("CALLBACK_TIMEOUT_SECONDS", ("helpscout", "callback_timeout_seconds")),
    ("HELPSCOUT_API_BASE_URL", ("helpscout", "api_base_url")),
    ("HELPSCOUT_TOKEN_URL", ("helpscout", "token_url")),
    ("HELPSCOUT_AUTHORIZE_URL", ("helpscout", "authorize_url")),
    ("HELPSCOUT_TIMEOUT_SECONDS", ("helpscout", "timeout_seconds")),
    # Token store
    ("TOKEN_DIR", ("tokens", "base_dir")),
    ("TOKEN_FILENAME", ("tokens", "token_filename")),
    # Output
    ("OUTPUT_DIR", ("output", "dir")),
    ("OUTPUT_TIMEZONE", ("output", "timezone")),
    # Observability
    ("LOG_LEVEL", ("observability", "log_level")),
    ("LOG_FORMAT", ("observability", "log_format")),
    ("LOG_JSON", ("observability", "json_logs")),
    # Transport
    ("TRUST_ENV", ("transport", "trust_env")),
    ("VERIFY_TLS", ("transport", "verify_tls")),
)


def get_flat_env_settings_source() -> dict[str, Any]:
    data: dict[str, Any] = {}
    _apply_alias_mappings(os.environ, data, _CANONICAL_MAPPINGS)
    return data


def env_var_for(field_path: str) -> str | None:
    """Flat env var name that feeds a dotted settings path, e.g. "helpscout.app_id" -> "APP_ID"."""
    wanted = tuple(field_path.split("."))
    for env_name, path in _CANONICAL_MAPPINGS:
        if path == wanted:
            return env_name
    return None
