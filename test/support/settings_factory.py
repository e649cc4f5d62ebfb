from __future__ import annotations

from copy import deepcopy
from typing import Any

from helpscout_archiver.config.settings import Settings


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def make_settings(
    base_dir: str,
    *,
    port: int = 3698,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    data: dict[str, Any] = {
        "helpscout": {
            "app_id": "test-app-id",
            "app_secret": "test-app-secret",
            "port": port,
            "api_base_url": "https://api.helpscout.example/v2",
            "token_url": "https://api.helpscout.example/v2/oauth2/token",
            "authorize_url": "https://secure.helpscout.example/authentication/authorizeClientApplication",
        },
        "tokens": {"base_dir": f"{base_dir}/tokens"},
        "output": {"dir": f"{base_dir}/conversations"},
    }
    if overrides:
        data = _deep_merge(data, overrides)
    return Settings.from_mapping(data)
