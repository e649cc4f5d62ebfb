"""Settings loading: `.env` file, optional YAML file, process environment.

Precedence (highest first): process environment (flat names like `APP_ID` or
nested `HELPSCOUT__APP_ID`), `.env` values, YAML file, defaults. `.env` never
overrides variables that are already set in the environment.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from helpscout_archiver.config.env_aliases import env_var_for
from helpscout_archiver.config.settings import Settings
from helpscout_archiver.config.validate import (
    ConfigValidationError,
    ConfigValidationIssue,
    issues_from_pydantic_error,
    validate_settings,
)

DEFAULT_ENV_FILE = Path(".env")
DEFAULT_CONFIG_FILE = Path("config/config.yaml")

# Reported field by field when their whole section is absent.
_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "helpscout": ("app_id", "app_secret"),
}
_CREDENTIAL_PATHS = frozenset({"helpscout.app_id", "helpscout.app_secret"})


def _read_env_file(env_file: Path) -> bool:
    if not env_file.is_file():
        return False
    load_dotenv(dotenv_path=env_file, override=False, interpolate=False)
    return True


def _config_file(config_path: str | Path | None) -> tuple[Path | None, bool]:
    """(path, explicit): a path the user asked for must exist; the default may not."""
    if config_path is not None:
        return Path(config_path), True
    if (from_env := os.environ.get("CONFIG_PATH")):
        return Path(from_env), True
    return (DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None), False


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigValidationError(
            [ConfigValidationIssue(path=str(path), message=f"Unable to read config file: {exc}")]
        ) from exc
    except yaml.YAMLError as exc:
        raise ConfigValidationError(
            [ConfigValidationIssue(path=str(path), message=f"Invalid YAML: {exc}")]
        ) from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            [ConfigValidationIssue(path=str(path), message="YAML root must be a mapping/object")]
        )
    return raw


def _hint(path: str, *, env_file_found: bool) -> str | None:
    env_name = env_var_for(path)
    if env_name is None:
        return None
    hint = f"Set `{env_name}` (or YAML `{path}`)."
    if path in _CREDENTIAL_PATHS and not env_file_found:
        hint += " No .env file found; run `helpscout-archiver setup`."
    return hint


def _explain(error: ValidationError, *, env_file_found: bool) -> list[ConfigValidationIssue]:
    issues: list[ConfigValidationIssue] = []
    for issue in issues_from_pydantic_error(error):
        required = _REQUIRED_FIELDS.get(issue.path)
        if required and "Field required" in issue.message:
            issues.extend(
                ConfigValidationIssue(f"{issue.path}.{name}", issue.message) for name in required
            )
        else:
            issues.append(issue)

    explained: list[ConfigValidationIssue] = []
    for issue in issues:
        hint = _hint(issue.path, env_file_found=env_file_found)
        message = f"{issue.message} {hint}" if hint else issue.message
        explained.append(ConfigValidationIssue(issue.path, message))
    return explained


def load_settings(
    *,
    config_path: str | Path | None = None,
    env_file: Path = DEFAULT_ENV_FILE,
) -> Settings:
    env_file_found = _read_env_file(Path(env_file))

    path, explicit = _config_file(config_path)
    yaml_data: dict[str, Any] = {}
    if path is not None:
        if path.exists():
            yaml_data = _read_yaml(path)
        elif explicit:
            raise ConfigValidationError(
                [ConfigValidationIssue(path="CONFIG_PATH", message=f"Config file not found: {path}")]
            )

    try:
        settings = Settings(**yaml_data)
    except ValidationError as exc:
        raise ConfigValidationError(_explain(exc, env_file_found=env_file_found)) from exc

    validate_settings(settings)
    return settings
