from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic.networks import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

from helpscout_archiver.config.env_aliases import get_flat_env_settings_source

DEFAULT_API_BASE_URL = "https://api.helpscout.net/v2/"
DEFAULT_TOKEN_URL = "https://api.helpscout.net/v2/oauth2/token"
DEFAULT_AUTHORIZE_URL = (
    "https://secure.helpscout.net/authentication/authorizeClientApplication"
)
DEFAULT_CALLBACK_PATH = "/auth"


class _BaseSection(BaseModel):
    model_config = {"extra": "forbid"}


class HelpScoutSettings(_BaseSection):
    app_id: str = Field(min_length=1)
    app_secret: SecretStr
    port: int = Field(default=3698, ge=1024, le=65535)
    redirect_uri: AnyHttpUrl | None = None
    callback_host: str = "127.0.0.1"
    # None = wait for the browser callback indefinitely.
    callback_timeout_seconds: float | None = Field(default=None, gt=0)
    api_base_url: AnyHttpUrl = Field(default=DEFAULT_API_BASE_URL, validate_default=True)
    token_url: AnyHttpUrl = Field(default=DEFAULT_TOKEN_URL, validate_default=True)
    authorize_url: AnyHttpUrl = Field(default=DEFAULT_AUTHORIZE_URL, validate_default=True)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("app_secret")
    @classmethod
    def _secret_not_blank(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("app_secret must not be empty")
        return value

    @property
    def effective_redirect_uri(self) -> str:
        if self.redirect_uri is not None:
            return str(self.redirect_uri)
        return f"http://localhost:{self.port}{DEFAULT_CALLBACK_PATH}"


class TokenStoreSettings(_BaseSection):
    base_dir: Path = Path("~/.argus")
    token_filename: str = "tokens.json"

    @field_validator("base_dir")
    @classmethod
    def _expand_base_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("token_filename")
    @classmethod
    def _plain_filename(cls, value: str) -> str:
        name = value.strip()
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            raise ValueError("tokens.token_filename must be a plain file name")
        return name

    @property
    def token_path(self) -> Path:
        return self.base_dir / self.token_filename


class OutputSettings(_BaseSection):
    dir: Path = Path("./conversations")
    timezone: str = "UTC"

    @field_validator("dir")
    @classmethod
    def _expand_dir(cls, value: Path) -> Path:
        return value.expanduser()


class ObservabilitySettings(_BaseSection):
    log_level: str = "INFO"
    log_format: str | None = None  # json|human (overrides LOG_FORMAT/env when set)
    json_logs: bool = False

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized in {"json", "human"}:
            return normalized
        raise ValueError("observability.log_format must be 'json' or 'human'")


class TransportSettings(_BaseSection):
    # If true, allow httpx to read HTTP_PROXY/HTTPS_PROXY/NO_PROXY and other env settings.
    trust_env: bool = False
    verify_tls: bool = True


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        extra="forbid",
    )

    helpscout: HelpScoutSettings
    tokens: TokenStoreSettings = Field(default_factory=TokenStoreSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Settings:
        """
        Construct Settings from a mapping without reading environment variables.

        Useful in tests where we want to pass nested dicts and keep mypy happy.
        """
        class _InitOnlySettings(Settings):
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls,
                init_settings,
                env_settings,
                dotenv_settings,
                file_secret_settings,
            ):
                return (init_settings,)

        return _InitOnlySettings(**dict(data))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            env_settings,
            get_flat_env_settings_source,
            init_settings,
            file_secret_settings,
        )
