from __future__ import annotations

from pydantic import SecretStr

from helpscout_archiver.auth.token_store import TokenRecord
from helpscout_archiver.config.redact import (
    REDACTED_VALUE,
    redact_settings_dict,
    scrub_secrets_in_text,
)


def test_redact_settings_dict_redacts_explicit_secret_keys() -> None:
    raw = {
        "APP_SECRET": "s1",
        "helpscout": {"app_id": "visible", "app_secret": "s2", "token_url": "https://t"},
        "tokens": {"base_dir": "/home/u/.argus", "token_filename": "tokens.json"},
        "record": {"access_token": "a", "refresh_token": "r", "token_type": "bearer"},
    }

    out = redact_settings_dict(raw)

    assert out["APP_SECRET"] == REDACTED_VALUE
    assert out["helpscout"]["app_secret"] == REDACTED_VALUE
    assert out["helpscout"]["app_id"] == "visible"
    assert out["helpscout"]["token_url"] == "https://t"
    assert out["tokens"] == {"base_dir": "/home/u/.argus", "token_filename": "tokens.json"}
    assert out["record"]["access_token"] == REDACTED_VALUE
    assert out["record"]["refresh_token"] == REDACTED_VALUE
    assert out["record"]["token_type"] == "bearer"

    # Input is not mutated.
    assert raw["APP_SECRET"] == "s1"


def test_redact_settings_dict_redacts_secretstr_values() -> None:
    out = redact_settings_dict({"ok": 1, "whatever": SecretStr("value")})
    assert out["ok"] == 1
    assert out["whatever"] == REDACTED_VALUE


def test_scrub_secrets_in_text_redacts_common_credential_patterns() -> None:
    text = (
        "boom Authorization: Bearer abc123 "
        "client_secret=shh "
        '{"access_token": "at-1", "refresh_token": "rt-1"} '
        "http://localhost:3698/auth?code=authcode&state=s"
    )
    out = scrub_secrets_in_text(text)
    for secret in ("abc123", "shh", "at-1", "rt-1", "authcode"):
        assert secret not in out
    assert REDACTED_VALUE in out
    assert "state=s" in out


def test_redact_settings_dict_dumps_nested_models() -> None:
    record = TokenRecord(access_token="a", refresh_token="r", expires_in=1, expires_at=2)
    out = redact_settings_dict({"record": record})
    assert out["record"]["access_token"] == REDACTED_VALUE
    assert out["record"]["expires_at"] == 2
