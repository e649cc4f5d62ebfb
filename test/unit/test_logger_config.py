from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from helpscout_archiver.observability.logger import configure_logging


def test_configure_logging_quiets_http_and_uvicorn_loggers() -> None:
    configure_logging(log_level="DEBUG", json_logs=False)
    assert logging.getLogger("httpx").getEffectiveLevel() >= logging.WARNING
    assert logging.getLogger("uvicorn.error").getEffectiveLevel() >= logging.WARNING


def test_log_level_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")
    configure_logging(log_level="DEBUG")
    assert logging.getLogger().level == logging.WARNING


def test_json_logging_redacts_token_fields(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    stream = io.StringIO()
    configure_logging(log_level="INFO", json_logs=True, stream=stream)

    structlog.get_logger("test.logger").info(
        "token.saved", access_token="at-secret", refresh_token="rt-secret", path="/tmp/t"
    )

    payload = json.loads(stream.getvalue())
    assert payload["event"] == "token.saved"
    assert payload["access_token"] == "[redacted]"
    assert payload["refresh_token"] == "[redacted]"
    assert payload["path"] == "/tmp/t"


def test_human_logging_redacts_secrets_in_exception_traceback() -> None:
    stream = io.StringIO()
    configure_logging(log_level="INFO", log_format="human", stream=stream)

    logger = structlog.get_logger("test.logger")
    try:
        raise RuntimeError("Authorization: Bearer topsecret client_secret=abc123")
    except RuntimeError:
        logger.exception("expected_exception")

    output = stream.getvalue()
    assert "expected_exception" in output
    assert "topsecret" not in output
    assert "abc123" not in output
