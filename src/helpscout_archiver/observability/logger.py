from __future__ import annotations

import logging
import os
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

from helpscout_archiver.config.redact import redact_settings_dict

_FORMATS = frozenset({"json", "human"})

# Third-party loggers that only matter when something goes wrong.
_QUIET_LOGGERS: tuple[str, ...] = (
    "httpx",
    "httpcore",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
)


def _redact_event(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # Token payloads, the app secret and bearer headers must never reach a log line.
    return redact_settings_dict(event_dict)


def _pick_format(log_format: str | None, json_logs: bool) -> str:
    for candidate in (log_format, os.environ.get("LOG_FORMAT")):
        normalized = (candidate or "").strip().lower()
        if normalized in _FORMATS:
            return normalized
    return "json" if json_logs else "human"


def _pick_level(log_level: str) -> str:
    return ((os.environ.get("LOG_LEVEL") or "").strip() or log_level).upper()


def configure_logging(
    *,
    log_level: str = "INFO",
    json_logs: bool = False,
    log_format: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    Route structlog and stdlib logging through one redacting handler.

    Logs go to stderr so stdout stays free for the CLI's progress output.
    An explicit `log_format` wins over LOG_FORMAT, which wins over `json_logs`.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_event,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: Any
    if _pick_format(log_format, json_logs) == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(
        ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors)
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(_pick_level(log_level))

    for name in _QUIET_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers = []
        logger.propagate = True
        logger.setLevel(logging.WARNING)

    structlog.configure(
        processors=[*shared_processors, ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
