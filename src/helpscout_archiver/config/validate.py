from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from helpscout_archiver.config.settings import Settings


@dataclass(frozen=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    def __init__(self, issues: Iterable[ConfigValidationIssue]):
        self.issues = list(issues)
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = ["Configuration is invalid:"]
        for issue in self.issues:
            lines.append(f"- {issue.path}: {issue.message}")
        return "\n".join(lines)


def issues_from_pydantic_error(error: ValidationError) -> list[ConfigValidationIssue]:
    issues: list[ConfigValidationIssue] = []
    for item in error.errors(include_url=False):
        loc = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
        msg = item.get("msg", "Invalid value")
        issues.append(ConfigValidationIssue(path=loc, message=msg))
    return issues


def _is_loopback_host(host: str) -> bool:
    normalized = host.strip().lower().rstrip(".")
    if normalized in {"localhost", "localhost.localdomain"}:
        return True

    try:
        ip = ipaddress.ip_address(normalized)
    except ValueError:
        return False

    return ip.is_loopback


def _validate_redirect_uri(settings: Settings, issues: list[ConfigValidationIssue]) -> None:
    redirect = settings.helpscout.redirect_uri
    if redirect is None:
        return

    parts = urlsplit(str(redirect))
    if not parts.hostname or not _is_loopback_host(parts.hostname):
        # Non-local redirects are forwarded by something we do not control.
        return

    redirect_port = parts.port or (443 if parts.scheme == "https" else 80)
    if redirect_port != settings.helpscout.port:
        issues.append(
            ConfigValidationIssue(
                path="helpscout.redirect_uri",
                message=(
                    f"Redirect URI port {redirect_port} does not match the callback "
                    f"listener port {settings.helpscout.port}. Set `PORT` and "
                    "`REDIRECT_URI` consistently."
                ),
            )
        )


def validate_settings(settings: Settings) -> None:
    issues: list[ConfigValidationIssue] = []

    log_level = settings.observability.log_level.upper()
    allowed_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    if log_level not in allowed_levels:
        issues.append(
            ConfigValidationIssue(
                path="observability.log_level",
                message=(
                    f"Unsupported log level {settings.observability.log_level!r} "
                    f"(allowed: {sorted(allowed_levels)})"
                ),
            )
        )

    try:
        ZoneInfo(settings.output.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        issues.append(
            ConfigValidationIssue(
                path="output.timezone",
                message=f"Unknown timezone {settings.output.timezone!r}",
            )
        )

    _validate_redirect_uri(settings, issues)

    if issues:
        raise ConfigValidationError(issues)
