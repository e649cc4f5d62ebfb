"""Interactive capture of Help Scout app credentials into a `.env` file."""
from __future__ import annotations

import getpass
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from helpscout_archiver.adapters.storage.fs_storage import write_atomic_text
from helpscout_archiver.config.settings import DEFAULT_CALLBACK_PATH, HelpScoutSettings
from helpscout_archiver.config.validate import issues_from_pydantic_error

DEFAULT_PORT = "3698"
APPS_URL = "https://secure.helpscout.net/users/apps"


class SetupCancelled(Exception):
    """The user declined or aborted the interactive setup."""


def validate_port(value: str) -> str | None:
    """Return an error message for an unusable port, else None."""
    text = value.strip()
    if not text.isdigit():
        return "Port must be a number"
    port = int(text)
    if port < 1024 or port > 65535:
        return "Port must be between 1024 and 65535"
    return None


def _ask(prompt: Callable[[str], str], message: str, *, default: str | None = None) -> str:
    suffix = f" [{default}]" if default else ""
    answer = prompt(f"{message}{suffix}: ").strip()
    return answer or (default or "")


def _ask_until_valid(
    prompt: Callable[[str], str],
    message: str,
    validate: Callable[[str], str | None],
    out: Callable[[str], None],
    *,
    default: str | None = None,
    attempts: int = 3,
) -> str:
    for _ in range(attempts):
        value = _ask(prompt, message, default=default)
        error = validate(value)
        if error is None:
            return value
        out(f"✗ {error}")
    raise SetupCancelled(f"No valid answer for: {message}")


def _required(label: str) -> Callable[[str], str | None]:
    def check(value: str) -> str | None:
        return None if value.strip() else f"{label} is required"

    return check


def _quote(value: str) -> str:
    # python-dotenv reads single-quoted values literally apart from escaped
    # backslashes and quotes, so " #" and edge whitespace survive.
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def render_env_file(*, app_id: str, app_secret: str, port: str, redirect_uri: str) -> str:
    return (
        "# Help Scout API Configuration\n"
        f"APP_ID={_quote(app_id)}\n"
        f"APP_SECRET={_quote(app_secret)}\n"
        f"PORT={_quote(port)}\n"
        f"REDIRECT_URI={_quote(redirect_uri)}\n"
    )


def run_setup(
    *,
    env_path: Path = Path(".env"),
    prompt: Callable[[str], str] = input,
    prompt_secret: Callable[[str], str] = getpass.getpass,
    out: Callable[[str], None] = print,
) -> Path | None:
    """Ask for port and credentials, validate them, and write `env_path`.

    Returns the written path, or None when the user chose not to save.
    """
    out("Help Scout Archiver Setup")
    out("")

    port = _ask_until_valid(
        prompt, "OAuth callback server port", validate_port, out, default=DEFAULT_PORT
    ).strip()
    redirect_uri = f"http://localhost:{port}{DEFAULT_CALLBACK_PATH}"

    out("")
    out("Configure your Help Scout app with this Redirect URL:")
    out(f"   {redirect_uri}")
    out("")
    out("Steps to get your API credentials:")
    out(f"1. Go to: {APPS_URL}")
    out('2. Click "Create App" or edit an existing app')
    out(f"3. Set the Redirect URL to: {redirect_uri}")
    out("4. Save and copy your App ID and App Secret")
    out("")

    app_id = _ask_until_valid(prompt, "Help Scout App ID", _required("App ID"), out).strip()
    app_secret = _ask_until_valid(
        prompt_secret, "Help Scout App Secret", _required("App Secret"), out
    ).strip()

    try:
        HelpScoutSettings(
            app_id=app_id,
            app_secret=app_secret,
            port=int(port),
            redirect_uri=redirect_uri,
        )
    except ValidationError as exc:
        lines = [f"  - {issue.path}: {issue.message}" for issue in issues_from_pydantic_error(exc)]
        raise SetupCancelled("Invalid configuration:\n" + "\n".join(lines)) from exc

    save = _ask(prompt, f"Save configuration to {env_path}? (y/n)", default="y")
    if save.strip().lower() not in {"y", "yes"}:
        out("Configuration not saved.")
        return None

    target = Path(env_path)
    write_atomic_text(
        target,
        render_env_file(
            app_id=app_id, app_secret=app_secret, port=port, redirect_uri=redirect_uri
        ),
        storage_root=target.parent,
        mode=0o600,
    )
    out(f"✓ Configuration saved to {target}")
    out(f"Remember: your Help Scout app must use the Redirect URL {redirect_uri}")
    return target
