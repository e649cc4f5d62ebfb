"""CLI commands for helpscout-archiver.

This module provides command-line utilities for:
- Interactive credential setup
- Downloading a conversation into a local Markdown archive
- Managing the cached OAuth token
- Validating / dumping configuration (with secrets redacted)
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import UTC, datetime
from pathlib import Path

import structlog

from helpscout_archiver._version import __version__
from helpscout_archiver.app.jobs.download_conversation import build_client, download_conversation
from helpscout_archiver.auth.token_store import TokenStore
from helpscout_archiver.config.load import load_settings
from helpscout_archiver.config.redact import redact_settings_dict, scrub_secrets_in_text
from helpscout_archiver.config.settings import Settings
from helpscout_archiver.config.setup_env import SetupCancelled, run_setup
from helpscout_archiver.config.validate import ConfigValidationError
from helpscout_archiver.domain.time_utils import format_timestamp_utc
from helpscout_archiver.observability.logger import configure_logging

log = structlog.get_logger(__name__)


def _configure_logging(settings: Settings) -> None:
    configure_logging(
        log_level=settings.observability.log_level,
        log_format=settings.observability.log_format,
        json_logs=settings.observability.json_logs,
    )


def _fail(message: str, exc: BaseException) -> int:
    print(f"✗ {message}: {scrub_secrets_in_text(str(exc))}", file=sys.stderr)
    return 1


def cmd_setup(args: argparse.Namespace) -> int:
    """Interactively capture credentials and write them to a .env file."""
    try:
        run_setup(env_path=Path(args.env_file))
        return 0
    except (SetupCancelled, EOFError, KeyboardInterrupt) as e:
        print(f"\nSetup cancelled. {e}".rstrip(), file=sys.stderr)
        return 1
    except OSError as e:
        return _fail("Setup failed", e)


def cmd_download(args: argparse.Namespace) -> int:
    """Download one conversation with its attachments."""
    try:
        settings = load_settings()
    except ConfigValidationError as e:
        print(f"✗ {e}", file=sys.stderr)
        print("  Run `helpscout-archiver setup` to create a .env file.", file=sys.stderr)
        return 1

    _configure_logging(settings)
    output_dir = Path(args.output).expanduser() if args.output else settings.output.dir

    try:
        result = asyncio.run(
            download_conversation(
                args.link,
                settings=settings,
                output_dir=output_dir,
                progress=print,
            )
        )
    except Exception as e:
        log.error("download.failed", error=scrub_secrets_in_text(str(e)))
        return _fail("Error downloading conversation", e)

    print()
    print("✓ Conversation downloaded successfully!")
    print(f"  - Output directory: {result.output_dir}")
    print(f"  - Markdown file: {result.markdown_path}")
    if result.attachment_count > 0:
        print(
            f"  - Attachments: {len(result.downloaded)}/{result.attachment_count} downloaded"
        )
    for failure in result.failed:
        print(f"  ⚠ Not downloaded: {failure.filename} ({failure.reason})")
    return 0


def cmd_conversations(args: argparse.Namespace) -> int:
    print("Conversations management commands:")
    print("  helpscout-archiver conversations download <link> [-o DIR]")
    return 0


async def _login(settings: Settings) -> None:
    async with build_client(settings) as client:
        await client.authenticate()


def cmd_auth_login(args: argparse.Namespace) -> int:
    """Run the OAuth flow now (or confirm the cached token is still usable)."""
    try:
        settings = load_settings()
        _configure_logging(settings)
        asyncio.run(_login(settings))
        print("✓ Authenticated")
        return 0
    except Exception as e:
        return _fail("Authentication failed", e)


def cmd_auth_status(args: argparse.Namespace) -> int:
    """Show whether a token is cached and when it expires (never the token itself)."""
    try:
        settings = load_settings()
    except Exception as e:
        return _fail("Failed to load configuration", e)

    store = TokenStore(settings.tokens)
    record = store.load()
    if record is None:
        print(f"Not authenticated (no token at {store.path})")
        return 1

    expires = datetime.fromtimestamp(record.expires_at / 1000, UTC)
    expired = expires <= datetime.now(UTC)
    print(f"Token file: {store.path}")
    suffix = " (expired, will refresh)" if expired else ""
    print(f"Expires at: {format_timestamp_utc(expires)}{suffix}")
    return 0


def cmd_auth_logout(args: argparse.Namespace) -> int:
    """Delete the cached token."""
    try:
        settings = load_settings()
    except Exception as e:
        return _fail("Failed to load configuration", e)

    store = TokenStore(settings.tokens)
    if store.clear():
        print(f"✓ Removed {store.path}")
    else:
        print(f"No token stored at {store.path}")
    return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
    """Validate configuration and exit with appropriate code.

    Exit codes:
        0: Configuration is valid
        1: Configuration is invalid
        2: Configuration file not found (when CONFIG_PATH is set)
    """
    try:
        settings = load_settings()
        print("✓ Configuration is valid")
        print(f"  - Redirect URI: {settings.helpscout.effective_redirect_uri}")
        print(f"  - Callback port: {settings.helpscout.port}")
        print(f"  - Token file: {settings.tokens.token_path}")
        print(f"  - Output directory: {settings.output.dir}")
        return 0
    except ConfigValidationError as e:
        if any(issue.path == "CONFIG_PATH" for issue in e.issues):
            print(f"✗ Configuration file not found: {e}", file=sys.stderr)
            return 2
        print(f"✗ Configuration is invalid: {e}", file=sys.stderr)
        return 1


def cmd_dump_config(args: argparse.Namespace) -> int:
    """Dump current configuration as JSON (with secrets redacted)."""
    try:
        settings = load_settings()
        data = settings.model_dump(mode="json")
        redacted = redact_settings_dict(data)
        print(json.dumps(redacted, indent=2, default=str))
        return 0
    except Exception as e:
        return _fail("Failed to load configuration", e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helpscout-archiver",
        description="Download Help Scout conversations into a local Markdown archive",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # setup
    setup_parser = subparsers.add_parser(
        "setup",
        help="Interactive setup for Help Scout credentials",
    )
    setup_parser.add_argument(
        "--env-file",
        default=".env",
        help="Where to write the configuration (default: .env)",
    )
    setup_parser.set_defaults(func=cmd_setup)

    # conversations
    conversations_parser = subparsers.add_parser(
        "conversations",
        help="Manage Help Scout conversations",
    )
    conversations_parser.set_defaults(func=cmd_conversations)
    conversations_sub = conversations_parser.add_subparsers(dest="conversations_command")
    download_parser = conversations_sub.add_parser(
        "download",
        help="Download a conversation and its attachments",
    )
    download_parser.add_argument("link", help="Conversation URL or numeric ID")
    download_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output directory (default: OUTPUT_DIR or ./conversations)",
    )
    download_parser.set_defaults(func=cmd_download)

    # auth
    auth_parser = subparsers.add_parser("auth", help="Manage the cached OAuth token")
    auth_sub = auth_parser.add_subparsers(dest="auth_command", required=True)
    auth_sub.add_parser("login", help="Authenticate now").set_defaults(func=cmd_auth_login)
    auth_sub.add_parser("status", help="Show cached token state").set_defaults(
        func=cmd_auth_status
    )
    auth_sub.add_parser("logout", help="Delete the cached token").set_defaults(
        func=cmd_auth_logout
    )

    # validate-config
    validate_parser = subparsers.add_parser(
        "validate-config",
        help="Validate configuration and exit",
    )
    validate_parser.set_defaults(func=cmd_validate_config)

    # dump-config
    dump_parser = subparsers.add_parser(
        "dump-config",
        help="Dump configuration as JSON (secrets redacted)",
    )
    dump_parser.set_defaults(func=cmd_dump_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
