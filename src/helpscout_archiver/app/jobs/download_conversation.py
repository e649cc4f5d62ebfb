from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import structlog

from helpscout_archiver.adapters.helpscout.client import AsyncHelpScoutClient
from helpscout_archiver.adapters.helpscout.errors import HelpScoutError
from helpscout_archiver.adapters.helpscout.models import (
    Attachment,
    Conversation,
    conversation_threads,
    thread_attachments,
)
from helpscout_archiver.adapters.storage import ConversationArchive
from helpscout_archiver.app.jobs.metadata_sidecar import build_metadata_record
from helpscout_archiver.auth.oauth import OAuthManager
from helpscout_archiver.auth.token_store import TokenStore
from helpscout_archiver.config.redact import scrub_secrets_in_text
from helpscout_archiver.config.settings import Settings
from helpscout_archiver.domain.markdown_render import conversation_to_markdown
from helpscout_archiver.domain.path_policy import sanitize_filename
from helpscout_archiver.domain.time_utils import now_utc

log = structlog.get_logger(__name__)

Progress = Callable[[str], None]


@dataclass(frozen=True)
class FailedAttachment:
    thread_id: int
    attachment_id: int
    filename: str
    reason: str


@dataclass
class DownloadResult:
    conversation_id: str
    output_dir: Path
    markdown_path: Path
    metadata_path: Path
    attachment_count: int = 0
    downloaded: dict[tuple[int, int], str] = field(default_factory=dict)
    failed: list[FailedAttachment] = field(default_factory=list)


def attachment_filename(thread_id: int, attachment: Attachment) -> str:
    return f"{thread_id}_{attachment.id}_{sanitize_filename(attachment.filename)}"


def build_client(settings: Settings) -> AsyncHelpScoutClient:
    oauth = OAuthManager(
        settings=settings.helpscout,
        token_store=TokenStore(settings.tokens),
        verify_tls=settings.transport.verify_tls,
        trust_env=settings.transport.trust_env,
    )
    return AsyncHelpScoutClient(
        base_url=str(settings.helpscout.api_base_url),
        oauth=oauth,
        timeout_seconds=settings.helpscout.timeout_seconds,
        verify_tls=settings.transport.verify_tls,
        trust_env=settings.transport.trust_env,
    )


def _notify(progress: Progress | None, message: str) -> None:
    if progress is not None:
        progress(message)


async def download_attachments(
    client: AsyncHelpScoutClient,
    conversation_id: str,
    conversation: Conversation,
    *,
    archive: ConversationArchive,
    progress: Progress | None = None,
) -> tuple[dict[tuple[int, int], str], list[FailedAttachment]]:
    """Download every attachment one at a time, thread order then attachment order.

    A failed attachment is logged and skipped; it never aborts the run.
    """
    paths: dict[tuple[int, int], str] = {}
    failed: list[FailedAttachment] = []

    for thread in conversation_threads(conversation):
        for attachment in thread_attachments(thread):
            unique_name = attachment_filename(thread.id, attachment)
            try:
                data = await client.download_attachment_binary(conversation_id, attachment)
                archive.write_attachment(unique_name, data)
            except (HelpScoutError, OSError, ValueError) as exc:
                reason = scrub_secrets_in_text(str(exc))
                log.warning(
                    "download.attachment_failed",
                    thread_id=thread.id,
                    attachment_id=attachment.id,
                    filename=attachment.filename,
                    reason=reason,
                )
                failed.append(
                    FailedAttachment(
                        thread_id=thread.id,
                        attachment_id=attachment.id,
                        filename=attachment.filename,
                        reason=reason,
                    )
                )
                _notify(progress, f"  ⚠ Failed to download: {attachment.filename} ({reason})")
                continue

            paths[(thread.id, attachment.id)] = archive.relative_attachment_link(unique_name)
            log.info(
                "download.attachment_saved",
                thread_id=thread.id,
                attachment_id=attachment.id,
                filename=attachment.filename,
                bytes=len(data),
            )
            _notify(progress, f"  ✓ Downloaded: {attachment.filename}")

    return paths, failed


async def download_conversation(
    link: str,
    *,
    settings: Settings,
    output_dir: Path | None = None,
    client: AsyncHelpScoutClient | None = None,
    now: Callable[[], datetime] = now_utc,
    progress: Progress | None = None,
) -> DownloadResult:
    """authenticate -> fetch -> download attachments -> render -> write archive."""
    root = Path(output_dir if output_dir is not None else settings.output.dir)
    tz = ZoneInfo(settings.output.timezone)
    owns_client = client is None
    api = client or build_client(settings)

    try:
        await api.authenticate()

        conversation_id = api.extract_conversation_id(link)
        with structlog.contextvars.bound_contextvars(conversation_id=conversation_id):
            log.info("download.fetching_conversation")
            conversation = await api.get_conversation(conversation_id)
            threads = conversation_threads(conversation)
            attachment_count = sum(len(thread_attachments(t)) for t in threads)
            log.info(
                "download.conversation_fetched",
                number=conversation.number,
                threads=len(threads),
                attachments=attachment_count,
            )
            _notify(
                progress,
                f"Found conversation #{conversation.number}: {conversation.subject or ''}",
            )

            archive = ConversationArchive(root, conversation_id)
            archive.prepare()

            attachment_paths: dict[tuple[int, int], str] = {}
            failed: list[FailedAttachment] = []
            if attachment_count > 0:
                _notify(progress, f"Downloading {attachment_count} attachments...")
                attachment_paths, failed = await download_attachments(
                    api,
                    conversation_id,
                    conversation,
                    archive=archive,
                    progress=progress,
                )

            markdown_path = archive.write_transcript(
                conversation_to_markdown(conversation, attachment_paths, tz=tz)
            )
            metadata = build_metadata_record(
                conversation,
                downloaded_at=now(),
                attachment_count=attachment_count,
            )
            metadata_path = archive.write_metadata(
                json.dumps(metadata, indent=2, ensure_ascii=False)
            )

            log.info(
                "download.completed",
                output_dir=str(archive.directory),
                downloaded=len(attachment_paths),
                failed=len(failed),
            )
            return DownloadResult(
                conversation_id=conversation_id,
                output_dir=archive.directory,
                markdown_path=markdown_path,
                metadata_path=metadata_path,
                attachment_count=attachment_count,
                downloaded=attachment_paths,
                failed=failed,
            )
    finally:
        if owns_client:
            await api.aclose()
