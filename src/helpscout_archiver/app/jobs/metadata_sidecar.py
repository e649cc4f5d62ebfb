from __future__ import annotations

from datetime import datetime
from typing import Any

from helpscout_archiver.adapters.helpscout.models import Conversation
from helpscout_archiver.domain.time_utils import format_timestamp_utc


def _timestamp(value: datetime | None) -> str | None:
    return format_timestamp_utc(value) if value is not None else None


def build_metadata_record(
    conversation: Conversation,
    *,
    downloaded_at: datetime,
    attachment_count: int,
) -> dict[str, Any]:
    """`metadata.json` payload written next to the transcript.

    `attachmentCount` is the number of attachments on the conversation, not the
    number that downloaded successfully.
    """
    out: dict[str, Any] = {
        "id": conversation.id,
        "number": conversation.number,
        "subject": conversation.subject,
        "status": conversation.status,
        "createdAt": _timestamp(conversation.created_at),
        "modifiedAt": _timestamp(conversation.modified_at),
    }
    if conversation.closed_at is not None:
        out["closedAt"] = _timestamp(conversation.closed_at)
    if conversation.mailbox is not None:
        out["mailbox"] = conversation.mailbox.model_dump(mode="json")
    out["downloadedAt"] = format_timestamp_utc(downloaded_at)
    out["attachmentCount"] = int(attachment_count)
    return out
