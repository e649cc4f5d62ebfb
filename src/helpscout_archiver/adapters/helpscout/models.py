from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class _HelpScoutModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Person(_HelpScoutModel):
    id: int | None = None
    email: str | None = None
    # Mailbox API v2 uses first/last; older payloads use firstName/lastName.
    first_name: str | None = Field(
        default=None, validation_alias=AliasChoices("firstName", "first", "first_name")
    )
    last_name: str | None = Field(
        default=None, validation_alias=AliasChoices("lastName", "last", "last_name")
    )
    type: str | None = None


class Mailbox(_HelpScoutModel):
    id: int | None = None
    name: str | None = None


class ThreadAction(_HelpScoutModel):
    type: str | None = None
    text: str | None = None


class ThreadSource(_HelpScoutModel):
    type: str | None = None
    via: str | None = None


class Link(_HelpScoutModel):
    href: str | None = None


class AttachmentLinks(_HelpScoutModel):
    data: Link | None = None
    web: Link | None = None


class Attachment(_HelpScoutModel):
    id: int
    filename: str = ""
    mime_type: str | None = Field(default=None, alias="mimeType")
    size: int = 0
    state: str | None = None
    width: int | None = None
    height: int | None = None
    links: AttachmentLinks | None = Field(default=None, alias="_links")

    @property
    def download_link(self) -> str | None:
        """Direct-data hyperlink, present only when the API embedded one."""
        if self.links is None or self.links.data is None:
            return None
        return self.links.data.href or None


class EmbeddedAttachments(_HelpScoutModel):
    attachments: list[Attachment] | None = None


class Thread(_HelpScoutModel):
    id: int
    type: str = "other"
    status: str | None = None
    state: str | None = None
    action: ThreadAction | None = None
    body: str | None = None
    source: ThreadSource | None = None
    customer: Person | None = None
    created_by: Person | None = Field(default=None, alias="createdBy")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    attachments: list[Attachment] | None = None
    embedded: EmbeddedAttachments | None = Field(default=None, alias="_embedded")


class EmbeddedThreads(_HelpScoutModel):
    threads: list[Thread] | None = None


class Conversation(_HelpScoutModel):
    id: int
    number: int | None = None
    subject: str | None = None
    status: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    modified_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("modifiedAt", "userUpdatedAt", "modified_at")
    )
    closed_at: datetime | None = Field(default=None, alias="closedAt")
    mailbox: Mailbox | None = None
    created_by: Person | None = Field(default=None, alias="createdBy")
    primary_customer: Person | None = Field(default=None, alias="primaryCustomer")
    threads: list[Thread] | None = None
    embedded: EmbeddedThreads | None = Field(default=None, alias="_embedded")

    @field_validator("threads", mode="before")
    @classmethod
    def _threads_list_only(cls, value: Any) -> Any:
        # The conversation endpoint reports a thread count here; the threads
        # themselves live under _embedded.
        return value if isinstance(value, list) else None


class AttachmentData(_HelpScoutModel):
    """Payload of the attachment data endpoint (base64 encoded content)."""

    data: str
    filename: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")

    def content(self) -> bytes:
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("attachment data is not valid base64") from exc


def conversation_threads(conversation: Conversation) -> list[Thread]:
    """Threads from the direct field when present, else the embedded wrapper, else none."""
    if conversation.threads is not None:
        return conversation.threads
    if conversation.embedded is not None and conversation.embedded.threads is not None:
        return conversation.embedded.threads
    return []


def thread_attachments(thread: Thread) -> list[Attachment]:
    """Attachments from the direct field when present, else the embedded wrapper, else none."""
    if thread.attachments is not None:
        return thread.attachments
    if thread.embedded is not None and thread.embedded.attachments is not None:
        return thread.embedded.attachments
    return []
