"""Render a fetched conversation as a Markdown transcript.

Pure and deterministic: no I/O, no clock. Local attachment paths come in via
an index keyed by (thread id, attachment id).
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, tzinfo
from typing import Literal

from helpscout_archiver.adapters.helpscout.models import (
    Conversation,
    Thread,
    conversation_threads,
    thread_attachments,
)
from helpscout_archiver.domain.formatting import (
    format_date,
    format_duration,
    format_file_size,
    format_person,
    thread_type_icon,
)
from helpscout_archiver.domain.html_markdown import clean_html

AttachmentPathIndex = Mapping[tuple[int, int], str]

ThreadCategory = Literal["note", "customer", "support", "other"]

_SUPPORT_TYPES = frozenset({"reply", "message"})


@dataclass(frozen=True)
class ThreadStatistics:
    total_threads: int
    customer_messages: int
    support_replies: int
    internal_notes: int
    total_attachments: int
    response_time: str | None


def thread_category(thread: Thread) -> ThreadCategory:
    thread_type = (thread.type or "").lower()
    if thread_type == "note":
        return "note"
    if thread_type == "customer":
        return "customer"
    if thread_type in _SUPPORT_TYPES:
        return "support"
    if thread.customer is not None:
        return "customer"
    return "other"


def calculate_thread_statistics(threads: list[Thread]) -> ThreadStatistics:
    customer_times = []
    support_times = []
    counts = {"note": 0, "customer": 0, "support": 0, "other": 0}
    total_attachments = 0

    for thread in threads:
        total_attachments += len(thread_attachments(thread))
        category = thread_category(thread)
        counts[category] += 1
        if thread.created_at is None:
            continue
        if category == "customer":
            customer_times.append(thread.created_at)
        elif category == "support":
            support_times.append(thread.created_at)

    response_time: str | None = None
    if customer_times:
        first_customer = min(customer_times)
        replies_after = [t for t in support_times if t >= first_customer]
        if replies_after:
            delta = min(replies_after) - first_customer
            response_time = format_duration(int(delta.total_seconds() // 60))

    return ThreadStatistics(
        total_threads=len(threads),
        customer_messages=counts["customer"],
        support_replies=counts["support"],
        internal_notes=counts["note"],
        total_attachments=total_attachments,
        response_time=response_time,
    )


def _thread_author(thread: Thread) -> str:
    if thread_category(thread) == "customer":
        author = thread.customer or thread.created_by
    else:
        author = thread.created_by or thread.customer
    return format_person(author)


def format_thread(
    thread: Thread,
    attachment_paths: AttachmentPathIndex,
    *,
    tz: tzinfo = UTC,
) -> list[str]:
    lines: list[str] = []

    lines.append(f"### {thread_type_icon(thread.type)} {thread.type} by {_thread_author(thread)}")
    lines.append(f"*{format_date(thread.created_at, tz)}*")
    lines.append("")

    if thread.action is not None and thread.action.text:
        lines.append(f"**Action**: {thread.action.text}")
        lines.append("")

    if thread.body:
        lines.append(clean_html(thread.body))
        lines.append("")

    attachments = thread_attachments(thread)
    if attachments:
        lines.append("**Attachments:**")
        for attachment in attachments:
            size = format_file_size(attachment.size)
            local_path = attachment_paths.get((thread.id, attachment.id))
            if local_path:
                lines.append(f"- [{attachment.filename}]({local_path}) ({size})")
            else:
                lines.append(f"- {attachment.filename} ({size})")
        lines.append("")

    lines.append("---")
    return lines


def conversation_to_markdown(
    conversation: Conversation,
    attachment_paths: AttachmentPathIndex,
    *,
    tz: tzinfo = UTC,
) -> str:
    threads = conversation_threads(conversation)
    stats = calculate_thread_statistics(threads)
    lines: list[str] = []

    lines.append(f"# Conversation #{conversation.number}: {conversation.subject or ''}".rstrip())
    lines.append("")

    lines.append("## Summary")
    lines.append(f"- Total Threads: {stats.total_threads}")
    lines.append(f"- Customer Messages: {stats.customer_messages}")
    lines.append(f"- Support Replies: {stats.support_replies}")
    lines.append(f"- Internal Notes: {stats.internal_notes}")
    if stats.total_attachments > 0:
        lines.append(f"- Attachments: {stats.total_attachments}")
    if stats.response_time:
        lines.append(f"- First Response Time: {stats.response_time}")
    lines.append("")

    lines.append("## Metadata")
    lines.append(f"- ID: {conversation.id}")
    lines.append(f"- Status: {conversation.status or 'unknown'}")
    lines.append(f"- Created: {format_date(conversation.created_at, tz)}")
    lines.append(f"- Modified: {format_date(conversation.modified_at, tz)}")
    if conversation.closed_at is not None:
        lines.append(f"- Closed: {format_date(conversation.closed_at, tz)}")
    if conversation.mailbox is not None and conversation.mailbox.name:
        lines.append(f"- Mailbox: {conversation.mailbox.name}")
    if conversation.created_by is not None:
        lines.append(f"- Created By: {format_person(conversation.created_by)}")
    if conversation.primary_customer is not None:
        lines.append(f"- Customer: {format_person(conversation.primary_customer)}")
    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append("## Conversation Thread")
    lines.append("")

    for thread in threads:
        lines.extend(format_thread(thread, attachment_paths, tz=tz))
        lines.append("")

    return "\n".join(lines)
