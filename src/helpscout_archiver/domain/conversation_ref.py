from __future__ import annotations

import re

from helpscout_archiver.adapters.helpscout.errors import UnrecognizedConversationReferenceError

# Tried in order; the first match wins.
_CONVERSATION_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"conversation/(\d+)"),
    re.compile(r"conversations/(\d+)"),
    re.compile(r"^(\d+)$"),
)


def extract_conversation_id(link: str) -> str:
    """
    Extract a conversation id from a bare numeric id or a conversation URL.

    Accepts e.g. "123456789" or "https://secure.helpscout.net/conversation/123456789/1/".
    """
    if not isinstance(link, str):
        raise UnrecognizedConversationReferenceError(repr(link))

    text = link.strip()
    for pattern in _CONVERSATION_ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)

    raise UnrecognizedConversationReferenceError(link)
