"""Line-oriented HTML fragment to Markdown conversion for thread bodies.

This is an ordered list of literal tag substitutions, not an HTML parser.
Nested or malformed markup may come out imperfect; the rule order below is
the behavior callers rely on.
"""
from __future__ import annotations

import re
from typing import Final

_I = re.IGNORECASE

_TAG_RULES: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (re.compile(r"<br\s*/?>", _I), "\n"),
    (re.compile(r"</p>", _I), "\n\n"),
    (re.compile(r"<p>", _I), ""),
    (re.compile(r"</?div>", _I), "\n"),
    (re.compile(r"<blockquote>", _I), "> "),
    (re.compile(r"</blockquote>", _I), "\n"),
    (re.compile(r"</?strong>", _I), "**"),
    (re.compile(r"</?b>", _I), "**"),
    (re.compile(r"</?em>", _I), "*"),
    (re.compile(r"</?i>", _I), "*"),
    (re.compile(r"</?code>", _I), "`"),
    (re.compile(r"<pre>", _I), "```\n"),
    (re.compile(r"</pre>", _I), "\n```"),
    (re.compile(r'<a\s+href="([^"]+)"[^>]*>(.*?)</a>', _I | re.DOTALL), r"[\2](\1)"),
    (re.compile(r"</?ul>", _I), "\n"),
    (re.compile(r"</?ol>", _I), "\n"),
    (re.compile(r"<li>", _I), "- "),
    (re.compile(r"</li>", _I), "\n"),
)

_REMAINING_TAG_RE: Final = re.compile(r"<[^>]+>")

# Order matters: "&amp;" goes after "&lt;"/"&gt;" so "&amp;lt;" decodes to "&lt;".
_ENTITIES: Final[tuple[tuple[str, str], ...]] = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)

_EXCESS_BLANK_LINES_RE: Final = re.compile(r"\n{3,}")


def clean_html(html: str) -> str:
    if not isinstance(html, str) or not html:
        return ""

    text = html
    for pattern, replacement in _TAG_RULES:
        text = pattern.sub(replacement, text)

    text = _REMAINING_TAG_RE.sub("", text)

    for entity, char in _ENTITIES:
        text = text.replace(entity, char)

    text = _EXCESS_BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()
