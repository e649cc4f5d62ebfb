from __future__ import annotations

import re
from pathlib import Path

_UNSAFE_FILENAME_CHARS_RE = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE_RE = re.compile(r"\s+")
_MULTI_UNDERSCORE_RE = re.compile(r"_{2,}")
_EDGE_UNDERSCORE_RE = re.compile(r"^_+|_+$")

FALLBACK_FILENAME = "attachment"


def sanitize_filename(filename: str) -> str:
    """
    Make an attachment filename safe to use as a single path segment.

    - `<>:"/\\|?*` and runs of whitespace become "_".
    - Repeated "_" collapse to one; leading/trailing "_" are trimmed.
    - A name that sanitizes to nothing becomes "attachment".
    """
    if not isinstance(filename, str):
        raise TypeError("filename must be str")

    out = _UNSAFE_FILENAME_CHARS_RE.sub("_", filename)
    out = _WHITESPACE_RE.sub("_", out)
    out = out.replace("\x00", "_")
    out = _MULTI_UNDERSCORE_RE.sub("_", out)
    out = _EDGE_UNDERSCORE_RE.sub("", out)
    if not out or out in {".", ".."}:
        return FALLBACK_FILENAME
    return out


def ensure_within_root(root: Path, target: Path) -> None:
    root_resolved = root.resolve(strict=False)
    target_resolved = target.resolve(strict=False)

    if not target_resolved.is_relative_to(root_resolved):
        raise ValueError("target path escapes root")
