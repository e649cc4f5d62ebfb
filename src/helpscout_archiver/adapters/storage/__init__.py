from __future__ import annotations

from helpscout_archiver.adapters.storage.fs_storage import (
    ConversationArchive,
    ensure_dir,
    write_atomic_bytes,
    write_atomic_text,
)

__all__ = ["ConversationArchive", "ensure_dir", "write_atomic_bytes", "write_atomic_text"]
