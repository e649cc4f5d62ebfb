from __future__ import annotations

from pathlib import Path

import pytest

from helpscout_archiver.adapters.storage import (
    ConversationArchive,
    write_atomic_bytes,
    write_atomic_text,
)


def _tmp_files(dir_path: Path) -> list[Path]:
    return [p for p in dir_path.iterdir() if p.is_file() and p.name.startswith(".tmp-")]


def test_write_atomic_bytes_creates_dirs_and_writes_contents(tmp_path: Path) -> None:
    target = tmp_path / "123" / "attachments" / "1_9_a.bin"
    data = b"\x00hello\xff"

    write_atomic_bytes(target, data, storage_root=tmp_path)

    assert target.read_bytes() == data
    assert _tmp_files(target.parent) == []


def test_write_atomic_text_overwrites_existing_file(tmp_path: Path) -> None:
    target = tmp_path / "conversation_1.md"
    target.write_text("old", encoding="utf-8")

    write_atomic_text(target, "# new ✓", storage_root=tmp_path)

    assert target.read_text(encoding="utf-8") == "# new ✓"
    assert _tmp_files(tmp_path) == []


def test_write_atomic_bytes_cleans_up_temp_on_exception(tmp_path: Path) -> None:
    target_dir = tmp_path / "target-dir"
    target_dir.mkdir()

    with pytest.raises(OSError):
        write_atomic_bytes(target_dir, b"data", storage_root=tmp_path)

    assert _tmp_files(tmp_path) == []


def test_writes_reject_paths_outside_root(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()

    with pytest.raises(ValueError, match="escapes root"):
        write_atomic_bytes(tmp_path / "outside" / "x.bin", b"x", storage_root=root)


def test_writes_reject_symlink_traversal_under_root(tmp_path: Path) -> None:
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)

    with pytest.raises(ValueError):
        write_atomic_bytes(root / "link" / "x.bin", b"x", storage_root=root)
    assert list(outside.iterdir()) == []


def test_conversation_archive_layout(tmp_path: Path) -> None:
    archive = ConversationArchive(tmp_path, "123456")
    archive.prepare()

    archive.write_transcript("# Conversation")
    archive.write_metadata("{}")
    saved = archive.write_attachment("1_9_a.pdf", b"pdf")

    assert archive.transcript_path == tmp_path / "123456" / "conversation_123456.md"
    assert archive.metadata_path == tmp_path / "123456" / "metadata.json"
    assert saved == tmp_path / "123456" / "attachments" / "1_9_a.pdf"
    assert saved.read_bytes() == b"pdf"
    assert archive.relative_attachment_link("1_9_a.pdf") == "./attachments/1_9_a.pdf"


def test_conversation_archive_rejects_escaping_id(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="escapes root"):
        ConversationArchive(tmp_path / "root", "../elsewhere")
