"""Local filesystem writes for the conversation archive and the token file.

Every file lands via a temp sibling plus `os.replace`, so a reader never sees
a half-written transcript, metadata record or token file. All targets must
stay under a given root and must not traverse symlinks below it.
"""
from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from helpscout_archiver.domain.path_policy import ensure_within_root

DEFAULT_FILE_MODE = 0o644
TEMP_PREFIX = ".tmp-"

ATTACHMENTS_DIRNAME = "attachments"
METADATA_FILENAME = "metadata.json"


def ensure_dir(path: Path) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def _sync_directory(dir_path: Path) -> None:
    # Not every filesystem supports fsync on a directory handle.
    try:
        fd = os.open(str(dir_path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def _check_no_symlink_components(root: Path, directory: Path) -> None:
    root_abs = Path(root).absolute()
    try:
        relative = Path(directory).absolute().relative_to(root_abs)
    except ValueError:
        return

    current = root_abs
    for part in relative.parts:
        current = current / part
        try:
            is_link = current.is_symlink()
        except OSError as exc:
            raise ValueError("target path validation failed (unreadable component)") from exc
        if is_link:
            raise ValueError("target path traverses a symlink under storage root")


@contextmanager
def _temp_sibling(target: Path) -> Iterator[Path]:
    """Yield a fresh temp file next to `target`; it is removed if the block fails."""
    fd, name = tempfile.mkstemp(dir=str(target.parent), prefix=TEMP_PREFIX)
    os.close(fd)
    tmp_path = Path(name)
    try:
        yield tmp_path
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def write_atomic_bytes(
    target_path: Path,
    data: bytes,
    *,
    storage_root: Path,
    fsync: bool = True,
    mode: int = DEFAULT_FILE_MODE,
) -> None:
    target = Path(target_path)
    # Checked before any directory is created.
    ensure_within_root(storage_root, target)
    _check_no_symlink_components(storage_root, target.parent)
    ensure_dir(target.parent)

    with _temp_sibling(target) as tmp_path:
        with tmp_path.open("wb") as fh:
            fh.write(data)
            fh.flush()
            # Mode is applied before the rename so the final file never has looser permissions.
            os.fchmod(fh.fileno(), mode)
            if fsync:
                os.fsync(fh.fileno())
        os.replace(tmp_path, target)

    if fsync:
        _sync_directory(target.parent)


def write_atomic_text(
    target_path: Path,
    text: str,
    *,
    storage_root: Path,
    fsync: bool = True,
    mode: int = DEFAULT_FILE_MODE,
) -> None:
    write_atomic_bytes(
        target_path,
        text.encode("utf-8"),
        storage_root=storage_root,
        fsync=fsync,
        mode=mode,
    )


class ConversationArchive:
    """On-disk layout of one downloaded conversation.

        <root>/<conversation id>/conversation_<id>.md
        <root>/<conversation id>/metadata.json
        <root>/<conversation id>/attachments/<file>
    """

    def __init__(self, root: Path, conversation_id: str) -> None:
        self.root = Path(root)
        self.conversation_id = conversation_id
        self.directory = self.root / conversation_id
        ensure_within_root(self.root, self.directory)

    @property
    def transcript_path(self) -> Path:
        return self.directory / f"conversation_{self.conversation_id}.md"

    @property
    def metadata_path(self) -> Path:
        return self.directory / METADATA_FILENAME

    @property
    def attachments_dir(self) -> Path:
        return self.directory / ATTACHMENTS_DIRNAME

    def prepare(self) -> None:
        _check_no_symlink_components(self.root, self.directory)
        ensure_dir(self.directory)

    def relative_attachment_link(self, filename: str) -> str:
        return f"./{ATTACHMENTS_DIRNAME}/{filename}"

    def write_attachment(self, filename: str, data: bytes) -> Path:
        target = self.attachments_dir / filename
        write_atomic_bytes(target, data, storage_root=self.root)
        return target

    def write_transcript(self, markdown: str) -> Path:
        write_atomic_text(self.transcript_path, markdown, storage_root=self.root)
        return self.transcript_path

    def write_metadata(self, payload: str) -> Path:
        write_atomic_text(self.metadata_path, payload, storage_root=self.root)
        return self.metadata_path
