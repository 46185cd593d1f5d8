"""Write timestamped backup snapshots of the note collection."""

import os
import tempfile
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from loguru import logger

from codestickies.config import BACKUP_PREFIX, BACKUP_TIMESTAMP_FORMAT, DOCUMENT_EXTENSION
from codestickies.core.codec import encode_notes
from codestickies.errors import BackupWriteError
from codestickies.models.note import Note


def backup_filename(now: datetime) -> str:
    """Return the snapshot filename for a moment in local time."""
    return f"{BACKUP_PREFIX}{now.strftime(BACKUP_TIMESTAMP_FORMAT)}.{DOCUMENT_EXTENSION}"


def _current_umask() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return umask


def write_atomic(target: Path, data: bytes) -> None:
    """Write ``data`` to ``target`` so that either all of it appears or nothing.

    The bytes go to a temporary file in the same directory, which is then
    renamed into place. The file gets the permissions a plain ``open()`` would
    give it under the current umask.
    """
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=target.suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o666 & ~_current_umask())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def create_backup(
    notes: Iterable[Note],
    folder: Path,
    *,
    now: datetime | None = None,
) -> Path:
    """Write a snapshot of ``notes`` into ``folder``.

    Args:
        notes: Notes to back up.
        folder: Resolved backup folder.
        now: Timestamp for the filename (defaults to the current local time).

    Returns:
        Path of the created snapshot.

    Raises:
        EncodeError: If the notes cannot be serialized.
        BackupWriteError: If the file cannot be written. No partial file is left.
    """
    notes = list(notes)
    data = encode_notes(notes, pretty=True)
    target = Path(folder) / backup_filename(now or datetime.now())
    if target.exists():
        msg = f"Backup {target.name!r} already exists"
        raise BackupWriteError(msg)
    try:
        write_atomic(target, data)
    except OSError as e:
        logger.error("Failed to create backup in {}: {}", folder, e)
        msg = f"Cannot write backup to {str(folder)!r}: {e}"
        raise BackupWriteError(msg) from e
    logger.info("Backup created successfully at: {} ({} notes)", target.name, len(notes))
    return target
