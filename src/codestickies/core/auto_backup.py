"""Backups triggered outside the interactive flow."""

from pathlib import Path

from loguru import logger

from codestickies.core.backup.writer import create_backup
from codestickies.core.database.schema import KeyValueStore
from codestickies.core.folder_access import FolderAccessBroker
from codestickies.core.store import NoteStore
from codestickies.errors import AccessError, StickiesError


def backup_now(store: NoteStore, broker: FolderAccessBroker) -> Path:
    """Write a snapshot of ``store`` into the resolved backup folder.

    Raises:
        AccessError: If no usable backup folder is selected.
        EncodeError: If the notes cannot be serialized.
        BackupWriteError: If the snapshot cannot be written.
    """
    folder = broker.resolve()
    if folder is None:
        msg = "No folder selected. Please select a folder for backups."
        raise AccessError(msg)
    return create_backup(store.notes, folder)


def run_auto_backup(db_path: Path) -> Path | None:
    """Reload notes and the backup folder from disk and write one snapshot.

    Nothing is taken from memory, so this works in a process started only
    for the backup. Returns None on any failure (no folder, encode or write
    errors) after logging it.
    """
    try:
        storage = KeyValueStore.open(db_path)
    except Exception:
        logger.opt(exception=True).warning("Auto-backup cannot open storage at {}", db_path)
        return None
    try:
        store = NoteStore(storage)
        broker = FolderAccessBroker(storage)
        return backup_now(store, broker)
    except StickiesError as e:
        logger.warning("Auto-backup skipped: {}", e)
        return None
    finally:
        storage.close()
