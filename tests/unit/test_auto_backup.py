"""Tests for backups triggered outside the interactive flow."""

from pathlib import Path

import pytest

from codestickies.core.auto_backup import backup_now, run_auto_backup
from codestickies.core.codec import decode_notes
from codestickies.core.database.schema import KeyValueStore
from codestickies.core.folder_access import FolderAccessBroker
from codestickies.core.store import NoteStore
from codestickies.errors import AccessError
from tests.unit.conftest import NOTE_A, NOTE_B
from tests.unit.fakes import FakeStorage


def test_backup_now_writes_into_selected_folder(backup_dir: Path) -> None:
    storage = FakeStorage()
    store = NoteStore(storage)
    store.replace_all([NOTE_A, NOTE_B])
    broker = FolderAccessBroker(storage)
    broker.persist(backup_dir)

    path = backup_now(store, broker)

    assert path.parent == backup_dir.resolve()
    assert path.name.startswith("backup_")
    assert decode_notes(path.read_bytes()) == [NOTE_A, NOTE_B]


def test_backup_now_without_folder() -> None:
    storage = FakeStorage()

    with pytest.raises(AccessError, match="No folder selected"):
        backup_now(NoteStore(storage), FolderAccessBroker(storage))


def test_run_auto_backup_reads_everything_from_disk(tmp_path: Path, backup_dir: Path) -> None:
    db_path = tmp_path / "support" / "codestickies.db"
    storage = KeyValueStore.open(db_path)
    NoteStore(storage).replace_all([NOTE_A])
    FolderAccessBroker(storage).persist(backup_dir)
    storage.close()

    path = run_auto_backup(db_path)

    assert path is not None
    assert decode_notes(path.read_bytes()) == [NOTE_A]


def test_run_auto_backup_without_folder_returns_none(tmp_path: Path) -> None:
    db_path = tmp_path / "codestickies.db"

    assert run_auto_backup(db_path) is None


def test_run_auto_backup_with_removed_folder(tmp_path: Path, backup_dir: Path) -> None:
    db_path = tmp_path / "codestickies.db"
    storage = KeyValueStore.open(db_path)
    FolderAccessBroker(storage).persist(backup_dir)
    storage.close()
    backup_dir.rmdir()

    assert run_auto_backup(db_path) is None
