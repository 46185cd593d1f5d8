"""Shared test fixtures."""

import sqlite3
from pathlib import Path

import pytest

from codestickies.core.database.schema import KeyValueStore
from codestickies.core.store import NoteStore
from codestickies.models.note import Language, Note

NOTE_A = Note(id="1", text="alpha", title="A")
NOTE_B = Note(id="2", text="beta", title="B", language=Language.SWIFT)


@pytest.fixture
def storage() -> KeyValueStore:
    """Return a key-value store on an in-memory database."""
    return KeyValueStore(sqlite3.connect(":memory:"))


@pytest.fixture
def store(storage: KeyValueStore) -> NoteStore:
    """Return a store holding notes A (id 1) and B (id 2)."""
    note_store = NoteStore(storage)
    note_store.replace_all([NOTE_A, NOTE_B])
    return note_store


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "backups"
    folder.mkdir()
    return folder
