"""Tests for the CodeStickies CLI."""

import json
import os
import signal
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from loguru import logger
from typer.testing import CliRunner

from codestickies import cli
from codestickies.cli import app
from codestickies.core import trigger
from codestickies.core.backup import scheduler as scheduler_module
from codestickies.core.backup.scheduler import BackupScheduler
from codestickies.core.codec import encode_notes
from codestickies.core.database.schema import KeyValueStore
from codestickies.core.documents import export_notes, read_document
from codestickies.core.store import NoteStore
from codestickies.models.note import Note
from tests.unit.conftest import NOTE_A, NOTE_B
from tests.unit.fakes import FakeRegistry, FakeRewriteService, FakeTimerFactory

runner = CliRunner()


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """The CLI points loguru at the runner's stderr; restore it afterwards."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def db(tmp_path: Path) -> Path:
    path = tmp_path / "codestickies.db"
    storage = KeyValueStore.open(path)
    NoteStore(storage).replace_all([NOTE_A, NOTE_B])
    storage.close()
    return path


@pytest.fixture
def registry(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> FakeRegistry:
    fake = FakeRegistry()

    def make_scheduler(storage, db_path, channel=None) -> BackupScheduler:
        return BackupScheduler(
            storage,
            fake,
            channel,
            label="com.example.cli-test",
            plist_path=tmp_path / "agent.plist",
            script_path=tmp_path / "refresh.sh",
            helper_command=["codestickies", "refresh"],
            timer_factory=FakeTimerFactory(),
        )

    monkeypatch.setattr(cli, "make_scheduler", make_scheduler)
    return fake


def invoke(db: Path, *args: str, input: str | None = None):
    return runner.invoke(app, ["--db", str(db), *args], input=input)


def _notes(db: Path) -> tuple[Note, ...]:
    storage = KeyValueStore.open(db)
    try:
        return NoteStore(storage).notes
    finally:
        storage.close()


# --- notes ---


def test_notes_list(db: Path) -> None:
    result = invoke(db, "notes", "list")

    assert result.exit_code == 0, result.output
    assert "A  [NONE]" in result.output
    assert "B  [SWIFT]" in result.output
    assert "Total: 2 notes" in result.output


def test_notes_list_json(db: Path) -> None:
    result = invoke(db, "notes", "list", "--json")

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert [d["id"] for d in data] == ["1", "2"]
    assert data[1]["language"] == {"kind": 6}


def test_notes_new_and_show(db: Path) -> None:
    result = invoke(db, "notes", "new", "--title", "Todo", "--text", "buy milk")
    assert result.exit_code == 0, result.output
    note_id = result.output.strip().splitlines()[-1]

    shown = invoke(db, "notes", "show", note_id)
    assert shown.exit_code == 0, shown.output
    assert "# Todo  [None]" in shown.output
    assert "buy milk" in shown.output
    assert len(_notes(db)) == 3


def test_notes_show_missing(db: Path) -> None:
    result = invoke(db, "notes", "show", "nope")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_notes_delete_confirms(db: Path) -> None:
    declined = invoke(db, "notes", "delete", "1", input="n\n")
    assert declined.exit_code != 0
    assert len(_notes(db)) == 2

    accepted = invoke(db, "notes", "delete", "1", input="y\n")
    assert accepted.exit_code == 0, accepted.output
    assert _notes(db) == (NOTE_B,)


def test_notes_clear(db: Path) -> None:
    result = invoke(db, "notes", "clear", "--yes")
    assert result.exit_code == 0, result.output
    assert _notes(db) == ()


def test_notes_export_and_import(db: Path, tmp_path: Path) -> None:
    result = invoke(db, "notes", "export", str(tmp_path / "out"))
    assert result.exit_code == 0, result.output
    assert read_document(tmp_path / "out.stickies") == [NOTE_A, NOTE_B]

    single = invoke(db, "notes", "export", str(tmp_path / "one"), "--id", "2")
    assert single.exit_code == 0, single.output
    assert read_document(tmp_path / "one.stickies") == [NOTE_B]


def test_notes_import_skip_duplicates(db: Path, tmp_path: Path) -> None:
    doc = export_notes([Note(id="1", text="X"), Note(id="3", text="Y")], tmp_path / "in")

    result = invoke(db, "notes", "import", str(doc), "--yes")

    assert result.exit_code == 0, result.output
    assert "Imported 1 note(s), 1 skipped." in result.output
    assert [n.id for n in _notes(db)] == ["1", "2", "3"]


def test_notes_import_replace_declined(db: Path, tmp_path: Path) -> None:
    doc = export_notes([Note(id="3", text="Y")], tmp_path / "in")

    result = invoke(db, "notes", "import", str(doc), "-p", "replace-existing", input="n\n")

    assert result.exit_code == 0, result.output
    assert "This will remove your current Notes and import 1 new Note(s)" in result.output
    assert "Import cancelled." in result.output
    assert _notes(db) == (NOTE_A, NOTE_B)


def test_notes_import_invalid_document(db: Path, tmp_path: Path) -> None:
    bad = tmp_path / "bad.stickies"
    bad.write_text("nope")

    result = invoke(db, "notes", "import", str(bad), "--yes")

    assert result.exit_code == 1
    assert "Error Importing" in result.output


# --- folder and backups ---


def test_folder_set_and_show(db: Path, backup_dir: Path) -> None:
    assert "No folder selected" in invoke(db, "folder", "show").output

    result = invoke(db, "folder", "set", str(backup_dir))
    assert result.exit_code == 0, result.output

    shown = invoke(db, "folder", "show")
    assert f"Selected Folder: {backup_dir.resolve()}" in shown.output

    invoke(db, "folder", "forget")
    assert "No folder selected" in invoke(db, "folder", "show").output


def test_backup_create_without_folder(db: Path) -> None:
    result = invoke(db, "backup", "create")
    assert result.exit_code == 1
    assert "No folder selected. Please select a folder for backups." in result.output


def test_backup_create_list_preview_delete(db: Path, backup_dir: Path) -> None:
    invoke(db, "folder", "set", str(backup_dir))

    created = invoke(db, "backup", "create")
    assert created.exit_code == 0, created.output
    assert "Backup created: backup_" in created.output
    name = next(backup_dir.iterdir()).name

    listed = invoke(db, "backup", "list", "--json")
    assert json.loads(listed.output)["backups"] == [name]

    preview = invoke(db, "backup", "preview", name)
    assert preview.exit_code == 0, preview.output
    assert "Number of Notes: 2" in preview.output

    deleted = invoke(db, "backup", "delete", name, "--yes")
    assert deleted.exit_code == 0, deleted.output
    assert "Deleted 1 backup(s)." in deleted.output
    assert list(backup_dir.iterdir()) == []


def test_backup_preview_corrupt(db: Path, backup_dir: Path) -> None:
    invoke(db, "folder", "set", str(backup_dir))
    (backup_dir / "backup_broken.stickies").write_text("{")

    result = invoke(db, "backup", "preview", "backup_broken.stickies")

    assert result.exit_code == 1
    assert "Error Loading Backup" in result.output


def test_backup_delete_partial_failure(db: Path, backup_dir: Path) -> None:
    invoke(db, "folder", "set", str(backup_dir))
    existing = backup_dir / "backup_2024-01-01_10-00-00.stickies"
    existing.write_bytes(encode_notes([NOTE_A]))

    result = invoke(
        db, "backup", "delete", existing.name, "backup_missing.stickies", "--yes"
    )

    assert result.exit_code == 1
    assert "1 of 2 backup(s) failed to delete" in result.output
    assert not existing.exists()


def test_refresh_writes_backup(db: Path, backup_dir: Path) -> None:
    invoke(db, "folder", "set", str(backup_dir))

    result = invoke(db, "refresh")

    assert result.exit_code == 0, result.output
    assert len(list(backup_dir.iterdir())) == 1


def test_refresh_without_folder_fails(db: Path) -> None:
    assert invoke(db, "refresh").exit_code == 1


def test_refresh_hands_trigger_to_running_instance(
    db: Path, backup_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    invoke(db, "folder", "set", str(backup_dir))
    db.with_name(f"{db.name}.pid").write_text(f"{os.getpid()}\n")
    signals: list[tuple[int, int]] = []
    monkeypatch.setattr(trigger.os, "kill", lambda pid, sig: signals.append((pid, sig)))

    result = invoke(db, "refresh")

    assert result.exit_code == 0, result.output
    assert "Backup requested from the running instance." in result.output
    assert signals == [(os.getpid(), 0), (os.getpid(), signal.SIGUSR1)]
    assert list(backup_dir.iterdir()) == []


def test_refresh_ignores_stale_pid_file(
    db: Path, backup_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    invoke(db, "folder", "set", str(backup_dir))
    db.with_name(f"{db.name}.pid").write_text("999999\n")

    def no_such_process(pid: int, sig: int) -> None:
        raise ProcessLookupError(pid)

    monkeypatch.setattr(trigger.os, "kill", no_such_process)

    result = invoke(db, "refresh")

    assert result.exit_code == 0, result.output
    assert "Backup created: backup_" in result.output
    assert len(list(backup_dir.iterdir())) == 1


# --- schedule ---


def test_schedule_enable_status_disable(db: Path, registry: FakeRegistry) -> None:
    status = invoke(db, "schedule", "status")
    assert "Auto Backup: disabled" in status.output

    enabled = invoke(db, "schedule", "enable")
    assert enabled.exit_code == 0, enabled.output
    assert registry.loaded == ["com.example.cli-test"]

    status = invoke(db, "schedule", "status")
    assert "Auto Backup: enabled" in status.output
    assert "Time Interval: 1 hour" in status.output

    interval = invoke(db, "schedule", "interval", "900")
    assert interval.exit_code == 0, interval.output
    assert "Time Interval: 15 minutes" in interval.output
    assert registry.loaded == ["com.example.cli-test"]

    disabled = invoke(db, "schedule", "disable")
    assert disabled.exit_code == 0, disabled.output
    assert registry.loaded == []


def test_schedule_enable_failure(db: Path, registry: FakeRegistry) -> None:
    registry.fail_register = True

    result = invoke(db, "schedule", "enable")

    assert result.exit_code == 1
    assert "Failed to enable auto-backup" in result.output
    assert "Auto Backup: disabled" in invoke(db, "schedule", "status").output


def test_schedule_interval_rejects_zero(db: Path, registry: FakeRegistry) -> None:
    result = invoke(db, "schedule", "interval", "0")
    assert result.exit_code == 1


def test_schedule_enable_writes_helper_for_selected_database(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db = tmp_path / "custom.db"
    script_path = tmp_path / "support" / "refresh.sh"
    monkeypatch.setattr(scheduler_module, "LaunchctlRegistry", FakeRegistry)
    monkeypatch.setattr(scheduler_module, "agent_plist_path", lambda: tmp_path / "agent.plist")
    monkeypatch.setattr(scheduler_module, "helper_script_path", lambda: script_path)

    result = invoke(db, "schedule", "enable")

    assert result.exit_code == 0, result.output
    script = script_path.read_text()
    assert f"--db {db} refresh" in script
    assert f"-m codestickies --db {db} refresh" in script


# --- rewrite ---


def test_rewrite(db: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "make_rewrite_service", lambda: FakeRewriteService(["Re", "written"]))

    result = invoke(db, "rewrite", "1", "Make it better")

    assert result.exit_code == 0, result.output
    assert "Finished Generating" in result.output
    assert _notes(db)[0].text == "Rewritten"


def test_rewrite_failure_reverts(db: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "make_rewrite_service", lambda: FakeRewriteService(["Par"], error="offline")
    )

    result = invoke(db, "rewrite", "1", "Make it better")

    assert result.exit_code == 1
    assert "offline" in result.output
    assert _notes(db)[0] == NOTE_A


def test_rewrite_keep_partial(db: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        cli, "make_rewrite_service", lambda: FakeRewriteService(["Par"], error="offline")
    )

    result = invoke(db, "rewrite", "1", "Make it better", "--keep-partial")

    assert result.exit_code == 1
    assert _notes(db)[0].text == "Par"
