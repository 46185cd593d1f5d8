"""CLI for CodeStickies (notes, backups, auto-backup schedule)."""

import json
import signal
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from codestickies.config import (
    BACKUP_INTERVAL_PRESETS,
    instance_pid_path,
    resolve_database_path,
)
from codestickies.core.auto_backup import backup_now, run_auto_backup
from codestickies.core.backup.catalog import BackupCatalog, FolderWatcher, display_name
from codestickies.core.backup.scheduler import BackupScheduler
from codestickies.core.codec import note_to_dict
from codestickies.core.database.schema import KeyValueStore
from codestickies.core.documents import export_note, export_notes, read_document
from codestickies.core.folder_access import FolderAccessBroker
from codestickies.core.rewrite import OllamaRewriteService, RewriteSession, RewriteState
from codestickies.core.store import NoteStore
from codestickies.core.trigger import (
    TRIGGER_SIGNAL,
    LocalTriggerChannel,
    SignalTriggerChannel,
    TriggerBackup,
    TriggerHandler,
    listen_for_triggers,
    remove_pid_file,
    write_pid_file,
)
from codestickies.errors import StickiesError
from codestickies.logging_config import configure_logging
from codestickies.models.note import ImportPlan, ImportPolicy
from codestickies.protocols import RewriteServiceProtocol, TriggerChannelProtocol

_LAUNCH_TIME = time.monotonic()

app = typer.Typer(help="CodeStickies: sticky notes with local backups.")
notes_app = typer.Typer(help="Create, list, import and export notes.")
folder_app = typer.Typer(help="Choose the backup folder.")
backup_app = typer.Typer(help="Create and browse backups.")
schedule_app = typer.Typer(help="Automatic recurring backups.")
app.add_typer(notes_app, name="notes")
app.add_typer(folder_app, name="folder")
app.add_typer(backup_app, name="backup")
app.add_typer(schedule_app, name="schedule")


class PolicyChoice(str, Enum):
    add_duplicates = "add-duplicates"
    skip_duplicates = "skip-duplicates"
    replace_existing = "replace-existing"
    cancel = "cancel"

    def to_policy(self) -> ImportPolicy:
        return ImportPolicy[self.name.upper()]


def make_scheduler(
    storage: KeyValueStore,
    db_path: Path,
    channel: TriggerChannelProtocol | None = None,
) -> BackupScheduler:
    return BackupScheduler(storage, channel=channel, db_path=db_path)


def make_rewrite_service() -> RewriteServiceProtocol:
    return OllamaRewriteService()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path of the notes database"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose)
    ctx.obj = db.expanduser().resolve() if db is not None else resolve_database_path()


@contextmanager
def _open_storage(ctx: typer.Context) -> Iterator[KeyValueStore]:
    storage = KeyValueStore.open(ctx.obj)
    try:
        yield storage
    finally:
        storage.close()


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


# --- notes ---


@notes_app.command("list")
def notes_list(
    ctx: typer.Context,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List all notes."""
    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        if output_json:
            typer.echo(json.dumps([note_to_dict(n) for n in store], indent=2))
            return
        if not len(store):
            typer.echo("No notes.")
            return
        for note in store:
            first_line = note.text.splitlines()[0] if note.text else ""
            typer.echo(f"  {note.display_title}  [{note.language.display_name.upper()}]")
            typer.echo(f"    {first_line[:60]}")
            typer.echo(f"    id={note.id}")
        typer.echo(f"\nTotal: {len(store)} notes")


@notes_app.command("new")
def notes_new(
    ctx: typer.Context,
    title: Annotated[str | None, typer.Option("--title", "-t", help="Note title")] = None,
    text: str = typer.Option("NEW NOTE", "--text", help="Initial note text"),
) -> None:
    """Create a note."""
    with _open_storage(ctx) as storage:
        note = NoteStore(storage).create(title=title, text=text)
    typer.echo(note.id)


@notes_app.command("show")
def notes_show(ctx: typer.Context, note_id: str = typer.Argument(..., help="Note ID")) -> None:
    """Print a note."""
    with _open_storage(ctx) as storage:
        note = NoteStore(storage).get(note_id)
    if note is None:
        raise _fail(f"Note '{note_id}' not found.")
    typer.echo(f"# {note.display_title}  [{note.language.display_name}]\n")
    typer.echo(note.text)


@notes_app.command("delete")
def notes_delete(
    ctx: typer.Context,
    note_id: str = typer.Argument(..., help="Note ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a note."""
    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        note = store.get(note_id)
        if note is None:
            typer.echo(f"Note '{note_id}' not found.")
            return
        if not yes and not typer.confirm(
            f'Are you sure you want to delete "{note.display_title}"? This action cannot be undone'
        ):
            raise typer.Abort()
        store.delete(note_id)
    typer.echo(f"Deleted {note_id}")


@notes_app.command("clear")
def notes_clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete all notes."""
    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        if not yes and not typer.confirm(f"This will delete all {len(store)} note(s)"):
            raise typer.Abort()
        store.clear()
    typer.echo("All notes deleted.")


@notes_app.command("export")
def notes_export(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Destination .stickies file"),
    note_id: Annotated[
        str | None, typer.Option("--id", help="Export only this note")
    ] = None,
) -> None:
    """Export notes to a .stickies document."""
    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        try:
            if note_id is not None:
                note = store.get(note_id)
                if note is None:
                    raise _fail(f"Note '{note_id}' not found.")
                written = export_note(note, path)
            else:
                written = export_notes(store.notes, path)
        except (StickiesError, OSError) as e:
            raise _fail(f"An Error occured exporting Notes: {e}") from e
    typer.echo(f'Saved to: "{written}"')


@notes_app.command("import")
def notes_import(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help=".stickies document or backup to import"),
    policy: PolicyChoice = typer.Option(
        PolicyChoice.skip_duplicates, "--policy", "-p", help="What to do with duplicates"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Import notes from a .stickies document."""
    try:
        incoming = read_document(path)
    except StickiesError as e:
        raise _fail(f"Error Importing: {e}") from e

    def confirm(plan: ImportPlan) -> bool:
        return yes or typer.confirm(plan.message)

    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        plan = store.import_merge(incoming, policy.to_policy(), confirm=confirm)
    if plan.applied:
        typer.echo(f"Imported {len(plan.to_add)} note(s), {plan.skipped} skipped.")
    else:
        typer.echo("Import cancelled.")


# --- folder ---


@folder_app.command("select")
def folder_select(ctx: typer.Context) -> None:
    """Choose the backup folder with the system dialog."""
    with _open_storage(ctx) as storage:
        try:
            folder = FolderAccessBroker(storage).pick_folder()
        except StickiesError as e:
            raise _fail(str(e)) from e
    if folder is None:
        typer.echo("No folder selected.")
    else:
        typer.echo(f"Selected Folder: {folder}")


@folder_app.command("set")
def folder_set(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Backup folder"),
) -> None:
    """Set the backup folder."""
    with _open_storage(ctx) as storage:
        try:
            folder = FolderAccessBroker(storage).persist(path)
        except StickiesError as e:
            raise _fail(str(e)) from e
    typer.echo(f"Selected Folder: {folder}")


@folder_app.command("show")
def folder_show(ctx: typer.Context) -> None:
    """Show the backup folder."""
    with _open_storage(ctx) as storage:
        folder = FolderAccessBroker(storage).resolve()
    if folder is None:
        typer.echo("No folder selected. Please select a folder for backups.")
    else:
        typer.echo(f"Selected Folder: {folder}")


@folder_app.command("forget")
def folder_forget(ctx: typer.Context) -> None:
    """Forget the backup folder."""
    with _open_storage(ctx) as storage:
        FolderAccessBroker(storage).forget()
    typer.echo("Backup folder cleared.")


# --- backup ---


@contextmanager
def _backup_folder(ctx: typer.Context) -> Iterator[Path]:
    with _open_storage(ctx) as storage:
        folder = FolderAccessBroker(storage).resolve()
    if folder is None:
        raise _fail("No folder selected. Please select a folder for backups.")
    yield folder


@backup_app.command("create")
def backup_create(ctx: typer.Context) -> None:
    """Create a backup now."""
    with _open_storage(ctx) as storage:
        try:
            path = backup_now(NoteStore(storage), FolderAccessBroker(storage))
        except StickiesError as e:
            raise _fail(f"Failed to create backup: {e}") from e
    typer.echo(f"Backup created: {path.name}")


@backup_app.command("list")
def backup_list(
    ctx: typer.Context,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List backups, newest first."""
    with _backup_folder(ctx) as folder:
        names = BackupCatalog().list_sorted(folder)
    if output_json:
        typer.echo(json.dumps({"folder": str(folder), "backups": names}, indent=2))
        return
    typer.echo(f"Selected Folder: {folder}")
    if not names:
        typer.echo("No backups found in this folder")
        return
    for name in names:
        typer.echo(f"  {display_name(name)}  ({name})")


@backup_app.command("preview")
def backup_preview(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Backup filename"),
) -> None:
    """Show the notes in a backup."""
    with _backup_folder(ctx) as folder:
        notes = BackupCatalog().preview(folder, name)
    if notes is None:
        raise _fail("Error Loading Backup")
    typer.echo(f"Number of Notes: {len(notes)}\n")
    for note in notes:
        typer.echo(f"  {note.display_title}  [{note.language.display_name.upper()}]")
        preview = " ".join(note.text.splitlines()[:2])
        typer.echo(f"    {preview[:80]}")


@backup_app.command("delete")
def backup_delete(
    ctx: typer.Context,
    names: list[str] = typer.Argument(..., help="Backup filenames"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete backups."""
    with _backup_folder(ctx) as folder:
        if not yes and not typer.confirm(
            f"This will delete {len(names)} backups and cannot be undone"
        ):
            raise typer.Abort()
        try:
            deleted = BackupCatalog().delete(folder, names)
        except StickiesError as e:
            raise _fail(f"Failed to delete Backup(s): {e}") from e
    typer.echo(f"Deleted {deleted} backup(s).")


@backup_app.command("watch")
def backup_watch(ctx: typer.Context) -> None:
    """Print the backup list whenever the folder changes (Ctrl-C to stop)."""
    with _open_storage(ctx) as storage:
        watcher = FolderWatcher(FolderAccessBroker(storage).resolve, _echo_backups)
        watcher.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            watcher.stop()


def _echo_backups(names: list[str]) -> None:
    typer.echo(f"{len(names)} backup(s):")
    for name in names:
        typer.echo(f"  {display_name(name)}")


# --- schedule ---


def _describe_interval(seconds: int | None) -> str:
    if seconds is None:
        return "not set"
    return BACKUP_INTERVAL_PRESETS.get(seconds, f"{seconds} seconds")


@schedule_app.command("status")
def schedule_status(ctx: typer.Context) -> None:
    """Show whether auto-backup is enabled."""
    with _open_storage(ctx) as storage:
        state = make_scheduler(storage, ctx.obj).reconcile()
    typer.echo(f"Auto Backup: {'enabled' if state.enabled else 'disabled'}")
    typer.echo(f"Time Interval: {_describe_interval(state.interval)}")


@schedule_app.command("enable")
def schedule_enable(ctx: typer.Context) -> None:
    """Enable auto-backup."""
    with _open_storage(ctx) as storage:
        try:
            state = make_scheduler(storage, ctx.obj).enable()
        except StickiesError as e:
            raise _fail(f"Failed to enable auto-backup: {e}") from e
    typer.echo(f"Auto-backup enabled ({_describe_interval(state.interval)}).")


@schedule_app.command("disable")
def schedule_disable(ctx: typer.Context) -> None:
    """Disable auto-backup."""
    with _open_storage(ctx) as storage:
        try:
            make_scheduler(storage, ctx.obj).disable()
        except StickiesError as e:
            raise _fail(f"Failed to disable auto-backup: {e}") from e
    typer.echo("Auto-backup disabled.")


@schedule_app.command("interval")
def schedule_interval(
    ctx: typer.Context,
    seconds: int = typer.Argument(
        ..., help=f"Seconds between backups, e.g. {', '.join(map(str, BACKUP_INTERVAL_PRESETS))}"
    ),
) -> None:
    """Set the auto-backup interval."""
    with _open_storage(ctx) as storage:
        try:
            state = make_scheduler(storage, ctx.obj).set_interval(seconds)
        except ValueError as e:
            raise _fail(str(e)) from e
        except StickiesError as e:
            raise _fail(f"Failed to update auto-backup interval: {e}") from e
    typer.echo(f"Time Interval: {_describe_interval(state.interval)}")


# --- triggers ---


@app.command()
def refresh(ctx: typer.Context) -> None:
    """Write one backup. Run by the recurring job.

    A running ``codestickies run`` for the same database does the backup
    itself; otherwise this process writes it and exits.
    """
    db_path: Path = ctx.obj
    if SignalTriggerChannel(instance_pid_path(db_path)).deliver(TriggerBackup()):
        typer.echo("Backup requested from the running instance.")
        return
    path = run_auto_backup(db_path)
    if path is None:
        raise typer.Exit(1)
    typer.echo(f"Backup created: {path.name}")


@app.command()
def run(ctx: typer.Context) -> None:
    """Stay in the foreground, running timed backups and watching the folder.

    ``refresh`` hands its trigger to this process. A trigger arriving right
    after start-up means the process was launched only for it, so it stops
    once the backup is written.
    """
    db_path: Path = ctx.obj
    pid_path = instance_pid_path(db_path)
    stop = threading.Event()
    handler = TriggerHandler(lambda: run_auto_backup(db_path), launch_time=_LAUNCH_TIME)
    channel = LocalTriggerChannel(handler, on_exit=stop.set)
    with _open_storage(ctx) as storage:
        scheduler = make_scheduler(storage, db_path, channel=channel)
        write_pid_file(pid_path)
        previous_handler = listen_for_triggers(channel)
        state = scheduler.arm()
        if state.enabled:
            logger.info("Auto-backup every {}", _describe_interval(state.interval))
        else:
            logger.info("Auto-backup is disabled")
        watcher = FolderWatcher(FolderAccessBroker(storage).resolve, _echo_backups)
        watcher.start()
        try:
            while not stop.is_set():
                time.sleep(0.2)
            logger.info("Launched for a backup trigger, exiting")
        except KeyboardInterrupt:
            pass
        finally:
            watcher.stop()
            scheduler.shutdown()
            signal.signal(TRIGGER_SIGNAL, previous_handler)
            remove_pid_file(pid_path)


@app.command()
def rewrite(
    ctx: typer.Context,
    note_id: str = typer.Argument(..., help="Note ID"),
    prompt: str = typer.Argument(..., help="Describe Changes"),
    revert_on_error: bool = typer.Option(
        True, "--revert-on-error/--keep-partial", help="Restore the note if the rewrite fails"
    ),
) -> None:
    """Rewrite a note with the AI assistant."""
    with _open_storage(ctx) as storage:
        store = NoteStore(storage)
        if store.get(note_id) is None:
            raise _fail(f"Note '{note_id}' not found.")
        session = RewriteSession(store, note_id, make_rewrite_service())
        partials = session.start(prompt)
        try:
            for _note in partials:
                typer.echo(".", nl=False)
        except KeyboardInterrupt:
            partials.close()
            session.revert()
            typer.echo("\nRewrite cancelled, note restored.")
            raise typer.Exit(130) from None
        typer.echo()
        if session.state is RewriteState.ERROR:
            if revert_on_error:
                session.revert()
            raise _fail(session.error or "Rewrite failed")
        typer.echo("Finished Generating")
