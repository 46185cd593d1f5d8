"""Browse backup snapshots in the backup folder."""

from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from loguru import logger

from codestickies.config import (
    BACKUP_PREFIX,
    BACKUP_TIMESTAMP_FORMAT,
    DOCUMENT_EXTENSION,
    FOLDER_POLL_SECONDS,
)
from codestickies.core.codec import decode_notes
from codestickies.core.timer import RepeatingTimer
from codestickies.errors import DecodeError, PartialDeleteError
from codestickies.models.note import Note

_SUFFIX = f".{DOCUMENT_EXTENSION}"


def is_backup_name(name: str) -> bool:
    return name.startswith(BACKUP_PREFIX) and name.endswith(_SUFFIX)


def parse_timestamp(name: str) -> datetime | None:
    """Return the timestamp embedded in a snapshot filename, or None."""
    if not is_backup_name(name):
        return None
    stamp = name[len(BACKUP_PREFIX) : -len(_SUFFIX)]
    try:
        return datetime.strptime(stamp, BACKUP_TIMESTAMP_FORMAT)
    except ValueError:
        return None


def sorted_by_recency(names: Iterable[str]) -> list[str]:
    """Sort snapshot names newest first.

    Names without a parseable timestamp go last, in their original order.
    """
    dated: list[tuple[datetime, str]] = []
    undated: list[str] = []
    for name in names:
        stamp = parse_timestamp(name)
        if stamp is None:
            undated.append(name)
        else:
            dated.append((stamp, name))
    dated.sort(key=lambda item: item[0], reverse=True)
    return [name for _stamp, name in dated] + undated


def display_name(name: str) -> str:
    """Return the snapshot name without prefix and extension."""
    return name.removeprefix(BACKUP_PREFIX).removesuffix(_SUFFIX)


def folder_mtime(folder: Path) -> float | None:
    try:
        return folder.stat().st_mtime
    except OSError as e:
        logger.warning("Error getting folder modification date: {}", e)
        return None


class BackupCatalog:
    """List, preview, and delete snapshots in a folder."""

    def list_backups(self, folder: Path) -> list[str]:
        """Return snapshot filenames in ``folder`` (unsorted)."""
        try:
            entries = list(Path(folder).iterdir())
        except OSError as e:
            logger.error("Error reading contents of directory {}: {}", Path(folder).name, e)
            return []
        return [p.name for p in entries if is_backup_name(p.name) and p.is_file()]

    def list_sorted(self, folder: Path) -> list[str]:
        return sorted_by_recency(self.list_backups(folder))

    def preview(self, folder: Path, name: str) -> list[Note] | None:
        """Decode a snapshot. Returns None if it is missing or not a notes file."""
        try:
            raw = (Path(folder) / name).read_bytes()
        except OSError as e:
            logger.warning("Cannot read backup {}: {}", name, e)
            return None
        try:
            return decode_notes(raw)
        except DecodeError as e:
            logger.warning("Backup {} is not a valid notes file: {}", name, e)
            return None

    def delete(self, folder: Path, names: Iterable[str]) -> int:
        """Delete snapshots one by one.

        Returns:
            The number of files deleted.

        Raises:
            PartialDeleteError: After trying every file, if any failed.
                Successful deletions are kept.
        """
        names = list(names)
        failed = 0
        for name in names:
            path = Path(folder) / name
            if Path(name).name != name or not is_backup_name(name):
                logger.error("Refusing to delete {!r}: not a backup filename", name)
                failed += 1
                continue
            try:
                path.unlink()
            except OSError as e:
                logger.error("Failed to delete backup {}: {}", name, e)
                failed += 1
            else:
                logger.debug("Deleted backup {}", name)
        deleted = len(names) - failed
        if failed:
            raise PartialDeleteError(failed, len(names))
        logger.info("Deleted {} backup(s)", deleted)
        return deleted


class FolderWatcher:
    """Re-list the backup folder when its modification time changes.

    ``check()`` does one poll; ``start()`` polls on a timer.
    """

    def __init__(
        self,
        folder_provider: Callable[[], Path | None],
        on_change: Callable[[list[str]], None],
        *,
        catalog: BackupCatalog | None = None,
        poll_interval: float = FOLDER_POLL_SECONDS,
    ) -> None:
        self._folder_provider = folder_provider
        self._on_change = on_change
        self._catalog = catalog or BackupCatalog()
        self.poll_interval = poll_interval
        self._last_folder: Path | None = None
        self._last_mtime: float | None = None
        self._timer: RepeatingTimer | None = None

    def check(self) -> bool:
        """Poll once. Returns True if ``on_change`` was called."""
        folder = self._folder_provider()
        if folder is None:
            self._last_folder = None
            self._last_mtime = None
            return False
        mtime = folder_mtime(folder)
        if folder == self._last_folder and mtime == self._last_mtime:
            return False
        self._last_folder = folder
        self._last_mtime = mtime
        self._on_change(self._catalog.list_sorted(folder))
        return True

    def start(self) -> None:
        self.check()
        self._timer = RepeatingTimer(self.poll_interval, self.check, name="backup-watcher").start()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
