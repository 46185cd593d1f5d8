"""CodeStickies: sticky notes with local, scheduled backups."""

from codestickies.core.backup.catalog import BackupCatalog, FolderWatcher
from codestickies.core.backup.scheduler import BackupScheduler, SchedulerState
from codestickies.core.backup.writer import create_backup
from codestickies.core.database.schema import KeyValueStore
from codestickies.core.folder_access import FolderAccessBroker
from codestickies.core.store import NoteStore
from codestickies.models.note import ImportPolicy, Language, Note

__version__ = "0.1.0"

__all__ = [
    "BackupCatalog",
    "BackupScheduler",
    "FolderAccessBroker",
    "FolderWatcher",
    "ImportPolicy",
    "KeyValueStore",
    "Language",
    "Note",
    "NoteStore",
    "SchedulerState",
    "create_backup",
]
