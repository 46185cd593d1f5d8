"""Exceptions raised by CodeStickies."""


class StickiesError(Exception):
    """Base exception for CodeStickies errors."""


class EncodeError(StickiesError):
    """Notes could not be serialized."""


class DecodeError(StickiesError):
    """Persisted data or a document could not be parsed as notes."""


class StorageError(StickiesError):
    """The key-value storage could not be written."""


class AccessError(StickiesError):
    """The backup folder is missing, stale, or not accessible."""


class BackupWriteError(StickiesError):
    """A backup snapshot could not be written."""


class RegistrationError(StickiesError):
    """The recurring backup job could not be registered or unregistered."""


class PartialDeleteError(StickiesError):
    """Some backups in a batch could not be deleted."""

    def __init__(self, failed: int, total: int) -> None:
        self.failed = failed
        self.total = total
        super().__init__(f"{failed} of {total} backup(s) failed to delete")


class DuplicateNoteError(StickiesError):
    """A note with the same id already exists."""


class NoteNotFoundError(StickiesError):
    """No note with the given id exists."""


class RewriteError(StickiesError):
    """The rewrite service failed."""
