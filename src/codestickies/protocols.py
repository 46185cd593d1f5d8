"""Protocols for dependency injection between CodeStickies services."""

from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

from codestickies.models.note import Note


@runtime_checkable
class KeyValueProtocol(Protocol):
    """Protocol for durable key-value storage."""

    def get(self, key: str) -> bytes | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def set(self, key: str, value: bytes) -> None:
        """Store a value, replacing any previous one."""
        ...

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        ...


@runtime_checkable
class JobRegistryProtocol(Protocol):
    """Protocol for the OS recurring-job registry."""

    def register(self, plist_path: Path) -> None:
        """Load the job described by a property list."""
        ...

    def unregister(self, plist_path: Path) -> None:
        """Unload the job described by a property list."""
        ...

    def is_registered(self, label: str) -> bool:
        """Return True if a job with this label is currently loaded."""
        ...


@runtime_checkable
class FolderPickerProtocol(Protocol):
    """Protocol for the interactive folder chooser."""

    def choose(self, prompt: str) -> Path | None:
        """Ask the user for a directory. Returns None on cancel."""
        ...


@runtime_checkable
class TriggerChannelProtocol(Protocol):
    """Protocol for delivering a backup trigger to the app."""

    def send(self, message: object) -> None:
        """Deliver a message. Fire-and-forget."""
        ...


@runtime_checkable
class RewriteServiceProtocol(Protocol):
    """Protocol for AI text rewrite backends."""

    def stream(self, prompt: str, note: Note) -> Iterator[str]:
        """Yield successive versions of the rewritten note text."""
        ...
