"""Durable, re-validated access to the user's backup folder."""

import json
import os
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path

from loguru import logger

from codestickies.config import FOLDER_TOKEN_KEY
from codestickies.errors import AccessError
from codestickies.protocols import FolderPickerProtocol, KeyValueProtocol


def _escape_for_applescript(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class AppleScriptFolderPicker:
    """Folder chooser using the system dialog via ``osascript``."""

    def choose(self, prompt: str) -> Path | None:
        script = f'POSIX path of (choose folder with prompt "{_escape_for_applescript(prompt)}")'
        try:
            result = subprocess.run(
                ["osascript", "-e", script],
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError:
            logger.error("osascript is not available, cannot show folder dialog")
            return None
        except subprocess.CalledProcessError as e:
            # -128 is "User canceled."
            if "-128" not in e.stderr:
                logger.error("Folder dialog failed: {}", e.stderr.strip())
            return None
        chosen = result.stdout.strip()
        return Path(chosen) if chosen else None


@dataclass(frozen=True)
class FolderToken:
    """Persisted reference to a directory.

    The device and inode pin the reference to the directory that was
    chosen: if it is moved away or replaced, the token is stale.
    """

    path: str
    device: int
    inode: int

    @classmethod
    def for_path(cls, path: Path) -> "FolderToken":
        st = path.stat()
        return cls(path=str(path), device=st.st_dev, inode=st.st_ino)

    def to_bytes(self) -> bytes:
        return json.dumps(asdict(self), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "FolderToken":
        data = json.loads(raw)
        return cls(path=str(data["path"]), device=int(data["device"]), inode=int(data["inode"]))


def _is_accessible_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.R_OK | os.W_OK | os.X_OK)


class FolderAccessBroker:
    """Select, persist, and resolve the backup folder."""

    def __init__(
        self,
        storage: KeyValueProtocol,
        picker: FolderPickerProtocol | None = None,
        *,
        key: str = FOLDER_TOKEN_KEY,
    ) -> None:
        self._storage = storage
        self._picker = picker or AppleScriptFolderPicker()
        self._key = key

    def select_folder(self) -> Path | None:
        """Prompt the user for a folder. Returns None if cancelled."""
        return self._picker.choose("Select Folder")

    def persist(self, path: Path) -> Path:
        """Record ``path`` as the backup folder, replacing any previous one.

        Raises:
            AccessError: If ``path`` is not a readable and writable directory.
        """
        path = Path(path).expanduser().resolve()
        if not _is_accessible_dir(path):
            msg = f"Cannot use {str(path)!r} as backup folder: not an accessible directory"
            raise AccessError(msg)
        self._storage.set(self._key, FolderToken.for_path(path).to_bytes())
        logger.info("Backup folder set to {}", path)
        return path

    def resolve(self) -> Path | None:
        """Return the backup folder, or None if absent, stale or inaccessible."""
        raw = self._storage.get(self._key)
        if raw is None:
            return None
        try:
            token = FolderToken.from_bytes(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Stored backup folder token is unreadable")
            return None

        path = Path(token.path)
        try:
            current = FolderToken.for_path(path)
        except OSError:
            logger.warning("Backup folder {} no longer exists", path)
            return None
        if (current.device, current.inode) != (token.device, token.inode):
            logger.warning("Backup folder reference is stale: {} was moved or replaced", path)
            return None
        if not _is_accessible_dir(path):
            logger.warning("Backup folder {} is not accessible", path)
            return None
        return path

    def pick_folder(self) -> Path | None:
        """Prompt for a folder and persist it."""
        chosen = self.select_folder()
        if chosen is None:
            return None
        return self.persist(chosen)

    def forget(self) -> None:
        self._storage.delete(self._key)
