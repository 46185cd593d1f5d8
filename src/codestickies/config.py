"""Configuration constants for CodeStickies."""

import os
from pathlib import Path

# Application support directory. Holds the database and the helper script.
APP_SUPPORT_DIR: Path = Path(
    os.environ.get("CODESTICKIES_HOME", "~/Library/Application Support/CodeStickies")
).expanduser()

# Durable key-value storage (notes, folder token, backup interval).
DATABASE_PATH: Path = APP_SUPPORT_DIR / "codestickies.db"

# Keys used in the key-value storage.
NOTES_KEY: str = "notes"
FOLDER_TOKEN_KEY: str = "savedFolderBookmark"
INTERVAL_KEY: str = "backupInterval"

# Document type for exports and backup snapshots.
DOCUMENT_EXTENSION: str = "stickies"
BACKUP_PREFIX: str = "backup_"
BACKUP_TIMESTAMP_FORMAT: str = "%Y-%m-%d_%H-%M-%S"

# LaunchAgent used for recurring backups.
AGENT_LABEL: str = "com.timi2506.codestickies-backup"
LAUNCH_AGENTS_DIR: Path = Path("~/Library/LaunchAgents").expanduser()
HELPER_SCRIPT_NAME: str = "refresh.sh"
AGENT_STDOUT_PATH: str = "/tmp/codestickies.backup.log"
AGENT_STDERR_PATH: str = "/tmp/codestickies.backup.err"
LAUNCHCTL: str = "/bin/launchctl"

# Seconds between automatic backups when none was chosen.
DEFAULT_BACKUP_INTERVAL: int = 3600

# Intervals offered to the user, in seconds.
BACKUP_INTERVAL_PRESETS: dict[int, str] = {
    900: "15 minutes",
    1800: "30 minutes",
    3600: "1 hour",
    7200: "2 hours",
    14400: "4 hours",
}

# A process that receives the refresh signal within this many seconds of
# starting was launched only to run the backup, and exits afterwards.
LAUNCH_GRACE_SECONDS: float = 1.0

# How often the backup catalog polls the folder for changes.
FOLDER_POLL_SECONDS: float = 1.0

# AI rewrite backend.
OLLAMA_HOST: str = os.environ.get("CODESTICKIES_OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL: str = os.environ.get("CODESTICKIES_OLLAMA_MODEL", "llama3.2")


def helper_script_path() -> Path:
    """Return where the LaunchAgent helper script is installed."""
    return APP_SUPPORT_DIR / HELPER_SCRIPT_NAME


def agent_plist_path() -> Path:
    """Return the LaunchAgent property list path."""
    return LAUNCH_AGENTS_DIR / f"{AGENT_LABEL}.plist"


def resolve_database_path() -> Path:
    """Return the database path, creating its parent directory."""
    DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
    return DATABASE_PATH


def instance_pid_path(db_path: Path) -> Path:
    """Return the pid file of the ``run`` process serving ``db_path``."""
    return db_path.with_name(f"{db_path.name}.pid")
