"""SQLite schema and key-value access for CodeStickies storage."""

import sqlite3
from pathlib import Path

from codestickies.errors import StorageError

SCHEMA_VERSION = 1

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS defaults (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables."""
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> int | None:
    """Return the current schema version, or None if metadata table doesn't exist."""
    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return int(row[0]) if row else None


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Create or migrate the database schema to the latest version."""
    version = get_schema_version(conn)
    if version is None:
        create_schema(conn)


class KeyValueStore:
    """Durable key-value storage backed by SQLite.

    Each ``set`` is committed before returning, so a value is either fully
    stored or not at all.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        migrate_schema(conn)

    @classmethod
    def open(cls, path: Path) -> "KeyValueStore":
        """Open (creating if needed) the database at ``path``."""
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(sqlite3.connect(str(path), check_same_thread=False))

    def get(self, key: str) -> bytes | None:
        row = self._conn.execute(
            "SELECT value FROM defaults WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        value = row[0]
        return value.encode("utf-8") if isinstance(value, str) else bytes(value)

    def set(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``.

        Raises:
            StorageError: If the write could not be committed.
        """
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO defaults (key, value, updated_at) "
                "VALUES (?, ?, strftime('%s', 'now'))",
                (key, value),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            msg = f"Cannot store {key!r}: {e}"
            raise StorageError(msg) from e

    def delete(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM defaults WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            msg = f"Cannot delete {key!r}: {e}"
            raise StorageError(msg) from e

    def close(self) -> None:
        self._conn.close()
