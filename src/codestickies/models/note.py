"""Domain models for CodeStickies notes."""

import uuid
from dataclasses import dataclass, field
from enum import IntEnum

UNTITLED = "Untitled Note"


class Language(IntEnum):
    """Syntax highlighting mode of a note.

    Persisted as the integer code, never the name.
    """

    NONE = 0
    AGDA = 1
    CABAL = 2
    CYPHER = 3
    HASKELL = 4
    SQLITE = 5
    SWIFT = 6

    @classmethod
    def from_code(cls, code: object) -> "Language":
        """Return the language for a persisted code, falling back to NONE."""
        if isinstance(code, bool) or not isinstance(code, int):
            return cls.NONE
        try:
            return cls(code)
        except ValueError:
            return cls.NONE

    @property
    def display_name(self) -> str:
        names = {Language.NONE: "None", Language.SQLITE: "SQLite"}
        return names.get(self, self.name.capitalize())


def new_note_id() -> str:
    """Generate a fresh note identifier."""
    return str(uuid.uuid4()).upper()


@dataclass(frozen=True)
class Note:
    """A single sticky note."""

    id: str
    text: str = ""
    title: str | None = None
    language: Language = Language.NONE

    @property
    def display_title(self) -> str:
        return self.title or UNTITLED


@dataclass(frozen=True)
class ImportPlan:
    """What an import would do, for confirmation before it is applied."""

    policy: "ImportPolicy"
    to_add: tuple[Note, ...] = ()
    skipped: int = 0
    replaces_existing: bool = False
    applied: bool = field(default=False, compare=False)

    @property
    def message(self) -> str:
        if self.replaces_existing:
            return (
                "This will remove your current Notes and import "
                f"{len(self.to_add)} new Note(s)"
            )
        if self.skipped:
            return (
                f"This will import {len(self.to_add)} Note(s) "
                f"({self.skipped} Duplicates skipped)"
            )
        return f"This will import {len(self.to_add)} Note(s)"


class ImportPolicy(IntEnum):
    """How imported notes are merged with the existing collection."""

    ADD_DUPLICATES = 0
    CANCEL = 1
    SKIP_DUPLICATES = 2
    REPLACE_EXISTING = 3

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()
