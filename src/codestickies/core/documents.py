"""Import and export of ``.stickies`` documents."""

from collections.abc import Iterable
from pathlib import Path

from loguru import logger

from codestickies.config import DOCUMENT_EXTENSION
from codestickies.core.backup.writer import write_atomic
from codestickies.core.codec import decode_notes, encode_notes
from codestickies.errors import DecodeError
from codestickies.models.note import Note


def document_path(path: Path) -> Path:
    """Return ``path`` with the document extension."""
    path = Path(path)
    if path.suffix != f".{DOCUMENT_EXTENSION}":
        path = path.with_name(f"{path.name}.{DOCUMENT_EXTENSION}")
    return path


def export_notes(notes: Iterable[Note], path: Path) -> Path:
    """Write notes to a document. Returns the path actually written."""
    notes = list(notes)
    target = document_path(path)
    write_atomic(target, encode_notes(notes, pretty=True))
    logger.info("Exported {} note(s) to {}", len(notes), target)
    return target


def export_note(note: Note, path: Path) -> Path:
    """Write a single note as a one-element document."""
    return export_notes([note], path)


def read_document(path: Path) -> list[Note]:
    """Read notes from a document.

    Raises:
        DecodeError: If the file cannot be read or is not a notes document.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        msg = f"Cannot read {str(path)!r}: {e}"
        raise DecodeError(msg) from e
    return decode_notes(raw)
