"""JSON encoding and decoding of note collections."""

import json
from collections.abc import Iterable
from typing import Any

from codestickies.errors import DecodeError, EncodeError
from codestickies.models.note import Language, Note


def note_to_dict(note: Note) -> dict[str, Any]:
    """Convert a note to its persisted JSON shape."""
    data: dict[str, Any] = {"id": note.id, "text": note.text}
    if note.title is not None:
        data["title"] = note.title
    data["language"] = {"kind": int(note.language)}
    return data


def _flatten_text(raw: Any) -> str:
    """Return plain text from a string or an attributed-string run list.

    Attributed text is stored as a list alternating text runs and attribute
    dictionaries. Attributes only affect styling and are dropped.
    """
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        return "".join(part for part in raw if isinstance(part, str))
    msg = f"unsupported note text: {type(raw).__name__}"
    raise DecodeError(msg)


def note_from_dict(data: Any) -> Note:
    """Parse one persisted note.

    Raises:
        DecodeError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        msg = f"expected a note object, got {type(data).__name__}"
        raise DecodeError(msg)
    note_id = data.get("id")
    if not isinstance(note_id, str) or not note_id:
        msg = f"note has no valid id: {note_id!r}"
        raise DecodeError(msg)
    if "text" not in data:
        msg = f"note {note_id!r} has no text"
        raise DecodeError(msg)
    title = data.get("title")
    if title is not None and not isinstance(title, str):
        msg = f"note {note_id!r} has a non-string title"
        raise DecodeError(msg)

    language = data.get("language")
    code = language.get("kind") if isinstance(language, dict) else None

    return Note(
        id=note_id,
        text=_flatten_text(data["text"]),
        title=title,
        language=Language.from_code(code),
    )


def encode_notes(notes: Iterable[Note], *, pretty: bool = False) -> bytes:
    """Serialize notes to UTF-8 JSON.

    Args:
        notes: Notes to serialize, in order.
        pretty: Indent the output, as used for backups and exports.

    Raises:
        EncodeError: If the notes cannot be represented as UTF-8 JSON.
    """
    payload = [note_to_dict(n) for n in notes]
    try:
        if pretty:
            text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
        else:
            text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        return text.encode("utf-8")
    except (TypeError, ValueError) as e:
        msg = f"Cannot encode {len(payload)} note(s): {e}"
        raise EncodeError(msg) from e


def decode_notes(raw: bytes | str) -> list[Note]:
    """Parse a JSON array of notes.

    Raises:
        DecodeError: If the data is not a JSON array of valid notes.
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        msg = f"Invalid notes JSON: {e}"
        raise DecodeError(msg) from e
    if not isinstance(data, list):
        msg = f"expected a list of notes, got {type(data).__name__}"
        raise DecodeError(msg)
    return [note_from_dict(item) for item in data]
