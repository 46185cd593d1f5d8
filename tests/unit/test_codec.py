"""Tests for JSON encoding and decoding of notes."""

import json

import pytest

from codestickies.core.codec import decode_notes, encode_notes, note_from_dict, note_to_dict
from codestickies.errors import DecodeError, EncodeError
from codestickies.models.note import Language, Note


def test_roundtrip_preserves_all_fields_for_every_language() -> None:
    notes = [
        Note(id=f"id-{lang.value}", text=f"text {lang.name}\nline 2", title=None if lang else "t", language=lang)
        for lang in Language
    ]

    assert decode_notes(encode_notes(notes)) == notes
    assert decode_notes(encode_notes(notes, pretty=True)) == notes


def test_language_is_persisted_as_integer_kind() -> None:
    data = note_to_dict(Note(id="x", text="", language=Language.HASKELL))

    assert data["language"] == {"kind": 4}


def test_title_is_omitted_when_absent() -> None:
    assert "title" not in note_to_dict(Note(id="x", text=""))


def test_unknown_language_code_decodes_to_none() -> None:
    raw = json.dumps([{"id": "x", "text": "t", "language": {"kind": 42}}])

    (note,) = decode_notes(raw)

    assert note.language is Language.NONE


def test_missing_language_decodes_to_none() -> None:
    assert note_from_dict({"id": "x", "text": "t"}).language is Language.NONE


def test_attributed_text_runs_are_flattened() -> None:
    data = {
        "id": "x",
        "text": ["Hello ", {"font": {"bold": True}}, "World", {}],
        "title": "Styled",
    }

    assert note_from_dict(data).text == "Hello World"


def test_pretty_output_is_indented_utf8() -> None:
    raw = encode_notes([Note(id="x", text="héllo")], pretty=True)

    assert raw.decode("utf-8").startswith("[\n  {")
    assert "héllo" in raw.decode("utf-8")


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b'{"id": "x"}',
        b'[{"text": "no id"}]',
        b'[{"id": "x"}]',
        b'[{"id": "x", "text": 5}]',
        b'[{"id": "x", "text": "", "title": 3}]',
        b"\xff\xfe",
    ],
)
def test_decode_rejects_malformed_data(raw: bytes) -> None:
    with pytest.raises(DecodeError):
        decode_notes(raw)


def test_encode_rejects_unencodable_text() -> None:
    with pytest.raises(EncodeError):
        encode_notes([Note(id="x", text="\ud800")])
