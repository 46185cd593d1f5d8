"""Authoritative, write-through persisted collection of notes."""

import dataclasses
from collections.abc import Callable, Iterable, Iterator

from loguru import logger

from codestickies.config import NOTES_KEY
from codestickies.core.codec import decode_notes, encode_notes
from codestickies.errors import DecodeError, DuplicateNoteError, NoteNotFoundError
from codestickies.models.note import ImportPlan, ImportPolicy, Note, new_note_id
from codestickies.protocols import KeyValueProtocol


def load_notes(storage: KeyValueProtocol, key: str = NOTES_KEY) -> list[Note]:
    """Load the persisted collection, returning an empty list if unreadable."""
    raw = storage.get(key)
    if raw is None:
        return []
    try:
        return decode_notes(raw)
    except DecodeError:
        logger.opt(exception=True).warning("Stored notes are unreadable, starting empty")
        return []


class NoteStore:
    """Ordered collection of notes, persisted after every mutation.

    Mutations build the new collection, persist it, and only then swap it in,
    so a failed write leaves both memory and storage at the previous state.
    """

    def __init__(self, storage: KeyValueProtocol, *, key: str = NOTES_KEY) -> None:
        self._storage = storage
        self._key = key
        self._notes: list[Note] = []
        loaded = load_notes(storage, key)
        seen: set[str] = set()
        for note in loaded:
            if note.id in seen:
                logger.warning("Dropping stored note with duplicate id {}", note.id)
                continue
            seen.add(note.id)
            self._notes.append(note)
        logger.debug("Loaded {} note(s)", len(self._notes))

    @property
    def notes(self) -> tuple[Note, ...]:
        return tuple(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def __iter__(self) -> Iterator[Note]:
        return iter(tuple(self._notes))

    def __contains__(self, note_id: object) -> bool:
        return any(n.id == note_id for n in self._notes)

    def get(self, note_id: str) -> Note | None:
        for note in self._notes:
            if note.id == note_id:
                return note
        return None

    def _index(self, note_id: str) -> int | None:
        for i, note in enumerate(self._notes):
            if note.id == note_id:
                return i
        return None

    def _commit(self, notes: list[Note]) -> None:
        try:
            self._storage.set(self._key, encode_notes(notes))
        except Exception:
            logger.exception("Failed to persist {} note(s)", len(notes))
            raise
        self._notes = notes

    def create(self, title: str | None = None, text: str = "NEW NOTE") -> Note:
        """Create a note with a fresh id and append it."""
        note = Note(id=new_note_id(), text=text, title=title or None)
        self.append(note)
        logger.info("Created note {}", note.id)
        return note

    def append(self, note: Note) -> None:
        """Append a note.

        Raises:
            DuplicateNoteError: If a note with the same id exists.
        """
        if note.id in self:
            msg = f"Note {note.id!r} already exists"
            raise DuplicateNoteError(msg)
        self._commit([*self._notes, note])

    def update(self, note_id: str, mutator: Callable[[Note], Note]) -> Note:
        """Replace a note with ``mutator(note)`` and persist.

        Raises:
            NoteNotFoundError: If no note has this id.
            ValueError: If the mutator changed the id.
        """
        index = self._index(note_id)
        if index is None:
            msg = f"Note {note_id!r} not found"
            raise NoteNotFoundError(msg)
        updated = mutator(self._notes[index])
        if updated.id != note_id:
            msg = f"Mutator changed note id {note_id!r} -> {updated.id!r}"
            raise ValueError(msg)
        notes = list(self._notes)
        notes[index] = updated
        self._commit(notes)
        return updated

    def delete(self, note_id: str) -> bool:
        """Remove a note if present. Returns True if something was removed."""
        index = self._index(note_id)
        if index is None:
            return False
        notes = list(self._notes)
        del notes[index]
        self._commit(notes)
        logger.info("Deleted note {}", note_id)
        return True

    def replace_all(self, notes: Iterable[Note]) -> None:
        """Replace the whole collection.

        Raises:
            DuplicateNoteError: If ``notes`` contains the same id twice.
        """
        new_notes = list(notes)
        ids = [n.id for n in new_notes]
        if len(set(ids)) != len(ids):
            msg = "Replacement contains duplicate note ids"
            raise DuplicateNoteError(msg)
        self._commit(new_notes)

    def clear(self) -> None:
        self.replace_all([])

    def plan_import(self, incoming: Iterable[Note], policy: ImportPolicy) -> ImportPlan:
        """Compute the effect of importing ``incoming`` under ``policy``.

        Duplicate detection is by id, both against the store and within
        ``incoming`` itself.
        """
        incoming = list(incoming)
        if policy is ImportPolicy.CANCEL:
            return ImportPlan(policy=policy)

        if policy is ImportPolicy.REPLACE_EXISTING:
            to_add: list[Note] = []
            seen: set[str] = set()
            for note in incoming:
                if note.id not in seen:
                    seen.add(note.id)
                    to_add.append(note)
            return ImportPlan(
                policy=policy,
                to_add=tuple(to_add),
                skipped=len(incoming) - len(to_add),
                replaces_existing=True,
            )

        taken = {n.id for n in self._notes}
        to_add = []
        skipped = 0
        for note in incoming:
            if note.id not in taken:
                to_add.append(note)
            elif policy is ImportPolicy.ADD_DUPLICATES:
                fresh_id = new_note_id()
                while fresh_id in taken:
                    fresh_id = new_note_id()
                note = dataclasses.replace(note, id=fresh_id)
                to_add.append(note)
            else:
                skipped += 1
                continue
            taken.add(note.id)
        return ImportPlan(policy=policy, to_add=tuple(to_add), skipped=skipped)

    def import_merge(
        self,
        incoming: Iterable[Note],
        policy: ImportPolicy,
        confirm: Callable[[ImportPlan], bool] | None = None,
    ) -> ImportPlan:
        """Merge imported notes into the store.

        Args:
            incoming: Notes read from a document or backup.
            policy: Merge policy chosen by the user.
            confirm: Called with the plan before anything changes. Returning
                False leaves the store untouched.

        Returns:
            The plan, with ``applied`` set if the store was changed.
        """
        plan = self.plan_import(incoming, policy)
        if policy is ImportPolicy.CANCEL:
            logger.info("Import cancelled")
            return plan
        if confirm is not None and not confirm(plan):
            logger.info("Import not confirmed")
            return plan

        if plan.replaces_existing:
            self._commit(list(plan.to_add))
        else:
            self._commit([*self._notes, *plan.to_add])
        logger.info(
            "Imported {} note(s) ({}), {} skipped",
            len(plan.to_add), policy.label, plan.skipped,
        )
        return dataclasses.replace(plan, applied=True)
