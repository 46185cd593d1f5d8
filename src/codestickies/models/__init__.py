"""Domain models."""

from codestickies.models.note import ImportPlan, ImportPolicy, Language, Note, new_note_id

__all__ = ["ImportPlan", "ImportPolicy", "Language", "Note", "new_note_id"]
