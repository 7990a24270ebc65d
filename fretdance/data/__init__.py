"""Note stream ingestion utilities."""

from .notes import (
    NoteEvent,
    NoteGroup,
    NoteStatus,
    NoteDisposition,
    PreparedNotes,
    notes_from_dicts,
    prepare_notes,
)
from .pitch import pitch_to_note_name, note_name_to_pitch

__all__ = [
    "NoteEvent",
    "NoteGroup",
    "NoteStatus",
    "NoteDisposition",
    "PreparedNotes",
    "notes_from_dicts",
    "prepare_notes",
    "pitch_to_note_name",
    "note_name_to_pitch",
]
