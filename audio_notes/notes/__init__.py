"""Study-note generation: providers, parsing and the fallback chain."""

from audio_notes.notes.fallback import NoteGenerationResult, NoteGenerator
from audio_notes.notes.interface import NoteEngine, StudyNoteContent
from audio_notes.notes.registry import get_note_engine

__all__ = [
    "NoteEngine",
    "NoteGenerationResult",
    "NoteGenerator",
    "StudyNoteContent",
    "get_note_engine",
]
