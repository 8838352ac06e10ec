"""Note engine registry with configuration-driven provider selection."""

from audio_notes.notes.gemini import GeminiNoteEngine
from audio_notes.notes.interface import NoteEngine
from audio_notes.notes.openai import OpenAINoteEngine
from audio_notes.utils.errors import NoteGenerationError

NOTE_ENGINES: dict[str, type[NoteEngine]] = {
    "openai": OpenAINoteEngine,
    "gemini": GeminiNoteEngine,
}


def get_note_engine(provider: str, **kwargs: object) -> NoteEngine:
    """Create a note engine instance by provider name.

    Raises:
        NoteGenerationError: If the provider name is not registered.
    """
    engine_cls = NOTE_ENGINES.get(provider)
    if not engine_cls:
        available = ", ".join(sorted(NOTE_ENGINES.keys()))
        raise NoteGenerationError(
            f"Unknown note provider: '{provider}'. Available: {available}",
            provider=provider,
        )
    return engine_cls(**kwargs)
