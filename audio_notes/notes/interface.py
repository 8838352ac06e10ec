"""Abstract note engine interface and the study-note content model.

Concrete providers (OpenAI, Gemini) subclass NoteEngine. Engines only
return raw model text; parsing and retries live in the fallback chain.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class StudyNoteContent:
    """Validated study-note fields produced from one transcript."""

    title: str
    summary: str
    key_points: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    study_questions: list[str] = field(default_factory=list)


class NoteEngine(ABC):
    """Abstract base class for text-generation providers."""

    provider_name: str = "unknown"

    @abstractmethod
    async def generate(self, transcript_text: str) -> str:
        """Ask the provider for a study note and return its raw text.

        Args:
            transcript_text: Sanitized transcript to summarize.

        Returns:
            The model's raw response text, expected to contain JSON.

        Raises:
            NoteGenerationError: On HTTP failure or an empty response.
        """
