"""Abstract ASR engine interface.

Concrete providers (e.g., Soniox) subclass ASREngine. The chunk pool hands
each engine a time-limited URL for one canonical WAV chunk.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ChunkTranscript:
    """Text and optional confidence for one transcribed chunk."""

    text: str
    confidence: float | None = None
    raw_response: dict = field(default_factory=dict)


class ASREngine(ABC):
    """Abstract base class for ASR engine implementations.

    Subclasses must implement the transcribe() method.
    """

    provider_name: str = "unknown"

    @abstractmethod
    async def transcribe(self, audio_url: str, timeout: float) -> ChunkTranscript:
        """Transcribe one audio chunk.

        Args:
            audio_url: Signed read URL of a 16kHz mono WAV chunk.
            timeout: Seconds allowed for this single request.

        Returns:
            ChunkTranscript with the recognized text. Silence yields an
            empty string rather than an error.

        Raises:
            ASRError: On provider rejection, HTTP failure, or timeout.
        """
