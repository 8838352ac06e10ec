"""Custom exception hierarchy and error taxonomy for the notes pipeline.

All exceptions inherit from PipelineError, enabling targeted handling
at the orchestrator boundary while preserving specific failure context.
Subclasses that always indicate the same failure class carry a fixed
ErrorCode; the classifier reads it before looking at anything else.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    """Classified failure codes persisted on a job record."""

    BAD_AUDIO = "bad_audio"
    TOO_LONG = "too_long"
    QUOTA_EXCEEDED = "quota_exceeded"
    PROVIDER_DOWN = "provider_down"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


RETRYABLE_CODES: frozenset[ErrorCode] = frozenset(
    {ErrorCode.PROVIDER_DOWN, ErrorCode.TIMEOUT}
)


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    code: ErrorCode | None = None

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        code: ErrorCode | None = None,
    ) -> None:
        self.job_id = job_id
        if code is not None:
            self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class AudioFetchError(PipelineError):
    """Raised when downloading the source audio from blob storage fails."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.key = key
        self.status_code = status_code
        super().__init__(message, job_id)


class TranscodeError(PipelineError):
    """Raised when probing or re-encoding the source audio fails."""

    code = ErrorCode.BAD_AUDIO

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        input_path: str | None = None,
    ) -> None:
        self.input_path = input_path
        super().__init__(message, job_id)


class SegmentationError(PipelineError):
    """Raised when the canonical audio cannot be split into chunks."""

    code = ErrorCode.BAD_AUDIO


class ASRError(PipelineError):
    """Raised when the speech-to-text provider fails.

    Carries the HTTP status and the provider's own error code, when the
    provider supplied them, so the classifier can map the failure.
    """

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        provider_code: str | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.provider_code = provider_code
        super().__init__(message, job_id)


class EmptyTranscriptError(PipelineError):
    """Raised when every chunk succeeded but no speech text came back."""

    code = ErrorCode.BAD_AUDIO


class TranscriptionTimeoutError(PipelineError):
    """Raised when the whole-job transcription deadline has passed."""

    code = ErrorCode.TIMEOUT


class NoteGenerationError(PipelineError):
    """Raised when a text-generation provider fails to produce a note."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
        attempts: int = 0,
        provider_code: str | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.attempts = attempts
        self.provider_code = provider_code
        super().__init__(message, job_id)


class NoteParseError(NoteGenerationError):
    """Raised when a provider response cannot be parsed into a study note."""

    def __init__(
        self,
        message: str,
        raw_text: str = "",
        recoverable: bool = True,
        provider: str | None = None,
    ) -> None:
        self.raw_text = raw_text
        self.recoverable = recoverable
        super().__init__(message, provider=provider)


class StorageError(PipelineError):
    """Raised when document or blob storage operations fail."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(message, job_id)


class ConflictError(StorageError):
    """Raised when a conditional document update finds changed fields."""
