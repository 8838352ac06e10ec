"""Persistent data models: Job, Transcript and StudyNote.

Records are plain dataclasses that round-trip through dicts so any
document store can hold them. Timestamps are stored as ISO 8601 strings.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import StrEnum
from typing import Any

from audio_notes.utils.errors import ErrorCode

JOBS_COLLECTION = "transcription_jobs"
TRANSCRIPTS_COLLECTION = "transcriptions"
NOTES_COLLECTION = "study_notes"

DEFAULT_MAX_RETRIES = 5


class JobStatus(StrEnum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    GENERATING_NOTE = "generating_note"
    COMPLETED = "completed"
    ERROR = "error"


class WorkerStatus(StrEnum):
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    NOTE_FAILED = "note_failed"


class NoteStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


_DATETIME_FIELDS = {
    "retry_scheduled_at",
    "last_retry_at",
    "worker_started_at",
    "completed_at",
    "updated_at",
    "created_at",
}


def _to_primitive(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _serialize(record: Any) -> dict[str, Any]:
    return {key: _to_primitive(value) for key, value in asdict(record).items()}


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    values = {key: value for key, value in data.items() if key in names}
    for key in _DATETIME_FIELDS & values.keys():
        values[key] = _parse_datetime(values[key])
    return values


@dataclass
class Job:
    """One uploaded audio file tracked through the pipeline.

    Mutated only by the orchestrator (and the retry scheduler for its
    retry bookkeeping) through whole-document updates.
    """

    id: str
    status: JobStatus = JobStatus.UPLOADED
    worker_status: WorkerStatus | None = None
    audio_ref: str | None = None
    duration_seconds: float | None = None
    progress: int = 0
    transcript_ref: str | None = None
    note_ref: str | None = None
    note_status: NoteStatus = NoteStatus.PENDING
    note_error: str | None = None
    can_retry: bool = False
    note_can_retry: bool = False
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_scheduled_at: datetime | None = None
    last_retry_at: datetime | None = None
    error_code: ErrorCode | None = None
    error_message: str | None = None
    worker_id: str | None = None
    worker_started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        values = _known_fields(cls, data)
        values["status"] = JobStatus(values.get("status", JobStatus.UPLOADED))
        if values.get("worker_status"):
            values["worker_status"] = WorkerStatus(values["worker_status"])
        else:
            values["worker_status"] = None
        values["note_status"] = NoteStatus(
            values.get("note_status") or NoteStatus.PENDING
        )
        if values.get("error_code"):
            values["error_code"] = ErrorCode(values["error_code"])
        if values.get("max_retries") is None:
            values["max_retries"] = DEFAULT_MAX_RETRIES
        if values.get("retry_count") is None:
            values["retry_count"] = 0
        return cls(**values)


@dataclass
class Transcript:
    """Immutable transcript produced by the transcription stage."""

    id: str
    text: str
    audio_url: str
    duration_seconds: float
    confidence: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(self)
        if self.confidence is None:
            data.pop("confidence")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transcript:
        return cls(**_known_fields(cls, data))


@dataclass
class StudyNote:
    """Immutable structured study note derived from a transcript."""

    id: str
    transcription_id: str
    title: str
    summary: str
    key_points: list[str]
    action_items: list[str]
    study_questions: list[str]
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StudyNote:
        return cls(**_known_fields(cls, data))
