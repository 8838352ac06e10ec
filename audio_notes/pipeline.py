"""Job orchestrator for the audio-to-study-note pipeline.

Drives one job through its state machine:

    uploaded -> processing -> generating_note -> completed
                     \\              \\
                      +-> error      +-> completed (note_status=error)

Stages: download -> normalize -> segment -> chunk transcription ->
persist transcript -> note generation -> persist note. Lower layers only
raise; failures are classified once here and written to the job in a
single update.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from audio_notes.asr.interface import ASREngine
from audio_notes.asr.pool import ChunkTranscriptionPool
from audio_notes.audio.normalize import normalize_audio
from audio_notes.audio.segment import split_into_segments
from audio_notes.config import PipelineConfig
from audio_notes.models import (
    JOBS_COLLECTION,
    NOTES_COLLECTION,
    TRANSCRIPTS_COLLECTION,
    Job,
    JobStatus,
    NoteStatus,
    StudyNote,
    Transcript,
    WorkerStatus,
)
from audio_notes.notes.fallback import NoteGenerator
from audio_notes.observability.metrics import (
    JobMetrics,
    StageTimer,
    failed_stage,
    log_job_metrics,
)
from audio_notes.storage.interface import BlobStore, DocumentStore
from audio_notes.utils.classify import classify_error
from audio_notes.utils.errors import (
    ConflictError,
    ErrorCode,
    PipelineError,
    StorageError,
)
from audio_notes.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

PROGRESS_TRANSCRIBED = 85
PROGRESS_COMPLETE = 100

_SKIP_WORKER_STATUSES = (WorkerStatus.RUNNING, WorkerStatus.FAILED)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class _TranscriptionOutput:
    transcript_id: str
    text: str


class JobProcessor:
    """Runs jobs through transcription and note generation.

    Args:
        documents: Store holding jobs, transcripts and notes.
        blobs: Store holding the uploaded audio and temporary chunks.
        asr_engine: Speech-to-text provider used for every chunk.
        note_generator: Primary/fallback note generation chain.
        config: Pipeline configuration (defaults if omitted).
        worker_id: Identifier written to claimed jobs (random if omitted).
        now: Clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        documents: DocumentStore,
        blobs: BlobStore,
        asr_engine: ASREngine,
        note_generator: NoteGenerator,
        config: PipelineConfig | None = None,
        worker_id: str | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._documents = documents
        self._blobs = blobs
        self._asr_engine = asr_engine
        self._notes = note_generator
        self._config = config or PipelineConfig()
        self._worker_id = worker_id or uuid.uuid4().hex
        self._now = now
        self._pool = ChunkTranscriptionPool(
            asr_engine, blobs, self._config.transcription
        )

    async def process_job(self, job_id: str) -> Job | None:
        """Run a job from ``uploaded`` to ``completed`` (or ``error``).

        A job in ``generating_note`` that already has a transcript takes
        the note-only path instead.

        Returns:
            The final job state, or None when the run was skipped.
        """
        job = await self._load_job(job_id)
        if job is None:
            return None

        if job.worker_status in _SKIP_WORKER_STATUSES:
            logger.debug(
                "Job %s worker_status=%s, skipping",
                job_id,
                job.worker_status,
                extra={"job_id": job_id},
            )
            return None

        if job.status == JobStatus.GENERATING_NOTE and job.transcript_ref:
            return await self._run_note_only(job)

        if job.status != JobStatus.UPLOADED:
            logger.debug(
                "Job %s in status %s, nothing to process",
                job_id,
                job.status,
                extra={"job_id": job_id},
            )
            return None

        if not job.audio_ref:
            missing = PipelineError(
                "Audio storage reference is missing", job_id, ErrorCode.BAD_AUDIO
            )
            return await self._mark_error(job, missing, "init", conditional=True)

        return await self._run_full(job)

    async def generate_note(self, job_id: str) -> Job | None:
        """Run only the note stage for a job whose transcript already exists.

        Returns:
            The final job state, or None when the run was skipped.
        """
        job = await self._load_job(job_id)
        if job is None:
            return None

        if (
            job.worker_status in _SKIP_WORKER_STATUSES
            or job.note_status == NoteStatus.READY
        ):
            logger.debug(
                "Job %s note already handled (worker_status=%s, note_status=%s)",
                job_id,
                job.worker_status,
                job.note_status,
                extra={"job_id": job_id},
            )
            return None

        if job.status != JobStatus.GENERATING_NOTE or not job.transcript_ref:
            return None

        return await self._run_note_only(job)

    async def _load_job(self, job_id: str) -> Job | None:
        doc = await self._documents.get(JOBS_COLLECTION, job_id)
        if doc is None:
            logger.warning("Job %s not found", job_id, extra={"job_id": job_id})
            return None
        return Job.from_dict({**doc, "id": job_id})

    async def _claim(self, job: Job, status: JobStatus) -> Job | None:
        """Take ownership of a job with a conditional update.

        The write only applies while ``status`` and ``worker_status`` still
        hold the values this run observed, so exactly one concurrent run
        wins.
        """
        expected = {
            "status": job.status.value,
            "worker_status": job.worker_status.value if job.worker_status else None,
        }
        now = self._now()
        job.status = status
        job.worker_status = WorkerStatus.RUNNING
        job.worker_id = self._worker_id
        job.worker_started_at = now
        job.updated_at = now

        try:
            await self._documents.update(
                JOBS_COLLECTION, job.id, job.to_dict(), expected=expected
            )
        except ConflictError:
            logger.info(
                "Job %s claimed by another run, skipping",
                job.id,
                extra={"job_id": job.id},
            )
            return None
        return job

    async def _save_job(self, job: Job) -> None:
        """Write the whole job, guarded on this run still owning it."""
        job.updated_at = self._now()
        await self._documents.update(
            JOBS_COLLECTION,
            job.id,
            job.to_dict(),
            expected={"worker_id": self._worker_id},
        )

    async def _run_full(self, job: Job) -> Job | None:
        wall_start = time.monotonic()
        metrics = JobMetrics(
            job_id=job.id, status="failed", retry_count=job.retry_count
        )

        claimed = await self._claim(job, JobStatus.PROCESSING)
        if claimed is None:
            return None
        job = claimed
        logger.info(
            "Processing job %s", job.id, extra={"job_id": job.id, "stage": "claim"}
        )

        try:
            with tempfile.TemporaryDirectory(prefix=f"job_{job.id}_") as tmp_dir:
                output = await self._run_transcription_stage(job, tmp_dir, metrics)
            job = await self._run_note_stage(job, output, metrics)
        except Exception as exc:
            stage = failed_stage(metrics.stage_timings) or "unknown"
            job = await self._mark_error(job, exc, stage)
            metrics.error_stage = stage
            metrics.error_code = job.error_code
            metrics.error_message = job.error_message
        else:
            metrics.status = "completed"

        metrics.processing_wall_time_seconds = time.monotonic() - wall_start
        log_job_metrics(metrics)
        return job

    async def _run_note_only(self, job: Job) -> Job | None:
        wall_start = time.monotonic()
        metrics = JobMetrics(
            job_id=job.id, status="failed", retry_count=job.retry_count
        )

        claimed = await self._claim(job, JobStatus.GENERATING_NOTE)
        if claimed is None:
            return None
        job = claimed
        logger.info(
            "Generating note for job %s from stored transcript",
            job.id,
            extra={"job_id": job.id, "stage": "note"},
        )

        try:
            with StageTimer("load_transcript", metrics.stage_timings):
                doc = await self._documents.get(
                    TRANSCRIPTS_COLLECTION, job.transcript_ref
                )
                if doc is None or not doc.get("text"):
                    raise StorageError(
                        f"Stored transcript {job.transcript_ref} is unavailable",
                        job.id,
                        operation="get",
                    )
            output = _TranscriptionOutput(job.transcript_ref, doc["text"])
            job = await self._run_note_stage(job, output, metrics)
        except Exception as exc:
            stage = failed_stage(metrics.stage_timings) or "unknown"
            job = await self._mark_error(job, exc, stage)
            metrics.error_stage = stage
            metrics.error_code = job.error_code
            metrics.error_message = job.error_message
        else:
            metrics.status = "completed"

        metrics.processing_wall_time_seconds = time.monotonic() - wall_start
        log_job_metrics(metrics)
        return job

    async def _run_transcription_stage(
        self, job: Job, tmp_dir: str, metrics: JobMetrics
    ) -> _TranscriptionOutput:
        """Download, normalize, split, transcribe and persist the transcript."""
        timings = metrics.stage_timings
        source_path = os.path.join(
            tmp_dir, os.path.basename(job.audio_ref) or f"{job.id}.audio"
        )

        with StageTimer("download", timings):
            await _download_with_retry(self._blobs, job.audio_ref, source_path)

        with StageTimer("normalize", timings):
            normalized = await asyncio.to_thread(
                normalize_audio, source_path, os.path.join(tmp_dir, "normalized")
            )
        metrics.audio_converted = normalized.converted
        metrics.audio_duration_seconds = normalized.probe.duration_seconds
        if job.duration_seconds is None:
            job.duration_seconds = normalized.probe.duration_seconds

        with StageTimer("segment", timings):
            chunk_paths = await asyncio.to_thread(
                split_into_segments,
                normalized.output_path,
                os.path.join(tmp_dir, "chunks"),
                self._config.transcription.segment_seconds,
            )
        metrics.chunk_count = len(chunk_paths)

        async def on_progress(progress: int) -> None:
            job.progress = max(job.progress, progress)
            try:
                await self._save_job(job)
            except StorageError:
                logger.warning(
                    "Failed to persist progress %d for job %s",
                    job.progress,
                    job.id,
                    exc_info=True,
                    extra={"job_id": job.id, "stage": "transcribe"},
                )

        with StageTimer("transcribe", timings):
            result = await self._pool.transcribe(job.id, chunk_paths, on_progress)
        metrics.transcript_chars = len(result.text)
        metrics.transcript_confidence = result.confidence

        with StageTimer("persist_transcript", timings):
            audio_url = await asyncio.to_thread(
                self._blobs.signed_url,
                job.audio_ref,
                self._config.transcription.transcript_url_expiry_seconds,
            )
            transcript = Transcript(
                id=uuid.uuid4().hex,
                text=result.text,
                audio_url=audio_url,
                duration_seconds=normalized.probe.duration_seconds,
                confidence=result.confidence,
                metadata={
                    "job_id": job.id,
                    "source": self._asr_engine.provider_name,
                    "chunk_count": len(chunk_paths),
                },
                created_at=self._now(),
            )
            await self._documents.create(
                TRANSCRIPTS_COLLECTION, transcript.id, transcript.to_dict()
            )

            job.status = JobStatus.GENERATING_NOTE
            job.transcript_ref = transcript.id
            job.note_status = NoteStatus.PROCESSING
            job.note_error = None
            job.note_can_retry = False
            job.progress = max(job.progress, PROGRESS_TRANSCRIBED)
            await self._save_job(job)

        logger.info(
            "Transcript %s stored for job %s (%d chunks)",
            transcript.id,
            job.id,
            len(chunk_paths),
            extra={"job_id": job.id, "stage": "persist_transcript"},
        )
        return _TranscriptionOutput(transcript.id, transcript.text)

    async def _run_note_stage(
        self, job: Job, output: _TranscriptionOutput, metrics: JobMetrics
    ) -> Job:
        """Generate and persist the study note.

        Note failures leave the transcript usable: the job completes with
        ``note_status=error`` instead of moving to ``error``.
        """
        with StageTimer("note", metrics.stage_timings):
            try:
                result = await self._notes.generate(output.text, job.id)
                note = StudyNote(
                    id=uuid.uuid4().hex,
                    transcription_id=output.transcript_id,
                    title=result.note.title,
                    summary=result.note.summary,
                    key_points=result.note.key_points,
                    action_items=result.note.action_items,
                    study_questions=result.note.study_questions,
                    metadata={
                        "job_id": job.id,
                        "provider": result.provider,
                        "attempts": result.attempts,
                        "warnings": result.warnings,
                    },
                    created_at=self._now(),
                )
                await self._documents.create(
                    NOTES_COLLECTION, note.id, note.to_dict()
                )
            except Exception as exc:
                classification = classify_error(exc)
                logger.error(
                    "Note generation failed for job %s: %s",
                    job.id,
                    classification.message,
                    extra={
                        "job_id": job.id,
                        "stage": "note",
                        "error_code": classification.code,
                    },
                )
                metrics.note_attempts = getattr(exc, "attempts", 0)
                job.status = JobStatus.COMPLETED
                job.note_status = NoteStatus.ERROR
                job.note_error = classification.message
                job.note_can_retry = True
                job.worker_status = WorkerStatus.NOTE_FAILED
                job.progress = PROGRESS_COMPLETE
                await self._save_job(job)
                return job

        metrics.note_provider = result.provider
        metrics.note_attempts = result.attempts

        now = self._now()
        job.status = JobStatus.COMPLETED
        job.note_status = NoteStatus.READY
        job.note_ref = note.id
        job.note_error = None
        job.note_can_retry = False
        job.can_retry = False
        job.error_code = None
        job.error_message = None
        job.worker_status = WorkerStatus.FINISHED
        job.progress = PROGRESS_COMPLETE
        job.completed_at = now
        await self._save_job(job)

        logger.info(
            "Job %s completed with note %s from %s after %d attempt(s)",
            job.id,
            note.id,
            result.provider,
            result.attempts,
            extra={"job_id": job.id, "stage": "note", "provider": result.provider},
        )
        return job

    async def _mark_error(
        self,
        job: Job,
        exc: BaseException,
        stage: str,
        conditional: bool = False,
    ) -> Job:
        """Classify ``exc`` and move the job to ``error`` in one update.

        Args:
            job: Job to update.
            exc: The failure.
            stage: Pipeline stage that failed, for logging.
            conditional: Guard the write on the observed status instead of
                on ownership (used before the job has been claimed).
        """
        classification = classify_error(exc)
        logger.error(
            "Job %s failed at stage '%s': %s",
            job.id,
            stage,
            classification.message,
            exc_info=exc,
            extra={
                "job_id": job.id,
                "stage": stage,
                "error_code": classification.code,
            },
        )

        expected = (
            {"status": job.status.value}
            if conditional
            else {"worker_id": self._worker_id}
        )
        job.status = JobStatus.ERROR
        job.worker_status = WorkerStatus.FAILED
        job.error_code = classification.code
        job.error_message = classification.message
        job.can_retry = classification.retryable
        job.updated_at = self._now()

        try:
            await self._documents.update(
                JOBS_COLLECTION, job.id, job.to_dict(), expected=expected
            )
        except Exception:
            logger.error(
                "Failed to record error status for job %s",
                job.id,
                exc_info=True,
                extra={"job_id": job.id, "stage": stage},
            )
        return job


@retry_with_backoff(max_retries=3, base_delay=1.0)
async def _download_with_retry(
    blobs: BlobStore, key: str, destination: str
) -> None:
    """Download the source audio, retrying transient failures."""
    await asyncio.to_thread(blobs.download_to, key, destination)
