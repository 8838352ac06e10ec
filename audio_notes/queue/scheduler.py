"""Periodic retry sweep for transiently failed jobs.

Each sweep looks at jobs in ``error`` with ``can_retry`` set and, per job:

1. fires a pending retry whose time has come, putting the job back into
   ``uploaded`` (or ``generating_note`` when a transcript exists);
2. leaves a pending retry that is not yet due alone;
3. gives up on a job whose retries are exhausted;
4. otherwise schedules the next retry from the retry ladder.

Every write is conditional on the ``status`` and ``retry_scheduled_at``
values the sweep observed, so overlapping sweeps cannot double-fire.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from audio_notes.config import RetryConfig
from audio_notes.models import JOBS_COLLECTION, Job, JobStatus
from audio_notes.storage.interface import DocumentStore
from audio_notes.utils.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class SweepResult:
    """Job ids grouped by what one sweep did with them."""

    scheduled: list[str] = field(default_factory=list)
    fired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class RetryScheduler:
    """Schedule and fire retries for retryable failed jobs.

    Args:
        documents: Store holding the jobs collection.
        config: Retry ladder, batch size and sweep interval.
        now: Clock returning an aware UTC datetime.
    """

    def __init__(
        self,
        documents: DocumentStore,
        config: RetryConfig | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._documents = documents
        self._config = config or RetryConfig()
        self._now = now

    async def sweep(self) -> SweepResult:
        """Run one pass over retryable failed jobs."""
        result = SweepResult()
        docs = await self._documents.query(
            JOBS_COLLECTION,
            {"status": JobStatus.ERROR.value, "can_retry": True},
            limit=self._config.batch_size,
        )

        for doc in docs:
            job_id = doc.get("id")
            if not job_id:
                logger.warning("Skipping job document without id")
                continue
            try:
                action = await self._handle(doc)
            except ConflictError:
                logger.info(
                    "Job %s changed during retry sweep, skipping",
                    job_id,
                    extra={"job_id": job_id, "stage": "retry"},
                )
                action = "skipped"
            except StorageError:
                logger.error(
                    "Failed to update job %s during retry sweep",
                    job_id,
                    exc_info=True,
                    extra={"job_id": job_id, "stage": "retry"},
                )
                action = "skipped"
            except Exception:
                logger.error(
                    "Unexpected error handling job %s during retry sweep",
                    job_id,
                    exc_info=True,
                    extra={"job_id": job_id, "stage": "retry"},
                )
                action = "skipped"
            getattr(result, action).append(job_id)

        if docs:
            logger.info(
                "Retry sweep: %d scheduled, %d fired, %d skipped",
                len(result.scheduled),
                len(result.fired),
                len(result.skipped),
            )
        return result

    async def _handle(self, doc: dict[str, Any]) -> str:
        job = Job.from_dict(doc)
        if doc.get("max_retries") is None:
            job.max_retries = self._config.default_max_retries
        now = self._now()
        expected = {
            "status": doc.get("status"),
            "retry_scheduled_at": doc.get("retry_scheduled_at"),
        }

        if job.retry_scheduled_at is not None:
            if job.retry_scheduled_at > now:
                return "skipped"
            self._fire(job, now)
            await self._documents.update(
                JOBS_COLLECTION, job.id, job.to_dict(), expected=expected
            )
            logger.info(
                "Retry %d fired for job %s, status -> %s",
                job.retry_count,
                job.id,
                job.status,
                extra={"job_id": job.id, "stage": "retry", "attempt": job.retry_count},
            )
            return "fired"

        if job.retry_count >= job.max_retries:
            logger.debug(
                "Job %s exhausted %d retries",
                job.id,
                job.max_retries,
                extra={"job_id": job.id, "stage": "retry"},
            )
            return "skipped"

        delay = self._config.delay_for(job.retry_count)
        job.retry_scheduled_at = now + timedelta(seconds=delay)
        job.retry_count += 1
        job.updated_at = now
        await self._documents.update(
            JOBS_COLLECTION, job.id, job.to_dict(), expected=expected
        )
        logger.info(
            "Retry %d/%d scheduled for job %s in %.0fs",
            job.retry_count,
            job.max_retries,
            job.id,
            delay,
            extra={"job_id": job.id, "stage": "retry", "attempt": job.retry_count},
        )
        return "scheduled"

    @staticmethod
    def _fire(job: Job, now: datetime) -> None:
        job.status = (
            JobStatus.GENERATING_NOTE if job.transcript_ref else JobStatus.UPLOADED
        )
        job.retry_scheduled_at = None
        job.last_retry_at = now
        job.worker_status = None
        job.worker_id = None
        job.worker_started_at = None
        job.error_code = None
        job.error_message = None
        job.can_retry = False
        job.updated_at = now

    async def run(self, stop_event: asyncio.Event) -> None:
        """Sweep every ``interval_seconds`` until ``stop_event`` is set."""
        logger.info(
            "Retry scheduler starting, interval %.0fs", self._config.interval_seconds
        )
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception:
                logger.error("Unexpected error in retry sweep", exc_info=True)

            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self._config.interval_seconds
                )
            except TimeoutError:
                continue
        logger.info("Retry scheduler stopped")
