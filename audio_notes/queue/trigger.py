"""Route job change notifications to the orchestrator.

Two transitions start work:

- a job entering ``uploaded`` runs the full pipeline;
- a job entering ``generating_note`` with a transcript runs the note stage.

Any other change is ignored. Delivery is at-least-once; the orchestrator's
guard and conditional claim make repeated deliveries harmless.
"""

from __future__ import annotations

import logging
from typing import Any

from audio_notes.models import JOBS_COLLECTION, JobStatus
from audio_notes.pipeline import JobProcessor
from audio_notes.storage.interface import ChangeEvent

logger = logging.getLogger(__name__)

ROUTE_PROCESS = "process_job"
ROUTE_NOTE = "generate_note"


def _status(doc: dict[str, Any] | None) -> str | None:
    return doc.get("status") if doc else None


def route_for(event: ChangeEvent, collection: str = JOBS_COLLECTION) -> str | None:
    """Name of the orchestrator operation an event should start, if any."""
    if event.collection != collection or event.after is None:
        return None

    before = _status(event.before)
    after = _status(event.after)
    if after == before:
        return None

    if after == JobStatus.UPLOADED:
        return ROUTE_PROCESS
    if after == JobStatus.GENERATING_NOTE and event.after.get("transcript_ref"):
        return ROUTE_NOTE
    return None


class JobTrigger:
    """Dispatch change events on the jobs collection to a JobProcessor."""

    def __init__(
        self, processor: JobProcessor, collection: str = JOBS_COLLECTION
    ) -> None:
        self._processor = processor
        self._collection = collection

    async def handle(self, event: ChangeEvent) -> str | None:
        """Start the operation matching ``event``.

        Returns:
            The route taken, or None when the event was ignored.
        """
        route = route_for(event, self._collection)
        if route is None:
            return None

        logger.info(
            "Job %s changed %s -> %s, running %s",
            event.document_id,
            _status(event.before),
            _status(event.after),
            route,
            extra={"job_id": event.document_id, "stage": "trigger"},
        )
        if route == ROUTE_PROCESS:
            await self._processor.process_job(event.document_id)
        else:
            await self._processor.generate_note(event.document_id)
        return route
