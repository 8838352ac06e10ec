"""Tests for audio_notes.queue.trigger module."""

from unittest.mock import AsyncMock

import pytest

from audio_notes.queue.trigger import ROUTE_NOTE, ROUTE_PROCESS, JobTrigger, route_for
from audio_notes.storage.interface import ChangeEvent


def _event(before, after, collection: str = "transcription_jobs") -> ChangeEvent:
    return ChangeEvent(
        collection=collection, document_id="job-1", before=before, after=after
    )


class TestRouteFor:
    def test_new_uploaded_job_runs_pipeline(self) -> None:
        assert route_for(_event(None, {"status": "uploaded"})) == ROUTE_PROCESS

    def test_retry_back_to_uploaded_runs_pipeline(self) -> None:
        event = _event({"status": "error"}, {"status": "uploaded"})
        assert route_for(event) == ROUTE_PROCESS

    def test_generating_note_with_transcript_runs_note_stage(self) -> None:
        event = _event(
            {"status": "error"},
            {"status": "generating_note", "transcript_ref": "t-1"},
        )
        assert route_for(event) == ROUTE_NOTE

    def test_generating_note_without_transcript_is_ignored(self) -> None:
        event = _event({"status": "processing"}, {"status": "generating_note"})
        assert route_for(event) is None

    @pytest.mark.parametrize(
        ("before", "after"),
        [
            ({"status": "uploaded"}, {"status": "uploaded", "progress": 5}),
            ({"status": "uploaded"}, {"status": "processing"}),
            ({"status": "generating_note"}, {"status": "completed"}),
            ({"status": "processing"}, {"status": "error"}),
        ],
    )
    def test_other_changes_are_ignored(self, before, after) -> None:
        assert route_for(_event(before, after)) is None

    def test_deletes_are_ignored(self) -> None:
        assert route_for(_event({"status": "uploaded"}, None)) is None

    def test_other_collections_are_ignored(self) -> None:
        event = _event(None, {"status": "uploaded"}, collection="transcriptions")
        assert route_for(event) is None


class TestJobTrigger:
    async def test_dispatches_process_job(self) -> None:
        processor = AsyncMock()
        trigger = JobTrigger(processor)

        route = await trigger.handle(_event(None, {"status": "uploaded"}))

        assert route == ROUTE_PROCESS
        processor.process_job.assert_awaited_once_with("job-1")
        processor.generate_note.assert_not_called()

    async def test_dispatches_generate_note(self) -> None:
        processor = AsyncMock()
        trigger = JobTrigger(processor)

        route = await trigger.handle(
            _event(
                {"status": "processing"},
                {"status": "generating_note", "transcript_ref": "t-1"},
            )
        )

        assert route == ROUTE_NOTE
        processor.generate_note.assert_awaited_once_with("job-1")

    async def test_ignored_event_returns_none(self) -> None:
        processor = AsyncMock()
        route = await JobTrigger(processor).handle(
            _event({"status": "processing"}, {"status": "error"})
        )
        assert route is None
        processor.process_job.assert_not_called()

    async def test_processor_errors_propagate(self) -> None:
        processor = AsyncMock()
        processor.process_job.side_effect = RuntimeError("store down")
        with pytest.raises(RuntimeError):
            await JobTrigger(processor).handle(_event(None, {"status": "uploaded"}))
