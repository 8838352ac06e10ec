"""Job processing metrics collection and reporting.

Provides the JobMetrics dataclass, a StageTimer context manager for
measuring pipeline stage durations, and log_job_metrics() for emitting
one structured JSON line per orchestrator run.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime


@dataclass
class JobMetrics:
    """Metrics collected for a single orchestrator run of one job."""

    job_id: str
    status: str
    processing_wall_time_seconds: float = 0.0
    audio_duration_seconds: float = 0.0
    audio_converted: bool = False
    chunk_count: int = 0
    transcript_chars: int = 0
    transcript_confidence: float | None = None
    note_provider: str | None = None
    note_attempts: int = 0
    retry_count: int = 0
    stage_timings: dict[str, float] = field(default_factory=dict)
    error_stage: str | None = None
    error_code: str | None = None
    error_message: str | None = None


class StageTimer:
    """Context manager that records wall-clock duration of a pipeline stage.

    When given a ``timings`` dict, the duration is stored under the stage
    name on success, or under ``_{stage}_failed`` when the block raised.

    Usage:
        timer = StageTimer("normalize")
        with timer:
            do_work()
        print(timer.duration_seconds)
    """

    def __init__(
        self, stage_name: str, timings: dict[str, float] | None = None
    ) -> None:
        self.stage_name = stage_name
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.duration_seconds: float = 0.0
        self._timings = timings
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self.start_time = datetime.now(UTC)
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start
        self.end_time = datetime.now(UTC)
        if self._timings is not None:
            key = self.stage_name if exc_type is None else f"_{self.stage_name}_failed"
            self._timings[key] = self.duration_seconds


def failed_stage(timings: dict[str, float]) -> str | None:
    """Name of the stage recorded as failed in ``timings``, if any."""
    for key in timings:
        if key.startswith("_") and key.endswith("_failed"):
            return key[1 : -len("_failed")]
    return None


def log_job_metrics(metrics: JobMetrics) -> None:
    """Emit job metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated JobMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "job_completion",
        **asdict(metrics),
    }
    print(json.dumps(entry))
