"""Immutable pipeline configuration.

Thresholds, timeouts and the retry ladder are carried in frozen
dataclasses that are passed into the pool, note generator and scheduler
constructors. ``from_env()`` builds them from environment variables,
falling back to the production defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_RETRY_LADDER_SECONDS: tuple[float, ...] = (
    5 * 60,
    15 * 60,
    60 * 60,
    4 * 60 * 60,
    24 * 60 * 60,
)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    return int(value) if value else default


@dataclass(frozen=True)
class TranscriptionConfig:
    """Segmentation and chunk-pool settings."""

    segment_seconds: float = 360.0
    concurrency: int = 3
    chunk_timeout_seconds: float = 600.0
    base_job_timeout_seconds: float = 600.0
    progress_floor: int = 15
    progress_budget: int = 70
    signed_url_expiry_seconds: int = 3600
    transcript_url_expiry_seconds: int = 18000

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.segment_seconds <= 0:
            raise ValueError("segment_seconds must be positive")

    def job_deadline_seconds(self, total_chunks: int) -> float:
        """Whole-pool time budget for a job with ``total_chunks`` chunks."""
        per_chunk_total = total_chunks * self.chunk_timeout_seconds
        return max(
            self.base_job_timeout_seconds + per_chunk_total,
            per_chunk_total * 1.2,
        )

    @classmethod
    def from_env(cls) -> TranscriptionConfig:
        return cls(
            segment_seconds=_env_float("CHUNK_SECONDS", 360.0),
            concurrency=_env_int("CHUNK_CONCURRENCY", 3),
            chunk_timeout_seconds=_env_float("CHUNK_TIMEOUT_SECONDS", 600.0),
            base_job_timeout_seconds=_env_float(
                "BASE_JOB_TIMEOUT_SECONDS", 600.0
            ),
        )


@dataclass(frozen=True)
class NoteConfig:
    """Note-generation fallback chain settings."""

    max_note_retries: int = 3
    backoff_base_seconds: float = 1.0
    primary_provider: str = "openai"
    fallback_provider: str = "gemini"

    def backoff_seconds(self, attempt_index: int) -> float:
        """Sleep before the attempt following ``attempt_index`` (0-based)."""
        return (2**attempt_index) * self.backoff_base_seconds

    @classmethod
    def from_env(cls) -> NoteConfig:
        return cls(
            max_note_retries=_env_int("MAX_NOTE_RETRIES", 3),
            backoff_base_seconds=_env_float("NOTE_BACKOFF_BASE_SECONDS", 1.0),
            primary_provider=os.environ.get("NOTE_PRIMARY_PROVIDER", "openai"),
            fallback_provider=os.environ.get("NOTE_FALLBACK_PROVIDER", "gemini"),
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry scheduler settings, including the retry ladder."""

    ladder_seconds: tuple[float, ...] = DEFAULT_RETRY_LADDER_SECONDS
    default_max_retries: int = 5
    interval_seconds: float = 300.0
    batch_size: int = 100

    def __post_init__(self) -> None:
        if not self.ladder_seconds:
            raise ValueError("ladder_seconds must not be empty")

    def delay_for(self, retry_count: int) -> float:
        """Delay for the next retry given how many have been scheduled."""
        index = min(max(retry_count, 0), len(self.ladder_seconds) - 1)
        return self.ladder_seconds[index]

    @classmethod
    def from_env(cls) -> RetryConfig:
        return cls(
            default_max_retries=_env_int("DEFAULT_MAX_RETRIES", 5),
            interval_seconds=_env_float("RETRY_INTERVAL_SECONDS", 300.0),
            batch_size=_env_int("RETRY_BATCH_SIZE", 100),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration bundle."""

    transcription: TranscriptionConfig = field(
        default_factory=TranscriptionConfig
    )
    notes: NoteConfig = field(default_factory=NoteConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    asr_provider: str = "soniox"

    @classmethod
    def from_env(cls) -> PipelineConfig:
        return cls(
            transcription=TranscriptionConfig.from_env(),
            notes=NoteConfig.from_env(),
            retry=RetryConfig.from_env(),
            asr_provider=os.environ.get("ASR_PROVIDER", "soniox"),
        )
