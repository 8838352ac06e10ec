"""Bounded-concurrency chunk transcription pool.

Each chunk is uploaded to a temporary blob, signed, sent to the ASR engine
and deleted again. A fixed number of asyncio workers pull the next chunk
index from a shared counter, so at most ``concurrency`` chunks are in
flight. The first failure stops new chunks from starting; in-flight chunks
settle before that failure is re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from audio_notes.asr.interface import ASREngine
from audio_notes.config import TranscriptionConfig
from audio_notes.storage.interface import BlobStore
from audio_notes.utils.errors import (
    EmptyTranscriptError,
    TranscriptionTimeoutError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[None]]


def chunk_blob_key(job_id: str, index: int) -> str:
    """Temporary blob key for one uploaded chunk."""
    return f"transcription_jobs/{job_id}/chunks/{index}.wav"


@dataclass
class ChunkResult:
    """Outcome of transcribing a single chunk."""

    index: int
    text: str
    confidence: float | None = None


@dataclass
class PoolResult:
    """Ordered, merged transcription of all chunks."""

    text: str
    confidence: float | None
    chunks: list[ChunkResult] = field(default_factory=list)


class ChunkTranscriptionPool:
    """Transcribe ordered chunk files with bounded concurrency.

    Args:
        asr_engine: Engine used for every chunk.
        blob_store: Store holding the temporary chunk uploads.
        config: Concurrency, timeouts and progress range.
        clock: Monotonic clock, injectable for deadline tests.
    """

    def __init__(
        self,
        asr_engine: ASREngine,
        blob_store: BlobStore,
        config: TranscriptionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = asr_engine
        self._blobs = blob_store
        self._config = config or TranscriptionConfig()
        self._clock = clock

    async def transcribe(
        self,
        job_id: str,
        chunk_paths: list[str],
        on_progress: ProgressCallback | None = None,
    ) -> PoolResult:
        """Transcribe every chunk and merge the texts in chunk order.

        Args:
            job_id: Owning job, used for blob keys and logging.
            chunk_paths: Local chunk files in playback order.
            on_progress: Awaited with the new job progress after each
                completed chunk.

        Returns:
            PoolResult with the space-joined text and mean confidence.

        Raises:
            TranscriptionTimeoutError: If the whole-pool deadline passed.
            EmptyTranscriptError: If no chunk produced any text.
            Exception: The first chunk failure, re-raised unchanged.
        """
        total = len(chunk_paths)
        if total == 0:
            raise EmptyTranscriptError("No audio chunks to transcribe", job_id)

        config = self._config
        worker_count = min(config.concurrency, total)
        deadline = self._clock() + config.job_deadline_seconds(total)

        results: list[ChunkResult | None] = [None] * total
        failures: list[BaseException] = []
        next_index = 0
        completed = 0

        logger.info(
            "Transcribing %d chunks for job %s with %d workers",
            total,
            job_id,
            worker_count,
            extra={"job_id": job_id, "stage": "transcribe"},
        )

        async def worker() -> None:
            nonlocal next_index, completed
            while not failures and next_index < total:
                index = next_index
                next_index += 1

                if self._clock() > deadline:
                    failures.append(
                        TranscriptionTimeoutError(
                            f"Transcription deadline exceeded before chunk {index}",
                            job_id,
                        )
                    )
                    return

                try:
                    results[index] = await self._transcribe_chunk(
                        job_id, index, chunk_paths[index]
                    )
                    completed += 1
                    if on_progress is not None:
                        await on_progress(self._progress_for(completed, total))
                except Exception as exc:
                    logger.warning(
                        "Chunk %d of job %s failed: %s",
                        index,
                        job_id,
                        exc,
                        extra={"job_id": job_id, "chunk_index": index},
                    )
                    failures.append(exc)
                    return

        await asyncio.gather(*(worker() for _ in range(worker_count)))

        if failures:
            raise failures[0]

        return self._merge([r for r in results if r is not None], job_id)

    async def _transcribe_chunk(
        self, job_id: str, index: int, path: str
    ) -> ChunkResult:
        """Upload, transcribe and clean up a single chunk."""
        key = chunk_blob_key(job_id, index)
        timeout = self._config.chunk_timeout_seconds
        uploaded = False
        try:
            data = await asyncio.to_thread(Path(path).read_bytes)
            await asyncio.to_thread(self._blobs.put_object, key, data, "audio/wav")
            uploaded = True
            url = await asyncio.to_thread(
                self._blobs.signed_url, key, self._config.signed_url_expiry_seconds
            )

            try:
                transcript = await asyncio.wait_for(
                    self._engine.transcribe(url, timeout), timeout=timeout
                )
            except TimeoutError as exc:
                raise TranscriptionTimeoutError(
                    f"Chunk {index} timed out after {timeout}s", job_id
                ) from exc

            logger.debug(
                "Chunk %d of job %s transcribed (%d chars)",
                index,
                job_id,
                len(transcript.text),
                extra={"job_id": job_id, "chunk_index": index},
            )
            return ChunkResult(
                index=index,
                text=transcript.text,
                confidence=transcript.confidence,
            )
        finally:
            if uploaded:
                await self._delete_quietly(job_id, index, key)

    async def _delete_quietly(self, job_id: str, index: int, key: str) -> None:
        try:
            await asyncio.to_thread(self._blobs.delete_object, key)
        except Exception:
            logger.warning(
                "Failed to delete temporary chunk blob %s",
                key,
                exc_info=True,
                extra={"job_id": job_id, "chunk_index": index},
            )

    def _progress_for(self, completed: int, total: int) -> int:
        config = self._config
        return config.progress_floor + round(
            completed / total * config.progress_budget
        )

    def _merge(self, chunks: list[ChunkResult], job_id: str) -> PoolResult:
        text = " ".join(" ".join(chunk.text for chunk in chunks).split())
        if not text:
            raise EmptyTranscriptError(
                "Transcription produced no text", job_id
            )

        scores = [c.confidence for c in chunks if c.confidence is not None]
        confidence = sum(scores) / len(scores) if scores else None
        return PoolResult(text=text, confidence=confidence, chunks=chunks)
