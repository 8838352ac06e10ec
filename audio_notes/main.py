"""Worker entry point for the audio notes pipeline.

Runs the change-event consumer and the retry scheduler alongside a
lightweight HTTP health check server. Handles SIGTERM/SIGINT for graceful
shutdown.
"""

import asyncio
import logging
import os
import signal
import sys
from asyncio import StreamReader, StreamWriter
from dataclasses import dataclass

from audio_notes.asr.registry import get_asr_engine
from audio_notes.config import PipelineConfig
from audio_notes.notes.fallback import NoteGenerator
from audio_notes.notes.registry import get_note_engine
from audio_notes.observability.logger import StructuredJsonFormatter
from audio_notes.pipeline import JobProcessor
from audio_notes.queue.consumer import ChangeEventConsumer
from audio_notes.queue.scheduler import RetryScheduler
from audio_notes.queue.trigger import JobTrigger
from audio_notes.storage.blob_client import S3BlobStore
from audio_notes.storage.document_client import HttpDocumentStore

logger = logging.getLogger(__name__)

# Seconds to wait for in-flight work after a shutdown signal.
SHUTDOWN_TIMEOUT_SECONDS = 25


@dataclass
class Worker:
    """Everything the worker process runs."""

    consumer: ChangeEventConsumer
    trigger: JobTrigger
    scheduler: RetryScheduler
    documents: HttpDocumentStore


def _setup_logging() -> None:
    """Configure root logger with structured JSON output."""
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    root.addHandler(handler)


def _api_key(provider: str) -> str:
    return os.environ.get(f"{provider.upper()}_API_KEY", "")


def build_worker(config: PipelineConfig) -> Worker:
    """Wire stores, providers, orchestrator, trigger and scheduler from env."""
    documents = HttpDocumentStore()
    blobs = S3BlobStore()

    asr_engine = get_asr_engine(
        config.asr_provider, api_key=_api_key(config.asr_provider)
    )
    note_engines = [
        get_note_engine(provider, api_key=_api_key(provider))
        for provider in (config.notes.primary_provider, config.notes.fallback_provider)
    ]
    processor = JobProcessor(
        documents=documents,
        blobs=blobs,
        asr_engine=asr_engine,
        note_generator=NoteGenerator(note_engines, config.notes),
        config=config,
    )

    return Worker(
        consumer=ChangeEventConsumer(),
        trigger=JobTrigger(processor),
        scheduler=RetryScheduler(documents, config.retry),
        documents=documents,
    )


async def _health_handler(reader: StreamReader, writer: StreamWriter) -> None:
    """Minimal HTTP handler that returns 200 OK for liveness probes."""
    await reader.read(4096)
    response = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/plain\r\n"
        "Content-Length: 2\r\n"
        "\r\n"
        "ok"
    )
    writer.write(response.encode())
    await writer.drain()
    writer.close()


async def _run(
    consumer: ChangeEventConsumer,
    trigger: JobTrigger,
    scheduler: RetryScheduler,
) -> None:
    """Run the health server, event consumer and retry scheduler concurrently."""
    port = int(os.environ.get("PORT", "8080"))
    server = await asyncio.start_server(_health_handler, "0.0.0.0", port)
    logger.info("Health server listening on port %d", port)

    stop_event = asyncio.Event()
    tasks = [
        asyncio.create_task(consumer.run(trigger.handle)),
        asyncio.create_task(scheduler.run(stop_event)),
    ]

    loop = asyncio.get_running_loop()

    def _shutdown() -> None:
        logger.info("Received shutdown signal")
        consumer.stop()
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown)

    await stop_event.wait()

    _, pending = await asyncio.wait(tasks, timeout=SHUTDOWN_TIMEOUT_SECONDS)
    if pending:
        logger.warning(
            "Shutdown timed out after %ss, cancelling %d task(s)",
            SHUTDOWN_TIMEOUT_SECONDS,
            len(pending),
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    server.close()
    await server.wait_closed()


async def _serve(worker: Worker) -> None:
    try:
        await _run(worker.consumer, worker.trigger, worker.scheduler)
    finally:
        await worker.documents.close()


def main() -> None:
    """Start the worker and process job change events until signalled."""
    _setup_logging()
    logger.info("Audio notes worker starting")

    worker = build_worker(PipelineConfig.from_env())
    asyncio.run(_serve(worker))


if __name__ == "__main__":
    main()
