"""Two-tier note generation: primary provider, then fallback provider.

Each provider gets up to ``max_note_retries`` attempts with exponential
backoff between attempts. A fatal parse result abandons the current
provider early. The transcript is sanitized once before any provider sees
it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from audio_notes.config import NoteConfig
from audio_notes.notes.interface import NoteEngine, StudyNoteContent
from audio_notes.notes.parsing import FatalParseError, ParsedNote, parse_study_note
from audio_notes.notes.prompts import sanitize_transcript
from audio_notes.utils.errors import NoteGenerationError

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class NoteGenerationResult:
    """A parsed note plus which provider produced it and the total attempts."""

    note: StudyNoteContent
    provider: str
    attempts: int
    warnings: list[str] = field(default_factory=list)


class NoteGenerator:
    """Generate a study note, falling back across providers in order.

    Args:
        engines: Providers in priority order (primary first).
        config: Retry count and backoff base.
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        engines: Sequence[NoteEngine],
        config: NoteConfig | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        if not engines:
            raise ValueError("at least one note engine is required")
        self._engines = list(engines)
        self._config = config or NoteConfig()
        self._sleep = sleep or asyncio.sleep

    async def generate(
        self, transcript_text: str, job_id: str | None = None
    ) -> NoteGenerationResult:
        """Produce a note from ``transcript_text``.

        Raises:
            NoteGenerationError: When every provider exhausted its attempts.
                The message lists each provider's last failure and
                ``attempts`` holds the total across providers.
        """
        text, warnings = sanitize_transcript(transcript_text)
        max_attempts = self._config.max_note_retries
        total_attempts = 0
        failures: list[str] = []

        for engine in self._engines:
            provider = engine.provider_name
            last_failure = "no attempts made"

            for attempt in range(max_attempts):
                total_attempts += 1
                extra = {"job_id": job_id, "provider": provider, "attempt": attempt + 1}

                try:
                    raw = await engine.generate(text)
                except Exception as exc:
                    last_failure = str(exc)
                    logger.warning(
                        "Note attempt %d/%d with %s failed: %s",
                        attempt + 1,
                        max_attempts,
                        provider,
                        exc,
                        extra=extra,
                    )
                else:
                    outcome = parse_study_note(raw)
                    if isinstance(outcome, ParsedNote):
                        logger.info(
                            "Study note generated by %s on attempt %d",
                            provider,
                            attempt + 1,
                            extra=extra,
                        )
                        return NoteGenerationResult(
                            note=outcome.content,
                            provider=provider,
                            attempts=total_attempts,
                            warnings=warnings,
                        )

                    last_failure = outcome.reason
                    logger.warning(
                        "Note attempt %d/%d with %s unparseable: %s",
                        attempt + 1,
                        max_attempts,
                        provider,
                        outcome.reason,
                        extra=extra,
                    )
                    if isinstance(outcome, FatalParseError):
                        break

                if attempt < max_attempts - 1:
                    await self._sleep(self._config.backoff_seconds(attempt))

            failures.append(f"{provider}: {last_failure}")

        raise NoteGenerationError(
            "All note providers failed: " + "; ".join(failures),
            job_id=job_id,
            attempts=total_attempts,
        )
