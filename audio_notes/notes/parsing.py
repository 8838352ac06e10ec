"""Parse raw model output into a validated study note.

Parsing never raises. It returns one of three outcomes:

- ``ParsedNote``: a valid note was extracted.
- ``RecoverableParseError``: no usable JSON object, or the object failed
  validation. Asking the same provider again may succeed.
- ``FatalParseError``: the payload is valid JSON but not an object, so the
  provider is not following the schema at all.

Extraction strategies are tried in ``PARSE_STRATEGIES`` order; the first
candidate that decodes as JSON decides the outcome.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from audio_notes.notes.interface import StudyNoteContent
from audio_notes.notes.prompts import PLACEHOLDER_TEXT

FIELD_BOUNDS: dict[str, tuple[int, int]] = {
    "key_points": (4, 20),
    "action_items": (2, 10),
    "study_questions": (3, 15),
}

_CAMEL_ALIASES = {
    "key_points": "keyPoints",
    "action_items": "actionItems",
    "study_questions": "studyQuestions",
}

_FENCED_BLOCK_RE = re.compile(r"```\s*(?:json)?(.*?)```", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ParsedNote:
    """A validated note and the strategy that found it."""

    content: StudyNoteContent
    strategy: str


@dataclass(frozen=True)
class RecoverableParseError:
    """Output was unusable, but a retry with the same provider may work."""

    reason: str
    raw_text: str = ""


@dataclass(frozen=True)
class FatalParseError:
    """Output was JSON of the wrong shape; give up on this provider."""

    reason: str
    raw_text: str = ""


ParseOutcome = ParsedNote | RecoverableParseError | FatalParseError


class _InvalidNote(ValueError):
    pass


def _direct(text: str) -> str | None:
    candidate = text.strip()
    return candidate or None


def _fenced_block(text: str) -> str | None:
    match = _FENCED_BLOCK_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def _balanced_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, ignoring braces in strings."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


PARSE_STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("direct", _direct),
    ("fenced", _fenced_block),
    ("balanced", _balanced_object),
)


def parse_study_note(raw_text: str) -> ParseOutcome:
    """Extract and validate a study note from raw model output."""
    text = raw_text or ""
    for name, extract in PARSE_STRATEGIES:
        candidate = extract(text)
        if candidate is None:
            continue
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            continue

        if not isinstance(payload, dict):
            return FatalParseError(
                f"Model returned JSON {type(payload).__name__}, expected an object",
                raw_text=text,
            )
        try:
            return ParsedNote(content=_normalize(payload), strategy=name)
        except _InvalidNote as exc:
            return RecoverableParseError(str(exc), raw_text=text)

    return RecoverableParseError(
        "Could not parse JSON from model response", raw_text=text
    )


def _normalize(payload: dict[str, Any]) -> StudyNoteContent:
    lists = {
        name: _string_list(payload, name, low, high)
        for name, (low, high) in FIELD_BOUNDS.items()
    }
    return StudyNoteContent(
        title=_string_field(payload, "title"),
        summary=_string_field(payload, "summary"),
        **lists,
    )


def _string_field(payload: dict[str, Any], name: str) -> str:
    value = payload.get(name)
    if value is None:
        return PLACEHOLDER_TEXT
    if not isinstance(value, str):
        raise _InvalidNote(f"{name} must be a string")
    return value.strip() or PLACEHOLDER_TEXT


def _string_list(
    payload: dict[str, Any], name: str, low: int, high: int
) -> list[str]:
    value = payload.get(name)
    if value is None:
        value = payload.get(_CAMEL_ALIASES[name], [])
    if not isinstance(value, list):
        raise _InvalidNote(f"{name} must be an array")

    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise _InvalidNote(f"{name}[{index}] must be a string")
        if item.strip():
            items.append(item.strip())

    if len(items) < low:
        raise _InvalidNote(
            f"{name} must contain at least {low} items (received {len(items)})"
        )
    return items[:high]
