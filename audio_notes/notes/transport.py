"""Shared HTTP call for note providers.

Maps transport failures and non-2xx responses to NoteGenerationError,
keeping the status code and any provider error code for classification.
"""

import logging
from typing import Any

import httpx

from audio_notes.utils.errors import NoteGenerationError

logger = logging.getLogger(__name__)

_MAX_ERROR_MESSAGE_CHARS = 180


async def post_json(
    provider: str,
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    timeout: float,
) -> dict[str, Any]:
    """POST a JSON payload and return the decoded JSON response.

    Raises:
        NoteGenerationError: On transport failure, non-2xx status, or a
            non-JSON body.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as exc:
        raise NoteGenerationError(
            f"{provider} request timed out after {timeout}s", provider=provider
        ) from exc
    except httpx.HTTPError as exc:
        raise NoteGenerationError(
            f"{provider} request failed: {exc}", provider=provider
        ) from exc

    if response.status_code >= 400:
        message, provider_code = _error_details(response)
        raise NoteGenerationError(
            f"{provider} request failed with status {response.status_code}: "
            f"{message}",
            provider=provider,
            status_code=response.status_code,
            provider_code=provider_code,
        )

    try:
        body = response.json()
    except ValueError as exc:
        raise NoteGenerationError(
            f"{provider} returned a non-JSON response", provider=provider
        ) from exc
    if not isinstance(body, dict):
        raise NoteGenerationError(
            f"{provider} returned an unexpected response body", provider=provider
        )
    return body


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    """Extract a short message and optional error code from an error body."""
    try:
        body = response.json()
    except ValueError:
        return _short(response.text), None

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return _short(response.text), None

    code = next(
        (c for c in (error.get("code"), error.get("status")) if isinstance(c, str)),
        None,
    )
    message = error.get("message") or response.text
    return _short(str(message)), code


def _short(text: str) -> str:
    compact = " ".join(text.split())
    if len(compact) <= _MAX_ERROR_MESSAGE_CHARS:
        return compact
    return f"{compact[: _MAX_ERROR_MESSAGE_CHARS - 3]}..."
