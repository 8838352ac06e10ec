"""Soniox ASR client implementation.

Sends a signed audio URL to the Soniox transcription endpoint and converts
the (loosely shaped) response into a ChunkTranscript.
"""

import logging

import httpx

from audio_notes.asr.interface import ASREngine, ChunkTranscript
from audio_notes.utils.errors import ASRError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.soniox.com/v1/cloud/transcribe"


class SonioxEngine(ASREngine):
    """Soniox cloud ASR engine.

    Args:
        api_key: Soniox API key for authentication.
        base_url: Transcription endpoint (default production endpoint).
        language: Language hint sent with every request.
    """

    provider_name = "soniox"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        language: str = "en",
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._base_url = base_url
        self._language = language

    async def transcribe(self, audio_url: str, timeout: float) -> ChunkTranscript:
        """Transcribe one chunk via the Soniox API.

        Raises:
            ASRError: On non-2xx responses, transport failure, or timeout.
        """
        headers = {"Authorization": f"Bearer {self._api_key}"}
        payload = {
            "config": {"language": self._language},
            "audio": {"url": audio_url},
        }

        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    self._base_url, headers=headers, json=payload
                )
        except httpx.TimeoutException as exc:
            raise ASRError(
                f"Soniox request timed out after {timeout}s",
                provider=self.provider_name,
            ) from exc
        except httpx.HTTPError as exc:
            raise ASRError(
                f"Soniox request failed: {exc}", provider=self.provider_name
            ) from exc

        if response.status_code >= 400:
            raise ASRError(
                f"Soniox request failed with status {response.status_code}",
                provider=self.provider_name,
                status_code=response.status_code,
                provider_code=_provider_error_code(response),
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ASRError(
                "Soniox returned a non-JSON response",
                provider=self.provider_name,
                status_code=response.status_code,
            ) from exc

        return self._convert_response(body)

    def _convert_response(self, body: dict) -> ChunkTranscript:
        """Pick the best text and confidence out of the response.

        Accepts ``result.text``, top-level ``text``, or joined
        ``segments[].text``, in that order.
        """
        result = body.get("result") or {}
        segments = body.get("segments") or []

        text = result.get("text") or body.get("text") or ""
        if not text and segments:
            text = " ".join(seg.get("text") or "" for seg in segments).strip()

        confidence = result.get("confidence")
        if confidence is None:
            confidence = body.get("confidence")
        if confidence is None and segments:
            scored = [
                seg["confidence"]
                for seg in segments
                if isinstance(seg.get("confidence"), (int, float))
            ]
            if scored:
                confidence = sum(scored) / len(scored)

        if confidence is not None:
            confidence = min(max(float(confidence), 0.0), 1.0)

        return ChunkTranscript(
            text=text.strip(), confidence=confidence, raw_response=body
        )


def _provider_error_code(response: httpx.Response) -> str | None:
    """Extract a provider error code from an error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code") or error.get("type")
    else:
        code = body.get("code") or body.get("error_code")
    return str(code) if code else None
