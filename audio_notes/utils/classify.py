"""Error classifier: maps any caught failure to an ErrorCode and retryability.

This is the single source of truth for retry eligibility. Rules are
applied in priority order:

1. An explicit code on a PipelineError, or a known provider error code.
2. An HTTP-like status code found on the exception.
3. Transport-level signals (timeouts, connection resets, DNS failures).
4. Fallback to ``unknown``.
"""

from __future__ import annotations

import errno
from dataclasses import dataclass

import httpx
from botocore.exceptions import ClientError

from audio_notes.utils.errors import RETRYABLE_CODES, ErrorCode, PipelineError

PROVIDER_CODE_MAP: dict[str, ErrorCode] = {
    "audio_too_long": ErrorCode.TOO_LONG,
    "too_long": ErrorCode.TOO_LONG,
    "file_too_long": ErrorCode.TOO_LONG,
    "invalid_audio": ErrorCode.BAD_AUDIO,
    "invalid_audio_format": ErrorCode.BAD_AUDIO,
    "unsupported_audio": ErrorCode.BAD_AUDIO,
    "audio_too_quiet": ErrorCode.BAD_AUDIO,
    "no_speech": ErrorCode.BAD_AUDIO,
    "bad_audio": ErrorCode.BAD_AUDIO,
    "quota_exceeded": ErrorCode.QUOTA_EXCEEDED,
    "insufficient_quota": ErrorCode.QUOTA_EXCEEDED,
    "usage_limit_exceeded": ErrorCode.QUOTA_EXCEEDED,
}

_TRANSPORT_ERRNO_NAMES = {
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ECONNREFUSED",
    "EAI_AGAIN",
}

_TRANSPORT_ERRNOS = {
    errno.ECONNRESET,
    errno.ETIMEDOUT,
    errno.ECONNREFUSED,
}

_TRANSPORT_KEYWORDS = (
    "timeout",
    "timed out",
    "econnreset",
    "etimedout",
    "enotfound",
    "eai_again",
    "connection reset",
    "connection refused",
    "name resolution",
    "temporary failure in name resolution",
    "network",
    "connection",
)


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome of classifying a failure."""

    code: ErrorCode
    retryable: bool
    message: str


def classify_error(exc: BaseException | None) -> ErrorClassification:
    """Classify a failure into an ErrorCode and retryability flag.

    Args:
        exc: Any caught exception (None yields ``unknown``).

    Returns:
        ErrorClassification with code, retryable flag, and a message.
    """
    message = str(exc) if exc is not None and str(exc) else "Unknown error."
    code = _classify_code(exc)
    return ErrorClassification(
        code=code,
        retryable=code in RETRYABLE_CODES,
        message=message,
    )


def is_retryable(exc: BaseException) -> bool:
    """Return True when the classified failure is transient."""
    return classify_error(exc).retryable


def _classify_code(exc: BaseException | None) -> ErrorCode:
    if exc is None:
        return ErrorCode.UNKNOWN

    explicit = _explicit_code(exc)
    if explicit is not None:
        return explicit

    status = _status_code(exc)
    if status is not None:
        if status in (401, 403):
            return ErrorCode.UNAUTHORIZED
        if status == 408:
            return ErrorCode.TIMEOUT
        if status >= 500:
            return ErrorCode.PROVIDER_DOWN
        # A response arrived, so message keywords cannot mean a transport failure.
        return ErrorCode.UNKNOWN

    if _is_transport_failure(exc):
        return ErrorCode.TIMEOUT

    return ErrorCode.UNKNOWN


def _explicit_code(exc: BaseException) -> ErrorCode | None:
    """Read a fixed pipeline code or map a provider-specific code."""
    provider_code = getattr(exc, "provider_code", None)
    if isinstance(provider_code, str):
        mapped = PROVIDER_CODE_MAP.get(provider_code.strip().lower())
        if mapped is not None:
            return mapped

    if isinstance(exc, PipelineError) and exc.code is not None:
        return exc.code

    if isinstance(exc, ClientError):
        aws_code = str(exc.response.get("Error", {}).get("Code", "")).lower()
        return PROVIDER_CODE_MAP.get(aws_code)

    return None


def _status_code(exc: BaseException) -> int | None:
    """Extract an HTTP-like status code from the exception if present."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code

    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return status if isinstance(status, int) else None

    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    return None


def _is_transport_failure(exc: BaseException) -> bool:
    """Check the exception and its explicit cause chain for transport errors."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if _is_transport_signal(current):
            return True
        current = current.__cause__
    return False


def _is_transport_signal(exc: BaseException) -> bool:
    if isinstance(
        exc,
        (httpx.TimeoutException, httpx.TransportError, TimeoutError, ConnectionError),
    ):
        return True

    if isinstance(exc, OSError) and exc.errno in _TRANSPORT_ERRNOS:
        return True

    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.upper() in _TRANSPORT_ERRNO_NAMES:
        return True

    text = str(exc).lower()
    return any(keyword in text for keyword in _TRANSPORT_KEYWORDS)
