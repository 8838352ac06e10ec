"""Tests for audio_notes.utils.classify module."""

import errno

import httpx
import pytest
from botocore.exceptions import ClientError

from audio_notes.utils.classify import classify_error, is_retryable
from audio_notes.utils.errors import (
    ASRError,
    AudioFetchError,
    EmptyTranscriptError,
    ErrorCode,
    NoteGenerationError,
    PipelineError,
    SegmentationError,
    TranscodeError,
    TranscriptionTimeoutError,
)


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": "mock"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        "GetObject",
    )


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://provider.example/v1")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError("bad status", request=request, response=response)


class TestExplicitCodes:
    """Pipeline errors with fixed codes and provider error codes."""

    @pytest.mark.parametrize(
        "exc",
        [
            TranscodeError("ffmpeg failed"),
            SegmentationError("no frames"),
            EmptyTranscriptError("no text"),
        ],
    )
    def test_audio_errors_are_permanent_bad_audio(self, exc) -> None:
        result = classify_error(exc)
        assert result.code == ErrorCode.BAD_AUDIO
        assert result.retryable is False

    def test_transcription_deadline_is_retryable_timeout(self) -> None:
        result = classify_error(TranscriptionTimeoutError("deadline passed"))
        assert result.code == ErrorCode.TIMEOUT
        assert result.retryable is True

    def test_provider_code_too_long(self) -> None:
        exc = ASRError("rejected", status_code=400, provider_code="audio_too_long")
        assert classify_error(exc).code == ErrorCode.TOO_LONG

    def test_provider_code_wins_over_status(self) -> None:
        exc = ASRError("quota", status_code=503, provider_code="insufficient_quota")
        result = classify_error(exc)
        assert result.code == ErrorCode.QUOTA_EXCEEDED
        assert result.retryable is False

    def test_provider_code_is_case_insensitive(self) -> None:
        exc = NoteGenerationError("bad", provider_code="  Invalid_Audio ")
        assert classify_error(exc).code == ErrorCode.BAD_AUDIO

    def test_unknown_provider_code_falls_through_to_status(self) -> None:
        exc = ASRError("server", status_code=502, provider_code="internal")
        assert classify_error(exc).code == ErrorCode.PROVIDER_DOWN


class TestStatusCodes:
    """HTTP-like status codes found on the exception."""

    @pytest.mark.parametrize(
        ("status", "expected", "retryable"),
        [
            (401, ErrorCode.UNAUTHORIZED, False),
            (403, ErrorCode.UNAUTHORIZED, False),
            (408, ErrorCode.TIMEOUT, True),
            (500, ErrorCode.PROVIDER_DOWN, True),
            (503, ErrorCode.PROVIDER_DOWN, True),
            (429, ErrorCode.UNKNOWN, False),
            (400, ErrorCode.UNKNOWN, False),
        ],
    )
    def test_asr_status_mapping(self, status, expected, retryable) -> None:
        result = classify_error(ASRError("failed", status_code=status))
        assert result.code == expected
        assert result.retryable is retryable

    def test_httpx_status_error(self) -> None:
        assert classify_error(_status_error(502)).code == ErrorCode.PROVIDER_DOWN

    def test_botocore_client_error_status(self) -> None:
        exc = _client_error("InternalError", 503)
        assert classify_error(exc).code == ErrorCode.PROVIDER_DOWN

    def test_botocore_access_denied(self) -> None:
        exc = _client_error("AccessDenied", 403)
        assert classify_error(exc).code == ErrorCode.UNAUTHORIZED

    @pytest.mark.parametrize(
        "key",
        [
            "uploads/networking-101.m4a",
            "uploads/connection-pooling.m4a",
            "uploads/timeout-lecture.m4a",
        ],
    )
    def test_missing_object_ignores_transport_words_in_key(self, key) -> None:
        exc = AudioFetchError(
            f"Failed to fetch object '{key}': NoSuchKey", key=key, status_code=404
        )
        result = classify_error(exc)
        assert result.code == ErrorCode.UNKNOWN
        assert result.retryable is False

    def test_client_error_ignores_transport_words(self) -> None:
        exc = _client_error("NoSuchKey", 404)
        exc.args = ("network lecture not found",)
        assert classify_error(exc).retryable is False


class TestTransportFailures:
    """Timeouts, resets and DNS failures map to a retryable timeout."""

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ReadTimeout("read timed out"),
            httpx.ConnectError("connect failed"),
            TimeoutError(),
            ConnectionResetError(errno.ECONNRESET, "reset by peer"),
        ],
    )
    def test_transport_exceptions(self, exc) -> None:
        result = classify_error(exc)
        assert result.code == ErrorCode.TIMEOUT
        assert result.retryable is True

    def test_errno_name_attribute(self) -> None:
        exc = RuntimeError("lookup failed")
        exc.code = "ENOTFOUND"
        assert classify_error(exc).code == ErrorCode.TIMEOUT

    def test_keyword_in_message(self) -> None:
        exc = RuntimeError("socket hang up: ETIMEDOUT")
        assert classify_error(exc).code == ErrorCode.TIMEOUT

    def test_transport_cause_chain(self) -> None:
        try:
            try:
                raise httpx.ReadTimeout("slow")
            except httpx.ReadTimeout as inner:
                raise PipelineError("provider call failed") from inner
        except PipelineError as exc:
            outer = exc
        assert classify_error(outer).code == ErrorCode.TIMEOUT


class TestFallback:
    """Anything unrecognized is unknown and permanent."""

    def test_plain_exception_is_unknown(self) -> None:
        result = classify_error(ValueError("boom"))
        assert result.code == ErrorCode.UNKNOWN
        assert result.retryable is False
        assert result.message == "boom"

    def test_none_is_unknown(self) -> None:
        result = classify_error(None)
        assert result.code == ErrorCode.UNKNOWN
        assert result.message == "Unknown error."

    def test_empty_message_gets_default(self) -> None:
        assert classify_error(ValueError()).message == "Unknown error."

    def test_is_retryable_helper(self) -> None:
        assert is_retryable(ASRError("down", status_code=503)) is True
        assert is_retryable(TranscodeError("corrupt")) is False
