"""Tests for the OpenAI and Gemini note engines and their registry."""

import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from audio_notes.notes.gemini import GeminiNoteEngine
from audio_notes.notes.openai import OpenAINoteEngine
from audio_notes.notes.registry import NOTE_ENGINES, get_note_engine
from audio_notes.utils.classify import classify_error
from audio_notes.utils.errors import ErrorCode, NoteGenerationError, NoteParseError

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
GEMINI_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.5-flash:generateContent"
)


class TestOpenAINoteEngine:
    async def test_returns_message_content(
        self, httpx_mock: HTTPXMock, valid_note_json: str
    ) -> None:
        httpx_mock.add_response(
            method="POST",
            url=OPENAI_URL,
            json={"choices": [{"message": {"content": valid_note_json}}]},
        )
        engine = OpenAINoteEngine(api_key="sk-test")

        raw = await engine.generate("lecture text")

        assert raw == valid_note_json
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4.1-mini"
        assert body["response_format"] == {"type": "json_object"}
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "lecture text" in body["messages"][1]["content"]

    async def test_empty_content_raises_parse_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=OPENAI_URL, json={"choices": [{"message": {"content": "  "}}]}
        )
        with pytest.raises(NoteParseError, match="empty response"):
            await OpenAINoteEngine(api_key="sk-test").generate("text")

    async def test_quota_error_is_classified(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=OPENAI_URL,
            status_code=429,
            json={"error": {"code": "insufficient_quota", "message": "You exceeded your quota"}},
        )

        with pytest.raises(NoteGenerationError) as exc_info:
            await OpenAINoteEngine(api_key="sk-test").generate("text")

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.provider == "openai"
        assert "You exceeded your quota" in str(exc)
        assert classify_error(exc).code == ErrorCode.QUOTA_EXCEEDED

    async def test_long_error_message_is_shortened(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=OPENAI_URL, status_code=500, text="x" * 1000)

        with pytest.raises(NoteGenerationError) as exc_info:
            await OpenAINoteEngine(api_key="sk-test").generate("text")

        assert str(exc_info.value).endswith("...")
        assert len(str(exc_info.value)) < 300
        assert classify_error(exc_info.value).code == ErrorCode.PROVIDER_DOWN

    async def test_timeout(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("slow"), url=OPENAI_URL)
        with pytest.raises(NoteGenerationError, match="timed out"):
            await OpenAINoteEngine(api_key="sk-test", timeout=1.0).generate("text")

    async def test_custom_base_url(self, httpx_mock: HTTPXMock, valid_note_json: str) -> None:
        httpx_mock.add_response(
            url="https://proxy.example.com/v1/chat/completions",
            json={"choices": [{"message": {"content": valid_note_json}}]},
        )
        engine = OpenAINoteEngine(api_key="k", base_url="https://proxy.example.com/v1/")
        assert await engine.generate("text") == valid_note_json


class TestGeminiNoteEngine:
    async def test_joins_candidate_parts(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            method="POST",
            url=GEMINI_URL,
            json={
                "candidates": [
                    {"content": {"parts": [{"text": '{"title": '}, {"text": '"x"}'}]}}
                ]
            },
        )
        engine = GeminiNoteEngine(api_key="g-key")

        raw = await engine.generate("lecture text")

        assert raw == '{"title": "x"}'
        request = httpx_mock.get_request()
        assert request.headers["x-goog-api-key"] == "g-key"
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert "lecture text" in body["contents"][0]["parts"][0]["text"]

    async def test_no_candidates_raises_parse_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=GEMINI_URL, json={"candidates": []})
        with pytest.raises(NoteParseError):
            await GeminiNoteEngine(api_key="g-key").generate("text")

    async def test_unavailable_error(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=GEMINI_URL,
            status_code=503,
            json={"error": {"code": 503, "status": "UNAVAILABLE", "message": "overloaded"}},
        )

        with pytest.raises(NoteGenerationError) as exc_info:
            await GeminiNoteEngine(api_key="g-key").generate("text")

        assert exc_info.value.provider_code == "UNAVAILABLE"
        assert classify_error(exc_info.value).code == ErrorCode.PROVIDER_DOWN

    async def test_non_json_body(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=GEMINI_URL, text="not json")
        with pytest.raises(NoteGenerationError, match="non-JSON"):
            await GeminiNoteEngine(api_key="g-key").generate("text")


class TestNoteRegistry:
    def test_providers_registered(self) -> None:
        assert NOTE_ENGINES == {"openai": OpenAINoteEngine, "gemini": GeminiNoteEngine}

    def test_get_engine(self) -> None:
        engine = get_note_engine("gemini", api_key="k")
        assert engine.provider_name == "gemini"

    def test_unknown_provider(self) -> None:
        with pytest.raises(NoteGenerationError, match="Unknown note provider"):
            get_note_engine("mystery")

    def test_api_key_required(self) -> None:
        with pytest.raises(ValueError):
            get_note_engine("openai", api_key="")
