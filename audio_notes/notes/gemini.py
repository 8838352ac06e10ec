"""Gemini generateContent note engine."""

from audio_notes.notes.transport import post_json
from audio_notes.notes.interface import NoteEngine
from audio_notes.notes.prompts import STUDY_NOTES_SYSTEM_PROMPT, build_user_prompt
from audio_notes.utils.errors import NoteParseError

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiNoteEngine(NoteEngine):
    """Generate study notes with a Gemini model.

    Gemini has no separate system role in this request shape, so the
    system prompt is prepended to the user prompt.
    """

    provider_name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 600.0,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def generate(self, transcript_text: str) -> str:
        prompt = f"{STUDY_NOTES_SYSTEM_PROMPT}\n\n{build_user_prompt(transcript_text)}"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
            },
        }
        body = await post_json(
            self.provider_name,
            f"{self._base_url}/models/{self._model}:generateContent",
            {"x-goog-api-key": self._api_key},
            payload,
            self._timeout,
        )

        candidates = body.get("candidates") or []
        parts = candidates[0].get("content", {}).get("parts", []) if candidates else []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise NoteParseError(
                "Gemini returned an empty response", provider=self.provider_name
            )
        return text
