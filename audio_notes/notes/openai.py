"""OpenAI chat-completions note engine."""

from audio_notes.notes.transport import post_json
from audio_notes.notes.interface import NoteEngine
from audio_notes.notes.prompts import STUDY_NOTES_SYSTEM_PROMPT, build_user_prompt
from audio_notes.utils.errors import NoteParseError

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4.1-mini"


class OpenAINoteEngine(NoteEngine):
    """Generate study notes with an OpenAI chat model in JSON mode.

    Args:
        api_key: OpenAI API key.
        model: Chat model name.
        base_url: API base URL (default production endpoint).
        timeout: Seconds allowed per request.
    """

    provider_name = "openai"

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
        payload = {
            "model": self._model,
            "temperature": 0.15,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": STUDY_NOTES_SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(transcript_text)},
            ],
        }
        body = await post_json(
            self.provider_name,
            f"{self._base_url}/chat/completions",
            {"Authorization": f"Bearer {self._api_key}"},
            payload,
            self._timeout,
        )

        choices = body.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise NoteParseError(
                "OpenAI returned an empty response", provider=self.provider_name
            )
        return content
