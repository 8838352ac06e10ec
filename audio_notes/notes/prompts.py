"""Study-note prompt templates and transcript sanitization."""

import re

PLACEHOLDER_TEXT = "(no content available)"

STUDY_NOTES_JSON_SCHEMA_PROMPT = """Respond ONLY with a single valid JSON object EXACTLY matching this schema (no surrounding text):
{
  "title": "a short descriptive title based on the transcript content",
  "summary": "an overview that scales with transcript length",
  "key_points": ["concise bullets capturing main ideas and sections"],
  "action_items": ["practical steps or concrete recommendations"],
  "study_questions": ["thoughtful questions for reflection or comprehension"]
}

Guidelines:
- Use ONLY information from the provided transcript. Do NOT fabricate.
- Give between 4 and 20 key points, 2 and 10 action items, and 3 and 15 study questions.
- Keep individual sentences short and clear (around 30 words or fewer)."""

STUDY_NOTES_SYSTEM_PROMPT = (
    "You create accurate, student-friendly study notes strictly from the "
    "provided transcript.\n\n" + STUDY_NOTES_JSON_SCHEMA_PROMPT
)

_ROLE_TAG_RE = re.compile(r"</?(system|user|assistant)[^>]*>", re.IGNORECASE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]+")
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"\+?\d{7,15}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def build_user_prompt(transcript_text: str) -> str:
    """Wrap a sanitized transcript in the study-note request."""
    return (
        "Generate structured study notes strictly from the transcript below. "
        "Use only the transcript information. Output must be valid JSON "
        "matching the schema.\n\n"
        f'Transcript:\n"""\n{transcript_text}\n"""'
    )


def sanitize_transcript(text: str) -> tuple[str, list[str]]:
    """Prepare transcript text for inclusion in a prompt.

    Strips embedded role tags and control characters, redacts email
    addresses and phone-number-like digit runs, and collapses runs of
    blank lines.

    Returns:
        Tuple of (sanitized text, warnings describing what was changed).
    """
    warnings: list[str] = []
    result = (text or "").replace("\r\n", "\n").strip()

    result, tags = _ROLE_TAG_RE.subn("", result)
    if tags:
        warnings.append("Role tags removed from transcript")

    result = _CONTROL_CHARS_RE.sub(" ", result)

    result, emails = _EMAIL_RE.subn("[REDACTED_EMAIL]", result)
    result, phones = _PHONE_RE.subn("[REDACTED_PHONE]", result)
    if emails or phones:
        warnings.append("PII redacted from transcript")

    result = _BLANK_LINES_RE.sub("\n\n", result)
    return result, warnings
