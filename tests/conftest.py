"""Shared fixtures: synthetic WAV files and fake providers."""

from __future__ import annotations

import math
import struct
import wave
from pathlib import Path

import pytest

from audio_notes.asr.interface import ASREngine, ChunkTranscript
from audio_notes.notes.interface import NoteEngine

VALID_NOTE_JSON = """{
  "title": "Photosynthesis basics",
  "summary": "How plants turn light into chemical energy.",
  "key_points": ["Light reactions", "Calvin cycle", "Chlorophyll", "Oxygen release"],
  "action_items": ["Review the diagram", "Summarize each stage"],
  "study_questions": ["What is ATP?", "Where does the Calvin cycle occur?", "Why is light needed?"]
}"""


def write_wav(
    path: Path,
    seconds: float,
    sample_rate: int = 16000,
    channels: int = 1,
    silent: bool = False,
) -> Path:
    """Write a 16-bit PCM WAV file with a 440 Hz tone (or silence)."""
    frame_count = int(seconds * sample_rate)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        block = bytearray()
        for i in range(frame_count):
            sample = 0 if silent else int(8000 * math.sin(2 * math.pi * 440 * i / sample_rate))
            block += struct.pack("<h", sample) * channels
            if len(block) >= 1 << 20:
                wf.writeframes(bytes(block))
                block.clear()
        wf.writeframes(bytes(block))
    return path


def write_silent_wav(
    path: Path, seconds: float, sample_rate: int = 16000, channels: int = 1
) -> Path:
    """Write a silent WAV quickly (zero bytes, no per-frame packing)."""
    frame_count = int(seconds * sample_rate)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(b"\x00\x00" * channels * frame_count)
    return path


class ScriptedASREngine(ASREngine):
    """ASR engine that answers from a per-chunk script.

    ``responses`` maps a chunk index (parsed from the blob key in the URL)
    to a ChunkTranscript or an exception to raise.
    """

    provider_name = "fake-asr"

    def __init__(self, responses=None, default=None) -> None:
        self.responses = responses or {}
        self.default = default or ChunkTranscript(text="", confidence=None)
        self.calls: list[str] = []

    async def transcribe(self, audio_url: str, timeout: float) -> ChunkTranscript:
        self.calls.append(audio_url)
        index = int(audio_url.split("/chunks/")[1].split(".wav")[0])
        response = self.responses.get(index, self.default)
        if isinstance(response, BaseException):
            raise response
        return response


class ScriptedNoteEngine(NoteEngine):
    """Note engine that returns (or raises) queued responses in order."""

    def __init__(self, name: str, responses) -> None:
        self.provider_name = name
        self.responses = list(responses)
        self.calls: list[str] = []

    async def generate(self, transcript_text: str) -> str:
        self.calls.append(transcript_text)
        response = self.responses.pop(0) if self.responses else VALID_NOTE_JSON
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def valid_note_json() -> str:
    return VALID_NOTE_JSON
