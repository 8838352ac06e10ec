"""Tests for audio_notes.audio.segment module."""

import os
import wave

import pytest
from conftest import write_silent_wav, write_wav

from audio_notes.audio.segment import chunk_filename, split_into_segments
from audio_notes.utils.errors import SegmentationError


def _duration(path: str) -> float:
    with wave.open(path, "rb") as wf:
        return wf.getnframes() / wf.getframerate()


class TestSplitIntoSegments:
    """Chunk count, ordering and content."""

    def test_twenty_minutes_yields_four_ordered_chunks(self, tmp_path) -> None:
        source = write_silent_wav(tmp_path / "long.wav", 20 * 60)

        paths = split_into_segments(str(source), str(tmp_path / "chunks"), 360.0)

        assert [os.path.basename(p) for p in paths] == [
            "chunk_000.wav",
            "chunk_001.wav",
            "chunk_002.wav",
            "chunk_003.wav",
        ]
        durations = [_duration(p) for p in paths]
        assert durations == pytest.approx([360.0, 360.0, 360.0, 120.0])

    def test_short_audio_yields_single_chunk(self, tmp_path) -> None:
        source = write_silent_wav(tmp_path / "short.wav", 30.0)

        paths = split_into_segments(str(source), str(tmp_path / "chunks"))

        assert len(paths) == 1
        assert _duration(paths[0]) == pytest.approx(30.0)

    def test_exact_multiple_has_no_empty_tail(self, tmp_path) -> None:
        source = write_silent_wav(tmp_path / "even.wav", 4.0)
        paths = split_into_segments(str(source), str(tmp_path / "chunks"), 2.0)
        assert len(paths) == 2

    def test_chunks_concatenate_to_source(self, tmp_path) -> None:
        source = write_wav(tmp_path / "tone.wav", 2.5)

        paths = split_into_segments(str(source), str(tmp_path / "chunks"), 1.0)

        with wave.open(str(source), "rb") as wf:
            original = wf.readframes(wf.getnframes())
        joined = b""
        for path in paths:
            with wave.open(path, "rb") as wf:
                assert wf.getframerate() == 16000
                assert wf.getnchannels() == 1
                joined += wf.readframes(wf.getnframes())
        assert len(paths) == 3
        assert joined == original

    def test_empty_audio_raises(self, tmp_path) -> None:
        source = write_silent_wav(tmp_path / "empty.wav", 0)
        with pytest.raises(SegmentationError, match="no frames"):
            split_into_segments(str(source), str(tmp_path / "chunks"))

    def test_unreadable_source_raises(self, tmp_path) -> None:
        source = tmp_path / "bad.wav"
        source.write_bytes(b"not a wav file")
        with pytest.raises(SegmentationError):
            split_into_segments(str(source), str(tmp_path / "chunks"))

    def test_non_positive_length_rejected(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            split_into_segments("unused.wav", str(tmp_path), 0)


def test_chunk_filename_is_zero_padded() -> None:
    assert chunk_filename(7) == "chunk_007.wav"
