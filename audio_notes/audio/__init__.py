"""Audio normalization and segmentation."""

from audio_notes.audio.normalize import normalize_audio, probe_audio
from audio_notes.audio.segment import split_into_segments

__all__ = ["normalize_audio", "probe_audio", "split_into_segments"]
