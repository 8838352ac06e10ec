"""Automatic speech recognition modules."""

from audio_notes.asr.pool import ChunkTranscriptionPool, PoolResult
from audio_notes.asr.registry import get_asr_engine

__all__ = ["ChunkTranscriptionPool", "PoolResult", "get_asr_engine"]
