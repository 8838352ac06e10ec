"""Audio notes worker: audio uploads to transcripts and study notes."""

__version__ = "0.1.0"
