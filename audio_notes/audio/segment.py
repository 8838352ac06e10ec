"""Split canonical WAV audio into fixed-length chunk files.

Chunks are sequential and non-overlapping. Each chunk is a standalone WAV
file that starts at t=0, so the ASR provider can process it on its own.
"""

import logging
import os
import wave

from audio_notes.utils.errors import SegmentationError

logger = logging.getLogger(__name__)

DEFAULT_SEGMENT_SECONDS = 360.0


def chunk_filename(index: int) -> str:
    """File name for the chunk at ``index`` (``chunk_000.wav``, ...)."""
    return f"chunk_{index:03d}.wav"


def split_into_segments(
    source_path: str,
    output_dir: str,
    segment_seconds: float = DEFAULT_SEGMENT_SECONDS,
) -> list[str]:
    """Split a WAV file into consecutive chunks of ``segment_seconds``.

    Audio shorter than one segment yields exactly one chunk holding the
    whole file. The last chunk holds whatever remains.

    Args:
        source_path: Canonical WAV file to split.
        output_dir: Directory for the chunk files.
        segment_seconds: Target chunk length in seconds.

    Returns:
        Chunk file paths in playback order.

    Raises:
        SegmentationError: If the source cannot be read or holds no audio.
    """
    if segment_seconds <= 0:
        raise ValueError("segment_seconds must be positive")

    os.makedirs(output_dir, exist_ok=True)
    paths: list[str] = []

    try:
        with wave.open(source_path, "rb") as src:
            params = src.getparams()
            frames_per_chunk = max(1, int(params.framerate * segment_seconds))

            while True:
                frames = src.readframes(frames_per_chunk)
                if not frames:
                    break
                path = os.path.join(output_dir, chunk_filename(len(paths)))
                with wave.open(path, "wb") as dst:
                    dst.setnchannels(params.nchannels)
                    dst.setsampwidth(params.sampwidth)
                    dst.setframerate(params.framerate)
                    dst.writeframes(frames)
                paths.append(path)
    except (wave.Error, EOFError, OSError) as exc:
        raise SegmentationError(
            f"Failed to split audio '{source_path}': {exc}"
        ) from exc

    if not paths:
        raise SegmentationError(f"Audio '{source_path}' contains no frames")

    logger.info(
        "Split %s into %d segment(s) of up to %.0fs",
        source_path,
        len(paths),
        segment_seconds,
    )
    return paths
