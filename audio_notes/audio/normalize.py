"""Audio normalizer: probe the upload and re-encode it to canonical WAV.

Canonical audio is 16kHz mono 16-bit PCM in a WAV container, the form the
segmenter and ASR provider expect. Files already in that form are passed
through untouched.
"""

import json
import logging
import os
import shutil
import subprocess
import wave
from dataclasses import dataclass
from pathlib import Path

from audio_notes.utils.errors import TranscodeError

logger = logging.getLogger(__name__)

TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
TARGET_SAMPLE_WIDTH = 2  # 16-bit = 2 bytes
CANONICAL_CODEC = "pcm_s16le"

FFPROBE_TIMEOUT_SECONDS = 30
FFMPEG_TIMEOUT_SECONDS = 600


@dataclass
class AudioProbe:
    """Stream properties of an audio file."""

    sample_rate: int
    channels: int
    format_name: str
    duration_seconds: float
    codec_name: str | None = None

    @property
    def is_canonical(self) -> bool:
        """True when the file is already 16kHz mono s16 WAV."""
        return (
            self.sample_rate == TARGET_SAMPLE_RATE
            and self.channels == TARGET_CHANNELS
            and "wav" in self.format_name.split(",")
            and self.codec_name in (None, CANONICAL_CODEC)
        )


@dataclass
class NormalizeResult:
    """Result of normalizing an upload."""

    output_path: str
    converted: bool
    probe: AudioProbe


def _probe_with_ffprobe(ffprobe_path: str, input_path: str) -> AudioProbe:
    cmd = [
        ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        input_path,
    ]

    try:
        completed = subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=FFPROBE_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.strip() if exc.stderr else "unknown error"
        raise TranscodeError(
            f"Audio file is corrupt or unreadable (ffprobe): {stderr}",
            input_path=input_path,
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise TranscodeError(
            f"ffprobe timed out after {FFPROBE_TIMEOUT_SECONDS}s",
            input_path=input_path,
        ) from exc

    try:
        info = json.loads(completed.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise TranscodeError(
            "ffprobe returned unparseable output", input_path=input_path
        ) from exc

    stream = next(
        (
            s
            for s in info.get("streams", [])
            if s.get("codec_type") == "audio"
        ),
        None,
    )
    if stream is None:
        raise TranscodeError(
            "No audio stream found in input", input_path=input_path
        )

    fmt = info.get("format", {})
    try:
        sample_rate = int(stream.get("sample_rate") or 0)
        channels = int(stream.get("channels") or 0)
    except (TypeError, ValueError) as exc:
        raise TranscodeError(
            f"ffprobe reported unusable stream properties: {exc}",
            input_path=input_path,
        ) from exc

    return AudioProbe(
        sample_rate=sample_rate,
        channels=channels,
        format_name=str(fmt.get("format_name", "")),
        duration_seconds=_duration(fmt.get("duration"), stream.get("duration")),
        codec_name=stream.get("codec_name"),
    )


def _duration(*candidates: object) -> float:
    """First numeric duration among ``candidates``; 0.0 when none is known.

    ffprobe reports ``"N/A"`` for containers without a duration header.
    """
    for value in candidates:
        try:
            return float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue
    return 0.0


def _probe_wav_header(input_path: str) -> AudioProbe:
    """Probe a WAV file from its header when ffprobe is unavailable."""
    try:
        with wave.open(input_path, "rb") as wf:
            rate = wf.getframerate()
            frames = wf.getnframes()
            return AudioProbe(
                sample_rate=rate,
                channels=wf.getnchannels(),
                format_name="wav",
                duration_seconds=frames / rate if rate else 0.0,
                codec_name=f"pcm_s{wf.getsampwidth() * 8}le",
            )
    except (wave.Error, EOFError) as exc:
        raise TranscodeError(
            f"ffprobe not found and input is not a readable WAV file: {exc}",
            input_path=input_path,
        ) from exc


def probe_audio(input_path: str) -> AudioProbe:
    """Read sample rate, channel count, container and duration.

    Raises:
        TranscodeError: If the file is missing or cannot be probed.
    """
    if not Path(input_path).exists():
        raise TranscodeError(
            f"Input file does not exist: {input_path}",
            input_path=input_path,
        )

    ffprobe_path = shutil.which("ffprobe")
    if ffprobe_path is None:
        return _probe_wav_header(input_path)
    return _probe_with_ffprobe(ffprobe_path, input_path)


def _transcode(input_path: str, output_path: str) -> None:
    ffmpeg_path = shutil.which("ffmpeg")
    if ffmpeg_path is None:
        raise TranscodeError(
            "ffmpeg binary not found on PATH", input_path=input_path
        )

    cmd = [
        ffmpeg_path,
        "-y",
        "-i",
        input_path,
        "-vn",
        "-ar",
        str(TARGET_SAMPLE_RATE),
        "-ac",
        str(TARGET_CHANNELS),
        "-sample_fmt",
        "s16",
        "-f",
        "wav",
        output_path,
    ]

    try:
        subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=FFMPEG_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.strip() if exc.stderr else "unknown error"
        raise TranscodeError(
            f"ffmpeg transcode failed: {stderr}", input_path=input_path
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise TranscodeError(
            f"ffmpeg transcode timed out after {FFMPEG_TIMEOUT_SECONDS} seconds",
            input_path=input_path,
        ) from exc

    if not os.path.exists(output_path):
        raise TranscodeError(
            f"ffmpeg produced no output file: {output_path}",
            input_path=input_path,
        )


def normalize_audio(input_path: str, output_dir: str) -> NormalizeResult:
    """Return a canonical 16kHz mono WAV version of ``input_path``.

    Canonical input is returned as-is; anything else is re-encoded with
    ffmpeg into ``output_dir/normalized.wav``.

    Args:
        input_path: Path to the uploaded audio file.
        output_dir: Directory for the re-encoded file.

    Returns:
        NormalizeResult with the canonical path and the probe of that file.

    Raises:
        TranscodeError: If probing or re-encoding fails.
    """
    probe = probe_audio(input_path)
    if probe.is_canonical:
        logger.info("Audio already canonical, skipping transcode: %s", input_path)
        return NormalizeResult(output_path=input_path, converted=False, probe=probe)

    logger.info(
        "Transcoding %s (%d Hz, %d ch, %s) to 16kHz mono WAV",
        input_path,
        probe.sample_rate,
        probe.channels,
        probe.format_name,
    )

    os.makedirs(output_dir, exist_ok=True)
    output_path = os.path.join(output_dir, "normalized.wav")
    _transcode(input_path, output_path)

    return NormalizeResult(
        output_path=output_path,
        converted=True,
        probe=_probe_wav_header(output_path),
    )
