"""Tests for audio_notes.audio.normalize module."""

import json
import shutil
import subprocess
import wave
from unittest.mock import patch

import pytest
from conftest import write_silent_wav, write_wav

from audio_notes.audio.normalize import (
    AudioProbe,
    normalize_audio,
    probe_audio,
)
from audio_notes.utils.errors import TranscodeError

ffmpeg_available = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


class TestAudioProbe:
    """Canonical-format detection."""

    def test_canonical_wav(self) -> None:
        probe = AudioProbe(16000, 1, "wav", 10.0, "pcm_s16le")
        assert probe.is_canonical is True

    def test_codec_unknown_is_accepted(self) -> None:
        assert AudioProbe(16000, 1, "wav", 10.0).is_canonical is True

    @pytest.mark.parametrize(
        "probe",
        [
            AudioProbe(44100, 1, "wav", 1.0, "pcm_s16le"),
            AudioProbe(16000, 2, "wav", 1.0, "pcm_s16le"),
            AudioProbe(16000, 1, "mov,mp4,m4a,3gp,3g2,mj2", 1.0, "aac"),
            AudioProbe(16000, 1, "wav", 1.0, "pcm_f32le"),
        ],
    )
    def test_non_canonical(self, probe: AudioProbe) -> None:
        assert probe.is_canonical is False


class TestProbeAudio:
    def test_missing_file_raises(self, tmp_path) -> None:
        with pytest.raises(TranscodeError, match="does not exist"):
            probe_audio(str(tmp_path / "missing.wav"))

    def test_header_fallback_without_ffprobe(self, tmp_path) -> None:
        path = write_silent_wav(tmp_path / "in.wav", 2.0, sample_rate=22050, channels=2)

        with patch("audio_notes.audio.normalize.shutil.which", return_value=None):
            probe = probe_audio(str(path))

        assert probe.sample_rate == 22050
        assert probe.channels == 2
        assert probe.format_name == "wav"
        assert probe.duration_seconds == pytest.approx(2.0)

    def test_header_fallback_rejects_non_wav(self, tmp_path) -> None:
        path = tmp_path / "in.m4a"
        path.write_bytes(b"definitely not audio")

        with patch("audio_notes.audio.normalize.shutil.which", return_value=None):
            with pytest.raises(TranscodeError):
                probe_audio(str(path))

    def test_ffprobe_output_is_parsed(self, tmp_path) -> None:
        path = tmp_path / "in.m4a"
        path.write_bytes(b"x")
        info = {
            "streams": [
                {"codec_type": "video"},
                {
                    "codec_type": "audio",
                    "codec_name": "aac",
                    "sample_rate": "44100",
                    "channels": 2,
                },
            ],
            "format": {"format_name": "mov,mp4,m4a", "duration": "61.5"},
        }
        completed = subprocess.CompletedProcess([], 0, stdout=json.dumps(info), stderr="")

        with patch(
            "audio_notes.audio.normalize.shutil.which", return_value="/usr/bin/ffprobe"
        ), patch("audio_notes.audio.normalize.subprocess.run", return_value=completed):
            probe = probe_audio(str(path))

        assert probe.sample_rate == 44100
        assert probe.channels == 2
        assert probe.codec_name == "aac"
        assert probe.duration_seconds == 61.5
        assert probe.is_canonical is False

    def test_ffprobe_without_audio_stream(self, tmp_path) -> None:
        path = tmp_path / "in.mp4"
        path.write_bytes(b"x")
        completed = subprocess.CompletedProcess(
            [], 0, stdout=json.dumps({"streams": [{"codec_type": "video"}]}), stderr=""
        )

        with patch(
            "audio_notes.audio.normalize.shutil.which", return_value="/usr/bin/ffprobe"
        ), patch("audio_notes.audio.normalize.subprocess.run", return_value=completed):
            with pytest.raises(TranscodeError, match="No audio stream"):
                probe_audio(str(path))

    def _probe_with_output(self, tmp_path, info: dict) -> AudioProbe:
        path = tmp_path / "in.webm"
        path.write_bytes(b"x")
        completed = subprocess.CompletedProcess([], 0, stdout=json.dumps(info), stderr="")
        with patch(
            "audio_notes.audio.normalize.shutil.which", return_value="/usr/bin/ffprobe"
        ), patch("audio_notes.audio.normalize.subprocess.run", return_value=completed):
            return probe_audio(str(path))

    def test_unknown_duration_is_zero(self, tmp_path) -> None:
        info = {
            "streams": [
                {
                    "codec_type": "audio",
                    "codec_name": "opus",
                    "sample_rate": "48000",
                    "channels": 1,
                    "duration": "N/A",
                }
            ],
            "format": {"format_name": "matroska,webm", "duration": "N/A"},
        }
        probe = self._probe_with_output(tmp_path, info)
        assert probe.duration_seconds == 0.0
        assert probe.sample_rate == 48000

    def test_stream_duration_used_when_format_has_none(self, tmp_path) -> None:
        info = {
            "streams": [
                {
                    "codec_type": "audio",
                    "sample_rate": "48000",
                    "channels": 1,
                    "duration": "12.5",
                }
            ],
            "format": {"format_name": "ogg", "duration": "N/A"},
        }
        assert self._probe_with_output(tmp_path, info).duration_seconds == 12.5

    @pytest.mark.parametrize("field", ["sample_rate", "channels"])
    def test_unusable_stream_property_raises(self, tmp_path, field) -> None:
        stream = {"codec_type": "audio", "sample_rate": "44100", "channels": 2}
        stream[field] = "N/A"
        info = {"streams": [stream], "format": {"format_name": "mp3"}}
        with pytest.raises(TranscodeError, match="unusable stream properties"):
            self._probe_with_output(tmp_path, info)

    def test_ffprobe_failure_raises(self, tmp_path) -> None:
        path = tmp_path / "in.m4a"
        path.write_bytes(b"x")
        error = subprocess.CalledProcessError(1, ["ffprobe"], stderr="Invalid data found")

        with patch(
            "audio_notes.audio.normalize.shutil.which", return_value="/usr/bin/ffprobe"
        ), patch("audio_notes.audio.normalize.subprocess.run", side_effect=error):
            with pytest.raises(TranscodeError, match="Invalid data found"):
                probe_audio(str(path))


class TestNormalizeAudio:
    def test_canonical_input_is_passed_through(self, tmp_path) -> None:
        path = write_silent_wav(tmp_path / "in.wav", 1.0)

        result = normalize_audio(str(path), str(tmp_path / "out"))

        assert result.converted is False
        assert result.output_path == str(path)
        assert not (tmp_path / "out").exists()

    def test_missing_ffmpeg_for_non_canonical_input(self, tmp_path) -> None:
        path = write_silent_wav(tmp_path / "in.wav", 1.0, sample_rate=44100)

        with patch("audio_notes.audio.normalize.shutil.which", return_value=None):
            with pytest.raises(TranscodeError, match="ffmpeg binary not found"):
                normalize_audio(str(path), str(tmp_path / "out"))

    def test_ffmpeg_failure_raises(self, tmp_path) -> None:
        path = write_silent_wav(tmp_path / "in.wav", 1.0, sample_rate=44100)
        error = subprocess.CalledProcessError(1, ["ffmpeg"], stderr="codec failure")

        with patch(
            "audio_notes.audio.normalize.shutil.which",
            side_effect=lambda name: None if name == "ffprobe" else "/usr/bin/ffmpeg",
        ), patch("audio_notes.audio.normalize.subprocess.run", side_effect=error):
            with pytest.raises(TranscodeError, match="codec failure"):
                normalize_audio(str(path), str(tmp_path / "out"))

    @pytest.mark.skipif(not ffmpeg_available, reason="ffmpeg not installed")
    def test_stereo_44k_is_converted(self, tmp_path) -> None:
        path = write_wav(tmp_path / "in.wav", 3.0, sample_rate=44100, channels=2)

        result = normalize_audio(str(path), str(tmp_path / "out"))

        assert result.converted is True
        assert result.output_path == str(tmp_path / "out" / "normalized.wav")
        with wave.open(result.output_path, "rb") as wf:
            assert wf.getframerate() == 16000
            assert wf.getnchannels() == 1
            assert wf.getsampwidth() == 2
        assert result.probe.duration_seconds == pytest.approx(3.0, abs=0.1)
