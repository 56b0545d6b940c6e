"""Tests for ffprobe-based media info helpers."""

import json
import subprocess
from unittest.mock import patch

import pytest

from vslgen.exceptions import ProbeError
from vslgen.utils.media_info import get_media_duration, has_audio_track


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["ffprobe"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestMediaDuration:
    """Test duration extraction from ffprobe JSON."""

    def test_duration_in_seconds(self):
        output = json.dumps({"format": {"duration": "12.480000"}})
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(output)) as run:
            assert get_media_duration("intro.mp4") == pytest.approx(12.48)

        cmd = run.call_args.args[0]
        assert "-show_format" in cmd
        assert cmd[-1] == "intro.mp4"

    def test_missing_duration(self):
        output = json.dumps({"format": {}})
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(output)):
            with pytest.raises(ProbeError):
                get_media_duration("intro.mp4")

    def test_zero_duration(self):
        output = json.dumps({"format": {"duration": "0.0"}})
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(output)):
            with pytest.raises(ProbeError):
                get_media_duration("intro.mp4")

    def test_ffprobe_failure(self):
        result = _completed(returncode=1, stderr="intro.mp4: No such file or directory")
        with patch("vslgen.utils.media_info.subprocess.run", return_value=result):
            with pytest.raises(ProbeError, match="No such file"):
                get_media_duration("intro.mp4")

    def test_garbage_output(self):
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed("not json")):
            with pytest.raises(ProbeError):
                get_media_duration("intro.mp4")

    def test_binary_missing(self):
        with patch("vslgen.utils.media_info.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(ProbeError):
                get_media_duration("intro.mp4")


class TestAudioTrack:
    def test_has_audio(self):
        output = json.dumps({"streams": [{"codec_type": "audio"}]})
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(output)):
            assert has_audio_track("intro.mp4") is True

    def test_no_audio(self):
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(json.dumps({"streams": []}))):
            assert has_audio_track("intro.mp4") is False

    def test_probe_failure_means_no_audio(self):
        with patch("vslgen.utils.media_info.subprocess.run", return_value=_completed(returncode=1)):
            assert has_audio_track("intro.mp4") is False
