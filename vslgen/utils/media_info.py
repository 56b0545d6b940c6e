"""Media file information utilities using FFprobe."""

import json
import subprocess

from vslgen.config import get_settings
from vslgen.exceptions import ProbeError


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise ProbeError(f"ffprobe could not be started: {e}") from e
    if result.returncode != 0:
        raise ProbeError(f"ffprobe failed: {result.stderr.strip()}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f"Failed to parse ffprobe output: {e}") from e


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Args:
        file_path: Path to media file

    Returns:
        Duration in seconds

    Raises:
        ProbeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise ProbeError(f"Duration not found in: {file_path}")

    try:
        duration = float(format_info["duration"])
    except (TypeError, ValueError) as e:
        raise ProbeError(f"Invalid duration in: {file_path}") from e
    if duration <= 0:
        raise ProbeError(f"Non-positive duration in: {file_path}")
    return duration


def has_audio_track(file_path: str) -> bool:
    """
    Check if media file has an audio track.

    Args:
        file_path: Path to media file

    Returns:
        True if audio track exists, False otherwise
    """
    try:
        data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a")
        return len(data.get("streams", [])) > 0
    except ProbeError:
        return False
