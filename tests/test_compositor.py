"""Tests for the ffmpeg compositor: command construction and failure reporting."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from vslgen.exceptions import CompositionError
from vslgen.render.compositor import Compositor, OverlayConfig
from vslgen.render.style import FullScreen, OverlayPosition, OverlayShape, SmallBubble


def _fake_process(returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(b"", stderr))
    return proc


@pytest.fixture
def compositor(settings) -> Compositor:
    return Compositor(settings)


class TestBackgroundCommand:
    def test_loops_still_image(self, compositor: Compositor):
        cmd = compositor.background_command("shot.png", "bg.mp4", 8.4, 13.0, steps=3)

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-loop") + 1] == "1"
        assert cmd[cmd.index("-framerate") + 1] == "30"
        assert cmd[cmd.index("-i") + 1] == "shot.png"
        assert cmd[cmd.index("-t") + 1] == "13"
        assert cmd[cmd.index("-vf") + 1].startswith("scale=w=1280:h=-2,")
        assert "-an" in cmd
        assert cmd[-1] == "bg.mp4"

    def test_total_never_shorter_than_scroll(self, compositor: Compositor):
        cmd = compositor.background_command("shot.png", "bg.mp4", 15.0, 4.0)
        assert cmd[cmd.index("-t") + 1] == "15"

    def test_uses_encoding_settings(self, compositor: Compositor, settings):
        cmd = compositor.background_command("shot.png", "bg.mp4", 8.0)
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-crf") + 1] == str(settings.render_crf)
        assert cmd[cmd.index("-preset") + 1] == settings.render_preset
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"


class TestOverlayCommand:
    def test_bubble_maps_intro_audio_optionally(self, compositor: Compositor):
        config = OverlayConfig(
            background_path="bg.mp4",
            overlay_path="intro.mp4",
            output_path="out.mp4",
            style=SmallBubble(shape=OverlayShape.SQUARE, position=OverlayPosition.BOTTOM_RIGHT),
            overlay_duration=12.0,
        )
        cmd = compositor.overlay_command(config)

        assert cmd[1:6] == ["-y", "-i", "bg.mp4", "-i", "intro.mp4"]
        complex_ = cmd[cmd.index("-filter_complex") + 1]
        assert complex_.endswith("[0:v][bubble]overlay=x=1060:y=500:shortest=1[vout]")
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["[vout]", "1:a?"]
        assert "-shortest" in cmd
        assert cmd[cmd.index("-movflags") + 1] == "+faststart"
        assert cmd[-1] == "out.mp4"

    def test_secondary_adds_third_input(self, compositor: Compositor):
        config = OverlayConfig(
            background_path="bg.mp4",
            overlay_path="intro.mp4",
            output_path="out.mp4",
            style=SmallBubble(),
            overlay_duration=20.0,
            secondary_path="outro.mp4",
            intro_duration=12.0,
            intro_has_audio=True,
            secondary_has_audio=True,
        )
        cmd = compositor.overlay_command(config)

        inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
        assert inputs == ["bg.mp4", "intro.mp4", "outro.mp4"]
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["[vout]", "[aout]"]

    def test_full_screen_extends_background(self, compositor: Compositor):
        config = OverlayConfig(
            background_path="bg.mp4",
            overlay_path="intro.mp4",
            output_path="out.mp4",
            style=FullScreen(transition_seconds=5),
            overlay_duration=30.0,
        )
        cmd = compositor.overlay_command(config)
        complex_ = cmd[cmd.index("-filter_complex") + 1]
        assert "tpad=stop_mode=clone:stop_duration=30" in complex_


class TestRun:
    """Subprocess handling."""

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_with_stderr(self, compositor: Compositor):
        proc = _fake_process(returncode=1, stderr=b"Invalid filtergraph")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(CompositionError) as exc_info:
                await compositor.trim_preview("in.mp4", "out.mp4")

        assert exc_info.value.stderr == "Invalid filtergraph"
        assert "Invalid filtergraph" in exc_info.value.message
        assert exc_info.value.command[-1] == "out.mp4"

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, compositor: Compositor):
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(CompositionError):
                await compositor.extract_thumbnail("in.mp4", "thumb.jpg")

    @pytest.mark.asyncio
    async def test_preview_command(self, compositor: Compositor):
        exec_mock = AsyncMock(return_value=_fake_process())
        with patch("asyncio.create_subprocess_exec", exec_mock):
            await compositor.trim_preview("in.mp4", "preview.mp4")

        cmd = list(exec_mock.call_args.args)
        assert cmd[cmd.index("-t") + 1] == "8"
        maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
        assert maps == ["0:v", "0:a?"]

    @pytest.mark.asyncio
    async def test_thumbnail_command(self, compositor: Compositor):
        exec_mock = AsyncMock(return_value=_fake_process())
        with patch("asyncio.create_subprocess_exec", exec_mock):
            await compositor.extract_thumbnail("in.mp4", "thumb.jpg", time_offset_seconds=3)

        cmd = list(exec_mock.call_args.args)
        assert cmd[cmd.index("-ss") + 1] == "3"
        assert cmd[cmd.index("-frames:v") + 1] == "1"
        assert cmd[cmd.index("-vf") + 1] == (
            "scale=w=460:h=250:force_original_aspect_ratio=increase,crop=w=460:h=250"
        )

    @pytest.mark.asyncio
    async def test_probe_missing_input(self, compositor: Compositor, tmp_path: Path):
        with pytest.raises(CompositionError):
            await compositor.probe_duration(str(tmp_path / "missing.mp4"))


@pytest.mark.requires_ffmpeg
class TestWithFfmpeg:
    """Runs the real binaries against generated inputs."""

    @pytest.mark.asyncio
    async def test_background_from_tall_screenshot(self, ffmpeg_required, compositor: Compositor, tmp_path: Path):
        from PIL import Image

        shot = tmp_path / "shot.png"
        Image.new("RGB", (1280, 2400), (200, 220, 240)).save(shot)
        output = tmp_path / "bg.mp4"

        await compositor.synthesize_background(str(shot), str(output), 8.0, 9.0, steps=3)

        duration = await compositor.probe_duration(str(output))
        assert 8.5 <= duration <= 9.5
        assert await compositor.has_audio(str(output)) is False

    @pytest.mark.asyncio
    async def test_short_screenshot_is_padded(self, ffmpeg_required, compositor: Compositor, tmp_path: Path):
        from PIL import Image

        shot = tmp_path / "short.png"
        Image.new("RGB", (1280, 400), (255, 0, 0)).save(shot)
        output = tmp_path / "bg.mp4"

        await compositor.synthesize_background(str(shot), str(output), 8.0)

        assert output.exists()
        assert await compositor.probe_duration(str(output)) > 7.5
