"""Tests for the per-lead video pipeline with a fake browser and a mocked compositor."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from vslgen.exceptions import CompositionError
from vslgen.render.compositor import OverlayConfig
from vslgen.render.pipeline import GenerationJob, PipelineStage, VideoPipeline
from vslgen.render.style import OverlayPosition, OverlayShape, SmallBubble
from vslgen.services.page_capture import CaptureResult


class FakeCapture:
    """Writes a tall PNG instead of launching a browser."""

    def __init__(self, success: bool = True, height: int = 2400):
        self.success = success
        self.height = height
        self.urls: list[str] = []

    async def capture(self, url: str, output_path: str) -> CaptureResult:
        self.urls.append(url)
        if not self.success:
            return CaptureResult(success=False, error="net::ERR_NAME_NOT_RESOLVED")
        Image.new("RGB", (1280, self.height), (240, 240, 240)).save(output_path)
        return CaptureResult(success=True, full_height=self.height)


def _touch(path) -> None:
    Path(path).write_bytes(b"\x00" * 16)


def _compositor(intro_duration: float = 12.0) -> MagicMock:
    compositor = MagicMock()
    compositor.probe_duration = AsyncMock(return_value=intro_duration)
    compositor.has_audio = AsyncMock(return_value=True)
    compositor.synthesize_background = AsyncMock(side_effect=lambda shot, out, *a, **kw: _touch(out))
    compositor.composite_overlay = AsyncMock(side_effect=lambda config: _touch(config.output_path))
    compositor.trim_preview = AsyncMock(side_effect=lambda src, out, *a: _touch(out))
    compositor.extract_thumbnail = AsyncMock(side_effect=lambda src, out, *a: _touch(out))
    return compositor


def _job(**overrides) -> GenerationJob:
    values = dict(
        lead_id="lead-1",
        campaign_id="campaign-1",
        website_url="https://example.com",
        intro_video_path="uploads/intro.mp4",
        style=SmallBubble(shape=OverlayShape.CIRCLE, position=OverlayPosition.BOTTOM_RIGHT),
    )
    values.update(overrides)
    return GenerationJob(**values)


class TestVideoPipeline:
    """Stage ordering, outputs and failure handling."""

    @pytest.mark.asyncio
    async def test_success(self, settings, storage):
        compositor = _compositor()
        capture = FakeCapture()
        pipeline = VideoPipeline(capture, compositor, storage, settings)

        result = await pipeline.generate(_job())

        assert result.success is True
        assert result.stage == PipelineStage.DONE
        assert result.video_path == "videos/lead-1.mp4"
        assert result.preview_path == "videos/previews/lead-1_preview.mp4"
        assert result.thumbnail_path == "videos/thumbnails/lead-1.jpg"
        assert result.background_path == "videos/backgrounds/lead-1.png"
        assert capture.urls == ["https://example.com"]

        # Background spans the intro plus one second; scroll is 70% of the intro
        args = compositor.synthesize_background.call_args
        assert args.args[2] == pytest.approx(8.4)
        assert args.args[3] == pytest.approx(13.0)
        assert args.kwargs["steps"] == 3

        config: OverlayConfig = compositor.composite_overlay.call_args.args[0]
        assert config.overlay_path == str(storage.base_path / "uploads/intro.mp4")
        assert config.output_path == str(storage.video_path("lead-1"))
        assert compositor.extract_thumbnail.call_args.args[2] == 3.0

        assert not (storage.temp_dir / "lead-1").exists()
        assert (storage.backgrounds_dir / "lead-1.png").exists()

    @pytest.mark.asyncio
    async def test_short_intro_thumbnail_offset(self, settings, storage):
        compositor = _compositor(intro_duration=4.0)
        pipeline = VideoPipeline(FakeCapture(), compositor, storage, settings)

        result = await pipeline.generate(_job())

        assert result.success is True
        assert compositor.extract_thumbnail.call_args.args[2] == 2.0

    @pytest.mark.asyncio
    async def test_secondary_video(self, settings, storage):
        compositor = _compositor()
        compositor.probe_duration = AsyncMock(side_effect=[12.0, 8.0])
        compositor.has_audio = AsyncMock(side_effect=[True, False])
        pipeline = VideoPipeline(FakeCapture(), compositor, storage, settings)

        result = await pipeline.generate(_job(secondary_video_path="uploads/outro.mp4"))

        assert result.success is True
        config: OverlayConfig = compositor.composite_overlay.call_args.args[0]
        assert config.overlay_duration == 20.0
        assert config.intro_duration == 12.0
        assert config.secondary_path == str(storage.base_path / "uploads/outro.mp4")
        assert config.intro_has_audio is True
        assert config.secondary_has_audio is False
        assert result.timing.background_duration == 21.0

    @pytest.mark.asyncio
    async def test_capture_failure(self, settings, storage):
        compositor = _compositor()
        pipeline = VideoPipeline(FakeCapture(success=False), compositor, storage, settings)

        result = await pipeline.generate(_job())

        assert result.success is False
        assert result.stage == PipelineStage.FAILED
        assert result.failed_stage == PipelineStage.SCREENSHOT
        assert "ERR_NAME_NOT_RESOLVED" in result.error
        compositor.synthesize_background.assert_not_awaited()
        compositor.composite_overlay.assert_not_awaited()
        assert not (storage.temp_dir / "lead-1").exists()

    @pytest.mark.asyncio
    async def test_overlay_failure_discards_partial_output(self, settings, storage):
        compositor = _compositor()

        async def fail(config):
            _touch(config.output_path)
            raise CompositionError("Overlay composite failed: boom", stderr="boom")

        compositor.composite_overlay = AsyncMock(side_effect=fail)
        pipeline = VideoPipeline(FakeCapture(), compositor, storage, settings)

        result = await pipeline.generate(_job())

        assert result.success is False
        assert result.failed_stage == PipelineStage.OVERLAY
        assert "boom" in result.error
        assert not storage.video_path("lead-1").exists()
        compositor.trim_preview.assert_not_awaited()
        assert not (storage.temp_dir / "lead-1").exists()

    @pytest.mark.asyncio
    async def test_probe_failure(self, settings, storage):
        compositor = _compositor()
        compositor.probe_duration = AsyncMock(side_effect=CompositionError("Input not found: intro.mp4"))
        capture = FakeCapture()
        pipeline = VideoPipeline(capture, compositor, storage, settings)

        result = await pipeline.generate(_job())

        assert result.success is False
        assert result.failed_stage == PipelineStage.INIT
        assert capture.urls == []

    @pytest.mark.asyncio
    async def test_stale_workspace_is_replaced(self, settings, storage):
        stale = storage.temp_dir / "lead-1"
        stale.mkdir(parents=True)
        (stale / "leftover.mp4").write_bytes(b"old")

        result = await VideoPipeline(FakeCapture(), _compositor(), storage, settings).generate(_job())

        assert result.success is True
        assert not stale.exists()

    def test_result_to_dict(self):
        from vslgen.render.pipeline import PipelineResult

        result = PipelineResult(
            lead_id="lead-1",
            success=False,
            stage=PipelineStage.FAILED,
            error="boom",
            failed_stage=PipelineStage.BACKGROUND,
        )
        data = result.to_dict()
        assert data["stage"] == "failed"
        assert data["failed_stage"] == "background"
        assert data["video_path"] is None
