"""
Per-lead video generation pipeline.

Stages, in order:
1. INIT        - fresh workspace, probe overlay duration, plan timing
2. SCREENSHOT  - full-page capture of the lead's website
3. BACKGROUND  - still screenshot -> scrolling background clip
4. OVERLAY     - talking-head overlay composited onto the background
5. PREVIEW     - short preview clip from the final video
6. THUMBNAIL   - single frame from the final video

Any failure short-circuits to FAILED. The workspace is removed whatever
happens; final artifacts go straight to their persistent directories.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from vslgen.config import Settings, get_settings
from vslgen.exceptions import CaptureError, VslError
from vslgen.render.compositor import Compositor, OverlayConfig
from vslgen.render.filter_graph import TimingPlan, plan_timing
from vslgen.render.style import StyleSettings
from vslgen.services.page_capture import CaptureResult
from vslgen.services.storage_service import StorageService

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Pipeline state."""

    INIT = "init"
    SCREENSHOT = "screenshot"
    BACKGROUND = "background"
    OVERLAY = "overlay"
    PREVIEW = "preview"
    THUMBNAIL = "thumbnail"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationJob:
    """One unit of work: one lead's personalized video."""

    lead_id: str
    campaign_id: str
    website_url: str
    intro_video_path: str
    style: StyleSettings
    secondary_video_path: Optional[str] = None


@dataclass
class PipelineResult:
    """Outcome of one pipeline run. Paths are storage keys."""

    lead_id: str
    success: bool
    stage: PipelineStage
    video_path: Optional[str] = None
    preview_path: Optional[str] = None
    thumbnail_path: Optional[str] = None
    background_path: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[PipelineStage] = None
    timing: Optional[TimingPlan] = None
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "lead_id": self.lead_id,
            "success": self.success,
            "stage": self.stage.value,
            "video_path": self.video_path,
            "preview_path": self.preview_path,
            "thumbnail_path": self.thumbnail_path,
            "background_path": self.background_path,
            "error": self.error,
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


class Capturer(Protocol):
    async def capture(self, url: str, output_path: str) -> CaptureResult: ...


@dataclass
class _Outputs:
    video: Path
    preview: Path
    thumbnail: Path
    background: Path
    written: list[Path] = field(default_factory=list)


class VideoPipeline:
    """Runs the generation stages for one job at a time."""

    def __init__(
        self,
        capture: Capturer,
        compositor: Compositor,
        storage: StorageService,
        settings: Optional[Settings] = None,
    ):
        self.capture = capture
        self.compositor = compositor
        self.storage = storage
        self.settings = settings or get_settings()

    async def generate(self, job: GenerationJob) -> PipelineResult:
        """Generate one lead's video. Never raises for stage failures."""
        started = time.monotonic()
        stage = PipelineStage.INIT
        workspace: Optional[Path] = None
        outputs: Optional[_Outputs] = None
        timing: Optional[TimingPlan] = None

        logger.info(f"[PIPELINE] Lead {job.lead_id}: start ({job.style.style.value}, {job.website_url})")
        try:
            workspace = self.storage.resolve_temp_dir(job.lead_id)
            outputs = _Outputs(
                video=self.storage.video_path(job.lead_id),
                preview=self.storage.preview_path(job.lead_id),
                thumbnail=self.storage.thumbnail_path(job.lead_id),
                background=self.storage.background_path(job.lead_id),
            )
            overlay = await self._probe_overlay(job)
            timing = plan_timing(
                job.style,
                overlay.overlay_duration,
                default_scroll_duration=self.settings.default_scroll_duration,
                step_duration=self.settings.scroll_step_duration,
            )

            stage = PipelineStage.SCREENSHOT
            screenshot = workspace / "screenshot.png"
            captured = await self.capture.capture(job.website_url, str(screenshot))
            if not captured.success:
                raise CaptureError(captured.error or f"Failed to capture {job.website_url}")

            stage = PipelineStage.BACKGROUND
            background_clip = workspace / "background.mp4"
            await self.compositor.synthesize_background(
                str(screenshot),
                str(background_clip),
                timing.scroll_duration,
                timing.background_duration,
                steps=timing.scroll_steps,
            )

            stage = PipelineStage.OVERLAY
            overlay.background_path = str(background_clip)
            overlay.output_path = str(outputs.video)
            outputs.written.append(outputs.video)
            await self.compositor.composite_overlay(overlay)

            stage = PipelineStage.PREVIEW
            outputs.written.append(outputs.preview)
            await self.compositor.trim_preview(
                str(outputs.video),
                str(outputs.preview),
                self.settings.preview_duration_seconds,
            )

            stage = PipelineStage.THUMBNAIL
            outputs.written.append(outputs.thumbnail)
            # Short videos have no frame at the default offset
            offset = min(self.settings.thumbnail_offset_seconds, timing.output_duration / 2)
            await self.compositor.extract_thumbnail(str(outputs.video), str(outputs.thumbnail), offset)

            outputs.written.append(outputs.background)
            await asyncio.to_thread(shutil.copyfile, screenshot, outputs.background)

        except (VslError, OSError, ValueError) as e:
            message = e.message if isinstance(e, VslError) else str(e)
            logger.error(f"[PIPELINE] Lead {job.lead_id}: failed at {stage.value}: {message}")
            if outputs is not None:
                self._discard(outputs.written)
            return PipelineResult(
                lead_id=job.lead_id,
                success=False,
                stage=PipelineStage.FAILED,
                error=message,
                failed_stage=stage,
                timing=timing,
                elapsed_seconds=time.monotonic() - started,
            )
        finally:
            self._cleanup(workspace)

        elapsed = time.monotonic() - started
        logger.info(f"[PIPELINE] Lead {job.lead_id}: done in {elapsed:.1f}s")
        return PipelineResult(
            lead_id=job.lead_id,
            success=True,
            stage=PipelineStage.DONE,
            video_path=self.storage.to_storage_key(outputs.video),
            preview_path=self.storage.to_storage_key(outputs.preview),
            thumbnail_path=self.storage.to_storage_key(outputs.thumbnail),
            background_path=self.storage.to_storage_key(outputs.background),
            timing=timing,
            elapsed_seconds=elapsed,
        )

    async def _probe_overlay(self, job: GenerationJob) -> OverlayConfig:
        """Probe intro (and secondary) videos; paths are filled in later."""
        intro_path = str(self.storage.get_file_path(job.intro_video_path))
        intro_duration = await self.compositor.probe_duration(intro_path)

        config = OverlayConfig(
            background_path="",
            overlay_path=intro_path,
            output_path="",
            style=job.style,
            overlay_duration=intro_duration,
            intro_duration=intro_duration,
        )
        if job.secondary_video_path:
            secondary_path = str(self.storage.get_file_path(job.secondary_video_path))
            config.secondary_path = secondary_path
            config.overlay_duration = intro_duration + await self.compositor.probe_duration(secondary_path)
            config.intro_has_audio = await self.compositor.has_audio(intro_path)
            config.secondary_has_audio = await self.compositor.has_audio(secondary_path)

        logger.info(
            f"[PIPELINE] Lead {job.lead_id}: overlay {config.overlay_duration:.2f}s"
            f"{' (with secondary)' if config.secondary_path else ''}"
        )
        return config

    def _discard(self, paths: list[Path]) -> None:
        """Remove partial persistent outputs of a failed run."""
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"[PIPELINE] Could not remove partial output {path}: {e}")

    def _cleanup(self, workspace: Optional[Path]) -> None:
        """Clean up temporary files."""
        if workspace is None:
            return
        try:
            shutil.rmtree(workspace)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[PIPELINE] Workspace cleanup failed for {workspace}: {e}")
