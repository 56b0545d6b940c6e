"""FFmpeg adapter for background synthesis, overlay compositing and derivatives.

Each operation builds one ffmpeg command, runs it as an asyncio subprocess
and raises ``CompositionError`` with ffmpeg's stderr verbatim when the
process exits non-zero. Partial outputs are left in place; the caller owns
the workspace.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from vslgen.config import Settings, get_settings
from vslgen.exceptions import CompositionError
from vslgen.render.filter_graph import (
    FilterGraph,
    OverlayInputs,
    ScrollCurve,
    Size,
    build_background_graph,
    build_overlay_graph,
    stage,
)
from vslgen.render.filter_syntax import format_number, to_filter_chain, to_filter_complex
from vslgen.render.style import StyleSettings
from vslgen.utils import media_info

logger = logging.getLogger(__name__)


@dataclass
class OverlayConfig:
    """Inputs for one overlay composite."""

    background_path: str
    overlay_path: str
    output_path: str
    style: StyleSettings
    overlay_duration: float
    secondary_path: Optional[str] = None
    intro_duration: float = 0.0
    intro_has_audio: bool = True
    secondary_has_audio: bool = False

    def overlay_inputs(self) -> OverlayInputs:
        return OverlayInputs(
            overlay_duration=self.overlay_duration,
            intro_duration=self.intro_duration or self.overlay_duration,
            has_secondary=self.secondary_path is not None,
            intro_has_audio=self.intro_has_audio,
            secondary_has_audio=self.secondary_has_audio,
        )


class Compositor:
    """Runs ffmpeg/ffprobe for the video pipeline."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ffmpeg_path = self.settings.ffmpeg_path
        self.canvas = Size(self.settings.viewport_width, self.settings.viewport_height)

    def _video_codec_args(self) -> list[str]:
        return [
            "-c:v", "libx264",
            "-preset", self.settings.render_preset,
            "-crf", str(self.settings.render_crf),
            "-pix_fmt", "yuv420p",
        ]

    def _audio_codec_args(self) -> list[str]:
        return ["-c:a", "aac", "-b:a", self.settings.render_audio_bitrate]

    async def _run(self, cmd: list[str], operation: str) -> None:
        """Run an ffmpeg command, raising CompositionError on non-zero exit."""
        logger.debug(f"[COMPOSITOR] {operation} command: {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CompositionError(f"{operation} could not start ffmpeg: {e}", command=cmd) from e
        _, stderr = await proc.communicate()

        if proc.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace")
            logger.error(f"[COMPOSITOR] {operation} failed (exit {proc.returncode}): {stderr_text}")
            raise CompositionError(f"{operation} failed: {stderr_text}", command=cmd, stderr=stderr_text)

        logger.info(f"[COMPOSITOR] {operation} done: {cmd[-1]}")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def background_command(
        self,
        screenshot_path: str,
        output_path: str,
        scroll_duration: float,
        total_duration: Optional[float] = None,
        *,
        steps: Optional[int] = None,
    ) -> list[str]:
        total = max(total_duration or scroll_duration, scroll_duration)
        graph = build_background_graph(
            ScrollCurve(scroll_duration, steps),
            canvas=self.canvas,
            fps=self.settings.render_fps,
        )
        return [
            self.ffmpeg_path,
            "-y",
            "-loop", "1",
            "-framerate", str(self.settings.render_fps),
            "-i", screenshot_path,
            "-t", format_number(total),
            "-vf", to_filter_chain(graph),
            *self._video_codec_args(),
            "-r", str(self.settings.render_fps),
            "-an",
            output_path,
        ]

    async def synthesize_background(
        self,
        screenshot_path: str,
        output_path: str,
        scroll_duration: float,
        total_duration: Optional[float] = None,
        *,
        steps: Optional[int] = None,
    ) -> None:
        """Turn a still screenshot into a scrolling background clip.

        The clip lasts ``total_duration`` (at least ``scroll_duration``) and
        holds on the bottom of the page once scrolling finishes.
        """
        cmd = self.background_command(
            screenshot_path, output_path, scroll_duration, total_duration, steps=steps
        )
        await self._run(cmd, "Background synthesis")

    def overlay_command(self, config: OverlayConfig) -> list[str]:
        graph: FilterGraph = build_overlay_graph(
            config.style,
            config.overlay_inputs(),
            canvas=self.canvas,
            fps=self.settings.render_fps,
        )

        cmd = [self.ffmpeg_path, "-y", "-i", config.background_path, "-i", config.overlay_path]
        if config.secondary_path:
            cmd.extend(["-i", config.secondary_path])

        cmd.extend(["-filter_complex", to_filter_complex(graph)])
        cmd.extend(["-map", f"[{graph.video_output}]"])
        if graph.audio_output:
            cmd.extend(["-map", f"[{graph.audio_output}]"])
        elif graph.audio_passthrough is not None:
            # Optional mapping: an intro without audio is not an error
            cmd.extend(["-map", f"{graph.audio_passthrough}:a?"])

        cmd.extend(self._video_codec_args())
        cmd.extend(self._audio_codec_args())
        cmd.extend([
            "-r", str(self.settings.render_fps),
            "-shortest",
            "-movflags", "+faststart",
            config.output_path,
        ])
        return cmd

    async def composite_overlay(self, config: OverlayConfig) -> None:
        """Composite the talking-head overlay (and optional secondary) onto the background."""
        await self._run(self.overlay_command(config), "Overlay composite")

    async def trim_preview(
        self,
        input_path: str,
        output_path: str,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """Re-encode the first seconds of a video as a standalone clip."""
        duration = duration_seconds or self.settings.preview_duration_seconds
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-t", format_number(duration),
            "-map", "0:v",
            "-map", "0:a?",
            *self._video_codec_args(),
            *self._audio_codec_args(),
            "-movflags", "+faststart",
            output_path,
        ]
        await self._run(cmd, "Preview trim")

    async def extract_thumbnail(
        self,
        input_path: str,
        output_path: str,
        time_offset_seconds: Optional[float] = None,
    ) -> None:
        """Grab one frame, fill-scaled to the thumbnail size."""
        offset = self.settings.thumbnail_offset_seconds if time_offset_seconds is None else time_offset_seconds
        width = self.settings.thumbnail_width
        height = self.settings.thumbnail_height
        graph = FilterGraph(
            stages=(
                stage("scale", w=width, h=height, force_original_aspect_ratio="increase"),
                stage("crop", w=width, h=height),
            )
        )
        cmd = [
            self.ffmpeg_path,
            "-y",
            "-ss", format_number(offset),
            "-i", input_path,
            "-frames:v", "1",
            "-vf", to_filter_chain(graph),
            "-q:v", "2",
            output_path,
        ]
        await self._run(cmd, "Thumbnail extraction")

    async def probe_duration(self, input_path: str) -> float:
        """Container duration in seconds."""
        if not Path(input_path).exists():
            raise CompositionError(f"Input not found: {input_path}")
        return await asyncio.to_thread(media_info.get_media_duration, input_path)

    async def has_audio(self, input_path: str) -> bool:
        return await asyncio.to_thread(media_info.has_audio_track, input_path)
