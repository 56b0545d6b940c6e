"""Filter graph builder for the scrolling background and overlay composite.

Everything here is pure: it computes geometry, timing and an ordered list of
filter stages. Nothing in this module knows the media engine's text syntax;
``vslgen.render.filter_syntax`` serializes a ``FilterGraph`` in one place.

Input streams for the overlay composite are fixed:
    0 - synthesized background video
    1 - intro (talking head) video
    2 - optional secondary video, played after the intro
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from vslgen.render.style import FullScreen, OverlayPosition, OverlayShape, ScrollMode, StyleSettings, VideoStyle
from vslgen.utils.interpolation import clamp, smoothstep, staircase, step_count

logger = logging.getLogger(__name__)

# Output canvas
CANVAS_WIDTH = 1280
CANVAS_HEIGHT = 720

# Bubble geometry
BUBBLE_SIZES = {
    VideoStyle.SMALL_BUBBLE: 200,
    VideoStyle.BIG_BUBBLE: 400,
    VideoStyle.FULL_SCREEN: 200,
}
BUBBLE_PADDING = 20

# Stepped scroll derivation
SCROLL_TO_OVERLAY_RATIO = 0.7
MIN_SCROLL_DURATION = 8.0
MAX_SCROLL_DURATION = 45.0
STEP_SCROLL_FRACTION = 0.7
MIN_SCROLL_STEPS = 3

# Bubble styles keep the page visible for one second after the overlay ends
BACKGROUND_TAIL_SECONDS = 1.0


# =============================================================================
# Geometry
# =============================================================================


@dataclass(frozen=True)
class Size:
    width: int
    height: int


@dataclass(frozen=True)
class Point:
    x: int
    y: int


CANVAS = Size(CANVAS_WIDTH, CANVAS_HEIGHT)


def bubble_size(style: StyleSettings) -> Size:
    """Square bubble size for a style."""
    side = BUBBLE_SIZES[style.style]
    return Size(side, side)


def overlay_position(
    position: OverlayPosition,
    size: Size,
    canvas: Size = CANVAS,
    padding: int = BUBBLE_PADDING,
) -> Point:
    """Top-left corner of a bubble placed in a canvas corner.

    The result always keeps the whole bubble inside the canvas.
    """
    left = padding
    right = canvas.width - size.width - padding
    top = padding
    bottom = canvas.height - size.height - padding

    if position is OverlayPosition.BOTTOM_RIGHT:
        return Point(right, bottom)
    if position is OverlayPosition.TOP_LEFT:
        return Point(left, top)
    if position is OverlayPosition.TOP_RIGHT:
        return Point(right, top)
    return Point(left, bottom)


# =============================================================================
# Time-varying values
# =============================================================================


@dataclass(frozen=True)
class ScrollCurve:
    """Normalized scroll progress over time.

    ``steps`` of None is a single smoothstep pass over ``scroll_duration``.
    Otherwise the scroll is split into ``steps`` equal segments, each moving
    for ``scroll_fraction`` of its time and then holding.
    """

    scroll_duration: float
    steps: Optional[int] = None
    scroll_fraction: float = STEP_SCROLL_FRACTION

    def __post_init__(self) -> None:
        if self.scroll_duration <= 0:
            raise ValueError("scroll_duration must be positive")
        if self.steps is not None and self.steps < 1:
            raise ValueError("steps must be >= 1")

    def progress(self, t: float) -> float:
        """Progress in [0, 1] at time ``t`` seconds. Holds at 1 afterwards."""
        u = clamp(t / self.scroll_duration, 0.0, 1.0)
        if self.steps is None:
            return smoothstep(u)
        return staircase(u, self.steps, self.scroll_fraction)


@dataclass(frozen=True)
class ScrollOffset:
    """Vertical crop offset of the viewport into a tall image."""

    curve: ScrollCurve
    viewport_height: int = CANVAS_HEIGHT

    def at(self, t: float, image_height: int) -> float:
        travel = max(0, image_height - self.viewport_height)
        return clamp(self.curve.progress(t) * travel, 0.0, float(travel))


@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval [start, end) in seconds; ``end`` None is open."""

    start: float = 0.0
    end: Optional[float] = None

    def contains(self, t: float) -> bool:
        if t < self.start:
            return False
        return self.end is None or t < self.end


@dataclass(frozen=True)
class CircleMask:
    """Alpha mask keeping the circle inscribed in the frame."""

    def alpha(self, x: float, y: float, width: float, height: float) -> int:
        radius = min(width, height) / 2
        dx = x - width / 2
        dy = y - height / 2
        return 255 if dx * dx + dy * dy < radius * radius else 0


# =============================================================================
# Graph
# =============================================================================


@dataclass(frozen=True)
class FilterStage:
    """One filter application.

    ``params`` keeps option order; a key of None is a positional argument.
    ``inputs`` and ``outputs`` are stream labels (e.g. "0:v", "bubble").
    """

    name: str
    params: tuple[tuple[Optional[str], Any], ...] = ()
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()

    def param(self, key: str) -> Any:
        for name, value in self.params:
            if name == key:
                return value
        raise KeyError(key)


def stage(
    name: str,
    *positional: Any,
    inputs: tuple[str, ...] = (),
    outputs: tuple[str, ...] = (),
    **options: Any,
) -> FilterStage:
    params = tuple((None, value) for value in positional) + tuple(options.items())
    return FilterStage(name=name, params=params, inputs=inputs, outputs=outputs)


@dataclass(frozen=True)
class FilterGraph:
    """Ordered filter stages plus the labels to map into the output.

    ``audio_passthrough`` is an input index whose audio (if any) is mapped
    directly when no audio stage is built.
    """

    stages: tuple[FilterStage, ...]
    video_output: Optional[str] = None
    audio_output: Optional[str] = None
    audio_passthrough: Optional[int] = None

    def find(self, name: str) -> list[FilterStage]:
        return [s for s in self.stages if s.name == name]


# =============================================================================
# Timing
# =============================================================================


@dataclass(frozen=True)
class TimingPlan:
    """Durations (seconds) for one render."""

    overlay_duration: float
    scroll_duration: float
    background_duration: float
    scroll_steps: Optional[int] = None

    @property
    def scroll_curve(self) -> ScrollCurve:
        return ScrollCurve(self.scroll_duration, self.scroll_steps)

    @property
    def output_duration(self) -> float:
        """Expected composite length: the overlay bounds every style."""
        return self.overlay_duration


def plan_timing(
    style: StyleSettings,
    overlay_duration: float,
    *,
    default_scroll_duration: float = 15.0,
    step_duration: float = 3.0,
) -> TimingPlan:
    """Derive scroll and background durations from the overlay length.

    Stepped scrolls without an explicit duration take 70% of the overlay
    length, clamped to [8, 45] seconds. Bubble backgrounds last at least
    one second longer than the overlay. Full-screen backgrounds last the
    scroll duration and are extended during compositing.
    """
    if overlay_duration <= 0:
        raise ValueError("overlay_duration must be positive")

    scroll = style.scroll
    if scroll.duration is not None:
        scroll_duration = scroll.duration
    elif scroll.mode is ScrollMode.STEPPED:
        scroll_duration = clamp(
            overlay_duration * SCROLL_TO_OVERLAY_RATIO,
            MIN_SCROLL_DURATION,
            MAX_SCROLL_DURATION,
        )
    else:
        scroll_duration = default_scroll_duration

    steps = None
    if scroll.mode is ScrollMode.STEPPED:
        steps = step_count(scroll_duration, step_duration, MIN_SCROLL_STEPS)

    if style.is_bubble:
        background_duration = max(scroll_duration, overlay_duration + BACKGROUND_TAIL_SECONDS)
    else:
        background_duration = scroll_duration

    plan = TimingPlan(
        overlay_duration=overlay_duration,
        scroll_duration=round(scroll_duration, 3),
        background_duration=round(background_duration, 3),
        scroll_steps=steps,
    )
    logger.debug(f"[FILTER] Timing plan: {plan}")
    return plan


# =============================================================================
# Background graph
# =============================================================================


def build_background_graph(
    curve: ScrollCurve,
    canvas: Size = CANVAS,
    fps: int = 30,
) -> FilterGraph:
    """Single-input chain turning a looped still image into a scrolling view.

    The image is scaled to canvas width, padded up to canvas height when it
    is shorter, then cropped to the viewport with an animated offset.
    """
    stages = (
        stage("scale", w=canvas.width, h=-2),
        stage("pad", w="iw", h=f"max(ih,{canvas.height})", x=0, y=0, color="white"),
        stage("crop", w=canvas.width, h=canvas.height, x=0, y=ScrollOffset(curve, canvas.height)),
        stage("fps", fps),
        stage("format", "yuv420p"),
    )
    return FilterGraph(stages=stages)


# =============================================================================
# Overlay graph
# =============================================================================


class AudioPlan(str, Enum):
    """Where the composite's audio comes from."""

    PRIMARY = "primary"  # intro audio, if it has any
    PRIMARY_PADDED = "primary_padded"  # intro audio then silence under the secondary
    SECONDARY_DELAYED = "secondary_delayed"  # silence under the intro then secondary audio
    CONCAT = "concat"  # intro audio followed by secondary audio
    NONE = "none"


@dataclass(frozen=True)
class OverlayInputs:
    """What the overlay composite has to work with."""

    overlay_duration: float
    intro_duration: float = 0.0
    has_secondary: bool = False
    intro_has_audio: bool = True
    secondary_has_audio: bool = False

    @property
    def audio_plan(self) -> AudioPlan:
        if not self.has_secondary:
            return AudioPlan.PRIMARY
        if self.intro_has_audio and self.secondary_has_audio:
            return AudioPlan.CONCAT
        if self.intro_has_audio:
            return AudioPlan.PRIMARY_PADDED
        if self.secondary_has_audio:
            return AudioPlan.SECONDARY_DELAYED
        return AudioPlan.NONE


@dataclass
class _GraphBuilder:
    stages: list[FilterStage] = field(default_factory=list)

    def add(self, name: str, *positional: Any, **options: Any) -> None:
        self.stages.append(stage(name, *positional, **options))


def _fill_frame(builder: _GraphBuilder, source: str, size: Size, output: str, fps: Optional[int] = None) -> None:
    """Scale to cover ``size`` keeping aspect ratio, then center-crop."""
    builder.add(
        "scale",
        w=size.width,
        h=size.height,
        force_original_aspect_ratio="increase",
        inputs=(source,),
        outputs=(f"{output}_scaled",),
    )
    crop_output = output if fps is None else f"{output}_cropped"
    builder.add(
        "crop",
        w=size.width,
        h=size.height,
        inputs=(f"{output}_scaled",),
        outputs=(crop_output,),
    )
    if fps is not None:
        builder.add("setsar", 1, inputs=(crop_output,), outputs=(f"{output}_sar",))
        builder.add("fps", fps, inputs=(f"{output}_sar",), outputs=(output,))


def _bubble(builder: _GraphBuilder, source: str, style: StyleSettings, output: str) -> None:
    size = bubble_size(style)
    if style.shape is OverlayShape.CIRCLE:
        _fill_frame(builder, source, size, "bubble_square")
        builder.add("format", "yuva444p", inputs=("bubble_square",), outputs=("bubble_alpha",))
        builder.add(
            "geq",
            lum="p(X,Y)",
            cb="p(X,Y)",
            cr="p(X,Y)",
            a=CircleMask(),
            inputs=("bubble_alpha",),
            outputs=(output,),
        )
    else:
        _fill_frame(builder, source, size, output)


def _overlay_source(builder: _GraphBuilder, inputs: OverlayInputs, fps: int) -> str:
    """Label of the talking-head stream, concatenating the secondary if present."""
    if not inputs.has_secondary:
        return "1:v"

    _fill_frame(builder, "1:v", CANVAS, "intro_norm", fps=fps)
    _fill_frame(builder, "2:v", CANVAS, "secondary_norm", fps=fps)
    builder.add(
        "concat",
        n=2,
        v=1,
        a=0,
        inputs=("intro_norm", "secondary_norm"),
        outputs=("overlay_src",),
    )
    return "overlay_src"


def _audio(builder: _GraphBuilder, inputs: OverlayInputs) -> tuple[Optional[str], Optional[int]]:
    """Add audio stages; returns (audio label, passthrough input index)."""
    plan = inputs.audio_plan
    if plan is AudioPlan.PRIMARY:
        return None, 1
    if plan is AudioPlan.CONCAT:
        builder.add("concat", n=2, v=0, a=1, inputs=("1:a", "2:a"), outputs=("aout",))
        return "aout", None
    if plan is AudioPlan.PRIMARY_PADDED:
        builder.add("apad", inputs=("1:a",), outputs=("aout",))
        return "aout", None
    if plan is AudioPlan.SECONDARY_DELAYED:
        delay_ms = int(round(inputs.intro_duration * 1000))
        builder.add("adelay", delays=delay_ms, all=1, inputs=("2:a",), outputs=("aout",))
        return "aout", None
    return None, None


def build_overlay_graph(
    style: StyleSettings,
    inputs: OverlayInputs,
    canvas: Size = CANVAS,
    fps: int = 30,
) -> FilterGraph:
    """Composite the talking-head overlay onto the background.

    Bubble styles keep a bubble in a corner for the whole overlay. Full
    screen shows the bubble from the display delay until the transition
    time, then covers the canvas. Output ends when the overlay ends; the
    full-screen background is extended by cloning its last frame so it can
    never end first.
    """
    builder = _GraphBuilder()
    source = _overlay_source(builder, inputs, fps)
    size = bubble_size(style)
    corner = overlay_position(style.position, size, canvas)

    if isinstance(style, FullScreen):
        builder.add("split", 2, inputs=(source,), outputs=("bubble_src", "fullscreen_src"))
        _bubble(builder, "bubble_src", style, "bubble")
        _fill_frame(builder, "fullscreen_src", canvas, "fullscreen")
        builder.add(
            "tpad",
            stop_mode="clone",
            stop_duration=inputs.overlay_duration,
            inputs=("0:v",),
            outputs=("background",),
        )
        builder.add(
            "overlay",
            x=corner.x,
            y=corner.y,
            enable=TimeWindow(style.display_delay_seconds, style.transition_seconds),
            shortest=1,
            inputs=("background", "bubble"),
            outputs=("with_bubble",),
        )
        builder.add(
            "overlay",
            x=0,
            y=0,
            enable=TimeWindow(style.transition_seconds, None),
            shortest=1,
            inputs=("with_bubble", "fullscreen"),
            outputs=("vout",),
        )
    else:
        _bubble(builder, source, style, "bubble")
        builder.add(
            "overlay",
            x=corner.x,
            y=corner.y,
            shortest=1,
            inputs=("0:v", "bubble"),
            outputs=("vout",),
        )

    audio_output, passthrough = _audio(builder, inputs)
    return FilterGraph(
        stages=tuple(builder.stages),
        video_output="vout",
        audio_output=audio_output,
        audio_passthrough=passthrough,
    )
