"""Overlay style settings resolved once per job.

A campaign stores its look as loose key/value settings. ``resolve_style``
turns them into one of three concrete style types so later stages never
re-branch on raw strings:

- SmallBubble: 200x200 overlay in a corner for the whole video
- BigBubble:   400x400 overlay in a corner for the whole video
- FullScreen:  small bubble first, then the overlay covers the whole frame
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class VideoStyle(str, Enum):
    """How the overlay is presented."""

    SMALL_BUBBLE = "small_bubble"
    BIG_BUBBLE = "big_bubble"
    FULL_SCREEN = "full_screen"


class OverlayShape(str, Enum):
    """Mask applied to the bubble."""

    CIRCLE = "circle"
    SQUARE = "square"


class OverlayPosition(str, Enum):
    """Canvas corner the bubble sits in."""

    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"
    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"


class ScrollMode(str, Enum):
    """Background scroll motion."""

    STEPPED = "stepped"  # scroll, pause, scroll, pause ...
    SMOOTH = "smooth"  # one eased pass top to bottom


@dataclass(frozen=True)
class ScrollSettings:
    """Background scroll configuration.

    ``duration`` of None means "derive from the overlay length" in stepped
    mode and "use the configured default" in smooth mode.
    """

    mode: ScrollMode = ScrollMode.STEPPED
    duration: Optional[float] = None


@dataclass(frozen=True)
class _OverlayStyle:
    shape: OverlayShape = OverlayShape.CIRCLE
    position: OverlayPosition = OverlayPosition.BOTTOM_LEFT
    scroll: ScrollSettings = field(default_factory=ScrollSettings)

    style: ClassVar[VideoStyle]

    @property
    def is_bubble(self) -> bool:
        return self.style is not VideoStyle.FULL_SCREEN


@dataclass(frozen=True)
class SmallBubble(_OverlayStyle):
    style: ClassVar[VideoStyle] = VideoStyle.SMALL_BUBBLE


@dataclass(frozen=True)
class BigBubble(_OverlayStyle):
    style: ClassVar[VideoStyle] = VideoStyle.BIG_BUBBLE


@dataclass(frozen=True)
class FullScreen(_OverlayStyle):
    style: ClassVar[VideoStyle] = VideoStyle.FULL_SCREEN

    transition_seconds: float = 20.0
    display_delay_seconds: float = 2.0


StyleSettings = Union[SmallBubble, BigBubble, FullScreen]

DEFAULT_DISPLAY_DELAY = 2.0
DEFAULT_FULLSCREEN_TRANSITION = 20.0

# Values stored by earlier campaign forms; the page scrolls down and holds at the bottom
SCROLL_BEHAVIOR_ALIASES = {"stay_down": ScrollMode.STEPPED}


def _enum_value(enum_cls: type[Enum], raw: Any, default: Enum, key: str) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        logger.warning(f"[STYLE] Unknown {key}={raw!r}, using {default.value}")
        return default


def _float_value(raw: Any, default: Optional[float], key: str) -> Optional[float]:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning(f"[STYLE] Invalid {key}={raw!r}, using {default}")
        return default
    if value < 0:
        logger.warning(f"[STYLE] Negative {key}={raw!r}, using {default}")
        return default
    return value


def resolve_style(config: Mapping[str, Any]) -> StyleSettings:
    """Resolve campaign style keys into a concrete style.

    Recognized keys: video_style, video_position, video_shape, display_delay,
    fullscreen_transition_time, scroll_duration, scroll_behavior. Missing or
    unrecognized values fall back to defaults.
    """
    style = _enum_value(VideoStyle, config.get("video_style"), VideoStyle.SMALL_BUBBLE, "video_style")
    shape = _enum_value(OverlayShape, config.get("video_shape"), OverlayShape.CIRCLE, "video_shape")
    position = _enum_value(
        OverlayPosition, config.get("video_position"), OverlayPosition.BOTTOM_LEFT, "video_position"
    )
    scroll_behavior = config.get("scroll_behavior")
    scroll_mode = SCROLL_BEHAVIOR_ALIASES.get(scroll_behavior) or _enum_value(
        ScrollMode, scroll_behavior, ScrollMode.STEPPED, "scroll_behavior"
    )

    scroll_duration = _float_value(config.get("scroll_duration"), None, "scroll_duration")
    if scroll_duration == 0:
        scroll_duration = None
    scroll = ScrollSettings(mode=scroll_mode, duration=scroll_duration)

    if style is VideoStyle.FULL_SCREEN:
        transition = _float_value(
            config.get("fullscreen_transition_time"),
            DEFAULT_FULLSCREEN_TRANSITION,
            "fullscreen_transition_time",
        )
        delay = _float_value(config.get("display_delay"), DEFAULT_DISPLAY_DELAY, "display_delay")
        if delay >= transition:
            delay = 0.0
        return FullScreen(
            shape=shape,
            position=position,
            scroll=scroll,
            transition_seconds=transition,
            display_delay_seconds=delay,
        )

    if style is VideoStyle.BIG_BUBBLE:
        return BigBubble(shape=shape, position=position, scroll=scroll)
    return SmallBubble(shape=shape, position=position, scroll=scroll)
