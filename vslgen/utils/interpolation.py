"""Easing utilities for the scrolling background.

The same functions are rendered into engine expressions by the filter-graph
serializer and evaluated directly in Python, so scroll positions can be
checked without running the media engine.

Usage:
    from vslgen.utils.interpolation import smoothstep, staircase

    smoothstep(0.5)             # -> 0.5
    staircase(0.5, steps=4)     # -> position after two and a bit steps
"""

import math


# =============================================================================
# Easing Functions
# =============================================================================


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def smoothstep(t: float) -> float:
    """Cubic smoothstep: zero velocity at both ends."""
    t = clamp(t, 0.0, 1.0)
    return t * t * (3 - 2 * t)


def staircase(t: float, steps: int, scroll_fraction: float = 0.7) -> float:
    """Scroll-then-pause easing over ``steps`` equal segments.

    Within each segment the first ``scroll_fraction`` moves from k/steps to
    (k+1)/steps with smoothstep easing and the rest holds still.

    Args:
        t: Normalized time in [0, 1]
        steps: Number of segments (>= 1)
        scroll_fraction: Share of each segment spent moving

    Returns:
        Normalized position in [0, 1]
    """
    if steps < 1:
        raise ValueError("steps must be >= 1")
    if not 0 < scroll_fraction <= 1:
        raise ValueError("scroll_fraction must be in (0, 1]")

    scaled = clamp(t, 0.0, 1.0) * steps
    index = min(math.floor(scaled), steps - 1)
    local = (scaled - index) / scroll_fraction
    return (index + smoothstep(local)) / steps


def step_count(scroll_duration: float, step_duration: float, minimum: int = 3) -> int:
    """Number of staircase steps for a scroll of the given length."""
    if step_duration <= 0:
        raise ValueError("step_duration must be positive")
    return max(minimum, math.ceil(scroll_duration / step_duration))

