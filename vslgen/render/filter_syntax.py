"""Serialize a FilterGraph into FFmpeg filtergraph text.

This is the only place that knows FFmpeg's expression language and quoting
rules. Expression values (scroll offsets, time windows, masks) are rendered
from the same parameters the Python-side evaluators in
``vslgen.render.filter_graph`` use.
"""

from typing import Any

from vslgen.render.filter_graph import (
    CircleMask,
    FilterGraph,
    FilterStage,
    ScrollCurve,
    ScrollOffset,
    TimeWindow,
)

# Characters that split filters or chains unless quoted
_SPECIAL_CHARS = set(",;[]'")


def format_number(value: float) -> str:
    """Shortest decimal form: 8.0 -> "8", 8.40 -> "8.4"."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def _progress_expr(curve: ScrollCurve) -> str:
    u = f"clip(t/{format_number(curve.scroll_duration)},0,1)"
    if curve.steps is None:
        return f"{u}*{u}*(3-2*{u})"

    n = curve.steps
    scaled = f"({u}*{n})"
    index = f"min(floor({scaled}),{n - 1})"
    local = f"clip(({scaled}-{index})/{format_number(curve.scroll_fraction)},0,1)"
    return f"({index}+{local}*{local}*(3-2*{local}))/{n}"


def scroll_offset_expr(offset: ScrollOffset) -> str:
    """Crop y expression, clamped to [0, ih - viewport]."""
    travel = f"(ih-{offset.viewport_height})"
    return f"max(0,min({travel},({_progress_expr(offset.curve)})*{travel}))"


def enable_expr(window: TimeWindow) -> str:
    """Timeline enable expression for [start, end)."""
    start = f"gte(t,{format_number(window.start)})"
    if window.end is None:
        return start
    return f"{start}*lt(t,{format_number(window.end)})"


def circle_alpha_expr(mask: CircleMask) -> str:
    return "if(lt(pow(X-W/2,2)+pow(Y-H/2,2),pow(min(W,H)/2,2)),255,0)"


def _quote(text: str) -> str:
    if any(ch in _SPECIAL_CHARS for ch in text) or "(" in text:
        return f"'{text}'"
    return text


def render_value(value: Any) -> str:
    if isinstance(value, ScrollOffset):
        return _quote(scroll_offset_expr(value))
    if isinstance(value, TimeWindow):
        return _quote(enable_expr(value))
    if isinstance(value, CircleMask):
        return _quote(circle_alpha_expr(value))
    if isinstance(value, (int, float)):
        return format_number(value)
    return _quote(str(value))


def render_stage(stage: FilterStage, with_labels: bool = True) -> str:
    args = ":".join(
        render_value(value) if key is None else f"{key}={render_value(value)}"
        for key, value in stage.params
    )
    text = f"{stage.name}={args}" if args else stage.name
    if not with_labels:
        return text
    inputs = "".join(f"[{label}]" for label in stage.inputs)
    outputs = "".join(f"[{label}]" for label in stage.outputs)
    return f"{inputs}{text}{outputs}"


def to_filter_chain(graph: FilterGraph) -> str:
    """Render a single-input graph for ``-vf``."""
    return ",".join(render_stage(s, with_labels=False) for s in graph.stages)


def to_filter_complex(graph: FilterGraph) -> str:
    """Render a labeled graph for ``-filter_complex``."""
    return ";".join(render_stage(s) for s in graph.stages)
