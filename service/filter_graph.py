"""Filter-graph compilation for compositing chat overlays onto a background."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

from domain.chat_project import (
    Overlay,
    Project,
    Resolution,
    ScreenshotKey,
    screenshot_key,
)

BACKGROUND_INPUT = "0:v"
SCALED_LABEL = "scaled"
BASE_LABEL = "base"
PAD_COLOR = "black"

ScreenshotResolver = Callable[[ScreenshotKey], str]


@dataclass(frozen=True)
class FilterGraph:
    """Compiled filter graph with the image inputs it consumes.

    ``extra_inputs`` are numbered from 1 in order, after the background video
    at input 0. ``output_label`` is the stream to map to the output video.
    """

    stages: Tuple[str, ...]
    extra_inputs: Tuple[str, ...]
    output_label: str

    @property
    def expression(self) -> str:
        return ";".join(self.stages)

    @property
    def output_map(self) -> str:
        return f"[{self.output_label}]"


def format_number(value: float) -> str:
    """Format a number without a trailing ``.0`` for integral values."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def build_base_stages(resolution: Resolution) -> Tuple[str, ...]:
    """Fit the background inside the target frame without upscaling, then pad."""
    width = resolution.w
    height = resolution.h
    return (
        f"[{BACKGROUND_INPUT}]scale='min({width}\\,iw)':'min({height}\\,ih)'"
        f":force_original_aspect_ratio=decrease[{SCALED_LABEL}]",
        f"[{SCALED_LABEL}]pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
        f":{PAD_COLOR}[{BASE_LABEL}]",
    )


def build_overlay_stages(
    overlay: Overlay, input_index: int, previous_label: str
) -> Tuple[Tuple[str, str], str]:
    """Return the scale and overlay stages for one overlay and its output label."""
    scaled_label = f"ov{input_index}"
    output_label = f"v{input_index}"
    scale_stage = (
        f"[{input_index}:v]scale={format_number(overlay.w)}:-1[{scaled_label}]"
    )
    enable = (
        f"between(t,{format_number(overlay.start)},{format_number(overlay.end)})"
    )
    overlay_stage = (
        f"[{previous_label}][{scaled_label}]overlay="
        f"{format_number(overlay.x)}:{format_number(overlay.y)}"
        f":enable='{enable}'[{output_label}]"
    )
    return (scale_stage, overlay_stage), output_label


def compile_filter_graph(
    project: Project, resolve_screenshot: ScreenshotResolver
) -> FilterGraph:
    """Compile a project into a filter graph.

    Overlays are chained in project order, each one drawing on top of the
    result of the previous one. Every overlay gets its own image input and
    scale stage even when several overlays share a screenshot file.
    """
    stages = list(build_base_stages(project.resolution))
    extra_inputs: list[str] = []
    current_label = BASE_LABEL

    for input_index, overlay in enumerate(project.overlays, start=1):
        extra_inputs.append(resolve_screenshot(screenshot_key(overlay)))
        overlay_stages, current_label = build_overlay_stages(
            overlay, input_index, current_label
        )
        stages.extend(overlay_stages)

    return FilterGraph(
        stages=tuple(stages),
        extra_inputs=tuple(extra_inputs),
        output_label=current_label,
    )
