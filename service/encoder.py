"""ffmpeg invocation for compositing chat overlays onto the background video."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import re
import shutil
import subprocess
from typing import Mapping, Sequence, Tuple

from domain.chat_project import Project, screenshot_key
from domain.errors import (
    FFMPEG_EXEC_CODE,
    FFMPEG_NOT_FOUND_CODE,
    FFMPEG_PROBE_CODE,
    FFMPEG_PROCESS_CODE,
    MISSING_INPUT_CODE,
    EnvironmentUnavailableError,
    MissingInputError,
    RenderPipelineError,
)
from service.filter_graph import FilterGraph, compile_filter_graph, format_number
from service.project_files import resolve_path, screenshot_path

LOGGER = logging.getLogger("chatvid.encoder")

FFMPEG_ENV = "CHATVID_FFMPEG"
FFPROBE_ENV = "CHATVID_FFPROBE"
DEFAULT_FFMPEG = "ffmpeg"
DEFAULT_FFPROBE = "ffprobe"
H264_CODEC = "libx264"
H264_PRESET = "veryfast"
H264_CRF = "18"
H264_PIXEL_FORMAT = "yuv420p"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"
AUDIO_MAP = "0:a?"
SAFE_SHELL_ARGUMENT = re.compile(r"^[a-zA-Z0-9/_.-]+$")


@dataclass(frozen=True)
class EncoderConfig:
    """Explicit process environment for the encoder and prober."""

    ffmpeg_binary: str
    ffprobe_binary: str
    search_path: str | None
    working_dir: str

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str],
        working_dir: str,
        ffmpeg_binary: str | None = None,
        ffprobe_binary: str | None = None,
    ) -> "EncoderConfig":
        """Build a config from environment variables and optional overrides."""
        return cls(
            ffmpeg_binary=ffmpeg_binary or environ.get(FFMPEG_ENV) or DEFAULT_FFMPEG,
            ffprobe_binary=ffprobe_binary
            or environ.get(FFPROBE_ENV)
            or DEFAULT_FFPROBE,
            search_path=environ.get("PATH"),
            working_dir=working_dir,
        )


@dataclass(frozen=True)
class EncoderCommand:
    """Fully assembled encoder command."""

    binary: str
    args: Tuple[str, ...]

    @property
    def argv(self) -> Tuple[str, ...]:
        return (self.binary, *self.args)

    @property
    def shell_command(self) -> str:
        return format_shell_command(self.binary, self.args)


def escape_shell_argument(arg: str) -> str:
    """Quote an argument for a shell command line unless it is plainly safe."""
    if SAFE_SHELL_ARGUMENT.fullmatch(arg):
        return arg
    escaped = arg.replace('"', '\\"')
    return f'"{escaped}"'


def format_shell_command(binary: str, args: Sequence[str]) -> str:
    return " ".join([binary, *(escape_shell_argument(arg) for arg in args)])


def resolve_binary(binary: str, search_path: str | None) -> str:
    """Resolve an executable, raising when it is not installed."""
    resolved = shutil.which(binary, path=search_path)
    if not resolved:
        raise EnvironmentUnavailableError(
            FFMPEG_NOT_FOUND_CODE, f"{binary} not on PATH"
        )
    return resolved


def ensure_binary_available(binary: str, search_path: str | None) -> str:
    """Ensure a binary is installed and answers a version query."""
    resolved = resolve_binary(binary, search_path)
    try:
        subprocess.run(
            [resolved, "-version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise EnvironmentUnavailableError(
            FFMPEG_EXEC_CODE, f"{binary} exists but could not be executed"
        ) from exc
    return resolved


def ensure_encoder_available(config: EncoderConfig) -> None:
    """Ensure both ffmpeg and ffprobe are usable."""
    ensure_binary_available(config.ffmpeg_binary, config.search_path)
    ensure_binary_available(config.ffprobe_binary, config.search_path)


def has_audio_stream(video_path: str, config: EncoderConfig) -> bool:
    """Return True when the video carries at least one audio stream."""
    ffprobe_path = resolve_binary(config.ffprobe_binary, config.search_path)
    result = subprocess.run(
        [
            ffprobe_path,
            "-v",
            "error",
            "-select_streams",
            "a:0",
            "-show_entries",
            "stream=codec_name",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            video_path,
        ],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        check=False,
        cwd=config.working_dir,
    )
    if result.returncode != 0:
        stderr_text = result.stderr.strip()
        raise RenderPipelineError(
            FFMPEG_PROBE_CODE,
            f"ffprobe failed for background video: {stderr_text}",
        )
    return bool(result.stdout.strip())


def build_ffmpeg_args(
    project: Project,
    graph: FilterGraph,
    background_path: str,
    output_path: str,
    has_audio: bool,
) -> Tuple[str, ...]:
    """Assemble the ffmpeg argument list for a compiled filter graph."""
    args = ["-y", "-i", background_path]
    for image_path in graph.extra_inputs:
        args.extend(["-i", image_path])
    args.extend(["-filter_complex", graph.expression, "-map", graph.output_map])
    if has_audio:
        args.extend(["-map", AUDIO_MAP, "-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE])
    args.extend(
        [
            "-c:v",
            H264_CODEC,
            "-preset",
            H264_PRESET,
            "-crf",
            H264_CRF,
            "-pix_fmt",
            H264_PIXEL_FORMAT,
            "-r",
            format_number(project.fps),
            output_path,
        ]
    )
    return tuple(args)


def ensure_render_inputs(project: Project, project_dir: str) -> str:
    """Check the background and screenshots exist; return the background path."""
    background_path = resolve_path(project.bg_video, project_dir)
    if not os.path.isfile(background_path):
        raise MissingInputError(
            MISSING_INPUT_CODE, f"Background video not found: {background_path}"
        )
    for overlay in project.overlays:
        image_path = screenshot_path(project_dir, screenshot_key(overlay))
        if not os.path.isfile(image_path):
            raise MissingInputError(
                MISSING_INPUT_CODE, f"Screenshot not found: {image_path}"
            )
    return background_path


def run_encoder(command: EncoderCommand, config: EncoderConfig) -> str:
    """Run ffmpeg to completion and return its diagnostic output."""
    LOGGER.info("chatvid.ffmpeg.command: %s", command.shell_command)
    try:
        result = subprocess.run(
            list(command.argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
            cwd=config.working_dir,
        )
    except FileNotFoundError as exc:
        raise EnvironmentUnavailableError(
            FFMPEG_NOT_FOUND_CODE, f"{command.binary} not found"
        ) from exc

    stderr_text = result.stderr.strip()
    if stderr_text:
        LOGGER.debug("chatvid.ffmpeg.output:\n%s", stderr_text)
    if result.returncode != 0:
        raise RenderPipelineError(
            FFMPEG_PROCESS_CODE,
            f"ffmpeg failed with exit code {result.returncode}. {stderr_text}",
        )
    return stderr_text


def build_encoder_command(
    project: Project, project_dir: str, config: EncoderConfig
) -> EncoderCommand:
    """Validate inputs, probe audio and assemble the ffmpeg command."""
    background_path = ensure_render_inputs(project, project_dir)
    output_path = resolve_path(project.output, project_dir)
    graph = compile_filter_graph(
        project, lambda key: screenshot_path(project_dir, key)
    )
    has_audio = has_audio_stream(background_path, config)
    if not has_audio:
        LOGGER.info("chatvid.ffmpeg.no_audio: %s", background_path)
    ffmpeg_path = resolve_binary(config.ffmpeg_binary, config.search_path)
    args = build_ffmpeg_args(project, graph, background_path, output_path, has_audio)
    return EncoderCommand(binary=ffmpeg_path, args=args)


def render_video(project: Project, project_dir: str, config: EncoderConfig) -> str:
    """Composite the project's overlays onto its background video."""
    output_path = resolve_path(project.output, project_dir)
    LOGGER.info("chatvid.render.started: %s", output_path)
    LOGGER.info(
        "chatvid.render.settings: background=%s resolution=%dx%d fps=%s",
        resolve_path(project.bg_video, project_dir),
        project.resolution.w,
        project.resolution.h,
        project.fps,
    )
    command = build_encoder_command(project, project_dir, config)
    os.makedirs(os.path.dirname(output_path), exist_ok=True)
    run_encoder(command, config)
    LOGGER.info("chatvid.render.done: %s", output_path)
    return output_path
