#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10",
#   "playwright>=1.40",
# ]
# ///
"""Render short-form videos with chat screenshots composited over a background."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from domain.chat_project import Project, inverted_time_windows
from domain.errors import (
    PROJECT_FILE_CODE,
    EnvironmentUnavailableError,
    MissingInputError,
    ProjectValidationError,
    RenderPipelineError,
)
from service.encoder import EncoderConfig, ensure_encoder_available, render_video
from service.project_files import load_project, resolve_path, scaffold_project
from service.screenshots import (
    load_playwright_module,
    render_missing_screenshots,
    render_screenshots,
)

LOGGER = logging.getLogger("chatvid")
LOG_LEVELS = ("debug", "info", "warning", "error")


def configure_logging(level_name: str = "info") -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(
        level=getattr(logging, level_name.upper()), format="%(message)s"
    )


def warn_inverted_windows(project: Project) -> None:
    for position, overlay in inverted_time_windows(project):
        LOGGER.warning(
            "chatvid.input.inverted_window: overlay %d starts at %s after its end %s; "
            "it will never be shown",
            position,
            overlay.start,
            overlay.end,
        )


def build_encoder_config(args: argparse.Namespace, project_dir: str) -> EncoderConfig:
    return EncoderConfig.from_environment(
        os.environ,
        working_dir=project_dir,
        ffmpeg_binary=args.ffmpeg,
        ffprobe_binary=args.ffprobe,
    )


def run_init(args: argparse.Namespace) -> int:
    project_path = scaffold_project(args.dir, force=args.force)
    LOGGER.info("chatvid.init.done: project initialized in %s", project_path.parent)
    LOGGER.info("  Edit project.json and run: chatvid render %s", project_path)
    return 0


def run_screenshots(args: argparse.Namespace) -> int:
    project, project_dir = load_project(args.project)
    render_screenshots(project, project_dir)
    return 0


def run_render(args: argparse.Namespace) -> int:
    project, project_dir = load_project(args.project)
    warn_inverted_windows(project)
    render_missing_screenshots(project, project_dir)
    config = build_encoder_config(args, project_dir)
    ensure_encoder_available(config)
    render_video(project, project_dir, config)
    return 0


def run_validate(args: argparse.Namespace) -> int:
    """Check the project file and the rendering environment without output."""
    full_path = resolve_path(args.project)
    if not os.path.isfile(full_path):
        raise ProjectValidationError(
            PROJECT_FILE_CODE, f"Project file not found: {full_path}"
        )
    LOGGER.info("chatvid.validate.project_file: found %s", full_path)

    project, project_dir = load_project(full_path)
    LOGGER.info("chatvid.validate.schema: project schema is valid")
    warn_inverted_windows(project)

    background_path = resolve_path(project.bg_video, project_dir)
    if os.path.isfile(background_path):
        LOGGER.info("chatvid.validate.background: found %s", background_path)
    else:
        LOGGER.warning("chatvid.validate.background: not found %s", background_path)

    ensure_encoder_available(build_encoder_config(args, project_dir))
    LOGGER.info("chatvid.validate.ffmpeg: ffmpeg and ffprobe are available")

    load_playwright_module()
    LOGGER.info("chatvid.validate.rasterizer: playwright is available")

    LOGGER.info("chatvid.validate.done: all validations passed")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the chatvid argument parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", choices=LOG_LEVELS, default="info")
    common.add_argument("--ffmpeg", default=None, help="ffmpeg binary to use")
    common.add_argument("--ffprobe", default=None, help="ffprobe binary to use")

    parser = argparse.ArgumentParser(
        prog="chatvid",
        description="Create short-form videos with chat screenshots",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", parents=[common], help="initialize a new example project"
    )
    init_parser.add_argument("dir")
    init_parser.add_argument("--force", action="store_true")
    init_parser.set_defaults(handler=run_init)

    screenshots_parser = subparsers.add_parser(
        "screenshots", parents=[common], help="generate chat screenshots"
    )
    screenshots_parser.add_argument("project")
    screenshots_parser.set_defaults(handler=run_screenshots)

    render_parser = subparsers.add_parser(
        "render",
        parents=[common],
        help="generate missing screenshots and render the final video",
    )
    render_parser.add_argument("project")
    render_parser.set_defaults(handler=run_render)

    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="validate the project, file paths and tooling",
    )
    validate_parser.add_argument("project")
    validate_parser.set_defaults(handler=run_validate)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level)

    try:
        return args.handler(args)
    except ProjectValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except MissingInputError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except EnvironmentUnavailableError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except RenderPipelineError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("chatvid.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
