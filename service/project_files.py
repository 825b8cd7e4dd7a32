"""Project file loading and on-disk layout for chatvid."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Tuple

from domain.chat_project import (
    Project,
    ScreenshotKey,
    collect_screenshot_keys,
    example_project,
    parse_project,
)
from domain.errors import (
    INVALID_JSON_CODE,
    PROJECT_FILE_CODE,
    ProjectValidationError,
)

LOGGER = logging.getLogger("chatvid.project_files")

OUTPUT_DIR_NAME = "out"
CHAT_DIR_NAME = "chat"
ASSETS_DIR_NAME = "assets"
PROJECT_FILE_NAME = "project.json"
ASSETS_README = (
    "Place your background video here as bg.example.mp4 "
    "(or update project.json to point to your video)\n"
)


def resolve_path(relative_path: str, base_dir: str | None = None) -> str:
    """Resolve a path against a base directory (cwd when omitted)."""
    base = base_dir if base_dir is not None else os.getcwd()
    return os.path.abspath(os.path.join(base, relative_path))


def output_dir(project_dir: str) -> str:
    return resolve_path(OUTPUT_DIR_NAME, project_dir)


def chat_screenshots_dir(project_dir: str) -> str:
    return os.path.join(output_dir(project_dir), CHAT_DIR_NAME)


def screenshot_path(project_dir: str, key: ScreenshotKey) -> str:
    """Return the deterministic PNG path for a screenshot key."""
    return os.path.join(chat_screenshots_dir(project_dir), f"chat-{key.label}.png")


def missing_screenshot_keys(
    project: Project, project_dir: str
) -> Tuple[ScreenshotKey, ...]:
    """Return screenshot keys whose files are absent."""
    return tuple(
        key
        for key in collect_screenshot_keys(project.overlays)
        if not os.path.isfile(screenshot_path(project_dir, key))
    )


def read_project_document(project_path: str) -> object:
    """Read and decode a project JSON file."""
    try:
        with open(project_path, "r", encoding="utf-8") as file_handle:
            text_value = file_handle.read()
    except FileNotFoundError as exc:
        raise ProjectValidationError(
            PROJECT_FILE_CODE, f"Project file not found: {project_path}"
        ) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ProjectValidationError(
            PROJECT_FILE_CODE, f"Project file unreadable: {project_path}: {exc}"
        ) from exc

    try:
        return json.loads(text_value)
    except json.JSONDecodeError as exc:
        raise ProjectValidationError(
            INVALID_JSON_CODE,
            f"Project file is not valid JSON at line {exc.lineno} column {exc.colno}",
        ) from exc


def load_project(project_path: str) -> Tuple[Project, str]:
    """Load and validate a project, returning it with its base directory."""
    full_path = resolve_path(project_path)
    project = parse_project(read_project_document(full_path))
    return project, os.path.dirname(full_path)


def scaffold_project(target_dir: str, force: bool = False) -> Path:
    """Create an example project layout and return the project file path."""
    project_dir = Path(resolve_path(target_dir))
    project_path = project_dir / PROJECT_FILE_NAME
    if project_path.exists() and not force:
        raise ProjectValidationError(
            PROJECT_FILE_CODE,
            f"Project file already exists: {project_path} (use --force to overwrite)",
        )
    (project_dir / ASSETS_DIR_NAME).mkdir(parents=True, exist_ok=True)
    (project_dir / OUTPUT_DIR_NAME).mkdir(parents=True, exist_ok=True)

    document = example_project().to_document()
    project_path.write_text(
        json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )
    LOGGER.info("chatvid.init.created: %s", project_path)

    readme_path = project_dir / ASSETS_DIR_NAME / "README.md"
    readme_path.write_text(ASSETS_README, encoding="utf-8")
    LOGGER.info("chatvid.init.created: %s", readme_path)
    return project_path
