"""Chat screenshot rasterization with a headless browser."""

from __future__ import annotations

from io import BytesIO
import logging
import os
from types import ModuleType
from typing import Sequence, Tuple

from PIL import Image

from domain.chat_project import Project, ScreenshotKey, collect_screenshot_keys
from domain.errors import (
    RASTERIZER_NOT_FOUND_CODE,
    RASTERIZER_RENDER_CODE,
    EnvironmentUnavailableError,
    RenderPipelineError,
)
from service.chat_template import CHAT_CONTAINER_ID, build_chat_html
from service.project_files import (
    chat_screenshots_dir,
    missing_screenshot_keys,
    screenshot_path,
)

LOGGER = logging.getLogger("chatvid.screenshots")

SETTLE_DELAY_MS = 100


def load_playwright_module() -> ModuleType:
    """Import the Playwright sync API."""
    try:
        from playwright import sync_api
    except Exception as exc:
        raise EnvironmentUnavailableError(
            RASTERIZER_NOT_FOUND_CODE,
            f"playwright is unavailable: {exc}. Run: pip install playwright",
        ) from exc
    return sync_api


def trim_transparent(image: Image.Image) -> Image.Image:
    """Crop fully transparent borders from an image."""
    rgba_image = image.convert("RGBA")
    bbox = rgba_image.getchannel("A").getbbox()
    if bbox is None:
        raise RenderPipelineError(
            RASTERIZER_RENDER_CODE, "screenshot contains no visible pixels"
        )
    return rgba_image.crop(bbox)


def render_screenshot_keys(
    project: Project, project_dir: str, keys: Sequence[ScreenshotKey]
) -> Tuple[str, ...]:
    """Render the given screenshot keys sequentially and return their paths."""
    sync_api = load_playwright_module()
    os.makedirs(chat_screenshots_dir(project_dir), exist_ok=True)
    LOGGER.info("chatvid.screenshots.started: rendering %d screenshots", len(keys))

    written: list[str] = []
    with sync_api.sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch()
        except sync_api.Error as exc:
            raise EnvironmentUnavailableError(
                RASTERIZER_NOT_FOUND_CODE,
                f"chromium could not be launched: {exc}. "
                "Run: playwright install chromium",
            ) from exc
        try:
            context = browser.new_context(
                viewport={
                    "width": project.resolution.w,
                    "height": project.resolution.h,
                }
            )
            for key in keys:
                target_path = screenshot_path(project_dir, key)
                page = context.new_page()
                try:
                    page.set_content(
                        build_chat_html(project.chat, key), wait_until="networkidle"
                    )
                    page.wait_for_timeout(SETTLE_DELAY_MS)
                    clip = page.locator(f"#{CHAT_CONTAINER_ID}").bounding_box()
                    if clip is None:
                        raise RenderPipelineError(
                            RASTERIZER_RENDER_CODE,
                            f"chat container not rendered for messages {key.label}",
                        )
                    png_bytes = page.screenshot(omit_background=True, clip=clip)
                finally:
                    page.close()

                with Image.open(BytesIO(png_bytes)) as captured:
                    trimmed = trim_transparent(captured)
                trimmed.save(target_path, format="PNG")
                written.append(target_path)
                LOGGER.info(
                    "chatvid.screenshots.written: %s (messages %d-%d)",
                    target_path,
                    key.start,
                    key.end,
                )
        finally:
            browser.close()

    return tuple(written)


def render_screenshots(project: Project, project_dir: str) -> Tuple[str, ...]:
    """Regenerate every screenshot referenced by the project's overlays."""
    keys = collect_screenshot_keys(project.overlays)
    written = render_screenshot_keys(project, project_dir, keys)
    LOGGER.info(
        "chatvid.screenshots.done: %s", chat_screenshots_dir(project_dir)
    )
    return written


def render_missing_screenshots(
    project: Project, project_dir: str
) -> Tuple[str, ...]:
    """Render screenshots only when at least one referenced file is missing."""
    missing = missing_screenshot_keys(project, project_dir)
    if not missing:
        return ()
    LOGGER.info(
        "chatvid.screenshots.missing: %s",
        ", ".join(key.label for key in missing),
    )
    return render_screenshots(project, project_dir)
