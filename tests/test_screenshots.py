"""Tests for chat page rendering and screenshot bookkeeping."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from PIL import Image

from domain.chat_project import (
    Message,
    ScreenshotKey,
    example_project,
)
from domain.errors import RASTERIZER_RENDER_CODE, RenderPipelineError
from service.chat_template import build_chat_html
from service.project_files import missing_screenshot_keys, screenshot_path
from service.screenshots import render_missing_screenshots, trim_transparent


def test_chat_html_contains_only_requested_range() -> None:
    """Render messages start..end inclusive."""
    chat = example_project().chat

    first_only = build_chat_html(chat, ScreenshotKey(0, 0))
    both = build_chat_html(chat, ScreenshotKey(0, 1))

    assert "Qué significa ese tatuaje?" in first_only
    assert "El tatuaje no" not in first_only
    assert "El tatuaje no" in both
    assert 'id="chatContainer"' in both
    assert 'data-theme="ios"' in both


def test_chat_html_aligns_local_sender_right() -> None:
    """Right-align "me" without a label; label and left-align others."""
    html_value = build_chat_html(example_project().chat, ScreenshotKey(0, 1))

    assert html_value.count('class="message left"') == 1
    assert html_value.count('class="message right"') == 1
    assert html_value.count('class="message-sender"') == 1
    assert '<div class="message-sender">Her</div>' in html_value


def test_chat_html_escapes_text() -> None:
    """Escape markup in message text."""
    project = example_project()
    chat = dataclasses.replace(
        project.chat,
        messages=(Message(sender="stranger", text="<b>hi</b> & bye"),),
    )

    html_value = build_chat_html(chat, ScreenshotKey(0, 0))

    assert "&lt;b&gt;hi&lt;/b&gt; &amp; bye" in html_value
    assert "<b>hi</b>" not in html_value
    assert 'class="message-sender"' not in html_value


def test_trim_transparent_crops_to_content() -> None:
    """Crop fully transparent padding around the content."""
    image = Image.new("RGBA", (100, 80), (0, 0, 0, 0))
    image.paste((255, 255, 255, 200), (10, 20, 60, 50))

    trimmed = trim_transparent(image)

    assert trimmed.size == (50, 30)
    assert trimmed.getpixel((0, 0))[3] == 200


def test_trim_transparent_rejects_empty_image() -> None:
    """Fail when nothing visible was captured."""
    with pytest.raises(RenderPipelineError) as excinfo:
        trim_transparent(Image.new("RGBA", (10, 10), (0, 0, 0, 0)))
    assert excinfo.value.code == RASTERIZER_RENDER_CODE


def test_missing_screenshots_are_detected(tmp_path: Path) -> None:
    """Report keys whose PNG files do not exist yet."""
    project = example_project()
    existing = Path(screenshot_path(str(tmp_path), ScreenshotKey(0, 0)))
    existing.parent.mkdir(parents=True)
    Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(existing)

    missing = missing_screenshot_keys(project, str(tmp_path))

    assert missing == (ScreenshotKey(0, 1),)
    assert existing.name == "chat-0-0.png"
    assert existing.parent == tmp_path / "out" / "chat"


def test_render_missing_skips_browser_when_complete(tmp_path: Path) -> None:
    """Do nothing when all screenshots already exist."""
    project = example_project()
    for key in (ScreenshotKey(0, 0), ScreenshotKey(0, 1)):
        target = Path(screenshot_path(str(tmp_path), key))
        target.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGBA", (4, 4), (255, 0, 0, 255)).save(target)

    assert render_missing_screenshots(project, str(tmp_path)) == ()
