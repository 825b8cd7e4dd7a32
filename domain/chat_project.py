"""Project model and validation for chatvid."""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Any, Iterable, Mapping, Sequence, Tuple

from domain.errors import INVALID_PROJECT_CODE, ProjectValidationError

LOCAL_PARTICIPANT_ID = "me"
OVERLAY_NUMERIC_FIELDS = (
    "messageIndex",
    "endMessageIndex",
    "start",
    "end",
    "x",
    "y",
    "w",
)


@dataclass(frozen=True)
class Participant:
    """Chat participant."""

    id: str
    name: str


@dataclass(frozen=True)
class Message:
    """Single chat message."""

    sender: str
    text: str


@dataclass(frozen=True)
class ChatConfig:
    """Chat transcript and styling."""

    theme: str
    participants: Tuple[Participant, ...]
    messages: Tuple[Message, ...]


@dataclass(frozen=True)
class Resolution:
    """Target frame size in pixels."""

    w: int
    h: int


@dataclass(frozen=True, order=True)
class ScreenshotKey:
    """Inclusive message range depicted by one screenshot."""

    start: int
    end: int

    @property
    def label(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class Overlay:
    """Timed placement of a chat screenshot on the background video."""

    message_index: int
    end_message_index: int
    start: float
    end: float
    x: float
    y: float
    w: float


@dataclass(frozen=True)
class Project:
    """Validated chatvid project."""

    bg_video: str
    output: str
    fps: float
    resolution: Resolution
    chat: ChatConfig
    overlays: Tuple[Overlay, ...]

    def to_document(self) -> dict[str, Any]:
        """Return the JSON document form of the project."""
        return {
            "bgVideo": self.bg_video,
            "output": self.output,
            "fps": self.fps,
            "resolution": {"w": self.resolution.w, "h": self.resolution.h},
            "chat": {
                "theme": self.chat.theme,
                "participants": [
                    {"id": participant.id, "name": participant.name}
                    for participant in self.chat.participants
                ],
                "messages": [
                    {"from": message.sender, "text": message.text}
                    for message in self.chat.messages
                ],
            },
            "overlays": [
                {
                    "messageIndex": overlay.message_index,
                    "endMessageIndex": overlay.end_message_index,
                    "start": overlay.start,
                    "end": overlay.end,
                    "x": overlay.x,
                    "y": overlay.y,
                    "w": overlay.w,
                }
                for overlay in self.overlays
            ],
        }


def is_number(value: Any) -> bool:
    """Return True for finite JSON numbers (booleans excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _invalid(message: str) -> ProjectValidationError:
    return ProjectValidationError(INVALID_PROJECT_CODE, message)


def parse_resolution(value: Any) -> Resolution:
    """Parse the resolution object into positive integer dimensions."""
    if (
        not isinstance(value, Mapping)
        or not is_number(value.get("w"))
        or not is_number(value.get("h"))
    ):
        raise _invalid("resolution must have w and h as numbers")
    width = value["w"]
    height = value["h"]
    for axis, dimension in (("w", width), ("h", height)):
        if dimension <= 0 or not float(dimension).is_integer():
            raise _invalid(f"resolution.{axis} must be a positive integer")
    return Resolution(w=int(width), h=int(height))


def parse_participants(value: Any) -> Tuple[Participant, ...]:
    if not isinstance(value, list):
        raise _invalid("chat.participants must be an array")
    participants: list[Participant] = []
    seen_ids: set[str] = set()
    for entry in value:
        if (
            not isinstance(entry, Mapping)
            or not isinstance(entry.get("id"), str)
            or not isinstance(entry.get("name"), str)
        ):
            raise _invalid("Each participant must have id and name as strings")
        if entry["id"] in seen_ids:
            raise _invalid(f"Duplicate participant id {entry['id']!r}")
        seen_ids.add(entry["id"])
        participants.append(Participant(id=entry["id"], name=entry["name"]))
    return tuple(participants)


def parse_messages(value: Any) -> Tuple[Message, ...]:
    if not isinstance(value, list):
        raise _invalid("chat.messages must be an array")
    messages: list[Message] = []
    for entry in value:
        if (
            not isinstance(entry, Mapping)
            or not isinstance(entry.get("from"), str)
            or not isinstance(entry.get("text"), str)
        ):
            raise _invalid("Each message must have from and text as strings")
        messages.append(Message(sender=entry["from"], text=entry["text"]))
    return tuple(messages)


def parse_chat(value: Any) -> ChatConfig:
    if not isinstance(value, Mapping):
        raise _invalid("chat must be an object")
    if not isinstance(value.get("theme"), str):
        raise _invalid("chat.theme must be a string")
    participants = parse_participants(value.get("participants"))
    messages = parse_messages(value.get("messages"))
    return ChatConfig(
        theme=value["theme"], participants=participants, messages=messages
    )


def _parse_message_index(entry: Mapping[str, Any], field: str, count: int) -> int:
    index_value = entry[field]
    if not float(index_value).is_integer():
        raise _invalid(f"Overlay {field} {index_value} must be an integer")
    if index_value < 0 or index_value >= count:
        raise _invalid(f"Overlay {field} {index_value} is out of bounds")
    return int(index_value)


def parse_overlays(value: Any, message_count: int) -> Tuple[Overlay, ...]:
    """Parse overlays, checking message ranges against the transcript."""
    if not isinstance(value, list):
        raise _invalid("overlays must be an array")
    overlays: list[Overlay] = []
    for entry in value:
        if not isinstance(entry, Mapping) or not all(
            is_number(entry.get(field)) for field in OVERLAY_NUMERIC_FIELDS
        ):
            raise _invalid(
                "Each overlay must have messageIndex, endMessageIndex, "
                "start, end, x, y, w as numbers"
            )
        message_index = _parse_message_index(entry, "messageIndex", message_count)
        end_message_index = _parse_message_index(
            entry, "endMessageIndex", message_count
        )
        if message_index > end_message_index:
            raise _invalid(
                f"Overlay messageIndex {message_index} must be <= "
                f"endMessageIndex {end_message_index}"
            )
        overlays.append(
            Overlay(
                message_index=message_index,
                end_message_index=end_message_index,
                start=entry["start"],
                end=entry["end"],
                x=entry["x"],
                y=entry["y"],
                w=entry["w"],
            )
        )
    return tuple(overlays)


def parse_project(document: Any) -> Project:
    """Validate a decoded project document, failing on the first violation."""
    if not isinstance(document, Mapping):
        raise _invalid("Project must be an object")
    if not is_non_empty_string(document.get("bgVideo")):
        raise _invalid("bgVideo must be a non-empty string")
    if not is_non_empty_string(document.get("output")):
        raise _invalid("output must be a non-empty string")
    fps = document.get("fps")
    if not is_number(fps) or fps <= 0:
        raise _invalid("fps must be a positive number")
    resolution = parse_resolution(document.get("resolution"))
    chat = parse_chat(document.get("chat"))
    overlays = parse_overlays(document.get("overlays"), len(chat.messages))
    return Project(
        bg_video=document["bgVideo"],
        output=document["output"],
        fps=fps,
        resolution=resolution,
        chat=chat,
        overlays=overlays,
    )


def screenshot_key(overlay: Overlay) -> ScreenshotKey:
    return ScreenshotKey(start=overlay.message_index, end=overlay.end_message_index)


def collect_screenshot_keys(overlays: Iterable[Overlay]) -> Tuple[ScreenshotKey, ...]:
    """Return distinct screenshot keys ordered by start, then end index."""
    return tuple(sorted({screenshot_key(overlay) for overlay in overlays}))


def is_local_sender(sender_id: str) -> bool:
    """Return True when a message belongs to the local (right-aligned) user.

    A participant can only match the reserved id by having that id itself, so
    the sender id alone decides alignment.
    """
    return sender_id == LOCAL_PARTICIPANT_ID


def find_participant(
    sender_id: str, participants: Sequence[Participant]
) -> Participant | None:
    for participant in participants:
        if participant.id == sender_id:
            return participant
    return None


def inverted_time_windows(project: Project) -> Tuple[Tuple[int, Overlay], ...]:
    """Return (position, overlay) pairs whose start time is after the end time."""
    return tuple(
        (position, overlay)
        for position, overlay in enumerate(project.overlays)
        if overlay.start > overlay.end
    )


def example_project() -> Project:
    """Return the project written by ``chatvid init``."""
    return Project(
        bg_video="assets/bg.example.mp4",
        output="out/final.mp4",
        fps=30,
        resolution=Resolution(w=1080, h=1920),
        chat=ChatConfig(
            theme="ios",
            participants=(
                Participant(id="me", name="Me"),
                Participant(id="her", name="Her"),
            ),
            messages=(
                Message(sender="her", text="Qué significa ese tatuaje?"),
                Message(sender="me", text="El tatuaje no... pero la modelo sí 😌"),
            ),
        ),
        overlays=(
            Overlay(
                message_index=0,
                end_message_index=0,
                start=0.5,
                end=2.5,
                x=80,
                y=980,
                w=920,
            ),
            Overlay(
                message_index=0,
                end_message_index=1,
                start=2.5,
                end=5.0,
                x=80,
                y=980,
                w=920,
            ),
        ),
    )
