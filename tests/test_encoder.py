"""Tests for ffmpeg command assembly and invocation."""

from __future__ import annotations

import platform
from pathlib import Path

import pytest
from PIL import Image

from domain.chat_project import example_project
from domain.errors import (
    FFMPEG_NOT_FOUND_CODE,
    FFMPEG_PROCESS_CODE,
    MISSING_INPUT_CODE,
    EnvironmentUnavailableError,
    MissingInputError,
    RenderPipelineError,
)
from service.encoder import (
    EncoderConfig,
    build_encoder_command,
    ensure_encoder_available,
    escape_shell_argument,
    format_shell_command,
    has_audio_stream,
    render_video,
)
from service.project_files import chat_screenshots_dir

if platform.system().lower() == "windows":
    pytest.skip("encoder tests use POSIX shell stubs", allow_module_level=True)


def write_stub(target_path: Path, body: str) -> Path:
    """Write an executable shell script."""
    target_path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    target_path.chmod(0o755)
    return target_path


def write_ffprobe_stub(bin_dir: Path, codec_name: str) -> Path:
    """Write an ffprobe stub reporting the given audio codec (or none)."""
    return write_stub(
        bin_dir / "ffprobe",
        'if [ "$1" = "-version" ]; then echo "ffprobe version stub"; exit 0; fi\n'
        f'printf "%s" "{codec_name}"\n',
    )


def write_ffmpeg_stub(bin_dir: Path, log_path: Path, exit_code: int = 0) -> Path:
    """Write an ffmpeg stub that records its arguments and touches the output."""
    return write_stub(
        bin_dir / "ffmpeg",
        'if [ "$1" = "-version" ]; then echo "ffmpeg version stub"; exit 0; fi\n'
        f'printf "%s\\n" "$@" > "{log_path}"\n'
        'for last; do :; done\n'
        f'if [ {exit_code} -ne 0 ]; then echo "Error parsing filtergraph" >&2; exit {exit_code}; fi\n'
        'echo "frame=1 fps=0.0" >&2\n'
        ': > "$last"\n',
    )


def build_project_dir(tmp_path: Path, with_screenshots: bool = True) -> Path:
    """Create a project directory with a background and screenshots."""
    project_dir = tmp_path / "project"
    (project_dir / "assets").mkdir(parents=True)
    (project_dir / "assets" / "bg.example.mp4").write_bytes(b"not really a video")
    if with_screenshots:
        chat_dir = Path(chat_screenshots_dir(str(project_dir)))
        chat_dir.mkdir(parents=True)
        for label in ("0-0", "0-1"):
            Image.new("RGBA", (40, 20), (0, 122, 255, 255)).save(
                chat_dir / f"chat-{label}.png"
            )
    return project_dir


def build_config(bin_dir: Path, project_dir: Path) -> EncoderConfig:
    """Build a config that resolves binaries only from bin_dir."""
    return EncoderConfig.from_environment(
        {"PATH": str(bin_dir)}, working_dir=str(project_dir)
    )


def test_escape_shell_argument() -> None:
    """Pass safe arguments through and quote the rest."""
    assert escape_shell_argument("/tmp/out_1.mp4") == "/tmp/out_1.mp4"
    assert escape_shell_argument("-y") == "-y"
    assert escape_shell_argument("[v2]") == '"[v2]"'
    assert escape_shell_argument("my video.mp4") == '"my video.mp4"'
    assert escape_shell_argument('say "hi"') == '"say \\"hi\\""'
    assert format_shell_command("ffmpeg", ["-i", "a b.mp4"]) == 'ffmpeg -i "a b.mp4"'


def test_from_environment_overrides() -> None:
    """Prefer explicit binaries, then environment variables, then defaults."""
    environ = {"PATH": "/opt/bin", "CHATVID_FFMPEG": "/opt/ffmpeg6"}
    config = EncoderConfig.from_environment(environ, working_dir="/work")
    assert config.ffmpeg_binary == "/opt/ffmpeg6"
    assert config.ffprobe_binary == "ffprobe"
    assert config.search_path == "/opt/bin"

    overridden = EncoderConfig.from_environment(
        environ, working_dir="/work", ffprobe_binary="/usr/bin/ffprobe"
    )
    assert overridden.ffprobe_binary == "/usr/bin/ffprobe"


def test_missing_encoder_is_environment_error(tmp_path: Path) -> None:
    """Report an absent ffmpeg as an environment error."""
    config = build_config(tmp_path, tmp_path)
    with pytest.raises(EnvironmentUnavailableError) as excinfo:
        ensure_encoder_available(config)
    assert excinfo.value.code == FFMPEG_NOT_FOUND_CODE


def test_command_without_audio_omits_audio_flags(tmp_path: Path) -> None:
    """Skip audio mapping when the background has no audio stream."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_ffprobe_stub(bin_dir, "")
    write_ffmpeg_stub(bin_dir, tmp_path / "args.txt")
    project_dir = build_project_dir(tmp_path)

    command = build_encoder_command(
        example_project(), str(project_dir), build_config(bin_dir, project_dir)
    )

    assert "-c:a" not in command.args
    assert "-b:a" not in command.args
    assert command.args.count("-map") == 1
    assert command.args[command.args.index("-map") + 1] == "[v2]"
    assert command.args[-3:] == ("-r", "30", str(project_dir / "out" / "final.mp4"))


def test_command_with_audio_maps_audio(tmp_path: Path) -> None:
    """Pass audio through when the background has an audio stream."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_ffprobe_stub(bin_dir, "aac")
    write_ffmpeg_stub(bin_dir, tmp_path / "args.txt")
    project_dir = build_project_dir(tmp_path)
    config = build_config(bin_dir, project_dir)

    assert has_audio_stream(str(project_dir / "assets" / "bg.example.mp4"), config)
    command = build_encoder_command(example_project(), str(project_dir), config)

    args = list(command.args)
    audio_index = args.index("0:a?")
    assert args[audio_index - 1] == "-map"
    assert args[audio_index + 1 : audio_index + 5] == ["-c:a", "aac", "-b:a", "192k"]
    input_paths = [args[index + 1] for index, arg in enumerate(args) if arg == "-i"]
    assert input_paths[1:] == [
        str(project_dir / "out" / "chat" / "chat-0-0.png"),
        str(project_dir / "out" / "chat" / "chat-0-1.png"),
    ]


def test_missing_screenshot_fails_before_encoding(tmp_path: Path) -> None:
    """Raise a missing-input error before ffprobe or ffmpeg run."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    log_path = tmp_path / "args.txt"
    write_ffprobe_stub(bin_dir, "")
    write_ffmpeg_stub(bin_dir, log_path)
    project_dir = build_project_dir(tmp_path, with_screenshots=False)

    with pytest.raises(MissingInputError) as excinfo:
        render_video(
            example_project(), str(project_dir), build_config(bin_dir, project_dir)
        )

    assert excinfo.value.code == MISSING_INPUT_CODE
    assert "chat-0-0.png" in str(excinfo.value)
    assert not log_path.exists()


def test_missing_background_fails(tmp_path: Path) -> None:
    """Name the background path when it does not exist."""
    project_dir = tmp_path / "empty"
    project_dir.mkdir()
    with pytest.raises(MissingInputError) as excinfo:
        render_video(
            example_project(), str(project_dir), build_config(tmp_path, project_dir)
        )
    assert "Background video not found" in str(excinfo.value)


def test_render_video_runs_encoder(tmp_path: Path) -> None:
    """Run the encoder and create the output directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    log_path = tmp_path / "args.txt"
    write_ffprobe_stub(bin_dir, "")
    write_ffmpeg_stub(bin_dir, log_path)
    project_dir = build_project_dir(tmp_path)

    output_path = render_video(
        example_project(), str(project_dir), build_config(bin_dir, project_dir)
    )

    assert Path(output_path).exists()
    recorded = log_path.read_text(encoding="utf-8").splitlines()
    assert recorded[0] == "-y"
    assert "-filter_complex" in recorded


def test_encoder_failure_surfaces_stderr(tmp_path: Path) -> None:
    """Carry ffmpeg's diagnostic text in the raised error."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_ffprobe_stub(bin_dir, "")
    write_ffmpeg_stub(bin_dir, tmp_path / "args.txt", exit_code=3)
    project_dir = build_project_dir(tmp_path)

    with pytest.raises(RenderPipelineError) as excinfo:
        render_video(
            example_project(), str(project_dir), build_config(bin_dir, project_dir)
        )

    assert excinfo.value.code == FFMPEG_PROCESS_CODE
    assert "exit code 3" in str(excinfo.value)
    assert "Error parsing filtergraph" in str(excinfo.value)
