"""Error types and stable error codes for chatvid."""

from __future__ import annotations

INVALID_PROJECT_CODE = "chatvid.input.invalid_project"
PROJECT_FILE_CODE = "chatvid.input.project_file"
INVALID_JSON_CODE = "chatvid.input.invalid_json"
MISSING_INPUT_CODE = "chatvid.input.missing_file"
FFMPEG_NOT_FOUND_CODE = "chatvid.ffmpeg.not_found"
FFMPEG_EXEC_CODE = "chatvid.ffmpeg.exec_error"
FFMPEG_PROBE_CODE = "chatvid.ffmpeg.probe_error"
FFMPEG_PROCESS_CODE = "chatvid.ffmpeg.process_failed"
RASTERIZER_NOT_FOUND_CODE = "chatvid.rasterizer.not_found"
RASTERIZER_RENDER_CODE = "chatvid.rasterizer.render_failed"


class ProjectValidationError(ValueError):
    """Project document error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class MissingInputError(RuntimeError):
    """A file needed for rendering does not exist."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class EnvironmentUnavailableError(RuntimeError):
    """External tooling (encoder, browser engine) is not usable."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class RenderPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
