"""Error taxonomy for the FPS monitoring engine."""

from enum import Enum


class ErrorKind(Enum):
    """Distinguishable error kinds, carried by exceptions and error events."""

    INVALID_INPUT = "invalid_input"
    ALREADY_RUNNING = "already_running"
    CAPTURE_TOOL_MISSING = "capture_tool_missing"
    SPAWN_FAILED = "spawn_failed"
    PERMISSION_DENIED = "permission_denied"
    DECODE_WARNING = "decode_warning"
    DECODE_FAILED = "decode_failed"
    UNEXPECTED_EXIT = "unexpected_exit"
    INTERNAL = "internal"


class MonitorError(Exception):
    """Base class for all fpsmon errors."""

    kind = ErrorKind.INTERNAL


class InvalidInput(MonitorError):
    kind = ErrorKind.INVALID_INPUT


class AlreadyRunning(MonitorError):
    kind = ErrorKind.ALREADY_RUNNING


class CaptureToolMissing(MonitorError):
    kind = ErrorKind.CAPTURE_TOOL_MISSING


class SpawnFailed(MonitorError):
    kind = ErrorKind.SPAWN_FAILED


class PermissionDenied(MonitorError):
    """The OS refused to start the capture tool, usually for lack of elevation."""

    kind = ErrorKind.PERMISSION_DENIED


class DecodeError(MonitorError):
    """A single malformed data row. Never fatal."""

    kind = ErrorKind.DECODE_WARNING


class HeaderError(MonitorError):
    """The header row does not name the required columns."""

    kind = ErrorKind.DECODE_FAILED
