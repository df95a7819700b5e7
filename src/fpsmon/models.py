"""Data models for fpsmon."""

from dataclasses import dataclass
from enum import Enum

from fpsmon.errors import ErrorKind


@dataclass(slots=True, frozen=True)
class FrameRecord:
    """One decoded row of capture tool output."""

    application: str
    frame_time_ms: float  # > 0
    cpu_busy_ms: float = 0.0
    gpu_busy_ms: float = 0.0


@dataclass(slots=True, frozen=True)
class FpsSnapshot:
    """Windowed metrics published roughly once per second."""

    process_name: str
    fps: float
    fps_1_low: float
    fps_01_low: float
    frametime_ms: float
    cpu_busy_ms: float
    gpu_busy_ms: float
    elapsed_secs: float
    frame_count: int  # frames in the trailing window


@dataclass(slots=True, frozen=True)
class FpsSession:
    """Whole-run summary, produced once when monitoring ends."""

    process_name: str
    avg_fps: float
    fps_1_low: float
    fps_01_low: float
    max_fps: float
    min_fps: float
    total_frames: int
    duration_secs: float


class MonitorState(Enum):
    """Lifecycle states of the monitoring engine."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    FAULTED = "faulted"


@dataclass(slots=True, frozen=True)
class FpsStatus:
    """Answer to FpsMonitor.status()."""

    running: bool
    process_name: str | None
    current_fps: float | None
    state: MonitorState


@dataclass(slots=True, frozen=True)
class MonitoringStarted:
    process_name: str


@dataclass(slots=True, frozen=True)
class FpsUpdate:
    snapshot: FpsSnapshot


@dataclass(slots=True, frozen=True)
class SessionComplete:
    session: FpsSession


@dataclass(slots=True, frozen=True)
class MonitoringStopped:
    process_name: str


@dataclass(slots=True, frozen=True)
class MonitoringError:
    kind: ErrorKind
    message: str


MonitorEvent = MonitoringStarted | FpsUpdate | SessionComplete | MonitoringStopped | MonitoringError
