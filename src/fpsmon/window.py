"""Sliding-window FPS calculator producing periodic snapshots."""

from collections import deque
from enum import Enum

from fpsmon.models import FpsSnapshot, FrameRecord
from fpsmon.stats import ONE_PERCENT, POINT_ONE_PERCENT, average_fps, low_fps

# Tolerance for float drift in the summed frame clock
_CLOCK_EPSILON_MS = 1e-6


class WindowState(Enum):
    """States of the windowed calculator."""

    IDLE = "idle"
    ACCUMULATING = "accumulating"
    EMITTING = "emitting"


class WindowedFpsCalculator:
    """
    Computes FPS snapshots over a trailing window of frames.

    Time is measured by summing frame times, not by sampling the wall clock,
    so a fixed input stream always yields the same snapshots. A snapshot is
    produced each time at least ``interval_secs`` of frame time has passed
    since the previous one.
    """

    def __init__(
        self,
        process_name: str = "",
        window_secs: float = 1.0,
        interval_secs: float = 1.0,
    ) -> None:
        """Initialize an idle calculator."""
        self._process_name = process_name
        self._window_ms = window_secs * 1000.0
        self._interval_ms = interval_secs * 1000.0
        # (end time on the frame clock, record), oldest first
        self._buffer: deque[tuple[float, FrameRecord]] = deque()
        self._clock_ms = 0.0
        # Clock time added by advance() since the last frame
        self._idle_ms = 0.0
        self._last_emit_ms = 0.0
        self._state = WindowState.IDLE

    @property
    def state(self) -> WindowState:
        """Current calculator state."""
        return self._state

    @property
    def elapsed_secs(self) -> float:
        """Frame-clock time since the first frame."""
        return self._clock_ms / 1000.0

    def __len__(self) -> int:
        """Number of frames in the trailing window."""
        return len(self._buffer)

    def push(self, record: FrameRecord) -> FpsSnapshot | None:
        """
        Add a frame; return a snapshot if an emission interval has elapsed.

        A frame arriving after a stall already spans the idle time the clock
        was advanced by, so only the part of its frame time not yet counted
        moves the clock.
        """
        self._clock_ms += max(record.frame_time_ms - self._idle_ms, 0.0)
        self._idle_ms = 0.0
        self._buffer.append((self._clock_ms, record))
        return self._advance()

    def advance(self, idle_ms: float) -> FpsSnapshot | None:
        """
        Move the clock forward without a frame.

        Used when the capture stream goes quiet. Once the window has emptied
        the emitted snapshot reports fps == 0, which tells a stalled game apart
        from a stopped monitor.
        """
        self._clock_ms += idle_ms
        self._idle_ms += idle_ms
        return self._advance()

    def _advance(self) -> FpsSnapshot | None:
        """Evict stale frames and emit a snapshot when the interval has elapsed."""
        self._evict()
        if self._clock_ms - self._last_emit_ms + _CLOCK_EPSILON_MS < self._interval_ms:
            self._state = WindowState.ACCUMULATING
            return None

        self._state = WindowState.EMITTING
        snapshot = self.snapshot()
        self._last_emit_ms = self._clock_ms
        self._state = WindowState.ACCUMULATING
        return snapshot

    def _evict(self) -> None:
        """Drop frames that ended before the trailing window."""
        horizon = self._clock_ms - self._window_ms + _CLOCK_EPSILON_MS
        while self._buffer and self._buffer[0][0] <= horizon:
            self._buffer.popleft()

    def snapshot(self) -> FpsSnapshot:
        """Compute metrics over the frames currently in the window."""
        frames = [record for _, record in self._buffer]
        count = len(frames)
        frame_times = [record.frame_time_ms for record in frames]
        total_ms = sum(frame_times)

        if count == 0:
            return FpsSnapshot(
                process_name=self._process_name,
                fps=0.0,
                fps_1_low=0.0,
                fps_01_low=0.0,
                frametime_ms=0.0,
                cpu_busy_ms=0.0,
                gpu_busy_ms=0.0,
                elapsed_secs=self.elapsed_secs,
                frame_count=0,
            )

        return FpsSnapshot(
            process_name=self._process_name,
            fps=average_fps(total_ms, count),
            fps_1_low=low_fps(frame_times, count, ONE_PERCENT),
            fps_01_low=low_fps(frame_times, count, POINT_ONE_PERCENT),
            frametime_ms=total_ms / count,
            cpu_busy_ms=sum(record.cpu_busy_ms for record in frames) / count,
            gpu_busy_ms=sum(record.gpu_busy_ms for record in frames) / count,
            elapsed_secs=self.elapsed_secs,
            frame_count=count,
        )
