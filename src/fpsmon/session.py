"""Whole-run aggregation of frame statistics."""

import heapq

from fpsmon.models import FpsSession, FrameRecord
from fpsmon.stats import ONE_PERCENT, POINT_ONE_PERCENT, average_fps, low_fps

DEFAULT_WORST_FRAMES_CAPACITY = 100_000


class SessionAggregator:
    """
    Accumulates statistics for one monitoring run.

    Keeps running totals plus a bounded min-heap holding the slowest
    ``capacity`` frame times seen so far. The session-wide percent lows are
    exact while the worst fraction fits in the heap; beyond that they are
    computed over the slowest ``capacity`` frames.
    """

    def __init__(
        self,
        process_name: str,
        capacity: int = DEFAULT_WORST_FRAMES_CAPACITY,
    ) -> None:
        """Initialize an empty session keeping at most ``capacity`` worst frames."""
        self._process_name = process_name
        self._capacity = max(1, capacity)
        self._total_frames = 0
        self._total_frame_time_ms = 0.0
        self._min_frame_time_ms = float("inf")
        self._max_frame_time_ms = 0.0
        self._worst: list[float] = []

    @property
    def total_frames(self) -> int:
        """Number of frames seen in the run."""
        return self._total_frames

    @property
    def retained_frames(self) -> int:
        """Frame times currently held for percentile computation."""
        return len(self._worst)

    def add(self, record: FrameRecord) -> None:
        """Fold one frame into the session totals."""
        frame_time = record.frame_time_ms
        self._total_frames += 1
        self._total_frame_time_ms += frame_time
        self._min_frame_time_ms = min(self._min_frame_time_ms, frame_time)
        self._max_frame_time_ms = max(self._max_frame_time_ms, frame_time)

        if len(self._worst) < self._capacity:
            heapq.heappush(self._worst, frame_time)
        elif frame_time > self._worst[0]:
            heapq.heapreplace(self._worst, frame_time)

    def summary(self, duration_secs: float) -> FpsSession:
        """Build the final summary. A run without frames reports zeros."""
        if self._total_frames == 0:
            return FpsSession(
                process_name=self._process_name,
                avg_fps=0.0,
                fps_1_low=0.0,
                fps_01_low=0.0,
                max_fps=0.0,
                min_fps=0.0,
                total_frames=0,
                duration_secs=duration_secs,
            )

        return FpsSession(
            process_name=self._process_name,
            avg_fps=average_fps(self._total_frame_time_ms, self._total_frames),
            fps_1_low=low_fps(self._worst, self._total_frames, ONE_PERCENT),
            fps_01_low=low_fps(self._worst, self._total_frames, POINT_ONE_PERCENT),
            max_fps=1000.0 / self._min_frame_time_ms,
            min_fps=1000.0 / self._max_frame_time_ms,
            total_frames=self._total_frames,
            duration_secs=duration_secs,
        )
