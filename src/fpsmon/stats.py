"""Frame-rate math shared by the windowed calculator and the session aggregator."""

import heapq
from collections.abc import Iterable

# Worst-frame fractions, in frames per thousand
ONE_PERCENT = 10
POINT_ONE_PERCENT = 1


def average_fps(total_frame_time_ms: float, frame_count: int) -> float:
    """Frames per second implied by the total time the frames took."""
    if frame_count == 0 or total_frame_time_ms <= 0.0:
        return 0.0
    return 1000.0 * frame_count / total_frame_time_ms


def worst_frame_count(frame_count: int, per_mille: int) -> int:
    """Number of slowest frames in the worst fraction: ceil(n * p), at least 1."""
    if frame_count <= 0:
        return 0
    return max(1, -(-frame_count * per_mille // 1000))


def low_fps(frame_times_ms: Iterable[float], frame_count: int, per_mille: int) -> float:
    """
    "Percent low" FPS: the average frame rate over the slowest frames.

    Args:
        frame_times_ms: Frame times to pick the slowest from. May be a bounded
            subset of the run as long as it holds the slowest frames.
        frame_count: Total number of frames the fraction applies to.
        per_mille: Fraction of frames to average, in frames per thousand.
    """
    count = worst_frame_count(frame_count, per_mille)
    if count == 0:
        return 0.0
    worst = heapq.nlargest(count, frame_times_ms)
    if not worst:
        return 0.0
    mean_worst = sum(worst) / len(worst)
    return 1000.0 / mean_worst if mean_worst > 0.0 else 0.0
