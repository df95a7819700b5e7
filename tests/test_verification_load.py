"""Verification Test: Load - long capture streams.

Replays hours of synthetic frames to check that:
- the session aggregator's memory stays bounded by its worst-frame capacity
- the windowed calculator's buffer stays bounded by the trailing window
- the engine keeps up with a fast capture stream and loses no frames
"""

import random
import time
from queue import Queue

import pytest

from fakes import FakeLauncher, capture_lines, collect_until_stopped
from fpsmon.config import MonitorConfig
from fpsmon.engine import FpsMonitor
from fpsmon.models import FpsUpdate, FrameRecord, MonitorEvent, SessionComplete
from fpsmon.session import SessionAggregator
from fpsmon.window import WindowedFpsCalculator


class TestLongSessions:
    """Load verification suite tests."""

    def test_aggregator_memory_is_bounded(self):
        """
        An hour at 240 FPS is 864k frames; only the worst ``capacity`` are kept.
        """
        capacity = 10_000
        aggregator = SessionAggregator("game.exe", capacity=capacity)
        rng = random.Random(1)

        for _ in range(864_000):
            aggregator.add(FrameRecord("game.exe", rng.uniform(3.0, 6.0)))

        assert aggregator.total_frames == 864_000
        assert aggregator.retained_frames == capacity

        summary = aggregator.summary(duration_secs=3600.0)
        assert summary.fps_01_low <= summary.fps_1_low <= summary.avg_fps <= summary.max_fps
        assert summary.avg_fps == pytest.approx(1000.0 / 4.5, rel=0.01)

    def test_lows_stay_exact_when_capacity_covers_worst_fraction(self):
        """Test a capacity covering the worst 1% keeps the lows exact."""
        rng = random.Random(2)
        frame_times = [rng.lognormvariate(2.5, 0.3) for _ in range(200_000)]

        exact = SessionAggregator("game.exe", capacity=len(frame_times))
        bounded = SessionAggregator("game.exe", capacity=2_000)  # 1% of 200k
        for ft in frame_times:
            record = FrameRecord("game.exe", ft)
            exact.add(record)
            bounded.add(record)

        assert bounded.summary(1.0).fps_1_low == pytest.approx(exact.summary(1.0).fps_1_low)
        assert bounded.summary(1.0).fps_01_low == pytest.approx(exact.summary(1.0).fps_01_low)

    def test_window_buffer_is_bounded(self):
        """Test the window buffer stays bounded on a long stream."""
        calc = WindowedFpsCalculator("game.exe")
        max_buffered = 0

        for _ in range(200_000):
            calc.push(FrameRecord("game.exe", 2.0))
            max_buffered = max(max_buffered, len(calc))

        assert max_buffered <= 500
        assert calc.elapsed_secs == pytest.approx(400.0)

    def test_engine_replays_fast_stream(self):
        """The engine processes a large stream without dropping frames."""
        frame_count = 60_000
        queue: Queue[MonitorEvent] = Queue()
        launcher = FakeLauncher(capture_lines([16.0] * frame_count))
        monitor = FpsMonitor(queue, config=MonitorConfig(), launcher=launcher)

        start = time.monotonic()
        monitor.start("game.exe")
        events = collect_until_stopped(queue, timeout=60.0)
        elapsed = time.monotonic() - start

        session = next(e.session for e in events if isinstance(e, SessionComplete))
        updates = [e for e in events if isinstance(e, FpsUpdate)]

        assert session.total_frames == frame_count
        assert session.avg_fps == pytest.approx(62.5)
        assert len(updates) == 60_000 // 63  # one snapshot per 63 frames of 16ms
        assert elapsed < 60.0
