"""Tests for fpsmon data models."""

import dataclasses

import pytest

from fpsmon.errors import ErrorKind
from fpsmon.models import (
    FpsSession,
    FpsSnapshot,
    FpsStatus,
    FpsUpdate,
    FrameRecord,
    MonitoringError,
    MonitorState,
)


def make_snapshot(**overrides) -> FpsSnapshot:
    """Build a snapshot with fixed values."""
    values = dict(
        process_name="game.exe",
        fps=60.0,
        fps_1_low=45.0,
        fps_01_low=30.0,
        frametime_ms=16.67,
        cpu_busy_ms=4.0,
        gpu_busy_ms=8.0,
        elapsed_secs=1.0,
        frame_count=60,
    )
    values.update(overrides)
    return FpsSnapshot(**values)


def test_frame_record_creation():
    """Test FrameRecord dataclass creation."""
    record = FrameRecord(application="game.exe", frame_time_ms=16.6, cpu_busy_ms=3.0, gpu_busy_ms=7.5)

    assert record.application == "game.exe"
    assert record.frame_time_ms == 16.6
    assert record.cpu_busy_ms == 3.0
    assert record.gpu_busy_ms == 7.5


def test_frame_record_busy_defaults():
    """Test CPU/GPU busy fields default to zero."""
    record = FrameRecord(application="game.exe", frame_time_ms=10.0)

    assert record.cpu_busy_ms == 0.0
    assert record.gpu_busy_ms == 0.0


def test_snapshot_is_frozen():
    """Test that FpsSnapshot is immutable once published."""
    snapshot = make_snapshot()

    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot.fps = 999.0


def test_session_is_frozen():
    """Test FpsSession is immutable."""
    session = FpsSession(
        process_name="game.exe",
        avg_fps=60.0,
        fps_1_low=40.0,
        fps_01_low=30.0,
        max_fps=90.0,
        min_fps=20.0,
        total_frames=600,
        duration_secs=10.0,
    )

    with pytest.raises(dataclasses.FrozenInstanceError):
        session.total_frames = 0


def test_models_use_slots():
    """Test that value types use __slots__."""
    record = FrameRecord(application="game.exe", frame_time_ms=10.0)
    status = FpsStatus(running=False, process_name=None, current_fps=None, state=MonitorState.STOPPED)

    # Slots-based dataclasses don't have __dict__
    assert not hasattr(record, "__dict__")
    assert not hasattr(make_snapshot(), "__dict__")
    assert not hasattr(status, "__dict__")


def test_events_carry_payloads():
    """Test events carry their payloads."""
    snapshot = make_snapshot()
    update = FpsUpdate(snapshot)
    error = MonitoringError(ErrorKind.PERMISSION_DENIED, "run as administrator")

    assert update.snapshot is snapshot
    assert error.kind is ErrorKind.PERMISSION_DENIED
    assert update == FpsUpdate(make_snapshot())
