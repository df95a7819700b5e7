"""fpsmon - Textual front-end for the FPS monitoring engine."""

import argparse
import logging
from collections import deque
from pathlib import Path
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.css.query import NoMatches
from textual.widgets import DataTable, Footer, Static

from fpsmon.capture import CaptureLauncher
from fpsmon.config import MonitorConfig
from fpsmon.engine import FpsMonitor
from fpsmon.errors import MonitorError
from fpsmon.log import DEFAULT_LOG_FILE, setup_logging
from fpsmon.models import (
    FpsSession,
    FpsSnapshot,
    FpsUpdate,
    MonitorEvent,
    MonitoringError,
    MonitoringStarted,
    MonitoringStopped,
    SessionComplete,
)

MAX_HISTORY_ROWS = 120


def format_duration(seconds: float) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(0.0, seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def fps_bar(fps: float, target: float = 144.0, width: int = 20) -> str:
    """Bar of ``width`` cells filled in proportion to fps/target."""
    bar_len = int(width * fps / target) if target > 0 else 0
    bar_len = max(0, min(bar_len, width))
    color = "green" if fps >= 60 else "yellow" if fps >= 30 else "red"
    return f"[{color}]█[/{color}]" * bar_len + "[dim]░[/dim]" * (width - bar_len)


class LiveStats(Static):
    """Header widget showing the latest snapshot."""

    DEFAULT_CSS = """
    LiveStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize the widget with no snapshot yet."""
        super().__init__(*args, **kwargs)
        self._status: str = "Idle"
        self._snapshot: FpsSnapshot | None = None

    def compose(self) -> ComposeResult:
        """Create the rate and timing columns."""
        yield Horizontal(
            Static(self._get_rate_info(), id="rate-info"),
            Static(self._get_timing_info(), id="timing-info"),
        )

    @property
    def snapshot(self) -> FpsSnapshot | None:
        """The most recently displayed snapshot."""
        return self._snapshot

    def set_status(self, status: str) -> None:
        """Set the lifecycle label shown above the metrics."""
        self._status = status
        self._refresh_display()

    def update_snapshot(self, snapshot: FpsSnapshot) -> None:
        """Display a new snapshot."""
        self._snapshot = snapshot
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Re-render both columns from the current state."""
        try:
            self.query_one("#rate-info", Static).update(self._get_rate_info())
            self.query_one("#timing-info", Static).update(self._get_timing_info())
        except NoMatches:
            pass  # Not mounted yet

    def _get_rate_info(self) -> str:
        """Format the FPS and percent-low bars."""
        snap = self._snapshot
        if snap is None:
            return f"{self._status}\nWaiting for frames..."
        return (
            f"{self._status}: {snap.process_name}\n"
            f"FPS      \\[{fps_bar(snap.fps)}] {snap.fps:6.1f}\n"
            f"1% low   \\[{fps_bar(snap.fps_1_low)}] {snap.fps_1_low:6.1f}\n"
            f"0.1% low \\[{fps_bar(snap.fps_01_low)}] {snap.fps_01_low:6.1f}"
        )

    def _get_timing_info(self) -> str:
        """Format frame time, busy times and elapsed time."""
        snap = self._snapshot
        if snap is None:
            return ""
        return (
            f"Frame time: {snap.frametime_ms:6.2f} ms\n"
            f"CPU busy:   {snap.cpu_busy_ms:6.2f} ms\n"
            f"GPU busy:   {snap.gpu_busy_ms:6.2f} ms\n"
            f"Elapsed:    {format_duration(snap.elapsed_secs)}"
        )


class SnapshotTable(Container):
    """Scrolling history of recent snapshots, newest last."""

    DEFAULT_CSS = """
    SnapshotTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, max_rows: int = MAX_HISTORY_ROWS, **kwargs) -> None:
        """Initialize the table with a bound on kept rows."""
        super().__init__(*args, **kwargs)
        self._row_keys: deque[str] = deque()
        self._max_rows = max_rows
        self._next_key = 0

    @property
    def row_count(self) -> int:
        """Number of snapshot rows currently shown."""
        return len(self._row_keys)

    def compose(self) -> ComposeResult:
        """Create the snapshot table."""
        yield DataTable(id="snapshot-table")

    def on_mount(self) -> None:
        """Set up table columns when mounted."""
        table = self.query_one("#snapshot-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Elapsed", key="elapsed", width=10)
        table.add_column("FPS", key="fps", width=8)
        table.add_column("1% Low", key="low1", width=8)
        table.add_column("0.1% Low", key="low01", width=9)
        table.add_column("Frame ms", key="frametime", width=9)
        table.add_column("CPU ms", key="cpu", width=8)
        table.add_column("GPU ms", key="gpu", width=8)
        table.add_column("Frames", key="frames")

    def add_snapshot(self, snapshot: FpsSnapshot) -> None:
        """Append a row, dropping the oldest once the history is full."""
        table = self.query_one("#snapshot-table", DataTable)

        row_key = str(self._next_key)
        self._next_key += 1
        table.add_row(
            format_duration(snapshot.elapsed_secs),
            f"{snapshot.fps:6.1f}",
            f"{snapshot.fps_1_low:6.1f}",
            f"{snapshot.fps_01_low:6.1f}",
            f"{snapshot.frametime_ms:6.2f}",
            f"{snapshot.cpu_busy_ms:6.2f}",
            f"{snapshot.gpu_busy_ms:6.2f}",
            str(snapshot.frame_count),
            key=row_key,
        )
        self._row_keys.append(row_key)

        while len(self._row_keys) > self._max_rows:
            table.remove_row(self._row_keys.popleft())

    def clear_history(self) -> None:
        """Remove every snapshot row."""
        self.query_one("#snapshot-table", DataTable).clear()
        self._row_keys.clear()


class SessionSummary(Static):
    """Summary of the last completed run."""

    DEFAULT_CSS = """
    SessionSummary {
        height: auto;
        padding: 0 1;
        background: $boost;
    }
    """

    def show_session(self, session: FpsSession) -> None:
        """Render the final summary of a run."""
        self.update(
            f"Session {session.process_name}: avg {session.avg_fps:.1f} FPS | "
            f"1% low {session.fps_1_low:.1f} | 0.1% low {session.fps_01_low:.1f} | "
            f"min {session.min_fps:.1f} | max {session.max_fps:.1f} | "
            f"{session.total_frames} frames in {format_duration(session.duration_secs)}"
        )


class FpsMonitorApp(App):
    """Main fpsmon application."""

    TITLE = "fpsmon"
    SUB_TITLE = "Game FPS Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #live-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #rate-info {
        width: 1fr;
        padding-right: 2;
    }

    #timing-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "stop", "Stop"),
        ("r", "restart", "Restart"),
    ]

    def __init__(
        self,
        process_name: str,
        config: MonitorConfig | None = None,
        launcher: CaptureLauncher | None = None,
    ) -> None:
        """Initialize the app with a monitor for ``process_name``."""
        super().__init__()
        self._process_name = process_name
        self._event_queue: Queue[MonitorEvent] = Queue()
        self._monitor = FpsMonitor(self._event_queue, config=config, launcher=launcher)
        self._last_session: FpsSession | None = None

    @property
    def monitor(self) -> FpsMonitor:
        """The engine driving this app."""
        return self._monitor

    @property
    def last_session(self) -> FpsSession | None:
        """Summary of the most recently completed run."""
        return self._last_session

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield LiveStats(id="live-stats")
        yield SnapshotTable()
        yield SessionSummary("", id="session-summary")
        yield Footer()

    def on_mount(self) -> None:
        """Start monitoring when the app is mounted."""
        self._start_monitoring()
        self.set_interval(0.25, self._check_for_updates)

    def _start_monitoring(self) -> None:
        """Start a run, reporting a rejected start as a notification."""
        try:
            self._monitor.start(self._process_name)
        except MonitorError as exc:
            self.notify(str(exc), severity="error")
            return
        self.query_one(LiveStats).set_status("Starting")

    def _check_for_updates(self) -> None:
        """Drain the event queue in order and apply each event."""
        while True:
            try:
                event = self._event_queue.get_nowait()
            except Empty:
                break
            self._handle_event(event)

    def _handle_event(self, event: MonitorEvent) -> None:
        """Apply one engine event to the widgets."""
        stats = self.query_one(LiveStats)
        if isinstance(event, MonitoringStarted):
            stats.set_status("Monitoring")
            self.query_one(SnapshotTable).clear_history()
        elif isinstance(event, FpsUpdate):
            stats.update_snapshot(event.snapshot)
            self.query_one(SnapshotTable).add_snapshot(event.snapshot)
        elif isinstance(event, SessionComplete):
            self._last_session = event.session
            self.query_one(SessionSummary).show_session(event.session)
        elif isinstance(event, MonitoringStopped):
            stats.set_status("Stopped")
        elif isinstance(event, MonitoringError):
            self.notify(event.message, title=event.kind.value, severity="error", timeout=8)

    def action_stop(self) -> None:
        """Stop the current run."""
        self._monitor.stop()

    def action_restart(self) -> None:
        """Start a new run once the previous one has ended."""
        if self._monitor.is_running:
            self.notify("Stop monitoring before restarting", severity="warning")
            return
        self._start_monitoring()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self._monitor.wait(timeout=self._monitor.config.terminate_grace_secs + 1.0)
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser for the fpsmon entry point."""
    parser = argparse.ArgumentParser(prog="fpsmon", description="Monitor a game's frame rate.")
    parser.add_argument("process_name", help="Executable name of the game, e.g. game.exe")
    parser.add_argument("--presentmon", type=Path, default=None, help="Path to PresentMon")
    parser.add_argument("--log-file", type=Path, default=DEFAULT_LOG_FILE, help="Log file path")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the fpsmon application."""
    args = build_parser().parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_file=args.log_file,
        console=False,
    )
    overrides = {"presentmon_path": args.presentmon} if args.presentmon else {}
    app = FpsMonitorApp(args.process_name, config=MonitorConfig.from_env(**overrides))
    app.run()


if __name__ == "__main__":
    main()
