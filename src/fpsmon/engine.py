"""FPS monitoring engine for fpsmon."""

import logging
import threading
import time
from dataclasses import dataclass
from queue import Empty, Queue

from fpsmon.capture import (
    CaptureHandle,
    CaptureLauncher,
    PresentMonLauncher,
    reports_permission_failure,
)
from fpsmon.config import MonitorConfig
from fpsmon.decoder import FrameDecoder
from fpsmon.errors import AlreadyRunning, DecodeError, ErrorKind, InvalidInput, MonitorError
from fpsmon.models import (
    FpsSnapshot,
    FpsStatus,
    FpsUpdate,
    MonitorEvent,
    MonitoringError,
    MonitoringStarted,
    MonitoringStopped,
    MonitorState,
    SessionComplete,
)
from fpsmon.session import SessionAggregator
from fpsmon.window import WindowedFpsCalculator

logger = logging.getLogger(__name__)

_ACTIVE_STATES = (MonitorState.STARTING, MonitorState.RUNNING, MonitorState.STOPPING)


@dataclass(slots=True)
class _ActiveSession:
    """State owned by one monitoring run."""

    process_name: str
    started_at: float
    handle: CaptureHandle | None = None
    stop_requested: bool = False
    decode_errors: int = 0


class FpsMonitor:
    """
    Frame-rate monitor for one game process at a time.

    ``start`` and ``stop`` return immediately; the capture runs on a daemon
    thread that pushes lifecycle and metric events to a thread-safe Queue.
    Commands are rejected, never queued, while a run is active.
    """

    def __init__(
        self,
        event_queue: Queue[MonitorEvent],
        config: MonitorConfig | None = None,
        launcher: CaptureLauncher | None = None,
    ) -> None:
        """
        Initialize the FpsMonitor.

        Args:
            event_queue: Thread-safe queue to push events to.
            config: Engine tunables. Defaults to MonitorConfig().
            launcher: Starts the capture tool. Defaults to PresentMon.
        """
        self._queue = event_queue
        self._config = config or MonitorConfig()
        self._launcher = launcher or PresentMonLauncher(self._config)
        self._lock = threading.Lock()
        self._state = MonitorState.STOPPED
        self._session: _ActiveSession | None = None
        self._thread: threading.Thread | None = None
        self._current_fps: float | None = None

    @property
    def config(self) -> MonitorConfig:
        """Engine configuration in use."""
        return self._config

    @property
    def state(self) -> MonitorState:
        """Current lifecycle state."""
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        """Check if a monitoring run is in progress."""
        return self.state in _ACTIVE_STATES

    def start(self, process_name: str) -> None:
        """
        Begin monitoring ``process_name``.

        Raises:
            InvalidInput: The process name is empty.
            AlreadyRunning: A run is already in progress.
        """
        name = process_name.strip() if isinstance(process_name, str) else ""
        if not name:
            raise InvalidInput("Process name must not be empty")

        with self._lock:
            if self._state is not MonitorState.STOPPED:
                current = self._session.process_name if self._session else "?"
                raise AlreadyRunning(f"Already monitoring {current}")

            session = _ActiveSession(process_name=name, started_at=time.monotonic())
            self._session = session
            self._state = MonitorState.STARTING
            self._current_fps = None
            self._thread = threading.Thread(
                target=self._run,
                args=(session,),
                daemon=True,
                name="FpsMonitor",
            )
            self._thread.start()

        logger.info("Starting FPS monitoring for %s", name)

    def stop(self) -> None:
        """
        Stop the current run. A no-op when nothing is running.

        Terminating the capture closes its output, which ends the blocked read.
        """
        with self._lock:
            if self._state not in (MonitorState.STARTING, MonitorState.RUNNING):
                return
            session = self._session
            if session is None:
                return
            session.stop_requested = True
            self._state = MonitorState.STOPPING
            handle = session.handle

        logger.info("Stopping FPS monitoring for %s", session.process_name)
        if handle is not None:
            threading.Thread(target=handle.terminate, daemon=True, name="CaptureTerminate").start()

    def status(self) -> FpsStatus:
        """Report whether a run is active, for which process and at what FPS."""
        with self._lock:
            running = self._state in _ACTIVE_STATES
            return FpsStatus(
                running=running,
                process_name=self._session.process_name if running and self._session else None,
                current_fps=self._current_fps if running else None,
                state=self._state,
            )

    def wait(self, timeout: float | None = None) -> bool:
        """
        Wait for the monitoring thread to finish.

        Returns:
            True if no run is active afterwards.
        """
        thread = self._thread
        if thread is not None:
            thread.join(timeout=timeout)
            return not thread.is_alive()
        return True

    def _emit(self, event: MonitorEvent) -> None:
        """Push an event to the caller's queue."""
        self._queue.put(event)

    def _run(self, session: _ActiveSession) -> None:
        """Body of the monitoring thread for one run."""
        try:
            handle = self._launcher.launch(session.process_name)
        except MonitorError as exc:
            self._fault(session, exc.kind, str(exc))
            return
        except Exception as exc:
            logger.exception("Launching the capture tool failed")
            self._fault(session, ErrorKind.SPAWN_FAILED, f"Failed to start capture: {exc}")
            return

        with self._lock:
            session.handle = handle
            cancelled = session.stop_requested
            if not cancelled:
                self._state = MonitorState.RUNNING
                self._emit(MonitoringStarted(session.process_name))

        if cancelled:
            # Stopped while the capture was still being launched
            handle.terminate()
            with self._lock:
                self._finish(session)
            return

        try:
            aggregator = self._consume(session, handle)
        except MonitorError as exc:
            handle.terminate()
            self._fault(session, exc.kind, str(exc))
            return
        except Exception as exc:
            logger.exception("Unexpected error while processing capture output")
            handle.terminate()
            self._fault(session, ErrorKind.INTERNAL, f"Internal error: {exc}")
            return

        self._complete(session, handle, aggregator)

    def _consume(self, session: _ActiveSession, handle: CaptureHandle) -> SessionAggregator:
        """Decode capture output in arrival order until end of stream."""
        config = self._config
        decoder = FrameDecoder(config.max_frame_time_ms)
        window = WindowedFpsCalculator(
            session.process_name,
            window_secs=config.window_secs,
            interval_secs=config.snapshot_interval_secs,
        )
        aggregator = SessionAggregator(session.process_name, config.worst_frames_capacity)

        lines: Queue[str | None] = Queue()
        reader = threading.Thread(
            target=self._pump_lines,
            args=(handle, lines),
            daemon=True,
            name="CaptureReader",
        )
        reader.start()

        while True:
            try:
                line = lines.get(timeout=config.stall_timeout_secs)
            except Empty:
                # No output at all: the game is stalled or not presenting
                snapshot = window.advance(config.stall_timeout_secs * 1000.0)
                if snapshot is not None:
                    self._publish(snapshot)
                continue

            if line is None:
                break

            if decoder.header is None:
                decoder.feed(line)
                if decoder.header is not None:
                    logger.info("Capture columns: %s", ", ".join(decoder.header.columns[:12]))
                continue

            try:
                record = decoder.feed(line)
            except DecodeError as exc:
                session.decode_errors += 1
                logger.warning(
                    "Skipping malformed capture line (%d so far): %s", session.decode_errors, exc
                )
                continue

            if record is None:
                continue

            aggregator.add(record)
            snapshot = window.push(record)
            if snapshot is not None:
                self._publish(snapshot)

        reader.join(timeout=config.terminate_grace_secs)
        return aggregator

    @staticmethod
    def _pump_lines(handle: CaptureHandle, lines: Queue[str | None]) -> None:
        """Blocking reads of capture output, on their own thread."""
        try:
            while True:
                line = handle.read_line()
                if line is None:
                    break
                lines.put(line)
        except Exception:
            logger.exception("Reading capture output failed")
        finally:
            lines.put(None)

    def _publish(self, snapshot: FpsSnapshot) -> None:
        """Record the latest FPS and emit the snapshot."""
        with self._lock:
            self._current_fps = snapshot.fps
            self._emit(FpsUpdate(snapshot))

    def _complete(
        self, session: _ActiveSession, handle: CaptureHandle, aggregator: SessionAggregator
    ) -> None:
        """Finalize a run whose capture stream has ended."""
        handle.terminate()
        summary = aggregator.summary(time.monotonic() - session.started_at)

        if session.stop_requested:
            logger.info("Capture for %s stopped on request", session.process_name)
        else:
            logger.info(
                "Capture for %s ended with exit code %s", session.process_name, handle.exit_code
            )
            if handle.stderr_tail:
                logger.warning("Capture stderr:\n%s", handle.stderr_tail)
        if session.decode_errors:
            logger.warning("%d malformed capture lines were skipped", session.decode_errors)

        with self._lock:
            if summary.total_frames == 0 and not session.stop_requested:
                self._emit(self._early_exit_error(session, handle))
            self._emit(SessionComplete(summary))
            self._finish(session)

        logger.info(
            "FPS session ended: %s | avg %.1f FPS | 1%% low %.1f | %d frames | %.0fs",
            summary.process_name,
            summary.avg_fps,
            summary.fps_1_low,
            summary.total_frames,
            summary.duration_secs,
        )

    @staticmethod
    def _early_exit_error(session: _ActiveSession, handle: CaptureHandle) -> MonitoringError:
        """
        Classify a capture that ended before delivering any frame.

        A refused trace session is reported only on stderr, after the capture
        tool has started.
        """
        stderr_tail = handle.stderr_tail
        if reports_permission_failure(stderr_tail):
            kind = ErrorKind.PERMISSION_DENIED
            message = (
                f"The capture tool was refused a trace session for {session.process_name}; "
                "run as administrator or join the Performance Log Users group"
            )
        else:
            kind = ErrorKind.UNEXPECTED_EXIT
            message = (
                f"Capture ended before any frames of {session.process_name} were received; "
                "is the process running?"
            )
        if stderr_tail:
            message = f"{message}\n{stderr_tail}"
        return MonitoringError(kind, message)

    def _fault(self, session: _ActiveSession, kind: ErrorKind, message: str) -> None:
        """Report an unrecoverable error and return to STOPPED."""
        logger.error("FPS monitoring for %s failed (%s): %s", session.process_name, kind.value, message)
        with self._lock:
            self._emit(MonitoringError(kind, message))
            self._state = MonitorState.FAULTED
            # FAULTED is acknowledged at once; every run ends in STOPPED
            self._finish(session)

    def _finish(self, session: _ActiveSession) -> None:
        """Move to STOPPED. Caller holds the lock."""
        self._state = MonitorState.STOPPED
        self._session = None
        self._current_fps = None
        self._emit(MonitoringStopped(session.process_name))
