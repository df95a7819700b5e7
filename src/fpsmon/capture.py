"""Supervision of the external frame capture process (PresentMon)."""

import logging
import subprocess
import sys
import threading
from collections import deque
from pathlib import Path
from typing import IO, Protocol

import psutil

from fpsmon.config import MonitorConfig, locate_presentmon
from fpsmon.errors import CaptureToolMissing, PermissionDenied, SpawnFailed

logger = logging.getLogger(__name__)

# Windows error codes for access denied and elevation required
_WINERROR_PERMISSION = (5, 740)
_STDERR_TAIL_LINES = 50
# Phrases PresentMon prints when the OS refuses its trace session
_PERMISSION_MARKERS = (
    "access denied",
    "access is denied",
    "administrative privileges",
    "administrator",
    "performance log users",
    "requires elevation",
)


class CaptureHandle(Protocol):
    """A running capture whose output is consumed line by line."""

    def read_line(self) -> str | None:
        """Block for the next output line. None means end of stream."""
        ...

    def terminate(self) -> None:
        """Stop the capture. Idempotent and bounded in time."""
        ...

    @property
    def exit_code(self) -> int | None: ...

    @property
    def stderr_tail(self) -> str: ...


class CaptureLauncher(Protocol):
    """Starts a capture bound to one process name."""

    def launch(self, process_name: str) -> CaptureHandle: ...


def reports_permission_failure(stderr_text: str) -> bool:
    """Whether the capture tool's error output says it lacked tracing rights."""
    text = stderr_text.lower()
    return any(marker in text for marker in _PERMISSION_MARKERS)


class PresentMonProcess:
    """
    Handle on a running PresentMon child process.

    Standard error is drained on a daemon thread into a bounded tail so the
    child never blocks on a full pipe.
    """

    def __init__(self, proc: subprocess.Popen, grace_secs: float) -> None:
        """Wrap a started child and begin draining its standard error."""
        self._proc = proc
        self._grace_secs = grace_secs
        self._terminate_lock = threading.Lock()
        self._terminated = False
        self._stderr_lines: deque[str] = deque(maxlen=_STDERR_TAIL_LINES)
        self._stderr_thread: threading.Thread | None = None
        if proc.stderr is not None:
            self._stderr_thread = threading.Thread(
                target=self._drain_stderr,
                args=(proc.stderr,),
                daemon=True,
                name="CaptureStderr",
            )
            self._stderr_thread.start()

    @property
    def pid(self) -> int:
        """Process id of the capture tool."""
        return self._proc.pid

    @property
    def exit_code(self) -> int | None:
        """Exit code, or None while the process is still running."""
        return self._proc.poll()

    @property
    def stderr_tail(self) -> str:
        """The last lines the capture tool wrote to standard error."""
        return "\n".join(self._stderr_lines)

    def _drain_stderr(self, stream: IO[str]) -> None:
        """Collect standard error lines until the pipe closes."""
        try:
            for line in stream:
                line = line.rstrip()
                if line:
                    self._stderr_lines.append(line)
                    logger.debug("capture stderr: %s", line)
        except (OSError, ValueError):
            # Pipe closed by terminate()
            return

    def read_line(self) -> str | None:
        """Read the next stdout line without its line ending. None at end of stream."""
        stdout = self._proc.stdout
        if stdout is None:
            return None
        try:
            line = stdout.readline()
        except (OSError, ValueError):
            # Pipe closed by terminate()
            return None
        if not line:
            return None
        return line.rstrip("\r\n")

    def terminate(self) -> None:
        """
        Ask the capture to exit, force-killing it after the grace period.

        Children of the capture tool are killed along with it, and both output
        pipes are closed once the process is gone.
        """
        with self._terminate_lock:
            if self._terminated:
                return
            self._terminated = True

            try:
                if self._proc.poll() is None:
                    children = self._children()
                    self._proc.terminate()
                    try:
                        self._proc.wait(timeout=self._grace_secs)
                    except subprocess.TimeoutExpired:
                        logger.warning(
                            "Capture process %d did not exit within %.1fs, killing it",
                            self._proc.pid,
                            self._grace_secs,
                        )
                        self._kill(children)
                        self._proc.kill()
                        try:
                            self._proc.wait(timeout=self._grace_secs)
                        except subprocess.TimeoutExpired:
                            logger.error("Capture process %d survived kill", self._proc.pid)

                if self._stderr_thread is not None:
                    self._stderr_thread.join(timeout=self._grace_secs)
            finally:
                self._close_pipes()
            logger.debug(
                "Capture process %d exited with code %s", self._proc.pid, self._proc.returncode
            )

    def _close_pipes(self) -> None:
        """Close the child's stdout and stderr pipes."""
        for stream in (self._proc.stdout, self._proc.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError as exc:
                logger.debug("Closing capture pipe failed: %s", exc)

    def _children(self) -> list[psutil.Process]:
        """Descendants of the capture tool, collected before it is signalled."""
        try:
            return psutil.Process(self._proc.pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return []

    def _kill(self, processes: list[psutil.Process]) -> None:
        """Force-kill the given processes, skipping any already gone."""
        for proc in processes:
            try:
                proc.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue


class PresentMonLauncher:
    """Launches PresentMon streaming CSV for one process to standard output."""

    def __init__(self, config: MonitorConfig | None = None) -> None:
        """Initialize the launcher with engine configuration."""
        self._config = config or MonitorConfig()

    def resolve_executable(self) -> Path:
        """Locate PresentMon, raising CaptureToolMissing when it is absent."""
        executable = locate_presentmon(self._config)
        if executable is None:
            raise CaptureToolMissing(
                "PresentMon was not found. Download it from "
                "https://github.com/GameTechDev/PresentMon/releases and place it in bin/ "
                "or on PATH."
            )
        return executable

    def build_command(self, process_name: str) -> list[str]:
        """Command line that captures only ``process_name``."""
        return [
            str(self.resolve_executable()),
            "--output_stdout",
            "--stop_existing_session",
            "--terminate_on_proc_exit",
            "--process_name",
            process_name,
        ]

    def launch(self, process_name: str) -> PresentMonProcess:
        """
        Start the capture.

        Raises:
            CaptureToolMissing: The executable cannot be found.
            PermissionDenied: The OS refused to start it, typically for lack
                of administrator rights.
            SpawnFailed: Any other failure to start the process.
        """
        command = self.build_command(process_name)
        logger.info("Starting capture: %s", " ".join(command))

        creationflags = subprocess.CREATE_NO_WINDOW if sys.platform == "win32" else 0
        try:
            proc = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                creationflags=creationflags,
            )
        except FileNotFoundError as exc:
            raise CaptureToolMissing(f"Capture tool not found: {command[0]}") from exc
        except PermissionError as exc:
            raise PermissionDenied(
                f"Permission denied starting {command[0]}; run as administrator"
            ) from exc
        except OSError as exc:
            if getattr(exc, "winerror", None) in _WINERROR_PERMISSION:
                raise PermissionDenied(
                    f"Elevation required to start {command[0]}; run as administrator"
                ) from exc
            raise SpawnFailed(f"Failed to start {command[0]}: {exc}") from exc

        return PresentMonProcess(proc, self._config.terminate_grace_secs)
