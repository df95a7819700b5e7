"""Configuration for the FPS monitoring engine."""

import os
import shutil
from dataclasses import dataclass, replace
from pathlib import Path

from fpsmon.session import DEFAULT_WORST_FRAMES_CAPACITY

PRESENTMON_NAMES = ("PresentMon.exe", "PresentMon")


@dataclass(slots=True, frozen=True)
class MonitorConfig:
    """Tunables for one engine instance."""

    presentmon_path: Path | None = None
    snapshot_interval_secs: float = 1.0
    window_secs: float = 1.0
    stall_timeout_secs: float = 1.0  # Idle read time before a zero-fps snapshot
    terminate_grace_secs: float = 3.0
    worst_frames_capacity: int = DEFAULT_WORST_FRAMES_CAPACITY
    max_frame_time_ms: float | None = 1000.0

    @classmethod
    def from_env(cls, **overrides) -> "MonitorConfig":
        """
        Build a config from FPSMON_* environment variables.

        Keyword overrides win over the environment.
        """
        config = cls()
        env = os.environ
        if env.get("FPSMON_PRESENTMON"):
            config = replace(config, presentmon_path=Path(env["FPSMON_PRESENTMON"]))
        if env.get("FPSMON_GRACE_SECS"):
            config = replace(config, terminate_grace_secs=float(env["FPSMON_GRACE_SECS"]))
        if env.get("FPSMON_WORST_FRAMES"):
            config = replace(config, worst_frames_capacity=int(env["FPSMON_WORST_FRAMES"]))
        return replace(config, **overrides)


def locate_presentmon(config: MonitorConfig) -> Path | None:
    """
    Find the capture tool executable.

    Looks at the configured path, then ``bin/`` under the working directory and
    under the package, then PATH.
    """
    if config.presentmon_path is not None:
        return config.presentmon_path if config.presentmon_path.is_file() else None

    for base in (Path.cwd() / "bin", Path(__file__).parent / "bin"):
        for name in PRESENTMON_NAMES:
            candidate = base / name
            if candidate.is_file():
                return candidate

    for name in PRESENTMON_NAMES:
        found = shutil.which(name)
        if found:
            return Path(found)
    return None
