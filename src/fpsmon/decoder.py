"""Decoding of the capture tool's CSV output into FrameRecords."""

import csv
import math
from dataclasses import dataclass

from fpsmon.errors import DecodeError, HeaderError
from fpsmon.models import FrameRecord

# Column names accepted for each field, in order of preference
APPLICATION_COLUMNS = ("Application",)
FRAME_TIME_COLUMNS = ("FrameTime", "MsBetweenPresents", "msBetweenPresents")
CPU_BUSY_COLUMNS = ("CPUBusy", "MsCPUBusy")
GPU_BUSY_COLUMNS = ("GPUBusy", "GPUTime", "MsGPUBusy", "MsGPUActive")


@dataclass(slots=True, frozen=True)
class CsvHeader:
    """Column layout captured from the header row at stream start."""

    columns: tuple[str, ...]
    application_index: int
    frame_time_index: int
    cpu_busy_index: int | None
    gpu_busy_index: int | None


def split_fields(line: str) -> list[str]:
    """Split one CSV line into stripped fields, honouring quotes."""
    try:
        row = next(csv.reader([line.strip()]), [])
    except csv.Error as exc:
        raise DecodeError(f"Unparseable line: {exc}") from None
    return [field.strip() for field in row]


def _find_column(columns: tuple[str, ...], candidates: tuple[str, ...]) -> int | None:
    """Index of the first candidate name present in ``columns``."""
    for name in candidates:
        if name in columns:
            return columns.index(name)
    return None


def parse_header(line: str) -> CsvHeader:
    """
    Parse the header row naming the capture tool's columns.

    Raises:
        HeaderError: If the application or frame time column is absent.
    """
    try:
        columns = tuple(split_fields(line))
    except DecodeError as exc:
        raise HeaderError(str(exc)) from None
    application_index = _find_column(columns, APPLICATION_COLUMNS)
    frame_time_index = _find_column(columns, FRAME_TIME_COLUMNS)
    if application_index is None or frame_time_index is None:
        raise HeaderError(f"Header is missing required columns: {line.strip()[:120]!r}")

    return CsvHeader(
        columns=columns,
        application_index=application_index,
        frame_time_index=frame_time_index,
        cpu_busy_index=_find_column(columns, CPU_BUSY_COLUMNS),
        gpu_busy_index=_find_column(columns, GPU_BUSY_COLUMNS),
    )


def _optional_float(fields: list[str], index: int | None) -> float:
    """Parse an optional busy-time field, defaulting to 0.0."""
    # Optional columns report "NA" or blanks when the tool has no value
    if index is None:
        return 0.0
    try:
        value = float(fields[index])
    except ValueError:
        return 0.0
    return value if math.isfinite(value) and value >= 0.0 else 0.0


def decode_line(
    header: CsvHeader, line: str, max_frame_time_ms: float | None = None
) -> FrameRecord | None:
    """
    Decode one data row against a previously parsed header.

    Returns None for rows that carry no data (blank lines, a repeated header).

    Raises:
        DecodeError: If the row is malformed. Callers skip the row and carry on.
    """
    if not line.strip():
        return None

    fields = split_fields(line)
    if tuple(fields) == header.columns:
        return None
    if len(fields) != len(header.columns):
        raise DecodeError(f"Expected {len(header.columns)} fields, got {len(fields)}")

    raw_frame_time = fields[header.frame_time_index]
    try:
        frame_time_ms = float(raw_frame_time)
    except ValueError:
        raise DecodeError(f"Non-numeric frame time {raw_frame_time!r}") from None

    too_long = max_frame_time_ms is not None and frame_time_ms >= max_frame_time_ms
    if not math.isfinite(frame_time_ms) or frame_time_ms <= 0.0 or too_long:
        raise DecodeError(f"Frame time out of range: {frame_time_ms}")

    return FrameRecord(
        application=fields[header.application_index],
        frame_time_ms=frame_time_ms,
        cpu_busy_ms=_optional_float(fields, header.cpu_busy_index),
        gpu_busy_ms=_optional_float(fields, header.gpu_busy_index),
    )


class FrameDecoder:
    """
    Line-by-line decoder for one capture stream.

    The first non-blank line is taken as the header; every following line is
    decoded against it by column name.
    """

    def __init__(self, max_frame_time_ms: float | None = None) -> None:
        """Initialize with an optional upper bound on frame time."""
        self._max_frame_time_ms = max_frame_time_ms
        self._header: CsvHeader | None = None

    @property
    def header(self) -> CsvHeader | None:
        """Header captured from the stream, or None before the first line."""
        return self._header

    def feed(self, line: str) -> FrameRecord | None:
        """Consume one line. Raises DecodeError or HeaderError like the helpers."""
        if self._header is None:
            if not line.strip():
                return None
            self._header = parse_header(line)
            return None
        return decode_line(self._header, line, self._max_frame_time_ms)
