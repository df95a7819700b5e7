"""Tests for decoding capture tool output."""

import pytest

from fpsmon.decoder import FrameDecoder, decode_line, parse_header, split_fields
from fpsmon.errors import DecodeError, ErrorKind, HeaderError

HEADER = "Application,ProcessID,SwapChainAddress,Runtime,FrameTime,CPUBusy,GPUBusy"


class TestParseHeader:
    """Tests for header parsing."""

    def test_columns_found_by_name(self):
        """Test columns are located by name."""
        header = parse_header(HEADER)

        assert header.application_index == 0
        assert header.frame_time_index == 4
        assert header.cpu_busy_index == 5
        assert header.gpu_busy_index == 6

    def test_ms_between_presents_alias(self):
        """Test that older tool versions' frame time column is accepted."""
        header = parse_header("Application,ProcessID,MsBetweenPresents,MsGPUActive")

        assert header.frame_time_index == 2
        assert header.cpu_busy_index is None
        assert header.gpu_busy_index == 3

    def test_frame_time_preferred_over_alias(self):
        """Test FrameTime wins when both frame-time columns are present."""
        header = parse_header("Application,MsBetweenPresents,FrameTime")

        assert header.frame_time_index == 2

    def test_missing_frame_time_column(self):
        """Test a header without a frame-time column is rejected."""
        with pytest.raises(HeaderError) as excinfo:
            parse_header("Application,ProcessID,Runtime")

        assert excinfo.value.kind is ErrorKind.DECODE_FAILED

    def test_missing_application_column(self):
        """Test a header without Application is rejected."""
        with pytest.raises(HeaderError):
            parse_header("ProcessID,FrameTime")

    def test_whitespace_around_names(self):
        """Test whitespace around column names is ignored."""
        header = parse_header(" Application , FrameTime ,GPUBusy\r")

        assert header.columns == ("Application", "FrameTime", "GPUBusy")


class TestDecodeLine:
    """Tests for decoding data rows."""

    def test_decode_valid_row(self):
        """Test a well-formed row decodes to a FrameRecord."""
        header = parse_header(HEADER)
        record = decode_line(header, "game.exe,1234,0x1,DXGI,16.667,4.5,9.25")

        assert record is not None
        assert record.application == "game.exe"
        assert record.frame_time_ms == pytest.approx(16.667)
        assert record.cpu_busy_ms == pytest.approx(4.5)
        assert record.gpu_busy_ms == pytest.approx(9.25)

    def test_column_order_does_not_matter(self):
        """Test fields follow the header, not a fixed order."""
        header = parse_header("GPUBusy,FrameTime,Application")
        record = decode_line(header, "2.0,10.0,game.exe")

        assert record is not None
        assert record.application == "game.exe"
        assert record.frame_time_ms == 10.0
        assert record.gpu_busy_ms == 2.0
        assert record.cpu_busy_ms == 0.0

    def test_unknown_columns_ignored(self):
        """Test extra columns are ignored."""
        header = parse_header("Application,Foo,FrameTime,Bar")
        record = decode_line(header, "game.exe,x,12.5,y")

        assert record is not None
        assert record.frame_time_ms == 12.5

    def test_quoted_application_name(self):
        """Test quoted fields are unquoted."""
        header = parse_header("Application,FrameTime")
        record = decode_line(header, '"My, Game.exe",20.0')

        assert record is not None
        assert record.application == "My, Game.exe"

    def test_blank_line_is_not_data(self):
        """Test a blank line is not a data row."""
        header = parse_header(HEADER)

        assert decode_line(header, "") is None
        assert decode_line(header, "   ") is None

    def test_repeated_header_is_skipped(self):
        """Test a repeated header row is skipped."""
        header = parse_header(HEADER)

        assert decode_line(header, HEADER) is None

    def test_wrong_field_count(self):
        """Test a row with the wrong field count is a DecodeError."""
        header = parse_header(HEADER)

        with pytest.raises(DecodeError):
            decode_line(header, "game.exe,1234,16.6")

    def test_non_numeric_frame_time(self):
        """Test a non-numeric frame time is a DecodeError."""
        header = parse_header(HEADER)

        with pytest.raises(DecodeError) as excinfo:
            decode_line(header, "game.exe,1234,0x1,DXGI,fast,4.5,9.25")

        assert excinfo.value.kind is ErrorKind.DECODE_WARNING

    def test_non_positive_frame_time(self):
        """Test zero and negative frame times are rejected."""
        header = parse_header(HEADER)

        with pytest.raises(DecodeError):
            decode_line(header, "game.exe,1234,0x1,DXGI,0,4.5,9.25")
        with pytest.raises(DecodeError):
            decode_line(header, "game.exe,1234,0x1,DXGI,-3.0,4.5,9.25")

    def test_non_finite_frame_time(self):
        """Test NaN and infinite frame times are rejected."""
        header = parse_header(HEADER)

        with pytest.raises(DecodeError):
            decode_line(header, "game.exe,1234,0x1,DXGI,nan,4.5,9.25")

    def test_frame_time_above_limit(self):
        """Test frame times at or above the limit are rejected."""
        header = parse_header(HEADER)

        with pytest.raises(DecodeError):
            decode_line(header, "game.exe,1234,0x1,DXGI,1500,4.5,9.25", max_frame_time_ms=1000.0)
        assert decode_line(header, "game.exe,1234,0x1,DXGI,1500,4.5,9.25") is not None

    def test_optional_na_values_default_to_zero(self):
        """Test NA busy times decode as zero."""
        header = parse_header(HEADER)
        record = decode_line(header, "game.exe,1234,0x1,DXGI,16.6,NA,")

        assert record is not None
        assert record.cpu_busy_ms == 0.0
        assert record.gpu_busy_ms == 0.0


class TestFrameDecoder:
    """Tests for the stateful line decoder."""

    def test_first_line_is_header(self):
        """Test the first line is taken as the header."""
        decoder = FrameDecoder()

        assert decoder.header is None
        assert decoder.feed(HEADER) is None
        assert decoder.header is not None

        record = decoder.feed("game.exe,1234,0x1,DXGI,10.0,1.0,2.0")
        assert record is not None
        assert record.frame_time_ms == 10.0

    def test_leading_blank_lines_skipped(self):
        """Test blank lines before the header are skipped."""
        decoder = FrameDecoder()

        assert decoder.feed("") is None
        assert decoder.header is None
        decoder.feed(HEADER)
        assert decoder.header is not None

    def test_bad_line_does_not_poison_decoder(self):
        """Test decoding continues after a malformed row."""
        decoder = FrameDecoder()
        decoder.feed(HEADER)

        with pytest.raises(DecodeError):
            decoder.feed("garbage")

        record = decoder.feed("game.exe,1234,0x1,DXGI,10.0,1.0,2.0")
        assert record is not None


def test_split_fields_strips():
    """Test split_fields strips whitespace around each field."""
    assert split_fields(" a , b ,c") == ["a", "b", "c"]
