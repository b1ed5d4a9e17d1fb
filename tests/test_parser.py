"""
Tests for the Bronze spreadsheet parser and the short-call policy.
"""

from datetime import datetime

import pytest

from call_engine.engine import filter_short_calls
from call_engine.exceptions import SpreadsheetParseError
from call_engine.stages.stage1_parser import (
    SpreadsheetParserStage,
    format_start_time,
    parse_duration,
    serial_to_datetime,
)

from tests.factories import build_csv, build_xlsx, call_row, make_bronze


@pytest.fixture
def parser() -> SpreadsheetParserStage:
    return SpreadsheetParserStage()


class TestSheetSelection:
    """The "Calls" sheet wins over sheet order"""

    def test_prefers_calls_sheet(self, parser):
        data = build_xlsx(
            [call_row(agent="From Calls")],
            extra_sheets={"Summary": [{"Agent Name": "From Summary"}]},
        )
        calls = parser.process(data)
        assert len(calls) == 1
        assert calls[0].raw_agent_name == "From Calls"

    def test_falls_back_to_first_sheet(self, parser):
        data = build_xlsx([call_row(agent="Only Sheet")], sheet_name="Export")
        calls = parser.process(data)
        assert [c.raw_agent_name for c in calls] == ["Only Sheet"]


class TestRowMapping:
    """Column mapping and blank handling"""

    def test_maps_columns_in_sheet_order(self, parser):
        rows = [call_row(agent="A", duration=30), call_row(agent="B", duration=45)]
        calls = parser.process(build_xlsx(rows))

        assert [c.raw_agent_name for c in calls] == ["A", "B"]
        assert calls[0].duration_seconds == 30
        assert calls[0].call_status == "Answered"
        assert calls[0].tracking_number == "5550001111"
        assert calls[0].source == "Google Ads"
        assert calls[0].transcript.startswith("Agent:")

    def test_ids_are_unique(self, parser):
        calls = parser.process(build_xlsx([call_row() for _ in range(5)]))
        assert len({c.id for c in calls}) == 5
        assert calls[0].id.startswith("bronze-1-")

    def test_missing_columns_default(self, parser):
        calls = parser.process(build_xlsx([{"Agent Name": "Solo"}]))
        call = calls[0]
        assert call.transcript == ""
        assert call.duration_seconds == 0
        assert call.start_time == ""
        assert call.recording_url is None

    def test_blank_cells_default(self, parser):
        rows = [call_row(), call_row(transcript=None, duration=None, start_time=None)]
        call = parser.process(build_xlsx(rows))[1]
        assert call.transcript == ""
        assert call.duration_seconds == 0
        assert call.start_time == ""

    def test_tracking_number_keeps_digits(self, parser):
        calls = parser.process(build_xlsx([call_row(**{"Tracking Number": 5551234567})]))
        assert calls[0].tracking_number == "5551234567"

    def test_empty_sheet_yields_no_calls(self, parser):
        assert parser.process(build_xlsx([])) == []


class TestCsvFallback:
    """Non-zip payloads are read as CSV"""

    def test_reads_csv(self, parser):
        data = build_csv([call_row(duration="42", start_time="45306.5")])
        calls = parser.process(data)
        assert calls[0].duration_seconds == 42
        assert calls[0].start_time == "2024-01-15 12:00"

    def test_empty_bytes_rejected(self, parser):
        with pytest.raises(SpreadsheetParseError):
            parser.process(b"")

    def test_corrupt_workbook_rejected(self, parser):
        with pytest.raises(SpreadsheetParseError) as exc_info:
            parser.process(b"PK\x03\x04 definitely not a workbook")
        assert exc_info.value.code == "invalid_file"


class TestStartTime:
    """Datetime, serial and string start times resolve to one format"""

    def test_datetime_cell(self, parser):
        data = build_xlsx([call_row(start_time=datetime(2024, 3, 5, 14, 7, 30))])
        assert parser.process(data)[0].start_time == "2024-03-05 14:07"

    def test_numeric_serial(self):
        assert format_start_time(45306.5) == "2024-01-15 12:00"

    def test_serial_epoch(self):
        assert serial_to_datetime(1) == datetime(1899, 12, 31)

    def test_string_is_parsed(self):
        assert format_start_time("2024-01-15T09:30:00") == "2024-01-15 09:30"

    def test_unparseable_string_kept(self):
        assert format_start_time("  sometime Tuesday ") == "sometime Tuesday"

    def test_blank(self):
        assert format_start_time(None) == ""
        assert format_start_time("   ") == ""


class TestDuration:
    """Duration coercion never raises"""

    @pytest.mark.parametrize("value,expected", [
        (90, 90),
        (12.7, 12),
        ("33", 33),
        ("abc", 0),
        (None, 0),
        (-5, 0),
        (float("nan"), 0),
    ])
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected


class TestShortCallFilter:
    """Calls under the minimum duration never reach triage"""

    def test_three_second_call_excluded(self):
        calls = [
            make_bronze("short", duration_seconds=3),
            make_bronze("edge", duration_seconds=5),
            make_bronze("long", duration_seconds=300),
        ]
        kept, skipped = filter_short_calls(calls, 5)
        assert [c.id for c in kept] == ["edge", "long"]
        assert skipped == 1
