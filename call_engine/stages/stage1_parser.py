"""
Stage 1: Spreadsheet Parser (Bronze)
====================================
Deterministic conversion of a call-tracking export into BronzeCall records.

Rules:
- Use the "Calls" sheet when present, otherwise the first sheet
- Blank or missing cells become "" or 0, never an error
- Start times arrive as datetimes, spreadsheet serials or strings and are
  normalized to "YYYY-MM-DD HH:MM"
- Non-zip payloads are read as CSV
"""

import io
import logging
import math
import numbers
import uuid
from datetime import datetime, timedelta
from typing import Any, List, Optional

import pandas as pd

from ..models.schemas import BronzeCall
from ..config.settings import COLUMN_MAP, PREFERRED_SHEET
from ..exceptions import SpreadsheetParseError

logger = logging.getLogger(__name__)

# Day zero of the spreadsheet date system (accounts for the 1900 leap-year bug)
SPREADSHEET_EPOCH = datetime(1899, 12, 30)
CANONICAL_TIME_FORMAT = "%Y-%m-%d %H:%M"
ZIP_SIGNATURE = b"PK"


class SpreadsheetParserStage:
    """
    Stage 1: Parse raw tabular bytes into BronzeCall records.
    """

    def __init__(self, preferred_sheet: str = PREFERRED_SHEET):
        self.preferred_sheet = preferred_sheet

    def process(self, data: bytes) -> List[BronzeCall]:
        """
        Parse spreadsheet bytes.

        Args:
            data: Raw .xlsx or .csv bytes

        Returns:
            BronzeCall records in sheet order
        """
        df = self._read_frame(data)
        run_token = uuid.uuid4().hex[:8]

        calls = [
            self._row_to_bronze(row, index, run_token)
            for index, row in enumerate(df.to_dict(orient="records"))
        ]
        logger.info(f"Parsed {len(calls)} rows into Bronze calls")
        return calls

    def _read_frame(self, data: bytes) -> pd.DataFrame:
        """Load the relevant sheet as a DataFrame of raw cell values"""
        if not data:
            raise SpreadsheetParseError("Uploaded file is empty")

        try:
            if data[:2] == ZIP_SIGNATURE:
                sheets = pd.read_excel(
                    io.BytesIO(data), sheet_name=None, dtype=object, engine="openpyxl"
                )
                if not sheets:
                    return pd.DataFrame()
                name = self.preferred_sheet if self.preferred_sheet in sheets else next(iter(sheets))
                logger.debug(f"Reading sheet {name!r} of {list(sheets)}")
                return sheets[name]

            return pd.read_csv(io.BytesIO(data), dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as e:
            raise SpreadsheetParseError("Could not read spreadsheet", details=str(e)[:200])

    def _row_to_bronze(self, row: dict, index: int, run_token: str) -> BronzeCall:
        """Map one sheet row onto the Bronze schema"""
        def cell(field: str) -> str:
            return _cell_text(row.get(COLUMN_MAP[field]))

        return BronzeCall(
            id=f"bronze-{index + 1}-{run_token}",
            raw_agent_name=cell("raw_agent_name"),
            raw_agent_number=cell("raw_agent_number"),
            call_status=cell("call_status"),
            start_time=format_start_time(row.get(COLUMN_MAP["start_time"])),
            duration_seconds=parse_duration(row.get(COLUMN_MAP["duration_seconds"])),
            tracking_number=cell("tracking_number"),
            source=cell("source"),
            transcript=cell("transcript"),
            recording_url=cell("recording_url") or None,
            sentiment=cell("sentiment") or None,
            number_name=cell("number_name"),
            medium=cell("medium"),
            campaign=cell("campaign"),
            note=cell("note"),
            attribution=cell("attribution"),
        )


# =============================================================================
# Cell helpers
# =============================================================================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def _cell_text(value: Any) -> str:
    """Render a cell as text; integral floats lose their ".0" suffix"""
    if _is_blank(value):
        return ""
    if _is_number(value) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


def parse_duration(value: Any) -> int:
    """Coerce a duration cell to whole non-negative seconds, 0 when unusable"""
    if _is_blank(value):
        return 0
    try:
        number = float(pd.to_numeric(value, errors="coerce"))
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return max(0, int(number))


def serial_to_datetime(serial: float) -> datetime:
    """Convert a spreadsheet date serial to a datetime, rounded to the second"""
    return SPREADSHEET_EPOCH + timedelta(seconds=round(float(serial) * 86400))


def format_start_time(value: Any) -> str:
    """Normalize a start-time cell to "YYYY-MM-DD HH:MM" where possible"""
    if _is_blank(value):
        return ""

    if isinstance(value, datetime):
        return value.strftime(CANONICAL_TIME_FORMAT)

    if _is_number(value):
        try:
            return serial_to_datetime(value).strftime(CANONICAL_TIME_FORMAT)
        except (ValueError, OverflowError):
            return _cell_text(value)

    text = str(value).strip()

    # CSV exports carry serials as text
    try:
        return serial_to_datetime(float(text)).strftime(CANONICAL_TIME_FORMAT)
    except (ValueError, OverflowError):
        pass

    parsed: Optional[pd.Timestamp] = pd.to_datetime(text, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return text
    return parsed.strftime(CANONICAL_TIME_FORMAT)
