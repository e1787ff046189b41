# normalize.py
# Pure value normalizers: vendor date strings, spreadsheet date serials and
# free-text fields. Nothing here touches the network or raises on bad input.

import numbers
import re
from datetime import date, datetime, timedelta
from typing import Optional, Union

import pandas as pd

from .config import DATE_MODE_SERIAL

MULTISPACE_RE = re.compile(r"\s+")
LINEBREAK_RE = re.compile(r"[\r\n]+")
ORDER_PREFIX_RE = re.compile(r"^ORDER", re.I)
HASH_RUN_RE = re.compile(r"#+")

# Serial 1 is 1900-01-01, but the serial system also counts a 1900-02-29 that
# never existed, so from serial 61 on the epoch is one day earlier.
SERIAL_EPOCH = datetime(1899, 12, 30)
SERIAL_EPOCH_PRE_LEAP = datetime(1899, 12, 31)
SERIAL_LEAP_BUG = 61

DateLike = Union[date, datetime]


def clean_text(s) -> str:
    s = "" if s is None else str(s)
    return MULTISPACE_RE.sub(" ", s).strip()


def clean_notes(s) -> str:
    """Collapse embedded line breaks to single spaces and trim."""
    if s is None:
        return ""
    return LINEBREAK_RE.sub(" ", str(s)).strip()


def normalize_order_number(raw) -> str:
    """
    " ORDER  ##12345 " -> "#12345"
    Collapse whitespace, drop a leading literal ORDER, collapse '#' runs.
    """
    s = clean_text(raw)
    s = ORDER_PREFIX_RE.sub("", s).strip()
    return HASH_RUN_RE.sub("#", s)


def normalize_status(raw) -> str:
    return ("" if raw is None else str(raw)).strip().lower()


def parse_date(value) -> Optional[datetime]:
    """Best-effort parse of a vendor date string/object; None when unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return None if pd.isna(value) else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    ts = pd.to_datetime(text, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def format_date(text) -> str:
    """
    Render a date as YYYY/MM/DD.
    Unparseable input is returned unchanged; blank input gives "".
    """
    if text is None:
        return ""
    if isinstance(text, str) and not text.strip():
        return ""
    d = parse_date(text)
    if d is None:
        return text if isinstance(text, str) else str(text)
    return d.strftime("%Y/%m/%d")


def excel_serial_to_date(serial) -> Optional[datetime]:
    """
    Spreadsheet serial -> datetime (fractional days kept as time of day).
    0, blanks, non-numbers and anything landing before 1900 mean "no date".
    """
    if serial is None or isinstance(serial, bool):
        return None
    try:
        value = float(serial)
    except (TypeError, ValueError):
        return None
    if pd.isna(value) or value <= 0:
        return None

    epoch = SERIAL_EPOCH if value >= SERIAL_LEAP_BUG else SERIAL_EPOCH_PRE_LEAP
    try:
        result = epoch + timedelta(days=value)
    except OverflowError:
        return None
    if result.year < 1900:
        return None
    return result


def date_to_excel_serial(value: DateLike) -> Union[int, float, None]:
    """Inverse of excel_serial_to_date. Whole days come back as int."""
    if value is None or pd.isna(value):
        return None
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if value.tzinfo is not None:
        value = value.replace(tzinfo=None)

    delta = value - SERIAL_EPOCH
    serial = delta.days + delta.seconds / 86400.0 + delta.microseconds / 86400e6
    if serial < SERIAL_LEAP_BUG:
        serial -= 1
    if serial <= 0:
        return None
    if float(serial).is_integer():
        return int(serial)
    return serial


def to_output_date(value, mode: str):
    """
    Convert a cell holding a date (string, datetime or serial) into the
    configured output representation. Blank / invalid -> "".
    """
    if value is None:
        return ""
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        d = excel_serial_to_date(value)
    elif isinstance(value, str) and not value.strip():
        return ""
    else:
        d = parse_date(value)

    if d is None:
        return ""
    if mode == DATE_MODE_SERIAL:
        serial = date_to_excel_serial(d)
        return "" if serial is None else serial
    return d.strftime("%Y/%m/%d")
