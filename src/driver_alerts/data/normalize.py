"""
Canonical forms for spreadsheet scalars.

Every function is pure and returns None when the input cannot be
interpreted; callers turn that into a row error.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from driver_alerts.data.field_mapper import normalize_token
from driver_alerts.data.grid import is_blank

EXCEL_EPOCH = datetime(1899, 12, 30)
# Serials below 60 predate Excel's phantom 1900-02-29
EXCEL_PRE_LEAP_EPOCH = datetime(1899, 12, 31)
MAX_EXCEL_SERIAL = 2958465  # 9999-12-31

DEFAULT_PLATE_DENYLIST = (
    "rendszám",
    "terület",
    "telephely",
    "időpont",
    "irány",
    "töltött",
    "megtett",
    "összesen",
)
TRUE_TOKENS = {"true", "yes", "1", "y", "igen", "i"}

_SPACED_DOTS_RE = re.compile(r"(\d)\.\s+(?=\d{1,2}\.)")
_DATE_TIME_SPLIT_RE = re.compile(r"\s+|(?<=\d)T(?=\d)")
_ISO_RE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
_YMD_RE = re.compile(r"(\d{4})[./](\d{1,2})[./](\d{1,2})\.?")
_DMY_RE = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})\.?")
_MDY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_SHORT_YMD_RE = re.compile(r"(\d{2})[./-](\d{1,2})[./-](\d{1,2})\.?")
_MONTH_DAY_RE = re.compile(r"(\d{1,2})[./-](\d{1,2})\.?")
_TIME_RE = re.compile(
    r"(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?\s*(am|pm|a\.m\.|p\.m\.|de\.?|du\.?)?",
    re.IGNORECASE,
)
_HMS_DURATION_RE = re.compile(r"^(\d+):(\d{1,2})(?::(\d{1,2}))?$")
_NUMBER_RE = re.compile(r"^[-+]?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class Duration:
    minutes: int
    display: str

    @classmethod
    def from_minutes(cls, minutes: int) -> "Duration":
        return cls(minutes=minutes, display=f"{minutes // 60}:{minutes % 60:02d}")


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


def parse_number(value: Any) -> Optional[float]:
    """Numbers with a decimal comma, thousand separators or a unit suffix ("12,5 km")."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(" ", "").replace(" ", "")
    if not text:
        return None
    if "," in text and "." in text:
        # The right-most separator is the decimal mark
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    else:
        text = text.replace(",", ".")
    match = _NUMBER_RE.match(text)
    if not match:
        return None
    return float(match.group(0))


def excel_serial_to_datetime(serial: Any) -> Optional[datetime]:
    """
    Excel day count to calendar date-time. The integral part is days since the
    epoch, the fraction is the time of day (rounded to the second).
    """
    if serial is None or isinstance(serial, bool):
        return None
    try:
        value = float(serial)
    except (TypeError, ValueError):
        return None
    if value < 0 or value > MAX_EXCEL_SERIAL:
        return None
    base = EXCEL_EPOCH if value >= 60 else EXCEL_PRE_LEAP_EPOCH
    days = int(value)
    seconds = round((value - days) * 86400)
    return base + timedelta(days=days, seconds=seconds)


def _split_date_time(text: str) -> tuple[str, str]:
    text = _SPACED_DOTS_RE.sub(r"\1.", text.strip())
    parts = _DATE_TIME_SPLIT_RE.split(text, maxsplit=1)
    head = parts[0]
    rest = parts[1].strip() if len(parts) > 1 else ""
    return head, rest


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _parse_date_token(token: str, default_year: Optional[int]) -> Optional[str]:
    m = _ISO_RE.fullmatch(token) or _YMD_RE.fullmatch(token)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _DMY_RE.fullmatch(token)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    m = _MDY_RE.fullmatch(token)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(1)), int(m.group(2)))
    m = _SHORT_YMD_RE.fullmatch(token)
    if m:
        return _safe_date(2000 + int(m.group(1)), int(m.group(2)), int(m.group(3)))
    m = _MONTH_DAY_RE.fullmatch(token)
    if m and default_year:
        return _safe_date(default_year, int(m.group(1)), int(m.group(2)))
    return None


def normalize_date(value: Any, default_year: Optional[int] = None) -> Optional[str]:
    """
    Canonical YYYY-MM-DD. Partial tokens (YY.MM.DD, MM.DD) are completed with
    the 2000s century or with default_year; trailing weekday text is ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return None
    if isinstance(value, (int, float)):
        if value < 1:
            return None
        converted = excel_serial_to_datetime(value)
        return converted.date().isoformat() if converted else None

    token, _ = _split_date_time(str(value))
    if not token:
        return None
    if token.isdigit() and len(token) == 5:
        converted = excel_serial_to_datetime(int(token))
        return converted.date().isoformat() if converted else None
    return _parse_date_token(token, default_year)


def _format_time(hour: int, minute: int, second: int = 0) -> Optional[str]:
    if not (0 <= hour < 24 and 0 <= minute < 60 and 0 <= second < 60):
        return None
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def normalize_time(value: Any) -> Optional[str]:
    """Canonical HH:MM:SS from time objects, day fractions or clock strings (12h and 24h)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _format_time(value.hour, value.minute, value.second)
    if isinstance(value, time):
        return _format_time(value.hour, value.minute, value.second)
    if isinstance(value, timedelta):
        seconds = round(value.total_seconds())
        if not 0 <= seconds < 86400:
            return None
        return _format_time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)
    if isinstance(value, (int, float)):
        converted = excel_serial_to_datetime(value)
        if converted is None:
            return None
        return _format_time(converted.hour, converted.minute, converted.second)

    text = str(value).strip()
    if not text:
        return None
    match = _TIME_RE.search(text)
    if not match:
        number = parse_number(text)
        if number is not None and 0 <= number < 1 and "," not in text and ":" not in text:
            return normalize_time(number)
        return None

    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").lower().replace(".", "")
    if meridiem in ("pm", "du"):
        if hour > 12:
            return None
        if hour < 12:
            hour += 12
    elif meridiem in ("am", "de"):
        if hour > 12:
            return None
        if hour == 12:
            hour = 0
    return _format_time(hour, minute, second)


def normalize_datetime(value: Any, default_year: Optional[int] = None) -> Optional[str]:
    """Canonical "YYYY-MM-DD HH:MM:SS"; a missing time part means midnight."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.replace(microsecond=0).strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return f"{value.isoformat()} 00:00:00"
    if isinstance(value, (int, float)):
        if value < 1:
            return None
        converted = excel_serial_to_datetime(value)
        return converted.strftime("%Y-%m-%d %H:%M:%S") if converted else None
    if not isinstance(value, str):
        return None

    token, rest = _split_date_time(value)
    day = normalize_date(token, default_year=default_year)
    if day is None:
        return None
    if not rest:
        return f"{day} 00:00:00"
    clock = normalize_time(rest)
    if clock is None:
        if ":" in rest:
            return None
        clock = "00:00:00"
    return f"{day} {clock}"


def normalize_duration(value: Any) -> Optional[Duration]:
    """
    Minutes plus an H:MM display. Integers are minute counts, values in (0, 1)
    are fractions of a day, "H:MM[:SS]" strings are clock durations.
    """
    if value is None or isinstance(value, bool) or isinstance(value, datetime):
        return None
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
        return Duration.from_minutes(round(seconds / 60)) if seconds >= 0 else None
    if isinstance(value, time):
        return Duration.from_minutes(value.hour * 60 + value.minute + round(value.second / 60))
    if isinstance(value, (int, float)):
        if value < 0:
            return None
        if 0 < value < 1:
            return Duration.from_minutes(round(value * 1440))
        return Duration.from_minutes(round(value))

    text = str(value).strip()
    if not text:
        return None
    match = _HMS_DURATION_RE.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        seconds = int(match.group(3) or 0)
        if minutes >= 60 or seconds >= 60:
            return None
        return Duration.from_minutes(hours * 60 + minutes + round(seconds / 60))
    number = parse_number(text)
    if number is None:
        return None
    return normalize_duration(number)


def validate_plate_number(value: Any, denylist: Iterable[str] = DEFAULT_PLATE_DENYLIST) -> Optional[str]:
    """
    Cleaned upper-case plate, or None when the token is a leaked header/label
    or does not look like a plate (hyphen, a letter, 5-10 characters).
    """
    text = clean_text(value)
    if text is None:
        return None
    folded = normalize_token(text)
    for token in denylist:
        banned = normalize_token(token)
        if banned and banned in folded:
            return None
    plate = re.sub(r"\s*-\s*", "-", text).upper()
    if "-" not in plate:
        return None
    if not 5 <= len(plate) <= 10:
        return None
    if not any(ch.isalpha() for ch in plate):
        return None
    return plate


def is_valid_plate_number(value: Any, denylist: Iterable[str] = DEFAULT_PLATE_DENYLIST) -> bool:
    return validate_plate_number(value, denylist) is not None


def coerce_boolean(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_TOKENS
    if is_blank(value):
        return False
    return bool(value)
