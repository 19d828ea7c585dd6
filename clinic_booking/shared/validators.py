"""Shared validation utilities"""

import re
from datetime import date, datetime, time
from typing import Optional, Union

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def normalize_time(value: Union[str, time]) -> str:
    """
    Normalize a clock time to zero-padded "HH:MM".

    Accepts "H:MM", "HH:MM", "HH:MM:SS" strings and datetime.time objects.
    Seconds are dropped.

    Raises:
        ValueError: If the value is not a valid time of day
    """
    if isinstance(value, time):
        return f"{value.hour:02d}:{value.minute:02d}"

    if not isinstance(value, str):
        raise ValueError(f"Cannot convert {type(value)} to time")

    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid time format: {value!r}")

    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3) or 0)
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValueError(f"Invalid time of day: {value!r}")

    return f"{hours:02d}:{minutes:02d}"


def time_to_minutes(value: Union[str, time]) -> int:
    """Minutes since midnight for a clock time"""
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(total_minutes: int) -> str:
    """Format minutes since midnight as "HH:MM" (24:00 allowed as a closing bound)"""
    if total_minutes < 0 or total_minutes > 24 * 60:
        raise ValueError(f"Minutes out of range: {total_minutes}")
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def parse_time_slot(time_slot: str) -> tuple[int, int]:
    """
    Parse "HH:MM-HH:MM" (or "HH:MM:SS-HH:MM:SS") into (start, end) minutes.

    Raises:
        ValueError: If the slot is malformed or does not end after it starts
    """
    if not time_slot or "-" not in time_slot:
        raise ValueError(f"Invalid time slot: {time_slot!r}")

    start_raw, end_raw = time_slot.split("-", 1)
    start, end = time_to_minutes(start_raw), time_to_minutes(end_raw)
    if end <= start:
        raise ValueError(f"Time slot must end after it starts: {time_slot!r}")
    return start, end


def format_time_slot(start_minutes: int, end_minutes: int) -> str:
    return f"{minutes_to_time(start_minutes)}-{minutes_to_time(end_minutes)}"


def normalize_time_slot(time_slot: str) -> str:
    """Round-trip a stored slot to its canonical "HH:MM-HH:MM" form"""
    return format_time_slot(*parse_time_slot(time_slot))


def parse_date(value: Union[str, date, datetime]) -> date:
    """Accept date objects or YYYY-MM-DD strings"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD): {value!r}")


def normalize_reference_code(code: Optional[str]) -> str:
    """Strip spaces/dashes from a staff-entered reference code and uppercase it"""
    return re.sub(r"[^A-Za-z0-9]", "", code or "").upper()
