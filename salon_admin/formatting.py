import math
import re
from datetime import datetime, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from dateutil import parser

from .config import CURRENCY_SYMBOL, VIEWER_TIMEZONE

PLACEHOLDER = "N/A"

_PLAIN_NUMBER = re.compile(r"\d+(\.\d*)?|\.\d+")


@lru_cache(maxsize=None)
def viewer_tz() -> tzinfo:
    return ZoneInfo(VIEWER_TIMEZONE)


def to_local(value, tz: tzinfo | None = None) -> datetime | None:
    """
    Convert a stored timestamp (datetime or ISO string) to the viewer's zone.

    Naive values are taken as already being local wall-clock time, the way
    the edit form stores them. Returns None for missing or malformed input.
    """
    tz = tz or viewer_tz()
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = parser.isoparse(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def format_currency(value, symbol: str = CURRENCY_SYMBOL) -> str:
    if isinstance(value, str):
        # accept amounts that were formatted once already ("$1,234.50", "-$5")
        text = value.strip().replace(",", "")
        sign = "-" if text.startswith("-") else ""
        text = text.removeprefix("-").removeprefix(symbol)
        if not _PLAIN_NUMBER.fullmatch(text):
            return PLACEHOLDER
        value = sign + text
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return PLACEHOLDER
    if math.isnan(amount) or math.isinf(amount):
        return PLACEHOLDER
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_duration(minutes) -> str:
    try:
        total = int(round(float(minutes)))
    except (TypeError, ValueError):
        return PLACEHOLDER
    if total < 0:
        return PLACEHOLDER
    if total >= 60:
        hours, rest = divmod(total, 60)
        return f"{hours}h {rest}m" if rest else f"{hours}h"
    return f"{total}m"


def format_booking_duration(start, end) -> str:
    start_dt = to_local(start)
    end_dt = to_local(end)
    if start_dt is None or end_dt is None:
        return PLACEHOLDER
    return format_duration((end_dt - start_dt).total_seconds() / 60)


def format_date(value, tz: tzinfo | None = None) -> str:
    dt = to_local(value, tz)
    if dt is None:
        return PLACEHOLDER
    return f"{dt:%A, %B} {dt.day}, {dt.year}"


def format_time(value, tz: tzinfo | None = None) -> str:
    dt = to_local(value, tz)
    if dt is None:
        return PLACEHOLDER
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{dt.hour % 12 or 12}:{dt.minute:02d} {suffix}"


def format_datetime(value, tz: tzinfo | None = None) -> str:
    dt = to_local(value, tz)
    if dt is None:
        return PLACEHOLDER
    return f"{format_date(dt, tz)} at {format_time(dt, tz)}"


def to_local_input(value, tz: tzinfo | None = None) -> str:
    """datetime-local input value ("YYYY-MM-DDTHH:MM"), empty when missing."""
    dt = to_local(value, tz)
    if dt is None:
        return ""
    return dt.strftime("%Y-%m-%dT%H:%M")
