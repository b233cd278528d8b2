# utils/helpers.py
from datetime import date, datetime
import math

from ..constants import MONEY_PLACES, QTY_PLACES


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def normalize_date(value) -> str:
    """
    Return `value` as an ISO 'YYYY-MM-DD' string.

    Accepts date/datetime objects or ISO strings (a time part is dropped).
    Raises ValueError for anything that is not a real calendar date, so
    lexical ordering of stored dates always matches chronological ordering.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value or "").strip()
    return date.fromisoformat(text[:10]).isoformat()


def round_money(x: float) -> float:
    """Round to MONEY_PLACES; +0.0 instead of -0.0."""
    return round(float(x), MONEY_PLACES) + 0.0


def round_qty(x: float) -> float:
    return round(float(x), QTY_PLACES) + 0.0


def round_half_up(x: float) -> int:
    """Integer rounding with .5 going up (Python's round() is banker's rounding)."""
    return int(math.floor(float(x) + 0.5))
