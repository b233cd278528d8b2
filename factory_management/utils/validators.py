# utils/validators.py
import math

from ..database.errors import ValidationError


def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to a finite float.

    Returns:
        (ok: bool, value: float|None)
    """
    if isinstance(x, bool):
        return False, None
    try:
        v = float(x)
    except (TypeError, ValueError):
        return False, None
    if not math.isfinite(v):
        return False, None
    return True, v


# ---- Domain guards (raise ValidationError) ----

def require_number(x, field_label: str) -> float:
    ok, val = try_parse_float(x)
    if not ok:
        raise ValidationError(f"{field_label} must be a number (got {x!r}).")
    return val  # type: ignore[return-value]


def require_non_negative(x, field_label: str) -> float:
    val = require_number(x, field_label)
    if val < 0:
        raise ValidationError(f"{field_label} cannot be negative.")
    return val


def require_positive(x, field_label: str) -> float:
    val = require_number(x, field_label)
    if val <= 0:
        raise ValidationError(f"{field_label} must be greater than zero.")
    return val


def require_choice(value, choices, field_label: str) -> str:
    if value not in choices:
        raise ValidationError(
            f"{field_label} must be one of: {', '.join(choices)} (got {value!r})."
        )
    return value


def require_non_empty(value, field_label: str) -> str:
    if not non_empty(value):
        raise ValidationError(f"{field_label} cannot be empty.")
    return str(value).strip()
