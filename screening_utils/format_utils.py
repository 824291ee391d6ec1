"""
Display formatting for analysis result rows.

Result tables are rendered by presentation and export collaborators as plain
key/value strings, so every number is formatted here once. Missing or
non-finite values always render as an em dash, never as NaN.
"""

import math
from typing import Optional

DASH = "—"


def _is_number(value) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def fmt_num(value: Optional[float], decimals: int = 2) -> str:
    """Thousands-separated number with a fixed number of decimals."""
    if not _is_number(value):
        return DASH
    return f"{float(value):,.{decimals}f}"


def fmt_fixed(value: Optional[float], decimals: int = 1, suffix: str = "") -> str:
    """Plain fixed-point number with an optional unit suffix (e.g. ' m', '°')."""
    if not _is_number(value):
        return DASH
    return f"{float(value):.{decimals}f}{suffix}"


def fmt_meters(meters: Optional[float]) -> str:
    if not _is_number(meters):
        return DASH
    if meters >= 1000:
        return f"{fmt_num(meters / 1000, 2)} km ({fmt_num(meters, 0)} m)"
    return f"{fmt_num(meters, 0)} m"


def fmt_area(square_meters: Optional[float]) -> str:
    if not _is_number(square_meters):
        return DASH
    hectares = square_meters / 10000
    if hectares >= 1:
        return f"{fmt_num(hectares, 2)} ha ({fmt_num(square_meters, 0)} m²)"
    return f"{fmt_num(square_meters, 0)} m²"


def fmt_distance(meters: Optional[float]) -> Optional[str]:
    """Whole-meter distance label ('250 m'), rounding halves up."""
    if not _is_number(meters):
        return None
    return f"{int(math.floor(float(meters) + 0.5))} m"


def slope_pct_to_ratio(grade_pct: Optional[float]) -> str:
    """
    Express a grade in percent as a '1:N' slope ratio.

    N = 100 / |grade|. Grades below 0.0001 % are shown as flat.
    """
    if not _is_number(grade_pct):
        return DASH
    g = abs(float(grade_pct))
    if g < 0.0001:
        return "Flat (≈ 1:∞)"
    n = 100 / g
    if n >= 1000:
        return f"1:{fmt_num(n, 0)} (very gentle)"
    if n >= 100:
        return f"1:{fmt_num(n, 0)}"
    if n >= 10:
        return f"1:{fmt_num(n, 1)}"
    return f"1:{fmt_num(n, 2)}"
