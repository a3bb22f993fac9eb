"""Small numeric / string formatting helpers shared by exporters."""
from __future__ import annotations

import math
import re

_HIDE_AUTH_RE = re.compile(r'(https?://)(.+?:.+?@)')


def clamp(value: float, lo: float, hi: float) -> float:
    return max(min(value, hi), lo)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))


def to_precision(value: float, precision: int = 3) -> str:
    """Format ``value`` with a fixed number of decimals (CSV friendly)."""
    if value is None or not math.isfinite(value):
        value = 0.0
    return f"{value:.{precision}f}"


def hide_auth(url: str) -> str:
    """Strip ``user:password@`` credentials from an http(s) URL."""
    if not url:
        return url
    return _HIDE_AUTH_RE.sub(r'\1', url)


def is_finite_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


__all__ = ["clamp", "round_half_up", "to_precision", "hide_auth", "is_finite_number"]
