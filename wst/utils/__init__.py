# Utils module for wst
from .formatting import clamp, hide_auth, is_finite_number, round_half_up, to_precision
from .logging_utils import setup_logging

__all__ = [
    "clamp", "hide_auth", "is_finite_number", "round_half_up", "to_precision",
    "setup_logging",
]
