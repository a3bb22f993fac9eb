"""wst: streaming stats aggregation and alert-rule engine.

Collects per-tick metric samples from many load-test sessions, folds them
into compact distributions, evaluates declarative alert rules against them
and exports the result (console, CSV, Prometheus Pushgateway, report file).
"""
from __future__ import annotations

from .version import __version__, get_version

__all__ = ["__version__", "get_version"]
