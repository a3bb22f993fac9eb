"""wst exception hierarchy.

Define a small, clear exception tree for categorizing failures across the
engine. Configuration problems are raised at construction time; collection and
export failures are normally caught, routed through the error handler and
logged, never propagated out of a tick.
"""
from __future__ import annotations


class WstException(Exception):
    """Base class for all wst exceptions."""


class ConfigError(WstException):
    """Configuration-related issues (malformed rules, custom metrics, knobs)."""


class DuplicateSessionError(WstException):
    """A session with the same id is already registered on the collector."""


class UnknownLabelError(WstException):
    """A custom export label was set without being declared at start."""


class SessionCollectionError(WstException):
    """A session failed to return its per-tick metrics."""


class ExportError(WstException):
    """Exporter / transport failures (CSV, Pushgateway, remote push)."""


class CsvWriteError(ExportError):
    """CSV persistence failure for the aggregate or detailed stats files."""


class PushgatewayError(ExportError):
    """Prometheus Pushgateway push or delete failure."""


class RemotePushError(ExportError):
    """Pushing the collected distributions to a remote collector failed."""


__all__ = [
    "WstException",
    "ConfigError",
    "DuplicateSessionError",
    "UnknownLabelError",
    "SessionCollectionError",
    "ExportError",
    "CsvWriteError",
    "PushgatewayError",
    "RemotePushError",
]
