"""
Centralized error routing for wst.

The engine's non-fatal failures (session pulls, pushed external stats,
exporter transports, malformed samples) all land in one process-wide
ErrorHandler. It keeps a bounded history plus per type / category / severity
counters, and logs each record at a level derived from its severity.

ConfigError is not routed here: configuration problems are raised at
construction time and keep the engine from starting.
"""
from __future__ import annotations

import logging
import threading
import traceback
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .utils.exceptions import CsvWriteError, PushgatewayError, RemotePushError


class ErrorCategory(Enum):
    CONFIGURATION = "configuration"
    SESSION_COLLECTION = "session_collection"
    EXTERNAL_STATS = "external_stats"
    DATA_VALIDATION = "data_validation"
    FILE_IO = "file_io"
    NETWORK = "network"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    LOW = "low"            # sample or payload discarded
    MEDIUM = "medium"      # one exporter output missed a tick
    HIGH = "high"          # a session's tick contribution was lost
    CRITICAL = "critical"  # the schedule itself is at risk


_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorInfo:
    """One routed failure."""

    exception: BaseException
    category: ErrorCategory
    severity: ErrorSeverity
    component: str = ""
    function_name: str = ""
    message: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def where(self) -> str:
        return ".".join(p for p in (self.component, self.function_name) if p) or "?"

    def describe(self) -> str:
        line = f"[{self.category.value.upper()}] {self.where}: {self.message}"
        if self.context:
            line += f" | context={self.context}"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self.exception).__name__,
            "error": str(self.exception),
            "category": self.category.value,
            "severity": self.severity.value,
            "component": self.component,
            "function_name": self.function_name,
            "message": self.message,
            "context": dict(self.context),
            "occurred_at": self.occurred_at.isoformat(),
            "traceback": "".join(traceback.format_exception(self.exception)),
        }


class ErrorHandler:
    """Thread-safe sink for routed failures (exporters also run in worker threads)."""

    def __init__(self, max_errors: int = 1000):
        self.logger = logging.getLogger("wst.errors")
        self._history: deque[ErrorInfo] = deque(maxlen=max_errors)
        self._by_type: Counter[str] = Counter()
        self._by_category: Counter[ErrorCategory] = Counter()
        self._by_severity: Counter[ErrorSeverity] = Counter()
        self._lock = threading.Lock()

    def handle_error(
        self,
        exception: BaseException,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        component: str = "",
        function_name: str = "",
        message: str = "",
        context: dict[str, Any] | None = None,
        should_log: bool = True,
    ) -> ErrorInfo:
        info = ErrorInfo(
            exception=exception,
            category=category,
            severity=severity,
            component=component,
            function_name=function_name,
            message=message or str(exception) or type(exception).__name__,
            context=dict(context or {}),
        )
        with self._lock:
            self._history.append(info)
            self._by_type[type(exception).__name__] += 1
            self._by_category[category] += 1
            self._by_severity[severity] += 1
        if should_log:
            level = _LOG_LEVELS[severity]
            # Tracebacks only for lost session data and worse.
            exc_info = exception if level >= logging.ERROR else None
            self.logger.log(level, info.describe(), exc_info=exc_info)
        return info

    def get_recent_errors(self, count: int = 50) -> list[ErrorInfo]:
        with self._lock:
            return list(self._history)[-count:]

    def get_error_summary(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_errors": sum(self._by_type.values()),
                "by_type": dict(self._by_type),
                "by_category": {c.value: n for c, n in self._by_category.items()},
                "by_severity": {s.value: n for s, n in self._by_severity.items()},
            }

    def clear_errors(self) -> None:
        with self._lock:
            self._history.clear()
            self._by_type.clear()
            self._by_category.clear()
            self._by_severity.clear()


_error_handler: ErrorHandler | None = None
_handler_lock = threading.Lock()


def get_error_handler() -> ErrorHandler:
    """Process-wide handler, created on first use."""
    global _error_handler
    if _error_handler is None:
        with _handler_lock:
            if _error_handler is None:
                _error_handler = ErrorHandler()
    return _error_handler


def handle_collection_error(e: BaseException, session_id: int | str, function_name: str = "update_stats") -> ErrorInfo:
    """A session failed to deliver its metrics; only its tick contribution is lost."""
    return get_error_handler().handle_error(
        e,
        category=ErrorCategory.SESSION_COLLECTION,
        severity=ErrorSeverity.HIGH,
        component="collector",
        function_name=function_name,
        message=f"session {session_id} stats collection failed: {e}",
        context={"session_id": session_id},
    )


def handle_export_error(e: BaseException, exporter: str, context: dict[str, Any] | None = None) -> ErrorInfo:
    """Exporter / transport failure: logged, never fatal, retried on the next tick only."""
    return get_error_handler().handle_error(
        e,
        category=_export_category(e),
        severity=ErrorSeverity.MEDIUM,
        component="exporters",
        function_name=exporter,
        message=f"{exporter} export failed: {e}",
        context=context,
    )


def _export_category(e: BaseException) -> ErrorCategory:
    if isinstance(e, CsvWriteError):
        return ErrorCategory.FILE_IO
    if isinstance(e, (PushgatewayError, RemotePushError, ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(e, OSError):
        return ErrorCategory.FILE_IO
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorInfo",
    "ErrorHandler",
    "get_error_handler",
    "handle_collection_error",
    "handle_export_error",
]
