"""Session collaborator contract and helpers.

A session is anything that, once per tick, returns a flat mapping
``metricName -> number | {stat_key: number} | {stat_key: str}``. Browser
sessions live outside this package; the collector only relies on the small
protocol below. ``HostSession`` is a built-in session reporting the local
process and system usage (psutil).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

import psutil

logger = logging.getLogger(__name__)

SessionValue = float | Mapping[str, float] | Mapping[str, str]
SessionStats = Mapping[str, SessionValue]

HIGH_USAGE_PERCENT = 80.0


@runtime_checkable
class StatsSession(Protocol):
    id: int

    @property
    def url(self) -> str: ...

    @property
    def url_query(self) -> str: ...

    @property
    def page_count(self) -> int: ...

    async def update_stats(self) -> SessionStats: ...

    async def stop(self) -> None: ...


def enabled_for_session(index: int, value: bool | str | int | None) -> bool:
    """Whether a per-session feature applies to session ``index``.

    ``value`` may be a bool (or "true"/"false"), an int index, an inclusive
    range ``"a-b"`` (either side optional), or a comma list ``"i,j,k"``.
    """
    if value is True or value == "true":
        return True
    if value is False or value is None or value == "false":
        return False
    if isinstance(value, str):
        if "-" in value:
            start_s, _, end_s = value.partition("-")
            start = _parse_int(start_s)
            end = _parse_int(end_s)
            if start is not None and index < start:
                return False
            if end is not None and index > end:
                return False
            return True
        indexes = {_parse_int(s) for s in value.split(",") if s.strip()}
        return index in indexes
    return isinstance(value, int) and index == value


def _parse_int(text: str) -> int | None:
    try:
        return int(text.strip())
    except ValueError:
        return None


class HostSession:
    """Reports this process and the host's CPU / memory usage."""

    def __init__(self, session_id: int, url: str = "", pid: int | None = None):
        self.id = session_id
        self._url = url
        self._process = psutil.Process(pid)
        self._stopped = False
        # Prime cpu_percent so the first tick has a meaningful delta.
        self._process.cpu_percent(interval=None)
        psutil.cpu_percent(interval=None)

    @property
    def url(self) -> str:
        return self._url

    @property
    def url_query(self) -> str:
        return ""

    @property
    def page_count(self) -> int:
        return 0

    async def update_stats(self) -> SessionStats:
        if self._stopped:
            return {}
        with self._process.oneshot():
            cpu = self._process.cpu_percent(interval=None)
            rss_mb = self._process.memory_info().rss / 1e6
        used_cpu = psutil.cpu_percent(interval=None)
        used_memory = psutil.virtual_memory().percent
        if used_cpu > HIGH_USAGE_PERCENT:
            logger.warning("High system CPU usage: %.2f%%", used_cpu)
        if used_memory > HIGH_USAGE_PERCENT:
            logger.warning("High system memory usage: %.2f%%", used_memory)
        return {
            "nodeCpu": cpu,
            "nodeMemory": rss_mb,
            "usedCpu": used_cpu,
            "usedMemory": used_memory,
        }

    async def stop(self) -> None:
        self._stopped = True


__all__ = ["HostSession", "SessionStats", "StatsSession", "enabled_for_session"]
