"""CSV exporters.

 - StatsWriter: one row per tick; ``datetime`` (epoch ms) followed by
   ``<metric>_length,_sum,_mean,_stddev,_5p,_95p,_min,_max`` for every metric
   in catalog order. The header is written once (the file is truncated on
   the first write of the run).
 - DetailedStatsWriter: one row per (participant, track) per tick with the
   latest per-entity value of each metric; participant level values (empty
   track id) fill in track rows lacking the metric.
"""
from __future__ import annotations

import asyncio
import csv
import logging
import os
from collections.abc import Sequence

from ..stats.catalog import split_composite_key
from ..stats.snapshot import MetricSnapshot
from ..stats.summary import StatsData
from ..utils.exceptions import CsvWriteError
from ..utils.formatting import to_precision

logger = logging.getLogger(__name__)

STAT_COLUMN_SUFFIXES = ("length", "sum", "mean", "stddev", "5p", "95p", "min", "max")


def stats_columns(metric: str) -> list[str]:
    return [f"{metric}_{suffix}" for suffix in STAT_COLUMN_SUFFIXES]


def format_stats_row(data: StatsData) -> list[str]:
    return [
        to_precision(data.count, 0),
        to_precision(data.sum),
        to_precision(data.mean),
        to_precision(data.stddev),
        to_precision(data.p5),
        to_precision(data.p95),
        to_precision(data.min),
        to_precision(data.max),
    ]


class _CsvFile:
    def __init__(self, path: str, columns: Sequence[str]):
        self.path = path
        self.columns = ["datetime", *columns]
        self._header_written = False

    def _append_rows(self, rows: list[list[str]]) -> None:
        try:
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            mode = "a" if self._header_written else "w"
            with open(self.path, mode, newline="", encoding="utf-8") as f:
                w = csv.writer(f)
                if not self._header_written:
                    w.writerow(self.columns)
                    self._header_written = True
                w.writerows(rows)
        except OSError as e:
            raise CsvWriteError(f"write to {self.path} failed: {e}") from e

    async def push(self, rows: list[list[str]]) -> None:
        await asyncio.to_thread(self._append_rows, rows)


class StatsWriter(_CsvFile):
    def __init__(self, path: str, metric_names: Sequence[str]):
        self.metric_names = list(metric_names)
        super().__init__(path, [c for name in self.metric_names for c in stats_columns(name)])

    def build_row(self, snapshot: MetricSnapshot) -> list[str]:
        row = [str(int(snapshot.timestamp * 1000))]
        for name in self.metric_names:
            collected = snapshot.stats.get(name)
            row.extend(format_stats_row(collected.all.snapshot() if collected is not None else StatsData()))
        return row

    async def write(self, snapshot: MetricSnapshot) -> None:
        await self.push([self.build_row(snapshot)])


class DetailedStatsWriter(_CsvFile):
    def __init__(self, path: str, metric_names: Sequence[str]):
        self.metric_names = list(metric_names)
        super().__init__(path, ["participantName", "trackId", *self.metric_names])

    def build_rows(self, snapshot: MetricSnapshot) -> list[list[str]]:
        participant_stats: dict[str, dict[str, str]] = {}
        track_stats: dict[tuple[str, str], dict[str, str]] = {}
        for name, collected in snapshot.stats.items():
            for label, value in collected.by_participant_and_track.items():
                participant, track = split_composite_key(label)
                target = track_stats.setdefault((participant, track), {}) if track else participant_stats.setdefault(participant, {})
                target[name] = to_precision(value, 6)
        ts = str(int(snapshot.timestamp * 1000))
        rows = []
        for (participant, track), values in track_stats.items():
            fallback = participant_stats.get(participant, {})
            row = [ts, participant, track]
            row.extend(values.get(name, fallback.get(name, "")) for name in self.metric_names)
            rows.append(row)
        return rows

    async def write(self, snapshot: MetricSnapshot) -> None:
        rows = self.build_rows(snapshot)
        if rows:
            await self.push(rows)


__all__ = ["DetailedStatsWriter", "StatsWriter", "format_stats_row", "stats_columns"]
