"""Streaming distributions, metric catalog and per-tick snapshots."""
from __future__ import annotations

from .catalog import (
    BUILTIN_METRICS,
    MetricCatalog,
    MetricDeclaration,
    MetricKind,
    composite_key,
    parse_custom_metrics,
    parse_stat_key,
    stat_key,
)
from .snapshot import CollectedStats, CollectedStatsConfig, MetricSnapshot
from .summary import CHECK_KEYS, StatsData, StreamingSummary, percentile

__all__ = [
    "BUILTIN_METRICS",
    "CHECK_KEYS",
    "CollectedStats",
    "CollectedStatsConfig",
    "MetricCatalog",
    "MetricDeclaration",
    "MetricKind",
    "MetricSnapshot",
    "StatsData",
    "StreamingSummary",
    "composite_key",
    "parse_custom_metrics",
    "parse_stat_key",
    "percentile",
    "stat_key",
]
