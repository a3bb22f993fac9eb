"""Snapshot exporters: console, CSV, Prometheus Pushgateway, remote collector."""
from __future__ import annotations

from .console import ConsoleExporter
from .csv_writer import DetailedStatsWriter, StatsWriter
from .prometheus import PrometheusExporter
from .push import RemoteStatsPusher

__all__ = [
    "ConsoleExporter",
    "DetailedStatsWriter",
    "PrometheusExporter",
    "RemoteStatsPusher",
    "StatsWriter",
]
