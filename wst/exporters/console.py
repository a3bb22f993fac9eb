"""Rich console rendering of a snapshot and the alert report."""
from __future__ import annotations

import logging
from datetime import UTC, datetime

from rich.console import Console, Group
from rich.table import Table
from rich.text import Text

from ..alerts.engine import AlertRuleEngine
from ..alerts.report import visible_reports
from ..stats.snapshot import MetricSnapshot
from ..utils.formatting import round_half_up

logger = logging.getLogger(__name__)

STAT_HEADERS = ("count", "sum", "mean", "stddev", "5p", "95p", "min", "max")


def tag_style(score: float) -> str:
    if score < 5:
        return "green"
    if score < 50:
        return "yellow"
    return "red"


def _num(value: float) -> str:
    return f"{value:.2f}" if isinstance(value, float) and not value.is_integer() else f"{value:.0f}"


def build_stats_table(snapshot: MetricSnapshot) -> Table:
    title = datetime.fromtimestamp(snapshot.timestamp, UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")
    table = Table(title=title, title_justify="left", header_style="bold")
    table.add_column("name", style="bold red", justify="right")
    for h in STAT_HEADERS:
        table.add_column(h, justify="right")
    for name in snapshot.non_empty():
        d = snapshot[name].all.snapshot()
        table.add_row(name, str(d.count), *(_num(v) for v in (d.sum, d.mean, d.stddev, d.p5, d.p95, d.min, d.max)))
    return table


def build_alert_tables(engine: AlertRuleEngine) -> list[Table]:
    reports = visible_reports(engine)
    tables = []
    if reports:
        t = Table(title="Alert rules report", title_justify="left", header_style="bold")
        for col in ("Condition", "Fails", "Fail time (s)", "Fail time (%)", "Fail amount %"):
            t.add_column(col)
        for r in reports:
            t.add_row(
                Text(r.name, style="bold red"),
                str(r.total_fails),
                str(round_half_up(r.total_fails_time)),
                str(r.total_fails_time_percent),
                str(r.fail_amount_percentile),
            )
        tables.append(t)
    scores = engine.tag_scores()
    if scores:
        t = Table(header_style="bold")
        t.add_column("Tag")
        t.add_column("Fail %")
        for tag, score in scores.items():
            style = f"bold {tag_style(score)}"
            t.add_row(Text(tag, style=style), Text(str(score), style=style))
        tables.append(t)
    return tables


class ConsoleExporter:
    def __init__(self, console: Console | None = None, clear: bool = True):
        self.console = console or Console()
        self.clear = clear

    def show(self, snapshot: MetricSnapshot, engine: AlertRuleEngine | None = None) -> None:
        parts = [build_stats_table(snapshot)]
        if engine:
            parts.extend(build_alert_tables(engine))
        if self.clear:
            self.console.clear()
        self.console.print(Group(*parts))


__all__ = ["ConsoleExporter", "build_alert_tables", "build_stats_table", "tag_style"]
