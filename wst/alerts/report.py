"""Alert report rendering and the report file writer.

Formats:
 - ``.json``: ``{"tags": {tag: score}, "reports": {name: {...}}}``
 - ``.log``: the pipe table framed by a title line carrying the ISO time
 - anything else: the plain pipe table

Only conditions that failed at least once (and, for the tables, spent a
non-zero share of the run failing) are listed.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime

from ..utils.formatting import round_half_up
from ..utils.output import atomic_write_text
from .engine import AlertRuleEngine, AlertRuleReport

logger = logging.getLogger(__name__)

MIN_COLUMN_WIDTH = 20
HEADERS = ("Condition", "Fails", "Fail time (s)", "Fail time (%)", "Fail amount %")


def visible_reports(engine: AlertRuleEngine) -> list[AlertRuleReport]:
    return [r for r in engine.iter_reports() if r.total_fails and r.total_fails_time_percent > 0]


def condition_width(reports: list[AlertRuleReport]) -> int:
    return max([MIN_COLUMN_WIDTH, *(len(r.name) for r in reports)])


def format_text_report(engine: AlertRuleEngine) -> str:
    """Fixed-width pipe table of failing conditions followed by the tag table."""
    if not engine:
        return ""
    reports = visible_reports(engine)
    w = condition_width(reports)
    lines = [
        f"| {HEADERS[0]:<{w}} | {HEADERS[1]:<10} | {HEADERS[2]:<15} | {HEADERS[3]:<15} | {HEADERS[4]:<15} |"
    ]
    for r in reports:
        lines.append(
            f"| {r.name:<{w}} | {r.total_fails:<10} | {round_half_up(r.total_fails_time):<15} "
            f"| {r.total_fails_time_percent:<15} | {r.fail_amount_percentile:<15} |"
        )
    lines.append("-" * (w + 15 + 7))
    lines.append(f"| {'Tag':<{w}} | {'Fail %':<15} |")
    for tag, score in engine.tag_scores().items():
        lines.append(f"| {tag:<{w}} | {score:<15} |")
    return "\n".join(lines) + "\n"


def format_json_report(engine: AlertRuleEngine) -> str:
    return json.dumps(engine.to_json(), indent=2)


def frame_report(report: str, now: datetime | None = None) -> str:
    """Wrap a text report between a titled rule and a closing rule."""
    lines = [line for line in report.split("\n") if line]
    if not lines:
        return ""
    ts = (now or datetime.now(UTC)).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    name = f"Alert rules report ({ts})"
    fill = "-" * max(4, len(lines[0]) - len(name) - 4)
    return f"-- {name} {fill}\n{report}{'-' * len(lines[-1])}\n"


def render_report(engine: AlertRuleEngine, filename: str, now: datetime | None = None) -> str:
    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    if ext == "json":
        return format_json_report(engine)
    text = format_text_report(engine)
    if ext == "log":
        return frame_report(text, now)
    return text


class AlertReportWriter:
    """Rewrites the report file atomically on every call."""

    def __init__(self, filename: str):
        self.filename = filename

    def write(self, engine: AlertRuleEngine) -> bool:
        out = render_report(engine, self.filename)
        if not out:
            return False
        logger.debug("writing alert rules report to %s", self.filename)
        atomic_write_text(self.filename, out)
        return True


__all__ = [
    "AlertReportWriter",
    "format_json_report",
    "format_text_report",
    "frame_report",
    "render_report",
    "visible_reports",
]
