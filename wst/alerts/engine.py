"""Alert rule evaluation with cumulative pass/fail history.

For each rule variant and each snapshot the engine:
 - skips the variant outside its ``$after``/``$before`` window or when a
   ``$skip_*`` predicate matches the current value (no history update);
 - decides pass/fail and the fail amount;
 - updates the report keyed by ``(metric, description)``: total fails,
   continuous failing time, failing time percentage, value and fail-amount
   distributions and the headline ``fail_amount_percentile``.

Tag scores are derived on demand from the reports of the rules sharing a tag.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..stats.snapshot import CollectedStats
from ..stats.summary import StreamingSummary
from ..utils.formatting import round_half_up
from .rules import AlertRule, AlertRules, RuleValue

logger = logging.getLogger(__name__)

DEFAULT_FAIL_PERCENTILE = 95.0


@dataclass(slots=True)
class AlertRuleReport:
    metric: str
    description: str
    total_fails: int = 0
    total_fails_time: float = 0.0
    total_fails_time_percent: int = 0
    last_failed_at: float = 0.0
    last_failed_elapsed: float = 0.0
    value_stats: StreamingSummary = field(default_factory=StreamingSummary)
    fail_amount_stats: StreamingSummary = field(default_factory=StreamingSummary)
    fail_amount_percentile: int = 0

    @property
    def name(self) -> str:
        return f"{self.metric} {self.description}"

    @property
    def failing(self) -> bool:
        return self.last_failed_at != 0

    def update(
        self,
        check_value: float,
        failed: bool,
        fail_amount: float,
        now: float,
        elapsed: float,
        active_seconds: float,
        fail_percentile: float,
    ) -> None:
        """Fold one check in; continuous failing time accrues on ``elapsed``, not wall time."""
        if failed:
            self.total_fails += 1
            if self.last_failed_at:
                self.total_fails_time += max(0.0, elapsed - self.last_failed_elapsed)
            self.last_failed_at = now
            self.last_failed_elapsed = elapsed
        else:
            self.last_failed_at = 0.0
        if active_seconds > 0:
            self.total_fails_time_percent = round_half_up(100 * self.total_fails_time / active_seconds)
        else:
            self.total_fails_time_percent = 0
        self.value_stats.push(check_value)
        self.fail_amount_stats.push(fail_amount)
        self.fail_amount_percentile = round_half_up(self.fail_amount_stats.percentile(fail_percentile))

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFails": self.total_fails,
            "totalFailsTime": round_half_up(self.total_fails_time),
            "totalFailsTimePerc": self.total_fails_time_percent,
            "failAmount": self.fail_amount_percentile,
            "count": len(self.fail_amount_stats),
            "valueAverage": self.value_stats.mean(),
        }


class AlertRuleEngine:
    """Evaluates alert rules against per-tick collected stats."""

    def __init__(self, rules: AlertRules, fail_percentile: float = DEFAULT_FAIL_PERCENTILE, start_time: float = 0.0):
        self.rules = rules
        self.fail_percentile = float(fail_percentile)
        self.start_time = float(start_time)
        # metric -> description -> report
        self._reports: dict[str, dict[str, AlertRuleReport]] = {}

    def __bool__(self) -> bool:
        return bool(self.rules)

    @property
    def reports(self) -> dict[str, dict[str, AlertRuleReport]]:
        return self._reports

    def iter_reports(self):
        for by_desc in self._reports.values():
            yield from by_desc.values()

    def get_report(self, metric: str, description: str) -> AlertRuleReport | None:
        return self._reports.get(metric, {}).get(description)

    def elapsed(self, now: float) -> float:
        return now - self.start_time

    def evaluate(self, stats: Mapping[str, CollectedStats], now: float, elapsed: float | None = None) -> int:
        """Evaluate every rule; returns the number of variants that failed.

        ``now`` is the wall-clock label of the tick. ``elapsed`` (seconds since
        the run started) defaults to ``now - start_time``; the collector passes
        a monotonic value.
        """
        if elapsed is None:
            elapsed = self.elapsed(now)
        failures = 0
        for rule in self.rules:
            collected = stats.get(rule.metric)
            if collected is None:
                continue
            data = collected.all.snapshot()
            fail_percentile = rule.fail_percentile if rule.fail_percentile is not None else self.fail_percentile
            for check_key, rv in rule.variants():
                if not rv.is_active(elapsed):
                    continue
                value = data.get(check_key)
                if not math.isfinite(value) or rv.is_skipped(value):
                    continue
                failed, amount = rv.check(value)
                if failed:
                    failures += 1
                    logger.debug(
                        "alert %s.%s failed value=%s fail_amount=%.2f elapsed=%.1fs",
                        rule.metric, rv.description(check_key), value, amount, elapsed,
                    )
                active_seconds = elapsed - (rv.after or 0.0)
                self._report_for(rule, check_key, rv).update(
                    value, failed, amount, now, elapsed, active_seconds, fail_percentile,
                )
        return failures

    def _report_for(self, rule: AlertRule, check_key: str, rv: RuleValue) -> AlertRuleReport:
        desc = rv.description(check_key)
        by_desc = self._reports.setdefault(rule.metric, {})
        report = by_desc.get(desc)
        if report is None:
            report = by_desc[desc] = AlertRuleReport(rule.metric, desc)
        return report

    def tag_summaries(self) -> dict[str, StreamingSummary]:
        """Per tag, the distribution of the reports' fail amount percentiles."""
        out: dict[str, StreamingSummary] = {}
        for metric, by_desc in self._reports.items():
            rule = self.rules.get(metric)
            tags = rule.tags if rule is not None else ()
            for tag in tags:
                summary = out.setdefault(tag, StreamingSummary())
                summary.push([r.fail_amount_percentile for r in by_desc.values()])
        return out

    def tag_scores(self) -> dict[str, int]:
        """Score per declared tag; 0 for tags without any report yet."""
        scores = {tag: 0 for tag in self.rules.tags}
        for tag, summary in self.tag_summaries().items():
            scores[tag] = round_half_up(summary.percentile(self.fail_percentile))
        return scores

    def failing_tags(self) -> list[str]:
        return [tag for tag, score in self.tag_scores().items() if score > 0]

    def to_json(self) -> dict[str, Any]:
        """``{tags, reports}``; only reports that failed at least once."""
        reports = {r.name: r.to_dict() for r in self.iter_reports() if r.total_fails}
        return {"tags": self.tag_scores(), "reports": reports}

    def clear(self) -> None:
        self._reports.clear()


__all__ = ["AlertRuleEngine", "AlertRuleReport", "DEFAULT_FAIL_PERCENTILE"]
