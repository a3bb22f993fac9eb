"""Alert rule model and eager, validated loading.

Rule document example (YAML or JSON)::

    cpu:
      tags: [performance]
      failPercentile: 90
      p95:
        $gt: 10
        $lt: 100
        $after: 60

checks that the 95th percentile of ``cpu`` stays within (10, 100) starting
60 seconds after the test start; results are grouped under ``performance``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..config.validation import ALERT_RULES_SCHEMA, load_document, validate_document
from ..stats.summary import CHECK_KEYS
from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

COMPARISON_OPERATORS = ("$eq", "$gt", "$gte", "$lt", "$lte")

# Report / gauge label symbol per comparison operator, in description order.
_OP_SYMBOLS = (("eq", "="), ("gt", ">"), ("gte", ">="), ("lt", "<"), ("lte", "<="))


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def calculate_fail_amount(check_value: float, threshold: float) -> float:
    """Normalized 0..100 severity of a violation of ``threshold``."""
    if threshold:
        return 100 * min(1.0, abs(check_value - threshold) / threshold)
    return 100 * min(1.0, abs(check_value))


@dataclass(frozen=True, slots=True)
class RuleValue:
    eq: float | None = None
    gt: float | None = None
    gte: float | None = None
    lt: float | None = None
    lte: float | None = None
    after: float | None = None
    before: float | None = None
    skip_lt: float | None = None
    skip_lte: float | None = None
    skip_gt: float | None = None
    skip_gte: float | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> RuleValue:
        kwargs = {}
        for op, value in raw.items():
            if not op.startswith("$") or op[1:] not in cls.__slots__:
                raise ConfigError(f"unknown alert rule operator {op!r}")
            kwargs[op[1:]] = float(value)
        rv = cls(**kwargs)
        if not any(getattr(rv, op[1:]) is not None for op in COMPARISON_OPERATORS):
            raise ConfigError(f"alert rule value {dict(raw)!r} has no comparison operator")
        return rv

    def description(self, check_key: str) -> str:
        conds = [f"{sym} {_fmt(getattr(self, attr))}" for attr, sym in _OP_SYMBOLS if getattr(self, attr) is not None]
        desc = f"{check_key} {' and '.join(conds)}"
        if self.after is not None:
            desc += f" after {_fmt(self.after)}s"
        if self.before is not None:
            desc += f" before {_fmt(self.before)}s"
        return desc

    def is_active(self, elapsed: float) -> bool:
        if self.after is not None and elapsed < self.after:
            return False
        if self.before is not None and elapsed > self.before:
            return False
        return True

    def is_expired(self, elapsed: float) -> bool:
        return self.before is not None and elapsed > self.before

    def is_skipped(self, value: float) -> bool:
        return (
            (self.skip_lt is not None and value < self.skip_lt)
            or (self.skip_lte is not None and value <= self.skip_lte)
            or (self.skip_gt is not None and value > self.skip_gt)
            or (self.skip_gte is not None and value >= self.skip_gte)
        )

    def check(self, value: float) -> tuple[bool, float]:
        """Return ``(failed, fail_amount)`` for a check value.

        ``$eq`` alone decides when present. Otherwise the upper bound
        (``$lt`` before ``$lte``) is checked first and the lower bound
        (``$gt`` before ``$gte``) only when the upper bound passed.
        """
        if self.eq is not None:
            if value != self.eq:
                return True, calculate_fail_amount(value, self.eq)
            return False, 0.0
        if self.lt is not None:
            if value >= self.lt:
                return True, calculate_fail_amount(value, self.lt)
        elif self.lte is not None and value > self.lte:
            return True, calculate_fail_amount(value, self.lte)
        if self.gt is not None:
            if value <= self.gt:
                return True, calculate_fail_amount(value, self.gt)
        elif self.gte is not None and value < self.gte:
            return True, calculate_fail_amount(value, self.gte)
        return False, 0.0

    def thresholds(self) -> list[tuple[str, float]]:
        """``(symbol, value)`` of each comparison operator present."""
        return [(sym, getattr(self, attr)) for attr, sym in _OP_SYMBOLS if getattr(self, attr) is not None]


@dataclass(frozen=True, slots=True)
class AlertRule:
    metric: str
    checks: Mapping[str, tuple[RuleValue, ...]]
    tags: tuple[str, ...] = ()
    fail_percentile: float | None = None

    @classmethod
    def from_mapping(cls, metric: str, raw: Mapping[str, Any]) -> AlertRule:
        checks: dict[str, tuple[RuleValue, ...]] = {}
        tags: tuple[str, ...] = ()
        fail_percentile = None
        for key, value in raw.items():
            if key == "tags":
                tags = tuple(str(t) for t in value or ())
            elif key == "failPercentile":
                fail_percentile = float(value)
            elif key in CHECK_KEYS:
                variants = value if isinstance(value, list) else [value]
                checks[key] = tuple(RuleValue.from_mapping(v) for v in variants)
            else:
                raise ConfigError(f"alert rule {metric!r}: unknown key {key!r}")
        return cls(metric=metric, checks=checks, tags=tags, fail_percentile=fail_percentile)

    def variants(self) -> Iterable[tuple[str, RuleValue]]:
        for check_key, values in self.checks.items():
            for rv in values:
                yield check_key, rv


@dataclass(slots=True)
class AlertRules:
    rules: dict[str, AlertRule] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.rules)

    def __iter__(self):
        return iter(self.rules.values())

    def __len__(self) -> int:
        return len(self.rules)

    def get(self, metric: str) -> AlertRule | None:
        return self.rules.get(metric)

    @property
    def tags(self) -> list[str]:
        seen: dict[str, None] = {}
        for rule in self.rules.values():
            for t in rule.tags:
                seen.setdefault(t, None)
        return list(seen)


def parse_alert_rules(text: str | None, known_metrics: Iterable[str] | None = None) -> AlertRules:
    """Parse and validate an alert rule document (text or ``@path``).

    Raises ConfigError on any malformed declaration. Rules for metrics not in
    ``known_metrics`` are kept but logged; the engine never evaluates them.
    """
    doc = load_document(text, "alert rules")
    return build_alert_rules(doc, known_metrics)


def build_alert_rules(doc: Mapping[str, Any], known_metrics: Iterable[str] | None = None) -> AlertRules:
    validate_document(dict(doc), ALERT_RULES_SCHEMA, "alert rules")
    rules = {str(metric): AlertRule.from_mapping(str(metric), raw or {}) for metric, raw in doc.items()}
    if known_metrics is not None:
        known = set(known_metrics)
        for metric in rules:
            if metric not in known:
                logger.warning("alert rule for unknown metric %r will never be evaluated", metric)
    if rules:
        logger.debug("loaded %d alert rules: %s", len(rules), list(rules))
    return AlertRules(rules)


__all__ = [
    "AlertRule",
    "AlertRules",
    "COMPARISON_OPERATORS",
    "RuleValue",
    "build_alert_rules",
    "calculate_fail_amount",
    "parse_alert_rules",
]
