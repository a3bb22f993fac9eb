"""Declarative alert rules, their evaluation engine and report rendering."""
from __future__ import annotations

from .engine import AlertRuleEngine, AlertRuleReport
from .report import AlertReportWriter, render_report
from .rules import AlertRule, AlertRules, RuleValue, calculate_fail_amount, parse_alert_rules

__all__ = [
    "AlertReportWriter",
    "AlertRule",
    "AlertRuleEngine",
    "AlertRuleReport",
    "AlertRules",
    "RuleValue",
    "calculate_fail_amount",
    "parse_alert_rules",
    "render_report",
]
