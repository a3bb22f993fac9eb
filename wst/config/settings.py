"""Stats engine settings.

Single-pass environment hydration object for every engine knob (``WST_*``
variables). PURE DATA CONTAINER: parsing of alert rules and custom metrics
happens in the collector, which raises ConfigError on malformed input.
The CLI layers argparse overrides on top of ``from_env()``.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from ..utils.env_flags import env_flag, env_float, env_int, env_str
from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

__all__ = ["StatsSettings", "parse_detailed_stats"]


def parse_detailed_stats(raw: str | None) -> bool | str | int:
    """``true``/``false`` to bool, a plain index to int, anything else kept as expression."""
    if raw is None:
        return False
    v = str(raw).strip()
    low = v.lower()
    if low in ("", "false", "no", "off"):
        return False
    if low in ("true", "yes", "on"):
        return True
    try:
        return int(v)
    except ValueError:
        return v


@dataclass(slots=True)
class StatsSettings:
    # Collection cadence
    stats_interval: float = 15.0
    rtc_stats_timeout: float = 60.0
    session_stats_timeout: float | None = None  # None -> stats_interval

    # Catalog / labels
    custom_metrics: str = ""
    custom_metrics_labels: str = ""

    # Alert rules
    alert_rules: str = ""
    alert_rules_filename: str = ""
    alert_rules_fail_percentile: float = 95.0

    # Per-session detail
    enable_detailed_stats: bool | str | int = False

    # Console / files
    show_stats: bool = True
    show_page_log: bool = False
    stats_path: str = ""
    detailed_stats_path: str = ""

    # Prometheus Pushgateway
    prometheus_pushgateway: str = ""
    prometheus_pushgateway_job_name: str = "default"
    prometheus_pushgateway_auth: str = ""
    prometheus_pushgateway_gzip: bool = True
    prometheus_pushgateway_timeout: float = 5.0

    # Remote push / ingestion server
    push_stats_url: str = ""
    push_stats_id: str = "default"
    server_secret: str = ""
    server_host: str = "0.0.0.0"
    server_port: int = 0

    # Run identity
    start_timestamp: float = 0.0  # 0 -> now
    start_session_id: int = 0

    # Logging
    log_level: str = "INFO"
    log_file: str = ""

    _env_snapshot: dict[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> StatsSettings:
        e = env if env is not None else os.environ
        def _str(name: str, default: str = "") -> str:
            return env_str(name, default, e)
        def _bool(name: str, default: bool = False) -> bool:
            return env_flag(name, default, e)
        def _int(name: str, default: int = 0) -> int:
            return env_int(name, default, e)
        def _float(name: str, default: float = 0.0) -> float:
            return env_float(name, default, e)
        session_timeout = _float("WST_SESSION_STATS_TIMEOUT", 0.0)
        return cls(
            stats_interval=_float("WST_STATS_INTERVAL", 15.0),
            rtc_stats_timeout=_float("WST_RTC_STATS_TIMEOUT", 60.0),
            session_stats_timeout=session_timeout or None,
            custom_metrics=_str("WST_CUSTOM_METRICS"),
            custom_metrics_labels=_str("WST_CUSTOM_METRICS_LABELS"),
            alert_rules=_str("WST_ALERT_RULES"),
            alert_rules_filename=_str("WST_ALERT_RULES_FILENAME"),
            alert_rules_fail_percentile=_float("WST_ALERT_RULES_FAIL_PERCENTILE", 95.0),
            enable_detailed_stats=parse_detailed_stats(e.get("WST_ENABLE_DETAILED_STATS")),
            show_stats=_bool("WST_SHOW_STATS", True),
            show_page_log=_bool("WST_SHOW_PAGE_LOG", False),
            stats_path=_str("WST_STATS_PATH"),
            detailed_stats_path=_str("WST_DETAILED_STATS_PATH"),
            prometheus_pushgateway=_str("WST_PROMETHEUS_PUSHGATEWAY"),
            prometheus_pushgateway_job_name=_str("WST_PROMETHEUS_PUSHGATEWAY_JOB_NAME", "default") or "default",
            prometheus_pushgateway_auth=_str("WST_PROMETHEUS_PUSHGATEWAY_AUTH"),
            prometheus_pushgateway_gzip=_bool("WST_PROMETHEUS_PUSHGATEWAY_GZIP", True),
            prometheus_pushgateway_timeout=_float("WST_PROMETHEUS_PUSHGATEWAY_TIMEOUT", 5.0),
            push_stats_url=_str("WST_PUSH_STATS_URL"),
            push_stats_id=_str("WST_PUSH_STATS_ID", "default") or "default",
            server_secret=_str("WST_SERVER_SECRET"),
            server_host=_str("WST_SERVER_HOST", "0.0.0.0"),
            server_port=_int("WST_SERVER_PORT", 0),
            start_timestamp=_float("WST_START_TIMESTAMP", 0.0),
            start_session_id=_int("WST_START_SESSION_ID", 0),
            log_level=_str("WST_LOG_LEVEL", "INFO"),
            log_file=_str("WST_LOG_FILE"),
            _env_snapshot={k: v for k, v in e.items() if k.startswith("WST_")},
        )

    def with_overrides(self, **overrides: Any) -> StatsSettings:
        """Copy with non-None overrides applied (CLI flags)."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"unknown settings: {sorted(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @property
    def effective_rtc_stats_timeout(self) -> float:
        return max(self.rtc_stats_timeout, self.stats_interval)

    @property
    def effective_session_stats_timeout(self) -> float:
        return self.session_stats_timeout or self.stats_interval

    @property
    def custom_label_names(self) -> list[str]:
        return [s.strip() for s in self.custom_metrics_labels.split(",") if s.strip()]

    def validate(self) -> StatsSettings:
        if not self.stats_interval or self.stats_interval <= 0:
            raise ConfigError(f"stats interval must be > 0 (got {self.stats_interval})")
        if self.rtc_stats_timeout < 0:
            raise ConfigError(f"rtc stats timeout must be >= 0 (got {self.rtc_stats_timeout})")
        if self.session_stats_timeout is not None and self.session_stats_timeout <= 0:
            raise ConfigError(f"session stats timeout must be > 0 (got {self.session_stats_timeout})")
        if not 0 <= self.alert_rules_fail_percentile <= 100:
            raise ConfigError(f"alert rules fail percentile must be within 0..100 (got {self.alert_rules_fail_percentile})")
        if self.prometheus_pushgateway_timeout <= 0:
            raise ConfigError("pushgateway timeout must be > 0")
        return self

    def log_summary(self) -> None:
        logger.info(
            "stats.settings interval=%.1fs rtc_timeout=%.1fs session_timeout=%.1fs rules=%s pushgateway=%s push_url=%s server_port=%s detailed=%s",
            self.stats_interval, self.effective_rtc_stats_timeout, self.effective_session_stats_timeout,
            int(bool(self.alert_rules.strip())), int(bool(self.prometheus_pushgateway)),
            int(bool(self.push_stats_url)), self.server_port, self.enable_detailed_stats,
        )
