"""Prometheus Pushgateway exporter.

Series (prefix ``wst_``):
 - ``<metric>_<stat>`` for stat in length/sum/mean/stddev/p5/p95/min/max,
   labels ``host, codec, datetime, *custom``; ``host="all", codec="all"`` is
   the overall distribution.
 - ``<metric>`` per (participant, track) latest value when detailed stats are
   enabled, labels ``participantName, trackId, datetime, *custom``.
 - ``alert_<metric>_<checkKey>`` rule thresholds, ``..._report`` fail amount
   percentile and ``..._mean`` average checked value, labels ``rule, datetime, *custom``.
 - ``alert_report`` tag scores, labels ``datetime, tag, *custom``.
 - ``elapsedTime`` seconds since the run started.

Each exporter owns its CollectorRegistry. Pushes run in a worker thread with
an explicit timeout; the job's series are deleted on start and stop.
"""
from __future__ import annotations

import asyncio
import base64
import gzip
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Gauge
from prometheus_client.exposition import default_handler, delete_from_gateway, push_to_gateway

from ..alerts.engine import AlertRuleEngine
from ..alerts.rules import AlertRules
from ..stats.catalog import split_composite_key
from ..stats.snapshot import MetricSnapshot
from ..stats.summary import StatsData
from ..utils.exceptions import PushgatewayError

logger = logging.getLogger(__name__)

PROM_PREFIX = "wst_"
STAT_FIELDS = ("length", "sum", "mean", "stddev", "p5", "p95", "min", "max")
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def metric_name(name: str, suffix: str = "") -> str:
    base = _INVALID_NAME_CHARS.sub("_", f"{PROM_PREFIX}{name}")
    return f"{base}_{suffix}" if suffix else base


def iso_timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def make_push_handler(auth: str | None = None, gzip_body: bool = False) -> Callable:
    """Pushgateway handler adding optional basic auth and gzip encoding."""
    username = password = None
    if auth:
        username, _, password = auth.partition(":")

    def handler(url, method, timeout, headers, data):
        headers = list(headers)
        if username is not None:
            token = base64.b64encode(f"{username}:{password}".encode()).decode()
            headers.append(("Authorization", f"Basic {token}"))
        if gzip_body and data:
            data = gzip.compress(data)
            headers.append(("Content-Encoding", "gzip"))
        return default_handler(url, method, timeout, headers, data)

    return handler


class _MetricGauges:
    __slots__ = ("stats", "value", "alerts")

    def __init__(self) -> None:
        self.stats: dict[str, Gauge] = {}
        self.value: Gauge | None = None
        # check key -> (rule, report, mean)
        self.alerts: dict[str, tuple[Gauge, Gauge, Gauge]] = {}


class PrometheusExporter:
    def __init__(
        self,
        gateway: str,
        metric_names: Sequence[str],
        *,
        job_name: str = "default",
        start_time: float,
        rules: AlertRules | None = None,
        custom_labels: Mapping[str, str | None] | None = None,
        detailed: bool = True,
        auth: str | None = None,
        gzip_body: bool = True,
        timeout: float = 5.0,
        registry: CollectorRegistry | None = None,
    ):
        self.gateway = gateway
        self.job_name = job_name or "default"
        self.start_time = start_time
        self.datetime = iso_timestamp(start_time)
        self.rules = rules or AlertRules()
        self.custom_labels: Mapping[str, str | None] = custom_labels if custom_labels is not None else {}
        self.timeout = timeout
        self.registry = registry if registry is not None else CollectorRegistry()
        self._handler = make_push_handler(auth, gzip_body)
        custom = list(self.custom_labels)

        self.elapsed_time = Gauge(metric_name("elapsedTime"), "elapsedTime", ["datetime", *custom], registry=self.registry)
        self.metrics: dict[str, _MetricGauges] = {}
        for name in metric_names:
            g = _MetricGauges()
            for stat in STAT_FIELDS:
                g.stats[stat] = Gauge(metric_name(name, stat), f"{name} {stat}", ["host", "codec", "datetime", *custom], registry=self.registry)
            if detailed:
                g.value = Gauge(metric_name(name), name, ["participantName", "trackId", "datetime", *custom], registry=self.registry)
            rule = self.rules.get(name)
            if rule is not None:
                for check_key in rule.checks:
                    base = f"alert_{name}_{check_key}"
                    labels = ["rule", "datetime", *custom]
                    g.alerts[check_key] = (
                        Gauge(metric_name(base), base, labels, registry=self.registry),
                        Gauge(metric_name(base, "report"), f"{base} report", labels, registry=self.registry),
                        Gauge(metric_name(base, "mean"), f"{base} mean", labels, registry=self.registry),
                    )
            self.metrics[name] = g
        self.alert_tags = None
        if self.rules:
            self.alert_tags = Gauge(metric_name("alert_report"), "alert_report", ["datetime", "tag", *custom], registry=self.registry)

    def _custom_values(self) -> list[str]:
        return [v or "" for v in self.custom_labels.values()]

    def _set_stats(self, g: _MetricGauges, data: StatsData, host: str, codec: str) -> None:
        labels = [host, codec, self.datetime, *self._custom_values()]
        for stat in STAT_FIELDS:
            g.stats[stat].labels(*labels).set(data.get(stat))

    def update(self, snapshot: MetricSnapshot, engine: AlertRuleEngine | None, now: float, elapsed: float | None = None) -> None:
        """Set every gauge from the snapshot and the alert reports."""
        if elapsed is None:
            elapsed = now - self.start_time
        custom = self._custom_values()
        self.elapsed_time.labels(self.datetime, *custom).set(elapsed)
        for name, g in self.metrics.items():
            collected = snapshot.stats.get(name)
            if collected is None:
                continue
            self._set_stats(g, collected.all.snapshot(), "all", "all")
            for host, s in collected.by_host.items():
                self._set_stats(g, s.snapshot(), host, "all")
            for codec, s in collected.by_codec.items():
                self._set_stats(g, s.snapshot(), "all", codec)
            if g.value is not None:
                for label, value in collected.by_participant_and_track.items():
                    participant, track = split_composite_key(label)
                    g.value.labels(participant, track, self.datetime, *custom).set(value)
            if g.alerts:
                self._update_alerts(name, g, engine, elapsed, custom)
        if self.alert_tags is not None and engine is not None:
            for tag, score in engine.tag_scores().items():
                self.alert_tags.labels(self.datetime, tag, *custom).set(score)

    def _update_alerts(self, name: str, g: _MetricGauges, engine: AlertRuleEngine | None, elapsed: float, custom: list[str]) -> None:
        rule = self.rules.get(name)
        if rule is None:
            return
        for check_key, rv in rule.variants():
            if rv.after is not None and elapsed < rv.after:
                continue
            rule_gauge, report_gauge, mean_gauge = g.alerts[check_key]
            remove = rv.is_expired(elapsed)
            desc = rv.description(check_key)
            report = engine.get_report(name, desc) if engine is not None else None
            if report is not None:
                labels = (desc, self.datetime, *custom)
                if remove:
                    with suppress(KeyError):
                        report_gauge.remove(*labels)
                    with suppress(KeyError):
                        mean_gauge.remove(*labels)
                else:
                    report_gauge.labels(*labels).set(report.fail_amount_percentile)
                    mean_gauge.labels(*labels).set(report.value_stats.mean())
            for symbol, threshold in rv.thresholds():
                labels = (f"{name} {check_key} {symbol}", self.datetime, *custom)
                if remove:
                    with suppress(KeyError):
                        rule_gauge.remove(*labels)
                else:
                    rule_gauge.labels(*labels).set(threshold)

    def _push(self) -> None:
        try:
            push_to_gateway(self.gateway, job=self.job_name, registry=self.registry, timeout=self.timeout, handler=self._handler)
        except Exception as e:
            raise PushgatewayError(f"Pushgateway push error: {e}") from e

    def _delete(self) -> None:
        try:
            delete_from_gateway(self.gateway, job=self.job_name, timeout=self.timeout, handler=self._handler)
        except Exception as e:
            raise PushgatewayError(f"Pushgateway delete error: {e}") from e

    async def push(self) -> None:
        await asyncio.to_thread(self._push)

    async def delete(self) -> None:
        await asyncio.to_thread(self._delete)

    async def export(
        self, snapshot: MetricSnapshot, engine: AlertRuleEngine | None, now: float, elapsed: float | None = None
    ) -> None:
        self.update(snapshot, engine, now, elapsed)
        await self.push()


__all__ = ["PROM_PREFIX", "PrometheusExporter", "iso_timestamp", "make_push_handler", "metric_name"]
