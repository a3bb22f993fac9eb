"""Stats collector: per-tick aggregation, alert evaluation and export.

Lifecycle ``idle -> running -> stopped`` via ``start()``/``stop()`` (both
idempotent). Each scheduler tick:

 1. resets the "all" / per host / per codec distributions of every metric;
 2. returns early when there are no sessions and no external entries;
 3. pulls every session concurrently, bounded by the session stats timeout;
    a failing or hung session only loses its own contribution;
 4. evicts expired external entries and array-merges the others;
 5. freezes the tick's MetricSnapshot, notifies listeners and pushes the raw
    distributions to a remote collector when configured;
 6. evaluates alert rules (only while still running), renders the console
    and runs the file / Pushgateway exporters concurrently.

Exporter failures are logged through the central error handler and never
stop the schedule.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import CollectorRegistry

from .alerts.engine import AlertRuleEngine
from .alerts.report import AlertReportWriter
from .alerts.rules import parse_alert_rules
from .config.settings import StatsSettings
from .error_handling import (
    ErrorCategory,
    ErrorSeverity,
    get_error_handler,
    handle_collection_error,
    handle_export_error,
)
from .exporters.console import ConsoleExporter
from .exporters.csv_writer import DetailedStatsWriter, StatsWriter
from .exporters.prometheus import PrometheusExporter
from .exporters.push import RemoteStatsPusher
from .scheduler import Scheduler
from .sessions import SessionStats, StatsSession, enabled_for_session
from .stats.catalog import MetricCatalog, MetricKind, composite_key, describe, parse_custom_metrics, parse_stat_key
from .stats.snapshot import CollectedStats, CollectedStatsConfig, MetricSnapshot
from .utils.exceptions import DuplicateSessionError, SessionCollectionError, UnknownLabelError, WstException
from .utils.formatting import hide_auth, is_finite_number

logger = logging.getLogger(__name__)

StatsListener = Callable[[MetricSnapshot], None]


@dataclass(slots=True)
class ExternalStatsEntry:
    added_time: float
    stats: Mapping[str, Mapping[str, Any]]
    config: Mapping[str, Any] = field(default_factory=dict)


class StatsCollector:
    def __init__(
        self,
        settings: StatsSettings,
        *,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] | None = None,
        registry: CollectorRegistry | None = None,
        console: ConsoleExporter | None = None,
    ):
        self.settings = settings.validate()
        self._clock = clock
        # An injected clock drives elapsed time too unless a monotonic source is given.
        if monotonic is None and clock is time.time:
            monotonic = time.monotonic
        self._monotonic = monotonic
        self._registry = registry
        self.catalog = MetricCatalog.build(parse_custom_metrics(settings.custom_metrics))
        self.rules = parse_alert_rules(settings.alert_rules, self.catalog)
        self.start_timestamp = settings.start_timestamp or clock()
        self._elapsed_origin = (monotonic(), clock() - self.start_timestamp) if monotonic is not None else None
        self.engine = AlertRuleEngine(self.rules, settings.alert_rules_fail_percentile, self.start_timestamp)

        self.sessions: dict[int, StatsSession] = {}
        self.next_session_id = settings.start_session_id
        self.external_stats: dict[str, ExternalStatsEntry] = {}
        self.custom_metrics_labels: dict[str, str | None] = {name: None for name in settings.custom_label_names}
        self.collected: dict[str, CollectedStats] = self._init_collected()
        self.config = CollectedStatsConfig(start_time=self.start_timestamp)
        self.last_snapshot: MetricSnapshot | None = None
        self.dropped_samples = 0

        self.console = console
        self.stats_writer: StatsWriter | None = None
        self.detailed_stats_writer: DetailedStatsWriter | None = None
        self.prometheus: PrometheusExporter | None = None
        self.report_writer: AlertReportWriter | None = None
        self.pusher: RemoteStatsPusher | None = None

        self._listeners: list[StatsListener] = []
        self._scheduler: Scheduler | None = None
        self._abandoned_pulls: set[asyncio.Task] = set()
        self._running = False
        self._final_report: dict[str, Any] | None = None
        logger.debug("stats collector catalog %s", describe(self.catalog))

    def _init_collected(self) -> dict[str, CollectedStats]:
        return {name: CollectedStats() for name in self.catalog}

    def elapsed(self, now: float) -> float:
        """Seconds since the run started; monotonic unless the collector runs on an injected clock."""
        if self._elapsed_origin is None:
            return now - self.start_timestamp
        origin, offset = self._elapsed_origin
        return offset + self._monotonic() - origin

    @property
    def running(self) -> bool:
        return self._running

    @property
    def scheduler(self) -> Scheduler | None:
        return self._scheduler

    # Sessions --------------------------------------------------------------------------------

    def consume_session_id(self, tabs: int = 1) -> int:
        """Allocate ``tabs`` contiguous session ids; returns the first."""
        sid = self.next_session_id
        self.next_session_id += tabs
        return sid

    def add_session(self, session: StatsSession) -> None:
        logger.debug("addSession %s", session.id)
        if session.id in self.sessions:
            raise DuplicateSessionError(f"session id {session.id} already present")
        self.sessions[session.id] = session

    def remove_session(self, session_id: int) -> None:
        logger.debug("removeSession %s", session_id)
        self.sessions.pop(session_id, None)

    def set_custom_metric_label(self, label: str, value: str | None) -> None:
        if label not in self.custom_metrics_labels:
            raise UnknownLabelError(f"Unknown custom metric label: {label}")
        self.custom_metrics_labels[label] = value

    def on_stats(self, listener: StatsListener) -> StatsListener:
        self._listeners.append(listener)
        return listener

    def add_external_stats(self, external_id: str, stats: Mapping[str, Mapping[str, Any]], config: Mapping[str, Any] | None = None) -> None:
        """Store distributions pushed by another collector (replaces any previous entry for the id)."""
        if not isinstance(stats, Mapping) or not isinstance(config or {}, Mapping):
            raise TypeError(f"external stats from {external_id} must be objects")
        logger.debug("addExternalCollectedStats from %s", external_id)
        self.external_stats[external_id] = ExternalStatsEntry(self._clock(), stats, config or {})

    # Lifecycle -------------------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            logger.warning("stats collector already running")
            return
        logger.debug("start")
        self._running = True
        self._final_report = None
        s = self.settings
        names = self.catalog.names
        if s.stats_path:
            logger.debug("Logging stats into %s", s.stats_path)
            self.stats_writer = StatsWriter(s.stats_path, names)
        if s.detailed_stats_path:
            logger.debug("Logging detailed stats into %s", s.detailed_stats_path)
            self.detailed_stats_writer = DetailedStatsWriter(s.detailed_stats_path, names)
        if self.rules and s.alert_rules_filename:
            self.report_writer = AlertReportWriter(s.alert_rules_filename)
        if s.show_stats and self.console is None:
            self.console = ConsoleExporter(clear=not s.show_page_log)
        if s.push_stats_url:
            self.pusher = RemoteStatsPusher(s.push_stats_url, s.push_stats_id, s.server_secret)
        if s.prometheus_pushgateway:
            self.prometheus = PrometheusExporter(
                s.prometheus_pushgateway,
                names,
                job_name=s.prometheus_pushgateway_job_name,
                start_time=self.start_timestamp,
                rules=self.rules,
                custom_labels=self.custom_metrics_labels,
                detailed=s.enable_detailed_stats is not False,
                auth=s.prometheus_pushgateway_auth or None,
                gzip_body=s.prometheus_pushgateway_gzip,
                timeout=s.prometheus_pushgateway_timeout,
                registry=self._registry,
            )
            await self._delete_pushgateway_stats()
        self._scheduler = Scheduler("stats", s.stats_interval, self.collect_stats, clock=self._clock)
        self._scheduler.start()

    async def stop(self) -> dict[str, Any]:
        """Stop collecting, stop sessions and return the final alert report."""
        if not self._running:
            return self._final_report if self._final_report is not None else self.engine.to_json()
        self._running = False
        logger.debug("stop")
        if self._scheduler is not None:
            self._scheduler.stop()
            await self._scheduler.wait()
            self._scheduler = None

        final_report = self.engine.to_json()
        if self.report_writer is not None:
            try:
                await asyncio.to_thread(self.report_writer.write, self.engine)
            except Exception as e:
                handle_export_error(e, "alert_report", {"filename": self.report_writer.filename})

        for session in list(self.sessions.values()):
            try:
                await session.stop()
            except Exception:
                logger.exception("session %s stop error", getattr(session, "id", "?"))
        self.sessions.clear()

        if self.prometheus is not None:
            await self._delete_pushgateway_stats()
            self.prometheus = None
        if self.pusher is not None:
            self.pusher.close()
            self.pusher = None
        self.stats_writer = None
        self.detailed_stats_writer = None
        self.report_writer = None

        self.collected = self._init_collected()
        self.external_stats.clear()
        self.engine.clear()
        self._final_report = final_report
        return final_report

    async def _delete_pushgateway_stats(self) -> None:
        if self.prometheus is None:
            return
        try:
            await self.prometheus.delete()
        except WstException as e:
            handle_export_error(e, "pushgateway_delete", {"gateway": hide_auth(self.prometheus.gateway)})

    # Tick ------------------------------------------------------------------------------------

    async def collect_stats(self, now: float) -> MetricSnapshot | None:
        """Run one collection tick; returns the emitted snapshot (None when skipped)."""
        if not self._running:
            return None
        self.config = CollectedStatsConfig(start_time=self.start_timestamp)
        for collected in self.collected.values():
            collected.reset()
        if not self.sessions and not self.external_stats:
            self.last_snapshot = MetricSnapshot.freeze(now, self.collected, self.config)
            return None

        await self._collect_sessions()
        self._merge_external_stats(now)

        snapshot = MetricSnapshot.freeze(now, self.collected, self.config)
        self.last_snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("stats listener %r failed", listener)

        if self.pusher is not None:
            try:
                await self.pusher.push(snapshot)
            except WstException as e:
                handle_export_error(e, "push_stats", {"url": hide_auth(self.settings.push_stats_url)})

        elapsed = self.elapsed(now)
        if self._running and self.engine:
            self.engine.evaluate(snapshot.stats, now, elapsed)

        if self.console is not None:
            try:
                self.console.show(snapshot, self.engine)
            except Exception as e:
                handle_export_error(e, "console")

        await self._run_exporters(snapshot, now, elapsed)
        return snapshot

    async def _collect_sessions(self) -> None:
        sessions = sorted(self.sessions.items())
        if not sessions:
            return
        tasks: dict[asyncio.Task, int] = {}
        for sid, session in sessions:
            self.config.url = f"{hide_auth(session.url)}?{session.url_query}" if session.url_query else hide_auth(session.url)
            self.config.pages += session.page_count or 0
            tasks[asyncio.create_task(session.update_stats(), name=f"session-{sid}-stats")] = sid
        timeout = self.settings.effective_session_stats_timeout
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            handle_collection_error(
                SessionCollectionError(f"stats not ready after {timeout:.1f}s; skipped this tick"), tasks[task]
            )
            task.cancel()
            self._abandoned_pulls.add(task)
            task.add_done_callback(self._abandoned_pulls.discard)
        for task in sorted(done, key=tasks.__getitem__):
            sid = tasks[task]
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                handle_collection_error(exc, sid)
                continue
            stats = task.result()
            if not isinstance(stats, Mapping):
                handle_collection_error(
                    SessionCollectionError(f"expected a metric mapping, got {type(stats).__name__}"), sid
                )
                continue
            self._merge_session_stats(sid, stats)

    def _merge_session_stats(self, session_id: int, stats: SessionStats) -> None:
        detailed = enabled_for_session(session_id, self.settings.enable_detailed_stats)
        for name, value in stats.items():
            if value is None:
                continue
            collected = self.collected.get(name)
            if collected is None:
                logger.debug("session %s reported undeclared metric %s", session_id, name)
                continue
            kind = self.catalog[name].kind
            try:
                if kind is MetricKind.SCALAR:
                    self._push_scalar(collected, value)
                elif kind is MetricKind.LABELED:
                    self._push_labeled(collected, value, detailed)
                else:
                    self._push_categorical(collected, value)
            except (TypeError, AttributeError, ValueError) as e:
                self.dropped_samples += 1
                get_error_handler().handle_error(
                    e,
                    category=ErrorCategory.DATA_VALIDATION,
                    severity=ErrorSeverity.LOW,
                    component="collector",
                    function_name="merge_session_stats",
                    message=f"session {session_id} metric {name} has unexpected shape {type(value).__name__}",
                )

    def _drop(self, what: str, value: Any) -> None:
        self.dropped_samples += 1
        logger.debug("dropped %s sample %r", what, value)

    def _push_scalar(self, collected: CollectedStats, value: Any) -> None:
        if is_finite_number(value):
            collected.all.push(value)
        else:
            self._drop("scalar", value)

    def _push_labeled(self, collected: CollectedStats, values: Mapping[str, Any], detailed: bool) -> None:
        for key, value in values.items():
            if not is_finite_number(value):
                self._drop("labeled", value)
                continue
            collected.all.push(value)
            labels = parse_stat_key(key)
            collected.host(labels.host).push(value)
            if detailed and labels.participant:
                collected.by_participant_and_track[composite_key(labels.participant, labels.track_id)] = value

    def _push_categorical(self, collected: CollectedStats, values: Mapping[str, Any]) -> None:
        for value in values.values():
            if not isinstance(value, str):
                self._drop("categorical", value)
                continue
            collected.all.push(1)
            collected.codec(value).push(1)

    def _merge_external_stats(self, now: float) -> None:
        ttl = self.settings.effective_rtc_stats_timeout
        for ext_id, entry in list(self.external_stats.items()):
            if now - entry.added_time > ttl:
                logger.debug("remove externalCollectedStats from %s", ext_id)
                del self.external_stats[ext_id]
                continue
            logger.debug("add external stats from %s", ext_id)
            url = entry.config.get("url")
            if url:
                self.config.url = str(url)
            pages = entry.config.get("pages")
            if is_finite_number(pages):
                self.config.pages += int(pages)
            for name, raw in entry.stats.items():
                collected = self.collected.get(name)
                if collected is None:
                    continue
                try:
                    if not isinstance(raw, Mapping):
                        raise TypeError(f"expected a raw distribution object, got {type(raw).__name__}")
                    dropped = collected.merge_raw(raw)
                except (TypeError, ValueError) as e:
                    get_error_handler().handle_error(
                        e,
                        category=ErrorCategory.EXTERNAL_STATS,
                        severity=ErrorSeverity.LOW,
                        component="collector",
                        function_name="merge_external_stats",
                        context={"id": ext_id, "metric": name},
                    )
                    continue
                if dropped:
                    self.dropped_samples += dropped
                    logger.debug("external %s metric %s: dropped %d non-finite samples", ext_id, name, dropped)

    async def _run_exporters(self, snapshot: MetricSnapshot, now: float, elapsed: float) -> None:
        jobs: list[tuple[str, Any]] = []
        if self.stats_writer is not None:
            jobs.append(("stats_csv", self.stats_writer.write(snapshot)))
        if self.detailed_stats_writer is not None:
            jobs.append(("detailed_stats_csv", self.detailed_stats_writer.write(snapshot)))
        if self.prometheus is not None and self._running:
            jobs.append(("pushgateway", self.prometheus.export(snapshot, self.engine, now, elapsed)))
        if self.report_writer is not None and self._running:
            jobs.append(("alert_report", asyncio.to_thread(self.report_writer.write, self.engine)))
        if not jobs:
            return
        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
        for (name, _), result in zip(jobs, results):
            if isinstance(result, Exception):
                handle_export_error(result, name)

    # Reporting -------------------------------------------------------------------------------

    def alert_report(self) -> dict[str, Any]:
        return self.engine.to_json()

    def tag_scores(self) -> dict[str, int]:
        return self.engine.tag_scores()


__all__ = ["ExternalStatsEntry", "StatsCollector", "StatsListener"]
