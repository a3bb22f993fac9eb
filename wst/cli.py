"""Command line entrypoint for the stats engine.

Settings are hydrated from ``WST_*`` environment variables (optionally loaded
from a ``.env`` file) and overridden by the flags below. The process runs
until SIGINT/SIGTERM or ``--duration`` elapses, then prints the final alert
report. With ``--fail-on-alerts`` the exit status is 1 when any alert tag
scored above zero.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from contextlib import suppress
from typing import Any

import uvicorn
from dotenv import load_dotenv

from .collector import StatsCollector
from .config.settings import StatsSettings, parse_detailed_stats
from .server.app import create_app
from .sessions import HostSession
from .utils.exceptions import ConfigError
from .utils.logging_utils import setup_logging
from .version import get_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ALERTS = 1
EXIT_CONFIG = 2


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="wst - streaming stats aggregation and alert rules")
    parser.add_argument("--version", action="version", version=f"wst {get_version()}")
    parser.add_argument("--env-file", default=None, help="Load WST_* variables from this .env file")
    parser.add_argument("--stats-interval", type=float, help="Collection interval in seconds")
    parser.add_argument("--rtc-stats-timeout", type=float, help="External stats TTL in seconds")
    parser.add_argument("--session-stats-timeout", type=float, help="Per-session pull bound in seconds")
    parser.add_argument("--custom-metrics", help="Custom metric declarations (JSON/YAML or @file)")
    parser.add_argument("--custom-metrics-labels", help="Comma separated custom export labels")
    parser.add_argument("--alert-rules", help="Alert rules (JSON/YAML or @file)")
    parser.add_argument("--alert-rules-filename", help="Alert report file (.json, .log or text)")
    parser.add_argument("--alert-rules-fail-percentile", type=float, help="Tag score percentile (0-100)")
    parser.add_argument("--enable-detailed-stats", type=parse_detailed_stats,
                        help="true|false|<index>|<a>-<b>|<i>,<j>")
    parser.add_argument("--show-stats", action=argparse.BooleanOptionalAction, default=None,
                        help="Render the stats table each tick")
    parser.add_argument("--stats-path", help="Aggregate CSV path")
    parser.add_argument("--detailed-stats-path", help="Per participant CSV path")
    parser.add_argument("--prometheus-pushgateway", help="Pushgateway URL")
    parser.add_argument("--prometheus-pushgateway-job-name", help="Pushgateway job name")
    parser.add_argument("--push-stats-url", help="Remote collector base URL")
    parser.add_argument("--push-stats-id", help="Id used when pushing to a remote collector")
    parser.add_argument("--server-secret", help="Basic auth secret for push/ingestion")
    parser.add_argument("--server-port", type=int, help="Ingestion server port (0 disables)")
    parser.add_argument("--server-host", help="Ingestion server bind address")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument("--local-session", action="store_true",
                        help="Collect this host's process and system usage as a session")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds (default: run until interrupted)")
    parser.add_argument("--fail-on-alerts", action="store_true",
                        help="Exit with status 1 when any alert tag score is > 0")
    return parser.parse_args(argv)


_OVERRIDE_FIELDS = (
    "stats_interval", "rtc_stats_timeout", "session_stats_timeout", "custom_metrics",
    "custom_metrics_labels", "alert_rules", "alert_rules_filename", "alert_rules_fail_percentile",
    "enable_detailed_stats", "show_stats", "stats_path", "detailed_stats_path",
    "prometheus_pushgateway", "prometheus_pushgateway_job_name", "push_stats_url", "push_stats_id",
    "server_secret", "server_port", "server_host", "log_level", "log_file",
)


def build_settings(args: argparse.Namespace, env: dict[str, str] | None = None) -> StatsSettings:
    base = StatsSettings.from_env(env)
    return base.with_overrides(**{name: getattr(args, name) for name in _OVERRIDE_FIELDS})


async def run(collector: StatsCollector, settings: StatsSettings, duration: float | None = None) -> dict[str, Any]:
    """Run the collector (and the ingestion server) until stopped; returns the final report."""
    await collector.start()
    server: uvicorn.Server | None = None
    waiters: list[asyncio.Task] = []
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)
    waiters.append(asyncio.create_task(stop_event.wait(), name="stop-event"))
    if settings.server_port:
        app = create_app(collector, settings.server_secret or None)
        server = uvicorn.Server(uvicorn.Config(app, host=settings.server_host, port=settings.server_port, log_level="warning"))
        waiters.append(asyncio.create_task(server.serve(), name="ingestion-server"))
        logger.info("ingestion server listening on %s:%s", settings.server_host, settings.server_port)
    try:
        await asyncio.wait(waiters, timeout=duration, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if server is not None:
            server.should_exit = True
        for w in waiters:
            if w.get_name() == "stop-event":
                w.cancel()
        await asyncio.gather(*waiters, return_exceptions=True)
        report = await collector.stop()
    return report


def main(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()
    try:
        settings = build_settings(args)
        setup_logging(settings.log_level, settings.log_file or None)
        collector = StatsCollector(settings)
    except ConfigError as e:
        logger.error("configuration error: %s", e)
        return EXIT_CONFIG
    settings.log_summary()
    if args.local_session:
        collector.add_session(HostSession(collector.consume_session_id(), url="local"))

    report = asyncio.run(run(collector, settings, args.duration))
    print(json.dumps(report, indent=2))
    if args.fail_on_alerts and any(score > 0 for score in report.get("tags", {}).values()):
        logger.warning("alert tags failed: %s", [t for t, s in report["tags"].items() if s > 0])
        return EXIT_ALERTS
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
