import asyncio
import gzip

import pytest
from _helpers import collected, snapshot
from prometheus_client import CollectorRegistry

import wst.exporters.prometheus as prom
from wst.alerts.engine import AlertRuleEngine
from wst.alerts.rules import parse_alert_rules
from wst.utils.exceptions import PushgatewayError

START = 1700000000.0


def _exporter(rules=None, **kw):
    registry = CollectorRegistry()
    exporter = prom.PrometheusExporter(
        "http://pushgateway.test:9091",
        ["cpu", "audioRecvJitter", "videoRecvCodec"],
        job_name="load-test",
        start_time=START,
        rules=rules,
        registry=registry,
        **kw,
    )
    return exporter, registry


def test_metric_names_are_sanitized():
    assert prom.metric_name("cpu") == "wst_cpu"
    assert prom.metric_name("cpu", "p95") == "wst_cpu_p95"
    assert prom.metric_name("alert-report.x") == "wst_alert_report_x"


def test_update_sets_stat_and_value_gauges():
    exporter, registry = _exporter(custom_labels={"region": "eu"})
    snap = snapshot({
        "cpu": collected([10, 30]),
        "audioRecvJitter": collected([0.5], by_host={"hostA": [0.5]}, participants={"alice:t1": 0.5}),
        "videoRecvCodec": collected([1, 1], by_codec={"VP8": [1, 1]}),
    })
    exporter.update(snap, None, START + 30)
    dt = prom.iso_timestamp(START)
    base = {"datetime": dt, "region": "eu"}
    assert registry.get_sample_value("wst_elapsedTime", base) == 30
    assert registry.get_sample_value("wst_cpu_mean", {"host": "all", "codec": "all", **base}) == 20
    assert registry.get_sample_value("wst_cpu_length", {"host": "all", "codec": "all", **base}) == 2
    assert registry.get_sample_value("wst_audioRecvJitter_max", {"host": "hostA", "codec": "all", **base}) == 0.5
    assert registry.get_sample_value("wst_videoRecvCodec_sum", {"host": "all", "codec": "VP8", **base}) == 2
    assert registry.get_sample_value(
        "wst_audioRecvJitter", {"participantName": "alice", "trackId": "t1", **base}
    ) == 0.5


def test_alert_gauges_follow_reports_and_expire():
    rules = parse_alert_rules("cpu: {tags: [performance], max: {$lt: 100, $before: 60}}")
    engine = AlertRuleEngine(rules, 95, START)
    exporter, registry = _exporter(rules)
    snap = snapshot({"cpu": collected([150])})
    engine.evaluate(snap.stats, START + 10)
    exporter.update(snap, engine, START + 10)

    dt = prom.iso_timestamp(START)
    rule_labels = {"rule": "cpu max <", "datetime": dt}
    report_labels = {"rule": "max < 100 before 60s", "datetime": dt}
    assert registry.get_sample_value("wst_alert_cpu_max", rule_labels) == 100
    assert registry.get_sample_value("wst_alert_cpu_max_report", report_labels) == 50
    assert registry.get_sample_value("wst_alert_cpu_max_mean", report_labels) == 150
    assert registry.get_sample_value("wst_alert_report", {"datetime": dt, "tag": "performance"}) == 50

    exporter.update(snap, engine, START + 90)
    assert registry.get_sample_value("wst_alert_cpu_max", rule_labels) is None
    assert registry.get_sample_value("wst_alert_cpu_max_report", report_labels) is None


def test_no_detailed_gauge_when_disabled():
    exporter, registry = _exporter(detailed=False)
    exporter.update(snapshot({"audioRecvJitter": collected([1], participants={"alice:t1": 1})}), None, START)
    assert exporter.metrics["audioRecvJitter"].value is None
    assert registry.get_sample_value(
        "wst_audioRecvJitter", {"participantName": "alice", "trackId": "t1", "datetime": prom.iso_timestamp(START)}
    ) is None


def test_export_pushes_registry(monkeypatch):
    calls = []

    def fake_push(gateway, job, registry, timeout, handler):
        calls.append((gateway, job, registry, timeout))

    monkeypatch.setattr(prom, "push_to_gateway", fake_push)
    exporter, registry = _exporter(timeout=2.5)
    asyncio.run(exporter.export(snapshot({"cpu": collected([1])}), None, START + 1))
    assert calls == [("http://pushgateway.test:9091", "load-test", registry, 2.5)]


def test_push_and_delete_failures_raise(monkeypatch):
    def boom(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(prom, "push_to_gateway", boom)
    monkeypatch.setattr(prom, "delete_from_gateway", boom)
    exporter, _ = _exporter()
    with pytest.raises(PushgatewayError):
        asyncio.run(exporter.push())
    with pytest.raises(PushgatewayError):
        asyncio.run(exporter.delete())


def test_push_handler_adds_auth_and_gzip(monkeypatch):
    seen = {}

    def fake_default(url, method, timeout, headers, data):
        seen.update(url=url, headers=dict(headers), data=data)
        return lambda: None

    monkeypatch.setattr(prom, "default_handler", fake_default)
    handler = prom.make_push_handler("user:pass", gzip_body=True)
    handler("http://gw", "PUT", 1, [("Content-Type", "text/plain")], b"metric 1\n")
    assert seen["headers"]["Authorization"] == "Basic dXNlcjpwYXNz"
    assert seen["headers"]["Content-Encoding"] == "gzip"
    assert gzip.decompress(seen["data"]) == b"metric 1\n"
