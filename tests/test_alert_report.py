import json
from datetime import UTC, datetime

from _helpers import collected

from wst.alerts.engine import AlertRuleEngine
from wst.alerts.report import (
    AlertReportWriter,
    format_text_report,
    frame_report,
    render_report,
    visible_reports,
)
from wst.alerts.rules import AlertRules, parse_alert_rules


def _failing_engine():
    engine = AlertRuleEngine(parse_alert_rules("cpu: {tags: [performance], max: {$lt: 100}}\nmemory: {max: {$lt: 1000}}\n"))
    for now in (10, 20):
        engine.evaluate({"cpu": collected([150]), "memory": collected([10])}, now)
    return engine


def test_text_report_table():
    text = format_text_report(_failing_engine())
    lines = text.splitlines()
    assert lines[0].startswith("| Condition")
    assert "Fail amount %" in lines[0]
    row = lines[1].split("|")
    assert row[1].strip() == "cpu max < 100"
    assert [c.strip() for c in row[2:6]] == ["2", "10", "50", "50"]
    assert lines[2] == "-" * (20 + 22)
    assert lines[3].startswith("| Tag")
    assert lines[4].split("|")[1].strip() == "performance"
    assert lines[4].split("|")[2].strip() == "50"
    assert "memory" not in text


def test_only_reports_with_fail_time_are_visible():
    engine = AlertRuleEngine(parse_alert_rules("cpu: {max: {$lt: 100}}"))
    engine.evaluate({"cpu": collected([150])}, 10)
    assert visible_reports(engine) == []
    assert engine.to_json()["reports"]["cpu max < 100"]["totalFails"] == 1


def test_condition_column_grows_with_long_names():
    engine = AlertRuleEngine(parse_alert_rules("peerConnectionConnectionTime: {p95: {$lt: 1, $after: 1}}"))
    for now in (10, 20):
        engine.evaluate({"peerConnectionConnectionTime": collected([5])}, now)
    lines = format_text_report(engine).splitlines()
    name = "peerConnectionConnectionTime p95 < 1 after 1s"
    assert lines[1].startswith(f"| {name} |")
    assert lines[2] == "-" * (len(name) + 22)


def test_render_by_extension():
    engine = _failing_engine()
    doc = json.loads(render_report(engine, "report.json"))
    assert doc["tags"] == {"performance": 50}
    assert doc["reports"]["cpu max < 100"]["totalFails"] == 2

    now = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
    log = render_report(engine, "report.log", now)
    first, *_, last = log.rstrip("\n").split("\n")
    assert first.startswith("-- Alert rules report (2024-05-01T12:00:00.000Z) ")
    assert set(last) == {"-"}

    assert render_report(engine, "report.txt") == format_text_report(engine)


def test_frame_empty_report():
    assert frame_report("") == ""


def test_writer_writes_file(tmp_path):
    path = tmp_path / "out" / "alerts.json"
    writer = AlertReportWriter(str(path))
    assert writer.write(_failing_engine())
    assert json.loads(path.read_text(encoding="utf-8"))["tags"]["performance"] == 50


def test_writer_skips_without_rules(tmp_path):
    path = tmp_path / "alerts.txt"
    assert not AlertReportWriter(str(path)).write(AlertRuleEngine(AlertRules()))
    assert not path.exists()
