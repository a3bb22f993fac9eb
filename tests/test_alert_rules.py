import pytest

from wst.alerts.rules import RuleValue, calculate_fail_amount, parse_alert_rules
from wst.utils.exceptions import ConfigError


def test_parse_yaml_and_json_rules():
    rules = parse_alert_rules("cpu:\n  tags: [performance]\n  p95:\n    $gt: 10\n    $lt: 100\n    $after: 60\n")
    rule = rules.get("cpu")
    assert rule is not None
    assert rule.tags == ("performance",)
    (rv,) = rule.checks["p95"]
    assert (rv.gt, rv.lt, rv.after) == (10, 100, 60)

    as_json = parse_alert_rules('{"memory": {"max": [{"$lt": 500}, {"$gte": 1}]}}')
    assert [key for key, _ in as_json.get("memory").variants()] == ["max", "max"]
    assert rules.tags == ["performance"]


def test_rules_from_file(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("cpu:\n  failPercentile: 50\n  mean:\n    $lte: 80\n", encoding="utf-8")
    rules = parse_alert_rules(f"@{path}")
    assert rules.get("cpu").fail_percentile == 50


def test_empty_rules():
    assert not parse_alert_rules("")
    assert not parse_alert_rules(None)


@pytest.mark.parametrize(
    "text",
    [
        "cpu: {max: {$foo: 1}}",
        "cpu: {max: {$after: 10}}",
        "cpu: {median: {$lt: 1}}",
        "cpu: {failPercentile: 150, max: {$lt: 1}}",
        "cpu: {max: {$lt: fast}}",
        "[1, 2]",
        "cpu: {max: [}",
        "@/nonexistent/rules.yaml",
    ],
)
def test_malformed_rules_raise_config_error(text):
    with pytest.raises(ConfigError):
        parse_alert_rules(text)


def test_rule_for_unknown_metric_is_kept_with_warning(caplog):
    with caplog.at_level("WARNING"):
        rules = parse_alert_rules("nope: {max: {$lt: 1}}", known_metrics=["cpu"])
    assert rules.get("nope") is not None
    assert "never be evaluated" in caplog.text


def test_descriptions():
    assert RuleValue(lt=100).description("p95") == "p95 < 100"
    assert RuleValue(gt=10, lt=100, after=60).description("p95") == "p95 > 10 and < 100 after 60s"
    assert RuleValue(gte=0.5, before=30).description("mean") == "mean >= 0.5 before 30s"
    assert RuleValue(eq=0).description("length") == "length = 0"


def test_fail_amounts():
    assert RuleValue(lt=100).check(150) == (True, 50)
    assert RuleValue(gt=100).check(50) == (True, 50)
    assert RuleValue(lt=100).check(500) == (True, 100)
    assert RuleValue(lt=100).check(99) == (False, 0)
    assert RuleValue(lte=100).check(100) == (False, 0)
    assert RuleValue(gte=10).check(10) == (False, 0)
    assert RuleValue(eq=5).check(5) == (False, 0)
    assert RuleValue(eq=5).check(4) == (True, pytest.approx(20))
    assert calculate_fail_amount(0.3, 0) == pytest.approx(30)


def test_upper_bound_checked_before_lower_bound():
    rv = RuleValue(gt=10, lt=5)
    failed, amount = rv.check(7)
    assert failed
    assert amount == pytest.approx(40)


def test_window_and_skip_predicates():
    rv = RuleValue(lt=1, after=10, before=20, skip_lt=0.5)
    assert not rv.is_active(5)
    assert rv.is_active(15)
    assert not rv.is_active(25)
    assert rv.is_expired(25)
    assert rv.is_skipped(0.1)
    assert not rv.is_skipped(0.7)
