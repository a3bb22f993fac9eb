import pytest

from wst.config.settings import StatsSettings, parse_detailed_stats
from wst.utils.env_flags import env_flag, env_float, env_int
from wst.utils.exceptions import ConfigError


def test_defaults():
    s = StatsSettings.from_env({})
    assert s.stats_interval == 15
    assert s.rtc_stats_timeout == 60
    assert s.session_stats_timeout is None
    assert s.effective_session_stats_timeout == 15
    assert s.alert_rules_fail_percentile == 95
    assert s.enable_detailed_stats is False
    assert s.show_stats is True
    assert s.prometheus_pushgateway_job_name == "default"
    assert s.push_stats_id == "default"


def test_from_env_parses_values():
    s = StatsSettings.from_env({
        "WST_STATS_INTERVAL": "5",
        "WST_RTC_STATS_TIMEOUT": "2",
        "WST_SESSION_STATS_TIMEOUT": "3",
        "WST_ENABLE_DETAILED_STATS": "0",
        "WST_SHOW_STATS": "false",
        "WST_SERVER_PORT": "not-a-port",
        "WST_CUSTOM_METRICS_LABELS": "region, ,build",
        "WST_PROMETHEUS_PUSHGATEWAY_GZIP": "no",
        "OTHER": "ignored",
    })
    assert s.stats_interval == 5
    assert s.effective_rtc_stats_timeout == 5
    assert s.effective_session_stats_timeout == 3
    assert s.enable_detailed_stats == 0 and s.enable_detailed_stats is not False
    assert s.show_stats is False
    assert s.server_port == 0
    assert s.custom_label_names == ["region", "build"]
    assert s.prometheus_pushgateway_gzip is False
    assert "OTHER" not in s._env_snapshot


def test_from_process_env(monkeypatch):
    monkeypatch.setenv("WST_ALERT_RULES_FAIL_PERCENTILE", "50")
    assert StatsSettings.from_env().alert_rules_fail_percentile == 50


@pytest.mark.parametrize(
    "raw, expected",
    [(None, False), ("", False), ("false", False), ("TRUE", True), ("2", 2), ("1-3", "1-3"), ("0,4", "0,4")],
)
def test_parse_detailed_stats(raw, expected):
    assert parse_detailed_stats(raw) == expected


def test_with_overrides_ignores_none_and_rejects_unknown():
    s = StatsSettings().with_overrides(stats_interval=2.0, stats_path=None)
    assert s.stats_interval == 2.0
    assert s.stats_path == ""
    with pytest.raises(ConfigError):
        StatsSettings().with_overrides(nope=1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"stats_interval": 0},
        {"rtc_stats_timeout": -1},
        {"session_stats_timeout": -2},
        {"alert_rules_fail_percentile": 101},
        {"prometheus_pushgateway_timeout": 0},
    ],
)
def test_validate_rejects_bad_values(kwargs):
    with pytest.raises(ConfigError):
        StatsSettings(**kwargs).validate()


def test_env_readers_fall_back_on_malformed_values():
    env = {"A": "nope", "B": " ", "C": "On", "D": "7"}
    assert env_float("A", 1.5, env) == 1.5
    assert env_float("B", 2.0, env) == 2.0
    assert env_int("D", 0, env) == 7
    assert env_int("A", 3, env) == 3
    assert env_flag("C", False, env) is True
    assert env_flag("B", True, env) is True
    assert env_flag("missing", False, env) is False
