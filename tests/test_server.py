import gzip
import json

import pytest
from fastapi.testclient import TestClient

from wst.collector import StatsCollector
from wst.error_handling import ErrorCategory, get_error_handler
from wst.server import create_app

AUTH = ("admin", "s3cret")


@pytest.fixture()
def collector(make_settings):
    return StatsCollector(make_settings(alert_rules="cpu: {tags: [performance], max: {$lt: 100}}"))


@pytest.fixture()
def client(collector):
    return TestClient(create_app(collector, secret="s3cret"))


def test_put_collected_stats(client, collector):
    body = {"id": "remote-1", "stats": {"cpu": {"all": [1, 2], "byHost": {"h": [1]}}}, "config": {"url": "http://x", "pages": 3}}
    resp = client.put("/collected-stats", json=body, auth=AUTH)
    assert resp.status_code == 200
    assert resp.json() == {"message": "stats from remote-1 added", "metrics": 1}
    entry = collector.external_stats["remote-1"]
    assert entry.stats["cpu"]["all"] == [1.0, 2.0]
    assert entry.stats["cpu"]["byHost"] == {"h": [1.0]}
    assert entry.config["pages"] == 3


def test_put_accepts_raw_distributions_alias_and_gzip(client, collector):
    payload = json.dumps({"id": "remote-2", "rawDistributions": {"memory": {"all": [5]}}}).encode()
    resp = client.put(
        "/collected-stats",
        content=gzip.compress(payload),
        headers={"Content-Encoding": "gzip", "Content-Type": "application/json"},
        auth=AUTH,
    )
    assert resp.status_code == 200
    assert collector.external_stats["remote-2"].stats["memory"]["all"] == [5.0]


def test_put_replaces_previous_entry(client, collector):
    client.put("/collected-stats", json={"id": "r", "stats": {"cpu": {"all": [1]}}}, auth=AUTH)
    client.put("/collected-stats", json={"id": "r", "stats": {"cpu": {"all": [9]}}}, auth=AUTH)
    assert list(collector.external_stats) == ["r"]
    assert collector.external_stats["r"].stats["cpu"]["all"] == [9.0]


def test_put_requires_credentials(client, collector):
    assert client.put("/collected-stats", json={"id": "x"}).status_code == 401
    assert client.put("/collected-stats", json={"id": "x"}, auth=("admin", "wrong")).status_code == 401
    assert collector.external_stats == {}


def test_no_secret_means_open_endpoint(collector):
    client = TestClient(create_app(collector))
    assert client.put("/collected-stats", json={"id": "x"}).status_code == 200


def test_invalid_payload_is_rejected(client, collector):
    resp = client.put("/collected-stats", json={"stats": {}}, auth=AUTH)
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_failed"
    summary = get_error_handler().get_error_summary()
    assert summary["by_category"][ErrorCategory.EXTERNAL_STATS.value] == 1
    assert collector.external_stats == {}


def test_corrupt_gzip_body(client):
    resp = client.put(
        "/collected-stats",
        content=b"not gzip",
        headers={"Content-Encoding": "gzip", "Content-Type": "application/json"},
        auth=AUTH,
    )
    assert resp.status_code == 400


def test_health_and_alert_report(client):
    health = client.get("/health").json()
    assert health == {"status": "stopped", "sessions": 0, "external": 0, "dropped_samples": 0}
    report = client.get("/alerts/report").json()
    assert report == {"tags": {"performance": 0}, "reports": {}}
