import math

import pytest
from _helpers import collected, snapshot

from wst.stats.catalog import (
    MetricCatalog,
    MetricKind,
    composite_key,
    describe,
    parse_custom_metrics,
    parse_stat_key,
    split_composite_key,
    stat_key,
)
from wst.stats.snapshot import CollectedStats
from wst.utils.exceptions import ConfigError


def test_builtin_catalog_kinds():
    catalog = MetricCatalog.build()
    assert catalog["cpu"].kind is MetricKind.SCALAR
    assert catalog["audioRecvJitter"].kind is MetricKind.LABELED
    assert catalog["videoRecvCodec"].kind is MetricKind.CATEGORICAL
    counts = describe(catalog)
    assert counts["categorical"] == 4
    assert sum(counts.values()) == len(catalog)


def test_custom_metrics_extend_catalog():
    custom = parse_custom_metrics("queueDepth: {type: scalar}\nroomSize: {labels: [room]}\nflavour: {type: categorical}\n")
    catalog = MetricCatalog.build(custom)
    assert catalog["queueDepth"].kind is MetricKind.SCALAR
    assert catalog["roomSize"].kind is MetricKind.LABELED
    assert catalog["roomSize"].labels == ("room",)
    assert catalog["flavour"].custom
    assert catalog.names[-1] == "flavour"


def test_custom_metric_clashing_with_builtin_is_rejected():
    with pytest.raises(ConfigError):
        MetricCatalog.build(parse_custom_metrics("cpu: {type: scalar}"))


def test_custom_metric_schema_errors():
    with pytest.raises(ConfigError):
        parse_custom_metrics("x: {type: histogram}")


def test_stat_key_round_trip_and_bare_host():
    key = stat_key(0, "t1", "hostA", "alice")
    assert key == "0|t1|hostA|alice"
    parsed = parse_stat_key(key)
    assert (parsed.page_index, parsed.track_id, parsed.host, parsed.participant) == (0, "t1", "hostA", "alice")
    assert parse_stat_key("hostB").host == "hostB"
    assert parse_stat_key("1||").host == "unknown"
    assert parse_stat_key("x|t|h|p").page_index is None


def test_composite_keys():
    assert composite_key("alice", "t1") == "alice:t1"
    assert composite_key("alice", None) == "alice:"
    assert split_composite_key("alice:t1") == ("alice", "t1")
    assert split_composite_key("bob") == ("bob", "")


def test_collected_stats_reset_keeps_participant_values():
    c = collected([1, 2], by_host={"h": [1]}, participants={"alice:t1": 3.0})
    c.reset()
    assert len(c.all) == 0
    assert len(c.by_host["h"]) == 0
    assert c.by_participant_and_track == {"alice:t1": 3.0}


def test_merge_raw_drops_non_finite_values():
    c = CollectedStats()
    dropped = c.merge_raw({
        "all": [1, None, math.nan, 2],
        "byHost": {"h1": [1, math.inf]},
        "byCodec": {"opus": [1]},
        "byParticipantAndTrack": {"alice:": 4, "bob:": None},
    })
    assert dropped == 4
    assert c.all.data == [1, 2]
    assert c.by_host["h1"].data == [1]
    assert c.by_codec["opus"].data == [1]
    assert c.by_participant_and_track == {"alice:": 4}


def test_snapshot_is_an_independent_copy():
    live = {"cpu": collected([1, 2])}
    snap = snapshot(live)
    live["cpu"].all.push(100)
    assert snap["cpu"].all.data == [1, 2]
    assert snap.non_empty() == ["cpu"]
    with pytest.raises(TypeError):
        snap.stats["memory"] = CollectedStats()
    raw = snap.to_raw()
    assert raw["cpu"] == {"all": [1, 2], "byHost": {}, "byCodec": {}, "byParticipantAndTrack": {}}
    assert snap.config.to_dict()["pages"] == 1
