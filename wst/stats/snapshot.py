"""Per-metric collected distributions and the immutable per-tick snapshot.

 - CollectedStats: mutable working state owned by the collector for one
   metric ("all", per host, per codec, latest value per participant/track).
 - MetricSnapshot: frozen copy emitted once per tick to the alert engine,
   exporters and listeners.
 - Raw form: the wire shape exchanged between collectors
   ``{all: [..], byHost: {h: [..]}, byCodec: {c: [..]}, byParticipantAndTrack: {k: v}}``.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..utils.formatting import is_finite_number
from .summary import StreamingSummary

logger = logging.getLogger(__name__)


def _finite(values: Iterable[Any]) -> tuple[list[float], int]:
    kept: list[float] = []
    dropped = 0
    for v in values:
        if is_finite_number(v):
            kept.append(v)
        else:
            dropped += 1
    return kept, dropped


def _samples(values: Any, where: str) -> list[Any]:
    if values is None:
        return []
    if isinstance(values, (str, bytes, Mapping)) or not isinstance(values, Iterable):
        raise TypeError(f"{where}: expected a list of samples, got {type(values).__name__}")
    return list(values)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{key}: expected an object, got {type(value).__name__}")
    return value


@dataclass(slots=True)
class CollectedStats:
    all: StreamingSummary = field(default_factory=StreamingSummary)
    by_host: dict[str, StreamingSummary] = field(default_factory=dict)
    by_codec: dict[str, StreamingSummary] = field(default_factory=dict)
    by_participant_and_track: dict[str, float] = field(default_factory=dict)

    def reset(self) -> None:
        """Empty the distributions; per-entity latest values are kept."""
        self.all.reset()
        for s in self.by_host.values():
            s.reset()
        for s in self.by_codec.values():
            s.reset()

    def host(self, name: str) -> StreamingSummary:
        s = self.by_host.get(name)
        if s is None:
            s = self.by_host[name] = StreamingSummary()
        return s

    def codec(self, name: str) -> StreamingSummary:
        s = self.by_codec.get(name)
        if s is None:
            s = self.by_codec[name] = StreamingSummary()
        return s

    def copy(self) -> CollectedStats:
        return CollectedStats(
            all=self.all.copy(),
            by_host={k: v.copy() for k, v in self.by_host.items()},
            by_codec={k: v.copy() for k, v in self.by_codec.items()},
            by_participant_and_track=dict(self.by_participant_and_track),
        )

    def to_raw(self) -> dict[str, Any]:
        return {
            "all": self.all.data,
            "byHost": {k: v.data for k, v in self.by_host.items()},
            "byCodec": {k: v.data for k, v in self.by_codec.items()},
            "byParticipantAndTrack": dict(self.by_participant_and_track),
        }

    def merge_raw(self, raw: Mapping[str, Any]) -> int:
        """Array-merge a raw distribution into this one.

        Non-finite values are dropped; returns how many were dropped.
        A misshaped distribution raises TypeError before anything is merged.
        """
        all_values, dropped = _finite(_samples(raw.get("all"), "all"))
        by_host = {str(k): _finite(_samples(v, f"byHost.{k}")) for k, v in _section(raw, "byHost").items()}
        by_codec = {str(k): _finite(_samples(v, f"byCodec.{k}")) for k, v in _section(raw, "byCodec").items()}
        participants = _section(raw, "byParticipantAndTrack")

        self.all.push(all_values)
        for host, (kept, n) in by_host.items():
            self.host(host).push(kept)
            dropped += n
        for codec, (kept, n) in by_codec.items():
            self.codec(codec).push(kept)
            dropped += n
        for label, value in participants.items():
            if is_finite_number(value):
                self.by_participant_and_track[str(label)] = value
            else:
                dropped += 1
        return dropped


@dataclass(slots=True)
class CollectedStatsConfig:
    """Aggregate configuration of the sessions contributing to a tick."""

    url: str = ""
    pages: int = 0
    start_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "pages": self.pages, "startTime": self.start_time}


@dataclass(frozen=True, slots=True)
class MetricSnapshot:
    """Immutable result of one tick."""

    timestamp: float
    stats: Mapping[str, CollectedStats]
    config: CollectedStatsConfig

    @classmethod
    def freeze(cls, timestamp: float, stats: Mapping[str, CollectedStats], config: CollectedStatsConfig) -> MetricSnapshot:
        copied = {name: s.copy() for name, s in stats.items()}
        cfg = CollectedStatsConfig(config.url, config.pages, config.start_time)
        return cls(timestamp=timestamp, stats=MappingProxyType(copied), config=cfg)

    def __getitem__(self, name: str) -> CollectedStats:
        return self.stats[name]

    def non_empty(self) -> list[str]:
        return [name for name, s in self.stats.items() if len(s.all)]

    def to_raw(self) -> dict[str, dict[str, Any]]:
        return {name: s.to_raw() for name, s in self.stats.items()}


__all__ = ["CollectedStats", "CollectedStatsConfig", "MetricSnapshot"]
