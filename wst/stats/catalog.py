"""Metric catalog: which metric names exist and what shape their samples have.

The catalog is built once at engine start (built-in names plus user declared
custom metrics) and never changes afterwards. Each metric is declared as one
of three kinds, decided at declaration time:

 - SCALAR: the session reports a single number per tick.
 - LABELED: the session reports ``{stat_key: number}``; the key encodes the
   page index, track id, host and participant of the sample.
 - CATEGORICAL: the session reports ``{stat_key: str}`` (e.g. codec names);
   each entry counts as one occurrence of its category.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NamedTuple

from ..config.validation import CUSTOM_METRICS_SCHEMA, load_document, validate_document
from ..utils.exceptions import ConfigError

logger = logging.getLogger(__name__)

STAT_KEY_SEPARATOR = "|"
UNKNOWN_HOST = "unknown"


class MetricKind(Enum):
    SCALAR = "scalar"
    LABELED = "labeled"
    CATEGORICAL = "categorical"


@dataclass(frozen=True, slots=True)
class MetricDeclaration:
    name: str
    kind: MetricKind = MetricKind.LABELED
    labels: tuple[str, ...] = field(default_factory=tuple)
    custom: bool = False


_SCALAR_METRICS = (
    "nodeCpu", "nodeMemory", "usedCpu", "usedMemory", "usedGpu",
    "cpu", "memory", "errors", "warnings",
)

_LABELED_METRICS = (
    # page level
    "pages", "peerConnections", "peerConnectionConnectionTime", "peerConnectionDisconnectionTime",
    "peerConnectionsCreated", "peerConnectionsClosed", "peerConnectionsConnected",
    "peerConnectionsDisconnected", "peerConnectionsFailed",
    "audioEndToEndDelay", "audioStartFrameDelay", "videoEndToEndDelay", "videoStartFrameDelay",
    "videoEndToEndNetworkDelay", "httpRecvBytes", "httpRecvLatency", "cpuPressure",
    "pageCpu", "pageMemory",
    "throttleUpRate", "throttleUpDelay", "throttleUpLoss", "throttleUpQueue",
    "throttleDownRate", "throttleDownDelay", "throttleDownLoss", "throttleDownQueue",
    "audioSubscribeDelay", "videoSubscribeDelay",
    # inbound audio
    "audioBytesReceived", "audioRecvBitrates", "audioRecvPacketsLost", "audioRecvJitter",
    "audioRecvAvgJitterBufferDelay",
    # inbound video
    "videoRecvBytes", "videoFramesDecoded", "videoRecvBitrates", "videoRecvPacketsLost",
    "videoRecvJitter", "videoRecvAvgJitterBufferDelay", "videoRecvWidth", "videoRecvHeight",
    "videoRecvFps", "firCountSent", "pliCountSent",
    # outbound audio
    "audioBytesSent", "audioRetransmittedBytesSent", "audioSentBitrates", "audioSentPacketsLost",
    "audioSentRoundTripTime",
    # outbound video
    "videoSentBytes", "videoSentRetransmittedBytes", "videoSentBitrates", "videoSentPacketsLost",
    "videoSentRoundTripTime", "videoQualityLimitationResolutionChanges",
    "videoQualityLimitationCpu", "videoQualityLimitationBandwidth",
    "videoSentActiveSpatialLayers", "videoSentMaxBitrate", "videoSentWidth", "videoSentHeight",
    "videoSentFps", "videoFirCountReceived", "videoPliCountReceived",
)

_CATEGORICAL_METRICS = ("audioRecvCodec", "videoRecvCodec", "audioSentCodec", "videoSentCodec")

BUILTIN_METRICS: tuple[MetricDeclaration, ...] = (
    *(MetricDeclaration(n, MetricKind.SCALAR) for n in _SCALAR_METRICS),
    *(MetricDeclaration(n, MetricKind.LABELED) for n in _LABELED_METRICS),
    *(MetricDeclaration(n, MetricKind.CATEGORICAL) for n in _CATEGORICAL_METRICS),
)


def parse_custom_metrics(text: str | None) -> list[MetricDeclaration]:
    """Parse ``name -> {labels?, type?}`` declarations (type defaults to labeled)."""
    doc = load_document(text, "custom metrics")
    validate_document(doc, CUSTOM_METRICS_SCHEMA, "custom metrics")
    out: list[MetricDeclaration] = []
    for name, decl in doc.items():
        decl = decl or {}
        out.append(MetricDeclaration(
            name=str(name),
            kind=MetricKind(decl.get("type", MetricKind.LABELED.value)),
            labels=tuple(decl.get("labels", ())),
            custom=True,
        ))
    logger.debug("custom metrics declared: %s", [d.name for d in out])
    return out


class MetricCatalog(Mapping[str, MetricDeclaration]):
    """Immutable, ordered set of metric declarations."""

    def __init__(self, declarations: Iterable[MetricDeclaration]):
        decls: dict[str, MetricDeclaration] = {}
        for d in declarations:
            if d.name in decls:
                raise ConfigError(f"metric {d.name!r} declared twice")
            decls[d.name] = d
        self._decls = decls

    @classmethod
    def build(cls, custom: Iterable[MetricDeclaration] = ()) -> MetricCatalog:
        return cls([*BUILTIN_METRICS, *custom])

    def __getitem__(self, name: str) -> MetricDeclaration:
        return self._decls[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._decls)

    def __len__(self) -> int:
        return len(self._decls)

    @property
    def names(self) -> list[str]:
        return list(self._decls)

    def __repr__(self) -> str:
        return f"MetricCatalog({len(self._decls)} metrics)"


class StatKey(NamedTuple):
    page_index: int | None
    track_id: str
    host: str
    participant: str


def stat_key(page_index: int | None = None, track_id: str = "", host: str = "", participant: str = "") -> str:
    """Encode sample labels as ``<page>|<track>|<host>|<participant>``."""
    page = "" if page_index is None else str(page_index)
    return STAT_KEY_SEPARATOR.join((page, track_id or "", host or "", participant or ""))


def parse_stat_key(key: str) -> StatKey:
    """Decode a labeled sample key; a bare key is taken as the host name."""
    if STAT_KEY_SEPARATOR not in key:
        return StatKey(None, "", key or UNKNOWN_HOST, "")
    parts = key.split(STAT_KEY_SEPARATOR, 3)
    parts += [""] * (4 - len(parts))
    page, track, host, participant = parts
    try:
        page_index: int | None = int(page) if page else None
    except ValueError:
        page_index = None
    return StatKey(page_index, track, host or UNKNOWN_HOST, participant)


def composite_key(participant: str, track_id: str | None = "") -> str:
    return f"{participant}:{track_id or ''}"


def split_composite_key(key: str) -> tuple[str, str]:
    participant, _, track = key.partition(":")
    return participant, track


def describe(catalog: Mapping[str, Any]) -> dict[str, int]:
    """Count declarations per kind (startup log line)."""
    counts: dict[str, int] = {k.value: 0 for k in MetricKind}
    for d in catalog.values():
        counts[d.kind.value] += 1
    return counts


__all__ = [
    "BUILTIN_METRICS",
    "MetricCatalog",
    "MetricDeclaration",
    "MetricKind",
    "StatKey",
    "UNKNOWN_HOST",
    "composite_key",
    "describe",
    "parse_custom_metrics",
    "parse_stat_key",
    "split_composite_key",
    "stat_key",
]
