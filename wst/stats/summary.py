"""Streaming summary over a multiset of numeric samples.

Responsibilities:
 - Accumulate samples pushed during one tick (single values or arrays).
 - Derive count / sum / mean / stddev / 5th and 95th percentile / min / max.
 - Report zeros (never NaN) while empty; reset atomically between ticks.

Percentiles use linear interpolation between closest ranks on the ascending
sorted samples (rank ``p/100 * (n-1)``), so the result does not depend on
push order. Callers filter non-finite values before pushing.
"""
from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass

CHECK_KEYS: tuple[str, ...] = ("length", "sum", "mean", "stddev", "p5", "p95", "min", "max")


def percentile(sorted_values: list[float], p: float) -> float:
    """Linear-interpolated percentile of an ascending list (0 when empty)."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if n == 1:
        return float(sorted_values[0])
    p = min(max(float(p), 0.0), 100.0)
    rank = p / 100.0 * (n - 1)
    lo = math.floor(rank)
    hi = math.ceil(rank)
    if lo == hi:
        return float(sorted_values[lo])
    frac = rank - lo
    return sorted_values[lo] + (sorted_values[hi] - sorted_values[lo]) * frac


@dataclass(frozen=True, slots=True)
class StatsData:
    """Point-in-time statistics of a summary."""

    count: int = 0
    sum: float = 0.0
    mean: float = 0.0
    stddev: float = 0.0
    p5: float = 0.0
    p95: float = 0.0
    min: float = 0.0
    max: float = 0.0

    def get(self, key: str) -> float:
        """Value for an alert check key (``length`` maps to ``count``)."""
        if key == "length":
            return self.count
        if key not in CHECK_KEYS:
            raise KeyError(key)
        return getattr(self, key)


class StreamingSummary:
    """Resettable accumulator producing :class:`StatsData` snapshots."""

    __slots__ = ("_values", "_sum", "_sorted")

    def __init__(self, values: Iterable[float] | None = None):
        self._values: list[float] = []
        self._sum = 0.0
        self._sorted: list[float] | None = None
        if values is not None:
            self.push(values)

    def push(self, value: float | Iterable[float]) -> None:
        if isinstance(value, (int, float)):
            self._values.append(value)
            self._sum += value
        else:
            batch = list(value)
            self._values.extend(batch)
            self._sum += math.fsum(batch)
        self._sorted = None

    def reset(self) -> None:
        # Swap in fresh containers so no partially cleared state is observable.
        self._values, self._sum, self._sorted = [], 0.0, None

    def __len__(self) -> int:
        return len(self._values)

    @property
    def length(self) -> int:
        return len(self._values)

    @property
    def sum(self) -> float:
        return self._sum

    @property
    def data(self) -> list[float]:
        """Raw samples in push order (copy, safe to serialize)."""
        return list(self._values)

    def _ascending(self) -> list[float]:
        if self._sorted is None:
            self._sorted = sorted(self._values)
        return self._sorted

    def mean(self) -> float:
        n = len(self._values)
        return self._sum / n if n else 0.0

    def stddev(self) -> float:
        """Population standard deviation."""
        n = len(self._values)
        if n < 2:
            return 0.0
        mean = self._sum / n
        var = math.fsum((v - mean) ** 2 for v in self._values) / n
        return math.sqrt(var)

    def percentile(self, p: float) -> float:
        return percentile(self._ascending(), p)

    def min(self) -> float:
        return float(self._ascending()[0]) if self._values else 0.0

    def max(self) -> float:
        return float(self._ascending()[-1]) if self._values else 0.0

    def snapshot(self) -> StatsData:
        if not self._values:
            return StatsData()
        return StatsData(
            count=len(self._values),
            sum=self._sum,
            mean=self.mean(),
            stddev=self.stddev(),
            p5=self.percentile(5),
            p95=self.percentile(95),
            min=self.min(),
            max=self.max(),
        )

    def copy(self) -> StreamingSummary:
        clone = StreamingSummary()
        clone._values = list(self._values)
        clone._sum = self._sum
        return clone

    def __repr__(self) -> str:
        return f"StreamingSummary(length={len(self._values)}, sum={self._sum!r})"


__all__ = ["CHECK_KEYS", "StatsData", "StreamingSummary", "percentile"]
