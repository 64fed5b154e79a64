"""
Phase Metrics
=============

Counts and distribution summaries for every phase of a hierarchy run.

Percentiles use the nearest-rank rule sorted[min(n-1, floor(p/100 * n))]
so summaries are exact sample values and reproducible across platforms.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
import math

import numpy as np


@dataclass(frozen=True)
class MetricStats:
    """min / p50 / p90 / max of one distribution (all zero when empty)."""
    min: float = 0.0
    p50: float = 0.0
    p90: float = 0.0
    max: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "p50": self.p50, "p90": self.p90, "max": self.max}


def percentile(values: Iterable[float], p: float) -> float:
    ordered = np.sort(np.asarray(list(values), dtype=float))
    if ordered.size == 0:
        return 0.0
    index = min(ordered.size - 1, int(math.floor(p / 100.0 * ordered.size)))
    return float(ordered[index])


def metric_stats(values: Iterable[float]) -> MetricStats:
    data = np.asarray(list(values), dtype=float)
    if data.size == 0:
        return MetricStats()
    return MetricStats(
        min=float(data.min()),
        p50=percentile(data, 50),
        p90=percentile(data, 90),
        max=float(data.max()),
    )


@dataclass(frozen=True)
class PhaseMetrics:
    """Snapshot recorded when a phase finishes."""
    round: int
    phase: str
    timestamp_ms: int
    counts: Dict[str, int] = field(default_factory=dict)
    stats: Dict[str, MetricStats] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return f"r{self.round}:{self.phase}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "round": self.round,
            "phase": self.phase,
            "label": self.label,
            "timestamp_ms": self.timestamp_ms,
            "counts": dict(sorted(self.counts.items())),
            "stats": {k: v.to_dict() for k, v in sorted(self.stats.items())},
        }


class MetricsCollector:
    """
    Append-only collector of phase metrics.

    Receives finished snapshots only; never alters the run it observes.
    """

    def __init__(self):
        self._entries: List[PhaseMetrics] = []

    def collect(self, metrics: PhaseMetrics) -> None:
        self._entries.append(metrics)

    def get_entries(
        self,
        round_number: Optional[int] = None,
        phase: Optional[str] = None
    ) -> Tuple[PhaseMetrics, ...]:
        entries = self._entries
        if round_number is not None:
            entries = [m for m in entries if m.round == round_number]
        if phase is not None:
            entries = [m for m in entries if m.phase == phase]
        return tuple(entries)

    def latest(self) -> Optional[PhaseMetrics]:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)
