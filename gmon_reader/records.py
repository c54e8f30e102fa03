#!/usr/bin/env python3
"""
records.py

Plain data types shared by the decoder and the attribution step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


# Record tags as written in the dump file.
TAG_TIME_HIST = 0
TAG_CG_ARC = 1
TAG_BB_COUNT = 2

TAG_NAMES = {
    TAG_TIME_HIST: "histogram",
    TAG_CG_ARC: "call-graph",
    TAG_BB_COUNT: "basic-block",
}


@dataclass
class HistogramParams:
    """
    Parameters every histogram record of a file must agree on.

    Seeded from the first histogram record.
    """
    profiling_rate: int
    dimension: str
    dimension_abbrev: str
    scale: float


@dataclass
class HistogramRecord:
    """
    Accumulated samples for one [lowpc, highpc) range.

    samples[i] counts hits in the i-th bucket; records read for the same
    range are summed into one instance.
    """
    lowpc: int
    highpc: int
    num_bins: int
    samples: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.samples:
            self.samples = [0] * self.num_bins

    def overlaps(self, lowpc: int, highpc: int) -> bool:
        return max(self.lowpc, lowpc) < min(self.highpc, highpc)


@dataclass
class CallGraphArc:
    """Raw caller -> callee observation as read from the file."""
    from_pc: int
    self_pc: int
    count: int


@dataclass
class FlatProfileRecord:
    """
    Per-function results, parallel to the function table.

    time_total is in seconds once attribution has finished.
    time_total_pct is left at 0.0 by the core; the report layer fills it.
    """
    function_id: int
    call_count: int = 0
    time_total: float = 0.0
    time_total_pct: float = 0.0


__all__ = [
    "TAG_TIME_HIST",
    "TAG_CG_ARC",
    "TAG_BB_COUNT",
    "TAG_NAMES",
    "HistogramParams",
    "HistogramRecord",
    "CallGraphArc",
    "FlatProfileRecord",
]
