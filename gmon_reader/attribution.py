#!/usr/bin/env python3
"""
attribution.py

Turns decoded records into per-function results.

Steps (run once, after decoding):
  1) scale_entries(): scaled_address = address // unit_size for every
     function. Histogram bins are expressed in those units.
  2) build_flat_profile(): distribute histogram samples over the functions
     whose ranges overlap each bin, convert to seconds, and count calls
     per callee.
  3) build_call_graph(): sum arc counts per (caller, callee) pair.

Bin i of a histogram record covers, in scaled units,
    [lowpc/unit + scale*i, lowpc/unit + scale*(i+1))
and a function credited with part of a bin receives
    overlap * samples / scale
so a bin split between two functions is shared in proportion to the
covered width.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from gmon_reader.address_resolver import AddressResolver
from gmon_reader.records import (
    CallGraphArc,
    FlatProfileRecord,
    HistogramParams,
    HistogramRecord,
)
from gmon_reader.symtab import FunctionEntry


LOG = logging.getLogger("attribution")

# (caller index, callee index) -> summed call count
CallGraphMap = Dict[Tuple[int, int], int]


@dataclass
class AttributionStats:
    """Resolution misses seen while attributing."""
    unresolved_samples: int = 0
    unresolved_arcs: int = 0


def scale_entries(table: Sequence[FunctionEntry], unit_size: int) -> None:
    for entry in table:
        entry.scaled_address = entry.address // unit_size


def _assign_histogram(
    hist: HistogramRecord,
    scale: float,
    unit_size: int,
    resolver: AddressResolver,
    flat: List[FlatProfileRecord],
    stats: AttributionStats,
    log: logging.Logger,
) -> None:
    base = hist.lowpc // unit_size

    for i, count in enumerate(hist.samples):
        if count <= 0:
            continue

        bin_low = base + scale * i
        bin_high = base + scale * (i + 1)

        credited = False
        for idx in resolver.enumerate_owners_in_range(bin_low, bin_high, use_scaled=True):
            sym_low = resolver.lower_bound(idx, use_scaled=True)
            sym_high = resolver.upper_bound(idx, use_scaled=True)
            if sym_high is None:
                # Last function: open-ended.
                sym_high = bin_high

            overlap = min(bin_high, sym_high) - max(bin_low, sym_low)
            if overlap > 0:
                flat[idx].time_total += overlap * count / scale
                credited = True

        if not credited:
            stats.unresolved_samples += count
            log.debug(
                "No function owns bin %d of histogram [%#x, %#x), %d samples dropped",
                i,
                hist.lowpc,
                hist.highpc,
                count,
            )


def build_flat_profile(
    table: Sequence[FunctionEntry],
    resolver: AddressResolver,
    histograms: Iterable[HistogramRecord],
    arcs: Iterable[CallGraphArc],
    params: Optional[HistogramParams],
    unit_size: int,
    stats: Optional[AttributionStats] = None,
    log: Optional[logging.Logger] = None,
) -> List[FlatProfileRecord]:
    """
    Build the flat profile, one record per function table entry.

    time_total ends up in seconds (sample units divided by the profiling
    rate). call_count sums the counts of every arc whose selfpc resolves
    to the function.
    """
    log = log or LOG
    stats = stats if stats is not None else AttributionStats()

    flat = [FlatProfileRecord(function_id=i) for i in range(len(table))]

    if params is not None:
        if params.scale <= 0:
            log.warning("Histogram scale is %s; histogram samples ignored", params.scale)
        else:
            for hist in histograms:
                _assign_histogram(hist, params.scale, unit_size, resolver, flat, stats, log)

        if params.profiling_rate > 0:
            for rec in flat:
                rec.time_total /= params.profiling_rate
        else:
            log.warning("Profiling rate is 0; time left in sample units")

    for arc in arcs:
        _, idx = resolver.find_owner(arc.self_pc)
        if idx is None:
            log.debug("No function owns callee address %#x", arc.self_pc)
            continue
        flat[idx].call_count += arc.count

    return flat


def build_call_graph(
    resolver: AddressResolver,
    arcs: Iterable[CallGraphArc],
    stats: Optional[AttributionStats] = None,
    log: Optional[logging.Logger] = None,
) -> CallGraphMap:
    """
    Sum arc counts per (caller index, callee index).

    Arcs with an endpoint that no function owns are dropped.
    """
    log = log or LOG
    stats = stats if stats is not None else AttributionStats()
    graph: CallGraphMap = {}

    for arc in arcs:
        _, caller = resolver.find_owner(arc.from_pc)
        _, callee = resolver.find_owner(arc.self_pc)
        if caller is None or callee is None:
            stats.unresolved_arcs += 1
            log.warning(
                "Dropping call-graph arc %#x -> %#x (count %d): %s not resolved",
                arc.from_pc,
                arc.self_pc,
                arc.count,
                "caller" if caller is None else "callee",
            )
            continue

        key = (caller, callee)
        graph[key] = graph.get(key, 0) + arc.count

    return graph


def nest_call_graph(graph: CallGraphMap) -> Dict[int, Dict[int, int]]:
    """Caller -> {callee -> count} view of a flat call-graph map."""
    nested: Dict[int, Dict[int, int]] = {}
    for (caller, callee), count in graph.items():
        nested.setdefault(caller, {})[callee] = count
    return nested


__all__ = [
    "CallGraphMap",
    "AttributionStats",
    "scale_entries",
    "build_flat_profile",
    "build_call_graph",
    "nest_call_graph",
]
