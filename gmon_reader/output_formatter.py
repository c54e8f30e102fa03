#!/usr/bin/env python3
"""
output_formatter.py

Text and JSON reports for a LoadedProfile.

Responsibilities:
  - Fill the derived time_total_pct column (the core leaves it at 0.0).
  - Flat profile, sorted by time spent, then by call count (both descending).
  - Call graph, one block per caller:
        caller
            -> callee    count
  - Load summary (version, record counts, histogram parameters, misses).
  - One JSON document holding all of the above.

Nothing here changes the LoadedProfile; percentages are computed on copies.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List

from gmon_reader.loader import LoadedProfile
from gmon_reader.records import FlatProfileRecord


def _function_name(profile: LoadedProfile, index: int) -> str:
    if 0 <= index < len(profile.functions):
        return profile.functions[index].name
    return "??"


def with_percentages(flat: Iterable[FlatProfileRecord]) -> List[FlatProfileRecord]:
    """
    Copies of flat with time_total_pct = share of the summed time_total.
    """
    out = [
        FlatProfileRecord(
            function_id=r.function_id,
            call_count=r.call_count,
            time_total=r.time_total,
        )
        for r in flat
    ]
    total = sum(r.time_total for r in out)
    if total > 0:
        for r in out:
            r.time_total_pct = 100.0 * r.time_total / total
    return out


def sort_flat_profile(flat: Iterable[FlatProfileRecord]) -> List[FlatProfileRecord]:
    """
    Order by time (descending); ties ordered by call count (descending).
    """
    by_calls = sorted(flat, key=lambda r: r.call_count, reverse=True)
    return sorted(by_calls, key=lambda r: r.time_total, reverse=True)


# ---------------------------------------------------------------------------
# Text reports
# ---------------------------------------------------------------------------

def format_flat_profile(profile: LoadedProfile, include_idle: bool = False) -> List[str]:
    """
    Flat profile lines. Functions with neither time nor calls are left out
    unless include_idle is True.
    """
    out: List[str] = ["Flat profile:", ""]
    out.append(f"{'%time':>7} {'seconds':>12} {'calls':>10}  name")

    for rec in sort_flat_profile(with_percentages(profile.flat_profile)):
        if not include_idle and rec.time_total == 0 and rec.call_count == 0:
            continue
        name = _function_name(profile, rec.function_id)
        out.append(
            f"{rec.time_total_pct:7.2f} {rec.time_total:12.6f} {rec.call_count:10d}  {name}"
        )

    out.append("")
    return out


def format_call_graph(profile: LoadedProfile) -> List[str]:
    out: List[str] = ["Call graph:", ""]

    nested = profile.call_graph_nested()
    if not nested:
        out.append("  (no resolved call-graph arcs)")

    for caller in sorted(nested):
        out.append(_function_name(profile, caller))
        callees = nested[caller]
        for callee in sorted(callees, key=lambda c: (-callees[c], c)):
            out.append(f"    -> {_function_name(profile, callee):<40} {callees[callee]:>10d}")

    out.append("")
    return out


def format_summary(profile: LoadedProfile) -> List[str]:
    out: List[str] = [f"gmon version: {profile.version}"]
    out.append(f"functions: {len(profile.functions)}")
    for name, count in profile.record_counts.items():
        out.append(f"{name} records: {count}")
    if profile.failed_records:
        out.append(f"failed records: {profile.failed_records}")

    params = profile.params
    if params is not None:
        out.append(f"profiling rate: {params.profiling_rate}")
        out.append(f"dimension: {params.dimension} ({params.dimension_abbrev})")
        out.append(f"histogram scale: {params.scale:g}")

    out.append(f"unattributed samples: {profile.unresolved_samples}")
    out.append(f"dropped call-graph arcs: {profile.unresolved_arcs}")
    out.append("")
    return out


def format_report(profile: LoadedProfile, summary_only: bool = False) -> List[str]:
    lines = format_summary(profile)
    if summary_only:
        return lines
    lines.extend(format_flat_profile(profile))
    lines.extend(format_call_graph(profile))
    return lines


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------

def profile_to_dict(profile: LoadedProfile) -> Dict[str, Any]:
    params = profile.params
    return {
        "version": profile.version,
        "histogram": None if params is None else {
            "profiling_rate": params.profiling_rate,
            "dimension": params.dimension,
            "dimension_abbrev": params.dimension_abbrev,
            "scale": params.scale,
        },
        "record_counts": dict(profile.record_counts),
        "failed_records": profile.failed_records,
        "unresolved_samples": profile.unresolved_samples,
        "unresolved_arcs": profile.unresolved_arcs,
        "functions": [
            {
                "id": i,
                "name": e.name,
                "address": f"{e.address:#x}",
                "kind": e.kind.value,
            }
            for i, e in enumerate(profile.functions)
        ],
        "flat_profile": [
            {
                "function_id": r.function_id,
                "call_count": r.call_count,
                "time_total": r.time_total,
                "time_total_pct": r.time_total_pct,
            }
            for r in with_percentages(profile.flat_profile)
        ],
        "call_graph": [
            {"caller": caller, "callee": callee, "count": count}
            for (caller, callee), count in sorted(profile.call_graph.items())
        ],
    }


def format_json(profile: LoadedProfile) -> str:
    return json.dumps(profile_to_dict(profile), indent=2)


def write_report_to_file(
    profile: LoadedProfile,
    path: Path,
    as_json: bool = False,
    summary_only: bool = False,
    encoding: str = "utf-8",
) -> None:
    """
    Format profile and write it to a file.
    """
    if as_json:
        text = format_json(profile) + "\n"
    else:
        text = "\n".join(format_report(profile, summary_only=summary_only))
    with path.open("w", encoding=encoding) as f:
        f.write(text)


__all__ = [
    "with_percentages",
    "sort_flat_profile",
    "format_flat_profile",
    "format_call_graph",
    "format_summary",
    "format_report",
    "profile_to_dict",
    "format_json",
    "write_report_to_file",
]
