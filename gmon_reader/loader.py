#!/usr/bin/env python3
"""
loader.py

Public entry points for loading a gmon dump.

  decode(gmon_path, symbol_text)  -> LoadedProfile
      Pure decode + attribution from a dump file and an nm-style listing.

  load(gmon_path, binary_path)    -> LoadedProfile
      Same, but obtains the listing from the companion binary through
      nm_runner.py.

A failed load raises a GmonError subclass and returns nothing; there is no
partial result. Diagnostics go to the logger passed in as `log` (the
module logger by default).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple, Union

from gmon_reader.address_resolver import AddressResolver
from gmon_reader.attribution import (
    AttributionStats,
    CallGraphMap,
    build_call_graph,
    build_flat_profile,
    nest_call_graph,
    scale_entries,
)
from gmon_reader.byte_reader import NATIVE_VMA_SIZE
from gmon_reader.decoder import UNIT_SIZE, decode_stream
from gmon_reader.errors import GmonIOError
from gmon_reader.nm_runner import get_symbol_listing
from gmon_reader.records import (
    CallGraphArc,
    FlatProfileRecord,
    HistogramParams,
    HistogramRecord,
)
from gmon_reader.symtab import FunctionEntry, build_function_table


LOG = logging.getLogger("loader")

SymbolSource = Union[str, Iterable[str], None]


@dataclass
class LoadOptions:
    """
    Decoding knobs.

    unit_size:          Bytes per histogram address unit.
    vma_size:           Width of address fields in the dump (4 or 8).
    strict:             Treat a short read inside a record as fatal.
    legacy_scale_check: Reject histogram records whose scale equals the
                        first record's (historic behaviour).
    """
    unit_size: int = UNIT_SIZE
    vma_size: int = NATIVE_VMA_SIZE
    strict: bool = False
    legacy_scale_check: bool = False


@dataclass
class LoadedProfile:
    """
    Result of a successful load.

    functions and flat_profile are parallel lists: flat_profile[i] belongs
    to functions[i]. call_graph is keyed by (caller index, callee index).
    """
    version: int
    functions: List[FunctionEntry]
    flat_profile: List[FlatProfileRecord]
    call_graph: CallGraphMap
    histograms: List[HistogramRecord] = field(default_factory=list)
    arcs: List[CallGraphArc] = field(default_factory=list)
    params: Optional[HistogramParams] = None
    record_counts: Dict[str, int] = field(default_factory=dict)
    failed_records: int = 0
    unresolved_samples: int = 0
    unresolved_arcs: int = 0

    def function_table(self) -> List[FunctionEntry]:
        return copy.deepcopy(self.functions)

    def flat_profile_table(self) -> List[FlatProfileRecord]:
        return copy.deepcopy(self.flat_profile)

    def call_graph_map(self) -> CallGraphMap:
        return dict(self.call_graph)

    def call_graph_nested(self) -> Dict[int, Dict[int, int]]:
        return nest_call_graph(self.call_graph)

    def find_function(self, name: str) -> Tuple[Optional[FunctionEntry], Optional[int]]:
        """First function called name, with its index."""
        for idx, entry in enumerate(self.functions):
            if entry.name == name:
                return entry, idx
        return None, None


def decode_file(
    stream: BinaryIO,
    symbol_text: SymbolSource,
    options: Optional[LoadOptions] = None,
    log: Optional[logging.Logger] = None,
) -> LoadedProfile:
    """
    Decode an already opened dump stream. See decode().
    """
    log = log or LOG
    options = options or LoadOptions()

    functions = build_function_table(symbol_text, log=log)

    decoded = decode_stream(
        stream,
        unit_size=options.unit_size,
        vma_size=options.vma_size,
        strict=options.strict,
        legacy_scale_check=options.legacy_scale_check,
        log=log,
    )

    scale_entries(functions, options.unit_size)
    resolver = AddressResolver(functions)
    stats = AttributionStats()

    flat = build_flat_profile(
        functions,
        resolver,
        decoded.histograms,
        decoded.arcs,
        decoded.params,
        options.unit_size,
        stats=stats,
        log=log,
    )
    graph = build_call_graph(resolver, decoded.arcs, stats=stats, log=log)

    if stats.unresolved_samples or stats.unresolved_arcs:
        log.info(
            "%d samples and %d call-graph arcs could not be attributed to a function",
            stats.unresolved_samples,
            stats.unresolved_arcs,
        )

    return LoadedProfile(
        version=decoded.version,
        functions=functions,
        flat_profile=flat,
        call_graph=graph,
        histograms=decoded.histograms,
        arcs=decoded.arcs,
        params=decoded.params,
        record_counts=decoded.record_counts,
        failed_records=decoded.failed_records,
        unresolved_samples=stats.unresolved_samples,
        unresolved_arcs=stats.unresolved_arcs,
    )


def decode(
    gmon_path: Union[str, Path],
    symbol_text: SymbolSource,
    options: Optional[LoadOptions] = None,
    log: Optional[logging.Logger] = None,
) -> LoadedProfile:
    """
    Load gmon_path and attribute its samples to the symbols in symbol_text.

    symbol_text is nm-style output (a string or an iterable of lines).
    Raises GmonIOError when the file cannot be opened, and the other
    GmonError subclasses for format / consistency failures.
    """
    log = log or LOG
    path = Path(gmon_path)
    log.debug("Loading gmon file %s", path)

    try:
        f = path.open("rb")
    except OSError as e:
        log.error("Couldn't open gmon file %s: %s", path, e)
        raise GmonIOError(f"cannot open {path}: {e}") from e

    with f:
        return decode_file(f, symbol_text, options=options, log=log)


def load(
    gmon_path: Union[str, Path],
    binary_path: Union[str, Path],
    backend: str = "auto",
    nm: str = "nm",
    options: Optional[LoadOptions] = None,
    log: Optional[logging.Logger] = None,
) -> LoadedProfile:
    """
    Load gmon_path using symbols read from the profiled binary.
    """
    log = log or LOG
    symbol_text = get_symbol_listing(Path(binary_path), backend=backend, nm=nm, log=log)
    return decode(gmon_path, symbol_text, options=options, log=log)


__all__ = [
    "LoadOptions",
    "LoadedProfile",
    "decode_file",
    "decode",
    "load",
]
