#!/usr/bin/env python3
"""
symtab.py

Builds the function table from an nm-style symbol listing.

Input lines look like:
    0000000000001139 T main
    0000000000004010 d __dso_handle

Rules:
  - Lines shorter than 8 characters are skipped (headers, blank lines).
  - The address is parsed as hex the way strtol(..., 16) does it.
  - If the parsed address plus the separator and type character do not fit
    in the line, the rest of the input is treated as corrupt and parsing
    stops there. Lines already parsed are kept.
  - 'T' / 't' symbols are code (TEXT), everything else is MISC.

The resulting table is sorted by address. Nothing here resolves addresses;
see address_resolver.py.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union


LOG = logging.getLogger("symtab")

# Lines shorter than this cannot hold "<addr> <type> <name>".
MIN_LINE_LENGTH = 8

# Class id of every function; gmon carries no class information.
NO_CLASS = -1

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_MAX_U64 = (1 << 64) - 1


class FunctionKind(enum.Enum):
    TEXT = "text"
    MISC = "misc"


@dataclass
class FunctionEntry:
    """
    One resolved symbol.

    Fields:
        address:        Raw link-time address.
        name:           Symbol name (rest of the nm line).
        kind:           TEXT for code symbols, MISC otherwise.
        scaled_address: address // unit size; filled by the attribution step.
        class_id:       Always NO_CLASS.
    """
    address: int
    name: str
    kind: FunctionKind = FunctionKind.TEXT
    scaled_address: int = 0
    class_id: int = NO_CLASS


def _parse_hex_prefix(line: str) -> Tuple[int, int]:
    """
    Parse a hex number at the start of line, strtol-style.

    Returns (value, end) where end is the index just past the parsed digits.
    When no digits are found, returns (0, 0): strtol leaves endptr at the
    beginning of the string in that case.
    """
    i = 0
    n = len(line)
    while i < n and line[i].isspace():
        i += 1
    if i < n and line[i] in "+-":
        i += 1
    if i + 1 < n and line[i] == "0" and line[i + 1] in "xX" \
            and i + 2 < n and line[i + 2] in _HEX_DIGITS:
        i += 2

    start = i
    while i < n and line[i] in _HEX_DIGITS:
        i += 1
    if i == start:
        return 0, 0

    value = int(line[start:i], 16)
    return min(value, _MAX_U64), i


def parse_symbol_line(line: str) -> Optional[FunctionEntry]:
    """
    Parse one listing line.

    Returns None for lines that are only too short to be symbols. Raises
    ValueError when the line is structurally broken, which ends parsing of
    the whole listing.
    """
    if len(line) < MIN_LINE_LENGTH:
        return None

    address, end = _parse_hex_prefix(line)
    if end + 2 > len(line):
        raise ValueError(f"truncated symbol line: {line!r}")

    type_char = line[end + 1]
    name = line[end + 3:]
    kind = FunctionKind.TEXT if type_char in ("T", "t") else FunctionKind.MISC
    return FunctionEntry(address=address, name=name, kind=kind)


def _iter_lines(source: Union[str, Iterable[str]]) -> Iterable[str]:
    if isinstance(source, str):
        # Lines end at CR or LF; a NUL byte ends the listing.
        source = source.split("\0", 1)[0]
        return source.replace("\r", "\n").split("\n")
    return (line.rstrip("\r\n") for line in source)


def build_function_table(
    source: Union[str, Iterable[str], None],
    log: Optional[logging.Logger] = None,
) -> List[FunctionEntry]:
    """
    Parse a symbol listing into a function table sorted by address.

    source may be the whole listing as one string or any iterable of lines
    (e.g. an open text file). None or empty input gives an empty table.
    """
    log = log or LOG
    table: List[FunctionEntry] = []

    if not source:
        log.warning("No symbol listing available; function table will be empty")
        return table

    for lineno, line in enumerate(_iter_lines(source), start=1):
        try:
            entry = parse_symbol_line(line)
        except ValueError as e:
            log.warning("Symbol listing corrupt at line %d, ignoring the rest: %s", lineno, e)
            break
        if entry is not None:
            table.append(entry)

    table.sort(key=lambda e: e.address)

    if not table:
        log.warning("Symbol listing contained no symbols")
    else:
        log.debug("Loaded %d symbols", len(table))
    return table


__all__ = [
    "NO_CLASS",
    "FunctionKind",
    "FunctionEntry",
    "parse_symbol_line",
    "build_function_table",
]
