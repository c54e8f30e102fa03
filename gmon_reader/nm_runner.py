#!/usr/bin/env python3
"""
nm_runner.py

Produces the nm-style symbol listing that symtab.py consumes.

Backends:
  - 'nm'    : run `nm -C <binary>` and return its stdout.
  - 'pyelf' : read the ELF symbol table with pyelftools and render
              "<hex address> <type> <name>" lines in nm's layout.
  - 'auto'  : try pyelftools first, then fall back to nm.

Failures (tool missing, non-zero exit, unreadable or non-ELF binary) are
logged and return an empty string. An empty listing leaves the function
table empty; the load still succeeds.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.sections import SymbolTableSection


LOG = logging.getLogger("nm_runner")

BACKENDS = ("auto", "nm", "pyelf")

# Symbol types that never name anything nm would print.
_SKIPPED_TYPES = ("STT_SECTION", "STT_FILE")


def check_binary(binary: Path, log: Optional[logging.Logger] = None) -> bool:
    """Return True if binary can be opened for reading."""
    log = log or LOG
    try:
        with binary.open("rb"):
            return True
    except OSError:
        log.error(
            "Invalid binary file %s supplied, won't be possible to resolve symbols!",
            binary,
        )
        return False


def run_nm(
    binary: Path,
    nm: str = "nm",
    demangle: bool = True,
    log: Optional[logging.Logger] = None,
) -> str:
    """
    Run nm against binary and return its stdout, or "" on failure.
    """
    log = log or LOG

    cmd: List[str] = [nm]
    if demangle:
        cmd.append("-C")
    cmd.append(str(binary))

    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            check=False,
        )
    except FileNotFoundError:
        log.error("nm not found when running: %s", cmd)
        return ""
    except OSError as e:
        log.error("Failed to run nm: %s", e)
        return ""

    if proc.returncode != 0:
        log.warning(
            "nm exited with code %d for %s: %s",
            proc.returncode,
            binary,
            proc.stderr.strip(),
        )
        return ""

    return proc.stdout


def _type_letter(symbol) -> str:
    """
    nm-style type letter for an ELF symbol.

    Only the distinction code / not code matters downstream; the letters
    follow nm so the listing reads the same as nm's.
    """
    sym_type = symbol["st_info"]["type"]
    bind = symbol["st_info"]["bind"]
    shndx = symbol["st_shndx"]

    if shndx == "SHN_ABS":
        letter = "a"
    elif sym_type in ("STT_FUNC", "STT_GNU_IFUNC"):
        letter = "t"
    elif sym_type == "STT_OBJECT":
        letter = "d"
    else:
        letter = "n"

    if bind == "STB_WEAK":
        return "W" if letter == "t" else "V"
    if bind == "STB_LOCAL":
        return letter
    return letter.upper()


def read_symbols_pyelf(binary: Path, log: Optional[logging.Logger] = None) -> str:
    """
    Render the defined symbols of binary as nm-style lines, or "" on failure.
    """
    log = log or LOG
    lines: List[str] = []

    try:
        with binary.open("rb") as f:
            elf = ELFFile(f)
            width = 16 if elf.elfclass == 64 else 8

            for section in elf.iter_sections():
                if not isinstance(section, SymbolTableSection):
                    continue
                if section.name != ".symtab":
                    continue

                for symbol in section.iter_symbols():
                    if not symbol.name:
                        continue
                    if symbol["st_shndx"] == "SHN_UNDEF":
                        continue
                    if symbol["st_info"]["type"] in _SKIPPED_TYPES:
                        continue

                    lines.append(
                        f"{symbol['st_value']:0{width}x} {_type_letter(symbol)} {symbol.name}"
                    )
    except OSError as e:
        log.error("Failed to open %s: %s", binary, e)
        return ""
    except ELFError as e:
        log.warning("pyelftools failed to read symbols from %s: %s", binary, e)
        return ""

    if not lines:
        log.warning("No .symtab symbols found in %s", binary)
        return ""

    log.debug("pyelftools read %d symbols from %s", len(lines), binary)
    return "\n".join(lines) + "\n"


def get_symbol_listing(
    binary: Path,
    backend: str = "auto",
    nm: str = "nm",
    log: Optional[logging.Logger] = None,
) -> str:
    """
    Return the symbol listing for binary using the requested backend.
    """
    log = log or LOG

    if backend not in BACKENDS:
        raise ValueError(f"unknown symbol backend: {backend}")

    if not check_binary(binary, log):
        return ""

    if backend == "nm":
        return run_nm(binary, nm=nm, log=log)

    if backend == "pyelf":
        return read_symbols_pyelf(binary, log=log)

    # auto
    text = read_symbols_pyelf(binary, log=log)
    if text:
        return text
    log.info("Falling back to %s for %s", nm, binary)
    return run_nm(binary, nm=nm, log=log)


__all__ = [
    "BACKENDS",
    "check_binary",
    "run_nm",
    "read_symbols_pyelf",
    "get_symbol_listing",
]
