#!/usr/bin/env python3
"""
gpr.py

Command-line front end for the gmon reader.

Responsibilities:
  - Obtain a symbol listing, either from a file (--symbols) or from the
    profiled binary (--binary, through nm_runner.py)
  - Load and attribute the gmon dump via loader.py
  - Print the summary / flat profile / call graph, or JSON
  - Provide CLI interface

Examples:
    gpr gmon.out --binary ./a.out
    gpr gmon.out --symbols a.out.nm --json --output profile.json
    gpr gmon.out --binary ./a.out --summary
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from gmon_reader.errors import GmonError
from gmon_reader.loader import LoadedProfile, LoadOptions, decode, load
from gmon_reader.nm_runner import BACKENDS
from gmon_reader.output_formatter import (
    format_json,
    format_report,
    write_report_to_file,
)


LOG = logging.getLogger("gpr")


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="gmon reader - decode gprof dumps into a flat profile and call graph.",
    )
    p.add_argument(
        "input",
        metavar="GMON_PATH",
        help="Path to the gmon dump (e.g. gmon.out).",
    )
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument(
        "--binary",
        help="Profiled executable; its symbols are read with nm or pyelftools.",
    )
    src.add_argument(
        "--symbols",
        help="Text file with an nm-style symbol listing of the profiled executable.",
    )
    p.add_argument(
        "--symbol-backend",
        choices=BACKENDS,
        default="auto",
        help="How to read symbols from --binary (default: auto).",
    )
    p.add_argument(
        "--nm",
        default="nm",
        help="nm executable used by the 'nm' backend (default: nm).",
    )
    p.add_argument(
        "--unit-size",
        type=int,
        default=LoadOptions.unit_size,
        help=f"Bytes per histogram address unit (default: {LoadOptions.unit_size}).",
    )
    p.add_argument(
        "--vma-size",
        type=int,
        choices=(4, 8),
        default=LoadOptions.vma_size,
        help=f"Width of address fields in the dump (default: {LoadOptions.vma_size}).",
    )
    p.add_argument(
        "--strict",
        action="store_true",
        help="Fail the load on a truncated record instead of skipping it.",
    )
    p.add_argument(
        "--legacy-scale-check",
        action="store_true",
        help="Use the historic histogram scale comparison.",
    )
    p.add_argument(
        "--summary",
        action="store_true",
        help="Print the load summary only.",
    )
    p.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of text.",
    )
    p.add_argument(
        "--output",
        help="Write the report to this file instead of stdout.",
    )
    p.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    return p


def options_from_args(args: argparse.Namespace) -> LoadOptions:
    return LoadOptions(
        unit_size=args.unit_size,
        vma_size=args.vma_size,
        strict=args.strict,
        legacy_scale_check=args.legacy_scale_check,
    )


def load_from_args(args: argparse.Namespace, gmon_path: Path) -> LoadedProfile:
    """
    Load gmon_path with the symbol source selected on the command line.

    Raises GmonError on a failed load.
    """
    options = options_from_args(args)

    if args.symbols:
        symbols_path = Path(args.symbols)
        try:
            symbol_text = symbols_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            LOG.warning("Cannot read symbol listing %s: %s", symbols_path, e)
            symbol_text = ""
        return decode(gmon_path, symbol_text, options=options)

    return load(
        gmon_path,
        Path(args.binary),
        backend=args.symbol_backend,
        nm=args.nm,
        options=options,
    )


def emit_report(
    profile: LoadedProfile,
    as_json: bool,
    summary_only: bool,
    output: Optional[str],
) -> None:
    if output:
        out_path = Path(output)
        LOG.info("Writing report to: %s", out_path)
        write_report_to_file(profile, out_path, as_json=as_json, summary_only=summary_only)
        return

    if as_json:
        print(format_json(profile))
        return

    lines: List[str] = format_report(profile, summary_only=summary_only)
    print("\n".join(lines))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    gmon_path = Path(args.input)
    if not gmon_path.is_file():
        LOG.error("Input path is not a file: %s", gmon_path)
        return 1

    try:
        profile = load_from_args(args, gmon_path)
    except GmonError as e:
        LOG.error("Failed to load %s: %s", gmon_path, e)
        return 1

    emit_report(profile, as_json=args.json, summary_only=args.summary, output=args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
