#!/usr/bin/env python3
"""
gpr_batch.py

Batch runner: loads many gmon dumps against one profiled binary.

Each dump is loaded on its own (one file per worker, nothing shared
between loads) and its report is written to
    <output-dir>/<dump basename>.txt   (or .json with --json)

Usage examples:

  # All files under ./runs/ named *.out, 4 at a time
  gpr-batch --binary ./a.out --ext .out --jobs 4 --output-dir ./reports ./runs/

  # A few explicit dumps, symbols from a saved nm listing
  gpr-batch --symbols a.out.nm --output-dir ./reports gmon.1 gmon.2
"""

from __future__ import annotations

import argparse
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterable, List, Optional

from gmon_reader.errors import GmonError
from gmon_reader.gpr import options_from_args
from gmon_reader.loader import LoadOptions, decode
from gmon_reader.nm_runner import BACKENDS, get_symbol_listing
from gmon_reader.output_formatter import write_report_to_file


LOG = logging.getLogger("gpr_batch")


def find_gmon_files(paths: Iterable[Path], ext: str) -> List[Path]:
    """
    Collect dump files from the given paths.

    - A file path is included directly (ext is ignored for it).
    - A directory is searched recursively; with a non-empty ext only files
      ending with it are included.
    """
    results: List[Path] = []

    for path in paths:
        if path.is_file():
            results.append(path)
            continue

        if path.is_dir():
            pattern = f"*{ext}" if ext else "*"
            results.extend(p for p in path.rglob(pattern) if p.is_file())
        else:
            LOG.warning("Input path does not exist or is not a file/dir: %s", path)

    results.sort()
    return results


def process_one(
    gmon_path: Path,
    symbol_text: str,
    options: LoadOptions,
    out_dir: Path,
    as_json: bool,
) -> bool:
    """
    Load one dump and write its report. Returns False when the load or the
    report write fails.
    """
    log = logging.getLogger(f"gpr_batch.{gmon_path.name}")
    try:
        profile = decode(gmon_path, symbol_text, options=options, log=log)
    except GmonError as e:
        log.error("Failed to load %s: %s", gmon_path, e)
        return False

    suffix = ".json" if as_json else ".txt"
    out_path = out_dir / (gmon_path.name + suffix)
    try:
        write_report_to_file(profile, out_path, as_json=as_json)
    except OSError as e:
        log.error("Failed to write report %s: %s", out_path, e)
        return False
    LOG.info("Wrote %s", out_path)
    return True


def run_batch(
    gmon_files: List[Path],
    symbol_text: str,
    options: LoadOptions,
    out_dir: Path,
    as_json: bool = False,
    jobs: int = 1,
) -> int:
    """
    Process every file; return the number of failed files.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    failures = 0

    if jobs <= 1:
        for gf in gmon_files:
            if not process_one(gf, symbol_text, options, out_dir, as_json):
                failures += 1
        return failures

    with ThreadPoolExecutor(max_workers=jobs) as ex:
        fut_map = {
            ex.submit(process_one, gf, symbol_text, options, out_dir, as_json): gf
            for gf in gmon_files
        }
        for fut in as_completed(fut_map):
            if not fut.result():
                failures += 1

    return failures


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Batch runner for gpr over multiple gmon dumps."
    )
    p.add_argument(
        "inputs",
        nargs="+",
        help="gmon dump files or directories containing them.",
    )
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--binary", help="Profiled executable shared by all dumps.")
    src.add_argument("--symbols", help="nm-style symbol listing shared by all dumps.")
    p.add_argument(
        "--symbol-backend",
        choices=BACKENDS,
        default="auto",
        help="How to read symbols from --binary (default: auto).",
    )
    p.add_argument("--nm", default="nm", help="nm executable (default: nm).")
    p.add_argument(
        "--output-dir",
        required=True,
        help="Directory receiving one report per dump. Created if missing.",
    )
    p.add_argument(
        "--ext",
        default="",
        help="When scanning directories, only process files with this suffix.",
    )
    p.add_argument(
        "--jobs",
        type=int,
        default=1,
        help="Number of dumps to load in parallel (default: 1).",
    )
    p.add_argument("--json", action="store_true", help="Write JSON reports.")
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
        help=f"Width of address fields in the dumps (default: {LoadOptions.vma_size}).",
    )
    p.add_argument("--strict", action="store_true", help="Fail on truncated records.")
    p.add_argument(
        "--legacy-scale-check",
        action="store_true",
        help="Use the historic histogram scale comparison.",
    )
    p.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging.")
    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_argparser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    gmon_files = find_gmon_files([Path(p) for p in args.inputs], ext=args.ext)
    if not gmon_files:
        LOG.warning("No gmon files found for the given inputs.")
        return 0

    if args.symbols:
        try:
            symbol_text = Path(args.symbols).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            LOG.warning("Cannot read symbol listing %s: %s", args.symbols, e)
            symbol_text = ""
    else:
        # Read once; every dump refers to the same binary.
        symbol_text = get_symbol_listing(
            Path(args.binary),
            backend=args.symbol_backend,
            nm=args.nm,
        )

    jobs = max(1, args.jobs)
    LOG.info("Found %d gmon file(s) to process. Using jobs=%d.", len(gmon_files), jobs)

    failures = run_batch(
        gmon_files,
        symbol_text,
        options_from_args(args),
        Path(args.output_dir),
        as_json=args.json,
        jobs=jobs,
    )
    if failures:
        LOG.error("%d of %d gmon file(s) failed", failures, len(gmon_files))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
