#!/usr/bin/env python3
"""
decoder.py

Record decoder for gmon dump files.

File layout:
    header : "gmon" | version (u32, host order) | 12 reserved bytes
    records: tag (1 byte) followed by tag-specific fields, until EOF

Tags:
    0 histogram   : lowpc, highpc (VMA) | num_bins, rate (u32)
                    | dimension (15 bytes) | abbreviation (1 byte)
                    | num_bins x 2-byte sample counts
    1 call graph  : frompc, selfpc (VMA) | count (u32)
    2 basic block : count (u32), then per block
                      version 0 : VMA, VMA, string, string, u32
                      otherwise : VMA, VMA
                    (version 0 also has one status string before the blocks)

Decoding states:
    HEADER -> TAG_LOOP -> DONE    clean EOF at a tag boundary
                       -> FAILED  bad header/magic, unknown tag, or a fatal
                                  consistency problem

Failure handling:
  - Header problems and unknown tags raise GmonFormatError. Nothing decoded
    so far is returned.
  - Histogram records that disagree with the first one (dimension, rate,
    scale), overlap another range, or repeat a range with a different bin
    count raise GmonConsistencyError.
  - A short read inside a record fails only that record: it is logged and
    the loop goes on to the next tag. With strict=True it is raised instead.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional

from gmon_reader.byte_reader import NATIVE_VMA_SIZE, ByteReader
from gmon_reader.errors import (
    GmonConsistencyError,
    GmonFormatError,
    ShortReadError,
)
from gmon_reader.records import (
    TAG_BB_COUNT,
    TAG_CG_ARC,
    TAG_NAMES,
    TAG_TIME_HIST,
    CallGraphArc,
    HistogramParams,
    HistogramRecord,
)


LOG = logging.getLogger("decoder")

GMON_MAGIC = b"gmon"
# Highest file version this decoder knows about.
GMON_VERSION = 1
HEADER_SPARE_SIZE = 3 * 4

DIMENSION_SIZE = 15
# Size in bytes of one histogram sample count, and the default address unit.
UNIT_SIZE = 2

SCALE_EPSILON = 0.00001

_VERSION = struct.Struct("=I")


class DecoderState(enum.Enum):
    HEADER = "header"
    TAG_LOOP = "tag-loop"
    DONE = "done"
    FAILED = "failed"


@dataclass
class DecodedFile:
    """
    Everything read from one dump file, before attribution.
    """
    version: int
    histograms: List[HistogramRecord] = field(default_factory=list)
    arcs: List[CallGraphArc] = field(default_factory=list)
    params: Optional[HistogramParams] = None
    record_counts: Dict[str, int] = field(
        default_factory=lambda: {name: 0 for name in TAG_NAMES.values()}
    )
    failed_records: int = 0


def _decode_dimension(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("latin-1")


class GmonDecoder:
    """
    Decodes one dump stream.

    unit_size is the width in bytes of one histogram address unit, used to
    derive the histogram scale. legacy_scale_check reproduces the historic
    scale comparison, which rejected records whose scale was *equal* to the
    first one.
    """

    def __init__(
        self,
        stream: BinaryIO,
        unit_size: int = UNIT_SIZE,
        vma_size: int = NATIVE_VMA_SIZE,
        strict: bool = False,
        legacy_scale_check: bool = False,
        log: Optional[logging.Logger] = None,
    ) -> None:
        if unit_size <= 0:
            raise ValueError(f"unit size must be positive, got {unit_size}")
        self._reader = ByteReader(stream, vma_size=vma_size)
        self._unit_size = unit_size
        self._strict = strict
        self._legacy_scale_check = legacy_scale_check
        self._log = log or LOG
        self.state = DecoderState.HEADER

    # -----------------------------------------------------------------------
    # Top level
    # -----------------------------------------------------------------------

    def decode(self) -> DecodedFile:
        try:
            version = self._read_header()
            result = DecodedFile(version=version)
            self.state = DecoderState.TAG_LOOP
            self._tag_loop(result)
        except Exception:
            self.state = DecoderState.FAILED
            raise

        self.state = DecoderState.DONE
        self._log.debug(
            "gmon file loaded, %d histogram records, %d call-graph records, "
            "%d basic block records",
            result.record_counts["histogram"],
            result.record_counts["call-graph"],
            result.record_counts["basic-block"],
        )
        return result

    def _read_header(self) -> int:
        try:
            magic = self._reader.read_bytes(len(GMON_MAGIC), "header magic")
            raw_version = self._reader.read_bytes(_VERSION.size, "header version")
            self._reader.read_bytes(HEADER_SPARE_SIZE, "header")
        except ShortReadError as e:
            self._log.error("File does not contain valid gmon header")
            raise GmonFormatError(f"invalid gmon header: {e}") from e

        if magic != GMON_MAGIC:
            self._log.error("File does not contain valid gmon magic cookie")
            raise GmonFormatError(f"bad magic cookie {magic!r}")

        version = _VERSION.unpack(raw_version)[0]
        if version > GMON_VERSION:
            self._log.warning(
                "gmon file version %d is newer than the highest known version %d",
                version,
                GMON_VERSION,
            )
        return version

    def _tag_loop(self, result: DecodedFile) -> None:
        handlers = {
            TAG_TIME_HIST: self._read_histogram_record,
            TAG_CG_ARC: self._read_call_graph_record,
            TAG_BB_COUNT: self._read_basic_block_record,
        }

        while True:
            tag_offset = self._reader.offset
            tag = self._reader.read_tag()
            if tag is None:
                return

            handler = handlers.get(tag)
            if handler is None:
                self._log.error("File contains invalid tag: %d (offset %d)", tag, tag_offset)
                raise GmonFormatError(f"invalid record tag {tag} at offset {tag_offset}")

            name = TAG_NAMES[tag]
            self._log.debug("Reading %s record at offset %d", name, tag_offset)
            try:
                handler(result)
            except ShortReadError as e:
                self._log.error("Failed to read %s record: %s", name, e)
                if self._strict:
                    raise
                result.failed_records += 1
                continue

            result.record_counts[name] += 1

    # -----------------------------------------------------------------------
    # Histogram records
    # -----------------------------------------------------------------------

    def _read_histogram_record(self, result: DecodedFile) -> None:
        r = self._reader
        lowpc = r.read_vma("histogram lowpc")
        highpc = r.read_vma("histogram highpc")
        num_bins = r.read_u32("histogram bin count")
        prof_rate = r.read_u32("histogram profiling rate")
        dimension = _decode_dimension(r.read_bytes(DIMENSION_SIZE, "histogram dimension"))
        abbrev = r.read_bytes(1, "histogram dimension abbreviation").decode("latin-1")

        if num_bins == 0 or highpc < lowpc:
            raise GmonFormatError(
                f"malformed histogram record [{lowpc:#x}, {highpc:#x}) with {num_bins} bins"
            )

        scale = ((highpc - lowpc) // self._unit_size) / num_bins
        self._check_params(result, prof_rate, dimension, abbrev, scale)

        existing = self._find_histogram(result, lowpc, highpc, num_bins)

        raw = r.read_bytes(num_bins * UNIT_SIZE, "histogram samples")
        counts = struct.unpack(f"={num_bins}H", raw)

        if existing is None:
            existing = HistogramRecord(lowpc=lowpc, highpc=highpc, num_bins=num_bins)
            result.histograms.append(existing)

        samples = existing.samples
        for i, count in enumerate(counts):
            samples[i] += count

    def _check_params(
        self,
        result: DecodedFile,
        prof_rate: int,
        dimension: str,
        abbrev: str,
        scale: float,
    ) -> None:
        params = result.params
        if params is None:
            result.params = HistogramParams(
                profiling_rate=prof_rate,
                dimension=dimension,
                dimension_abbrev=abbrev,
                scale=scale,
            )
            return

        if params.dimension != dimension:
            self._log.error(
                "Dimension unit changed between histogram records from %s to %s",
                params.dimension,
                dimension,
            )
            raise GmonConsistencyError(
                f"histogram dimension changed from {params.dimension!r} to {dimension!r}"
            )

        if params.dimension_abbrev != abbrev:
            self._log.error(
                "Dimension unit abbreviation changed between histogram records from %s to %s",
                params.dimension_abbrev,
                abbrev,
            )
            raise GmonConsistencyError(
                f"histogram dimension abbreviation changed from "
                f"{params.dimension_abbrev!r} to {abbrev!r}"
            )

        if params.profiling_rate != prof_rate:
            self._log.error(
                "Profiling rate changed between histogram records from %d to %d",
                params.profiling_rate,
                prof_rate,
            )
            raise GmonConsistencyError(
                f"profiling rate changed from {params.profiling_rate} to {prof_rate}"
            )

        close = abs(params.scale - scale) < SCALE_EPSILON
        if close == self._legacy_scale_check:
            self._log.error(
                "Histogram scale changed between histogram records from %f to %f",
                params.scale,
                scale,
            )
            raise GmonConsistencyError(
                f"histogram scale changed from {params.scale} to {scale}"
            )

    def _find_histogram(
        self,
        result: DecodedFile,
        lowpc: int,
        highpc: int,
        num_bins: int,
    ) -> Optional[HistogramRecord]:
        """
        Return the record for exactly [lowpc, highpc), or None for a new range.

        A different range that overlaps an existing one is an error, and so is
        the same range with a different bin count.
        """
        for hist in result.histograms:
            if hist.lowpc == lowpc and hist.highpc == highpc:
                if hist.num_bins != num_bins:
                    self._log.error(
                        "Bin count changed for histogram [%#x, %#x) from %d to %d",
                        lowpc,
                        highpc,
                        hist.num_bins,
                        num_bins,
                    )
                    raise GmonConsistencyError(
                        f"histogram [{lowpc:#x}, {highpc:#x}) bin count changed "
                        f"from {hist.num_bins} to {num_bins}"
                    )
                return hist

        for hist in result.histograms:
            if hist.overlaps(lowpc, highpc):
                self._log.error(
                    "Found overlapping histogram records [%#x, %#x) and [%#x, %#x)",
                    hist.lowpc,
                    hist.highpc,
                    lowpc,
                    highpc,
                )
                raise GmonConsistencyError(
                    f"histogram range [{lowpc:#x}, {highpc:#x}) overlaps "
                    f"[{hist.lowpc:#x}, {hist.highpc:#x})"
                )
        return None

    # -----------------------------------------------------------------------
    # Call-graph records
    # -----------------------------------------------------------------------

    def _read_call_graph_record(self, result: DecodedFile) -> None:
        r = self._reader
        from_pc = r.read_vma("call-graph frompc")
        self_pc = r.read_vma("call-graph selfpc")
        count = r.read_u32("call-graph count")

        self._log.debug(
            "Read call graph arc, frompc %#x, selfpc %#x, count %d",
            from_pc,
            self_pc,
            count,
        )
        result.arcs.append(CallGraphArc(from_pc=from_pc, self_pc=self_pc, count=count))

    # -----------------------------------------------------------------------
    # Basic-block records (skipped)
    # -----------------------------------------------------------------------

    def _read_basic_block_record(self, result: DecodedFile) -> None:
        r = self._reader
        nblocks = r.read_u32("basic-block count")
        legacy = result.version == 0

        if legacy:
            r.read_string("basic-block status")

        for _ in range(nblocks):
            if legacy:
                r.read_vma("basic-block call count")
                r.read_vma("basic-block address")
                r.read_string("basic-block file name")
                r.read_string("basic-block function name")
                r.read_u32("basic-block line number")
            else:
                r.read_vma("basic-block address")
                r.read_vma("basic-block call count")


def decode_stream(
    stream: BinaryIO,
    unit_size: int = UNIT_SIZE,
    vma_size: int = NATIVE_VMA_SIZE,
    strict: bool = False,
    legacy_scale_check: bool = False,
    log: Optional[logging.Logger] = None,
) -> DecodedFile:
    """Decode all records of an open dump stream."""
    return GmonDecoder(
        stream,
        unit_size=unit_size,
        vma_size=vma_size,
        strict=strict,
        legacy_scale_check=legacy_scale_check,
        log=log,
    ).decode()


__all__ = [
    "GMON_MAGIC",
    "GMON_VERSION",
    "UNIT_SIZE",
    "DecoderState",
    "DecodedFile",
    "GmonDecoder",
    "decode_stream",
]
