#!/usr/bin/env python3
"""
byte_reader.py

Sequential cursor over a binary stream.

Every read either returns the full field or raises ShortReadError. The
byte order is the host's; field sizes are the standard ones (no alignment
padding between fields).
"""

from __future__ import annotations

import struct
from typing import BinaryIO, List, Optional

from gmon_reader.errors import ShortReadError


# Host pointer size, used as the default VMA width.
NATIVE_VMA_SIZE = struct.calcsize("P")

# Largest single read issued to the stream.
READ_CHUNK_SIZE = 64 * 1024

_U32 = struct.Struct("=I")
_I64 = struct.Struct("=q")
_VMA_FORMATS = {
    4: struct.Struct("=I"),
    8: struct.Struct("=Q"),
}


class ByteReader:
    """
    Wraps a binary file object and tracks the cursor offset.

    vma_size selects the width of address fields (4 or 8 bytes).
    """

    def __init__(self, stream: BinaryIO, vma_size: int = NATIVE_VMA_SIZE) -> None:
        if vma_size not in _VMA_FORMATS:
            raise ValueError(f"unsupported VMA size: {vma_size}")
        self._stream = stream
        self._vma = _VMA_FORMATS[vma_size]
        self.offset = 0

    @property
    def vma_size(self) -> int:
        return self._vma.size

    def read_bytes(self, count: int, what: str = "bytes") -> bytes:
        # Counts come from the file; a corrupt one must end in a short read,
        # not in one huge allocation.
        chunks: List[bytes] = []
        remaining = count
        while remaining > 0:
            chunk = self._stream.read(min(remaining, READ_CHUNK_SIZE))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        data = b"".join(chunks)
        if len(data) != count:
            start = self.offset
            self.offset += len(data)
            raise ShortReadError(what, start, count, len(data))
        self.offset += count
        return data

    def read_tag(self) -> Optional[int]:
        """
        Read one tag byte.

        Returns None on a clean end of file (nothing left at a tag boundary).
        """
        data = self._stream.read(1)
        if not data:
            return None
        self.offset += 1
        return data[0]

    def read_vma(self, what: str = "address") -> int:
        return self._vma.unpack(self.read_bytes(self._vma.size, what))[0]

    def read_u32(self, what: str = "32-bit integer") -> int:
        return _U32.unpack(self.read_bytes(_U32.size, what))[0]

    def read_i64(self, what: str = "64-bit integer") -> int:
        return _I64.unpack(self.read_bytes(_I64.size, what))[0]

    def read_string(self, what: str = "string") -> str:
        """Read bytes up to (and consuming) a NUL terminator."""
        start = self.offset
        buf = bytearray()
        while True:
            c = self._stream.read(1)
            if not c:
                raise ShortReadError(what, start, len(buf) + 1, len(buf))
            self.offset += 1
            if c == b"\0":
                return buf.decode("latin-1")
            buf += c


__all__ = [
    "NATIVE_VMA_SIZE",
    "ByteReader",
]
