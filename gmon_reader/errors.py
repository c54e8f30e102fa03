#!/usr/bin/env python3
"""
errors.py

Exception hierarchy for gmon loading.

Only fatal conditions are exceptions:
  - GmonIOError          : missing / unreadable file, short reads
  - GmonFormatError      : bad magic, malformed header, unknown record tag
  - GmonConsistencyError : histogram records that disagree with each other

Recoverable conditions (an arc or a sample bucket with no owning function,
an unavailable symbol source) are reported through logging only and never
raised.
"""

from __future__ import annotations


class GmonError(Exception):
    """Base class for every failed gmon load."""


class GmonIOError(GmonError):
    """The dump file could not be opened or read."""


class ShortReadError(GmonIOError):
    """
    The stream ended in the middle of a field.

    offset is the cursor position at which the failed read started,
    wanted/got are byte counts.
    """

    def __init__(self, what: str, offset: int, wanted: int, got: int) -> None:
        super().__init__(
            f"unexpected end of file while reading {what} at offset {offset} "
            f"(wanted {wanted} bytes, got {got})"
        )
        self.what = what
        self.offset = offset
        self.wanted = wanted
        self.got = got


class GmonFormatError(GmonError):
    """Structural violation of the dump format."""


class GmonConsistencyError(GmonError):
    """Histogram records of one file are not consistent with each other."""


__all__ = [
    "GmonError",
    "GmonIOError",
    "ShortReadError",
    "GmonFormatError",
    "GmonConsistencyError",
]
