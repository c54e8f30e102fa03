"""
gmon_reader: decode gprof gmon dumps into a flat profile and a call graph.
"""

from gmon_reader.errors import (
    GmonConsistencyError,
    GmonError,
    GmonFormatError,
    GmonIOError,
    ShortReadError,
)
from gmon_reader.loader import LoadedProfile, LoadOptions, decode, decode_file, load

__version__ = "0.1.0"

__all__ = [
    "GmonError",
    "GmonIOError",
    "ShortReadError",
    "GmonFormatError",
    "GmonConsistencyError",
    "LoadOptions",
    "LoadedProfile",
    "decode",
    "decode_file",
    "load",
]
