import pytest

import gmon_builder as gb


@pytest.fixture
def fg_symbols():
    """Two code symbols: f at 0x1000, g at 0x1008."""
    return gb.nm_listing([(0x1000, "T", "f"), (0x1008, "T", "g")])


@pytest.fixture
def make_gmon(tmp_path):
    """Write the given record chunks after a version-1 header."""
    def _make(*records, version=1, name="gmon.out"):
        return gb.write(tmp_path / name, gb.header(version), *records)
    return _make
