import logging

import pytest

import gmon_builder as gb
from gmon_reader import (
    GmonConsistencyError,
    GmonFormatError,
    GmonIOError,
    LoadOptions,
    decode,
    load,
)


class TestEndToEnd:

    def test_two_functions(self, make_gmon, fg_symbols):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [10, 10, 10, 10], rate=100),
            gb.arc(0x1000, 0x1008, 3),
        )
        profile = decode(path, fg_symbols)

        f, fi = profile.find_function("f")
        g, gi = profile.find_function("g")
        assert (f.scaled_address, g.scaled_address) == (0x800, 0x804)
        assert profile.flat_profile[fi].time_total == pytest.approx(0.2)
        assert profile.flat_profile[gi].time_total == pytest.approx(0.2)
        assert profile.flat_profile[gi].call_count == 3
        assert profile.flat_profile[fi].call_count == 0
        assert profile.call_graph == {(fi, gi): 3}
        assert profile.call_graph_nested() == {fi: {gi: 3}}

    def test_duplicate_histograms_merge(self, make_gmon, fg_symbols):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [10, 0, 0, 0], rate=10),
            gb.histogram(0x1000, 0x1010, [0, 0, 0, 20], rate=10),
        )
        profile = decode(path, fg_symbols)
        assert profile.histograms[0].samples == [10, 0, 0, 20]
        assert profile.flat_profile[0].time_total == pytest.approx(1.0)
        assert profile.flat_profile[1].time_total == pytest.approx(2.0)

    def test_record_counts_and_params(self, make_gmon, fg_symbols):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [1, 1, 1, 1], rate=60),
            gb.basic_blocks([(0x1000, 2)]),
            gb.arc(0x1000, 0x1008, 3),
        )
        profile = decode(path, fg_symbols)
        assert profile.version == 1
        assert profile.params.profiling_rate == 60
        assert profile.record_counts == {
            "histogram": 1,
            "call-graph": 1,
            "basic-block": 1,
        }

    def test_results_are_copies(self, make_gmon, fg_symbols):
        profile = decode(make_gmon(gb.arc(0x1000, 0x1008, 3)), fg_symbols)
        table = profile.function_table()
        table[0].name = "changed"
        flat = profile.flat_profile_table()
        flat[1].call_count = 0
        graph = profile.call_graph_map()
        graph.clear()
        assert profile.functions[0].name == "f"
        assert profile.flat_profile[1].call_count == 3
        assert profile.call_graph


class TestFailures:

    def test_missing_file(self, tmp_path, fg_symbols):
        with pytest.raises(GmonIOError):
            decode(tmp_path / "nope.out", fg_symbols)

    def test_bad_tag_discards_everything(self, make_gmon, fg_symbols):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [10, 10, 10, 10]),
            gb.arc(0x1000, 0x1008, 3),
            b"\x07",
        )
        with pytest.raises(GmonFormatError):
            decode(path, fg_symbols)

    def test_bad_magic(self, tmp_path, fg_symbols):
        path = gb.write(tmp_path / "bad.out", gb.header(magic=b"GMON"))
        with pytest.raises(GmonFormatError):
            decode(path, fg_symbols)

    def test_inconsistent_histograms(self, make_gmon, fg_symbols):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [1, 1, 1, 1], dimension=b"seconds"),
            gb.histogram(0x2000, 0x2010, [1, 1, 1, 1], dimension=b"ticks"),
        )
        with pytest.raises(GmonConsistencyError):
            decode(path, fg_symbols)

    def test_strict_option(self, make_gmon, fg_symbols):
        path = make_gmon(gb.arc(0x1000, 0x1008, 3)[:-1])
        assert decode(path, fg_symbols).failed_records == 1
        with pytest.raises(GmonIOError):
            decode(path, fg_symbols, options=LoadOptions(strict=True))


class TestMissingSymbols:

    def test_empty_listing_still_loads(self, make_gmon):
        path = make_gmon(
            gb.histogram(0x1000, 0x1010, [1, 2, 3, 4]),
            gb.arc(0x1000, 0x1008, 3),
        )
        profile = decode(path, "")
        assert profile.functions == []
        assert profile.flat_profile == []
        assert profile.call_graph == {}
        assert profile.unresolved_samples == 10
        assert profile.unresolved_arcs == 1

    def test_injected_logger(self, make_gmon, caplog):
        log = logging.getLogger("custom.gmon")
        path = make_gmon(gb.arc(0x1000, 0x1008, 3))
        decode(path, "", log=log)
        assert any(r.name == "custom.gmon" for r in caplog.records)

    def test_load_with_unreadable_binary(self, make_gmon, tmp_path, caplog):
        path = make_gmon(gb.arc(0x1000, 0x1008, 3))
        profile = load(path, tmp_path / "missing-binary")
        assert profile.functions == []
        assert "won't be possible to resolve symbols" in caplog.text
