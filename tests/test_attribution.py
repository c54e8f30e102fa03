import pytest

from gmon_reader.address_resolver import AddressResolver
from gmon_reader.attribution import (
    AttributionStats,
    build_call_graph,
    build_flat_profile,
    nest_call_graph,
    scale_entries,
)
from gmon_reader.records import CallGraphArc, HistogramParams, HistogramRecord
from gmon_reader.symtab import FunctionEntry


def _setup(*addresses, unit=2):
    table = [FunctionEntry(address=a, name=f"fn_{a:x}") for a in addresses]
    scale_entries(table, unit)
    return table, AddressResolver(table)


def _params(scale, rate=1):
    return HistogramParams(profiling_rate=rate, dimension="seconds",
                           dimension_abbrev="s", scale=scale)


class TestScale:

    def test_scaled_addresses(self):
        table, _ = _setup(0x1000, 0x1007, unit=2)
        assert [e.scaled_address for e in table] == [0x800, 0x803]


class TestFlatProfile:

    def test_bins_inside_one_function(self):
        table, resolver = _setup(0x1000, 0x2000)
        hist = HistogramRecord(lowpc=0x1000, highpc=0x1008, num_bins=4,
                               samples=[3, 4, 5, 6])
        flat = build_flat_profile(table, resolver, [hist], [], _params(1.0, rate=10), 2)
        assert flat[0].time_total == pytest.approx(18 / 1.0 / 10)
        assert flat[1].time_total == 0

    def test_bin_split_between_functions(self):
        table, resolver = _setup(0x1000, 0x1006)
        hist = HistogramRecord(lowpc=0x1000, highpc=0x1010, num_bins=4,
                               samples=[0, 10, 0, 0])
        flat = build_flat_profile(table, resolver, [hist], [], _params(2.0), 2)
        assert flat[0].time_total == pytest.approx(5.0)
        assert flat[1].time_total == pytest.approx(5.0)

    @pytest.mark.parametrize("boundary", [0x1002, 0x1004, 0x1006, 0x100a, 0x100e])
    def test_bin_time_is_conserved(self, boundary):
        table, resolver = _setup(0x1000, boundary)
        samples = [7, 11, 13, 17]
        hist = HistogramRecord(lowpc=0x1000, highpc=0x1010, num_bins=4,
                               samples=list(samples))
        flat = build_flat_profile(table, resolver, [hist], [], _params(2.0, rate=50), 2)
        total = sum(r.time_total for r in flat)
        assert total == pytest.approx(sum(samples) * 2.0 / 2.0 / 50)

    def test_samples_below_first_function_are_misses(self):
        table, resolver = _setup(0x1004)
        hist = HistogramRecord(lowpc=0x1000, highpc=0x1008, num_bins=4,
                               samples=[1, 2, 3, 4])
        stats = AttributionStats()
        flat = build_flat_profile(table, resolver, [hist], [], _params(1.0), 2, stats=stats)
        assert flat[0].time_total == pytest.approx(7.0)
        assert stats.unresolved_samples == 3

    def test_zero_rate_leaves_sample_units(self, caplog):
        table, resolver = _setup(0x1000)
        hist = HistogramRecord(lowpc=0x1000, highpc=0x1008, num_bins=4,
                               samples=[1, 1, 1, 1])
        flat = build_flat_profile(table, resolver, [hist], [], _params(1.0, rate=0), 2)
        assert flat[0].time_total == pytest.approx(4.0)
        assert "Profiling rate is 0" in caplog.text

    def test_call_counts_accumulate_per_callee(self):
        table, resolver = _setup(0x1000, 0x1008)
        arcs = [
            CallGraphArc(0x1000, 0x1008, 3),
            CallGraphArc(0x1002, 0x100c, 4),
            CallGraphArc(0x1008, 0x1000, 1),
        ]
        flat = build_flat_profile(table, resolver, [], arcs, None, 2)
        assert flat[0].call_count == 1
        assert flat[1].call_count == 7

    def test_one_record_per_function(self):
        table, resolver = _setup(0x1000, 0x1008, 0x1010)
        flat = build_flat_profile(table, resolver, [], [], None, 2)
        assert [r.function_id for r in flat] == [0, 1, 2]
        assert all(r.time_total_pct == 0.0 for r in flat)


class TestCallGraph:

    def test_pairs_are_summed(self):
        _, resolver = _setup(0x1000, 0x1008, 0x1010)
        arcs = [
            CallGraphArc(0x1000, 0x1008, 3),
            CallGraphArc(0x1004, 0x1008, 4),
            CallGraphArc(0x1000, 0x1010, 2),
        ]
        graph = build_call_graph(resolver, arcs)
        assert graph == {(0, 1): 7, (0, 2): 2}

    def test_unresolved_arcs_are_dropped(self, caplog):
        _, resolver = _setup(0x1000, 0x1008)
        stats = AttributionStats()
        arcs = [
            CallGraphArc(0x10, 0x1008, 5),
            CallGraphArc(0x1000, 0x1008, 1),
        ]
        graph = build_call_graph(resolver, arcs, stats=stats)
        assert graph == {(0, 1): 1}
        assert stats.unresolved_arcs == 1
        assert "Dropping call-graph arc" in caplog.text

    def test_outgoing_counts_are_conserved(self):
        _, resolver = _setup(0x1000, 0x1008, 0x1010)
        arcs = [
            CallGraphArc(0x1000, 0x1008, 3),
            CallGraphArc(0x1002, 0x1010, 2),
            CallGraphArc(0x1004, 0x1008, 4),
            CallGraphArc(0x0004, 0x1008, 5),
        ]
        nested = nest_call_graph(build_call_graph(resolver, arcs))
        assert sum(nested[0].values()) == 9
        assert nested == {0: {1: 7, 2: 2}}
