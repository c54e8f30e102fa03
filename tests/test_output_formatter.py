import json

import pytest

import gmon_builder as gb
from gmon_reader import decode
from gmon_reader.output_formatter import (
    format_call_graph,
    format_flat_profile,
    format_json,
    format_summary,
    sort_flat_profile,
    with_percentages,
    write_report_to_file,
)
from gmon_reader.records import FlatProfileRecord


@pytest.fixture
def profile(make_gmon, fg_symbols):
    path = make_gmon(
        gb.histogram(0x1000, 0x1010, [10, 10, 10, 30], rate=100),
        gb.arc(0x1000, 0x1008, 3),
    )
    return decode(path, fg_symbols)


class TestFlatProfile:

    def test_percentages(self):
        recs = with_percentages([
            FlatProfileRecord(0, time_total=1.0),
            FlatProfileRecord(1, time_total=3.0),
        ])
        assert [r.time_total_pct for r in recs] == [25.0, 75.0]

    def test_percentages_with_no_time(self):
        recs = with_percentages([FlatProfileRecord(0, call_count=2)])
        assert recs[0].time_total_pct == 0.0

    def test_sort_by_time_then_calls(self):
        recs = sort_flat_profile([
            FlatProfileRecord(0, call_count=1, time_total=0.5),
            FlatProfileRecord(1, call_count=9, time_total=0.5),
            FlatProfileRecord(2, call_count=0, time_total=2.0),
        ])
        assert [r.function_id for r in recs] == [2, 1, 0]

    def test_text(self, profile):
        lines = format_flat_profile(profile)
        body = [line for line in lines[3:] if line]
        assert body[0].endswith("  g")
        assert body[1].endswith("  f")
        assert "66.67" in body[0]
        # The core result is left untouched.
        assert all(r.time_total_pct == 0.0 for r in profile.flat_profile)


class TestCallGraph:

    def test_text(self, profile):
        lines = format_call_graph(profile)
        assert "f" in lines
        assert any(line.strip().startswith("-> g") and line.endswith("3") for line in lines)


class TestSummaryAndJson:

    def test_summary(self, profile):
        text = "\n".join(format_summary(profile))
        assert "gmon version: 1" in text
        assert "histogram records: 1" in text
        assert "profiling rate: 100" in text
        assert "dimension: seconds (s)" in text

    def test_json(self, profile):
        doc = json.loads(format_json(profile))
        assert [f["name"] for f in doc["functions"]] == ["f", "g"]
        assert doc["call_graph"] == [{"caller": 0, "callee": 1, "count": 3}]
        assert doc["flat_profile"][1]["call_count"] == 3
        assert doc["histogram"]["profiling_rate"] == 100

    def test_write_to_file(self, profile, tmp_path):
        out = tmp_path / "report.json"
        write_report_to_file(profile, out, as_json=True)
        assert json.loads(out.read_text())["version"] == 1
