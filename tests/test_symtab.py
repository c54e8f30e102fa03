from gmon_reader.symtab import (
    NO_CLASS,
    FunctionKind,
    build_function_table,
    parse_symbol_line,
)


class TestParseSymbolLine:

    def test_text_symbol(self):
        e = parse_symbol_line("0000000000001139 T main")
        assert e.address == 0x1139
        assert e.name == "main"
        assert e.kind is FunctionKind.TEXT
        assert e.class_id == NO_CLASS

    def test_local_text_symbol(self):
        e = parse_symbol_line("0000000000001000 t helper")
        assert e.kind is FunctionKind.TEXT

    def test_other_types_are_misc(self):
        e = parse_symbol_line("0000000000004010 D data_blob")
        assert e.kind is FunctionKind.MISC

    def test_name_keeps_spaces(self):
        e = parse_symbol_line("0000000000001200 T foo(int, char)")
        assert e.name == "foo(int, char)"

    def test_short_line_skipped(self):
        assert parse_symbol_line("1000 T") is None


class TestBuildFunctionTable:

    def test_sorted_by_address(self):
        text = (
            "0000000000003000 T c\n"
            "0000000000001000 T a\n"
            "0000000000002000 T b\n"
        )
        table = build_function_table(text)
        assert [e.name for e in table] == ["a", "b", "c"]
        assert [e.address for e in table] == [0x1000, 0x2000, 0x3000]

    def test_short_lines_ignored(self):
        text = "\nfoo:\n0000000000001000 T a\n\n"
        table = build_function_table(text)
        assert [e.name for e in table] == ["a"]

    def test_truncated_line_stops_parsing(self):
        text = (
            "0000000000002000 T b\n"
            "000000000000100\n"
            "0000000000001000 T a\n"
        )
        table = build_function_table(text)
        assert [e.name for e in table] == ["b"]

    def test_accepts_iterable_of_lines(self):
        lines = ["0000000000001000 T a\n", "0000000000002000 t b\r\n"]
        table = build_function_table(lines)
        assert [e.name for e in table] == ["a", "b"]

    def test_carriage_returns_split_lines(self):
        table = build_function_table("0000000000001000 T a\r0000000000002000 T b\r")
        assert [e.name for e in table] == ["a", "b"]

    def test_empty_source(self, caplog):
        assert build_function_table("") == []
        assert build_function_table(None) == []
        assert "No symbol listing" in caplog.text
