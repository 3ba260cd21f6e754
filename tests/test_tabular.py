# =============================================================================
# Unit Tests — Tabular Extractor
# =============================================================================
#
# Table reconstruction, cell coercion and column type inference.
# =============================================================================

from datetime import date

import pytest

from docquery.models.documents import Document
from docquery.services.chunker import chunk_document
from docquery.services.delimited import (
    clean_headers,
    detect_delimiter,
    find_header_index,
    is_metadata_line,
    is_separator_row,
    parse_delimited_line,
)
from docquery.services.tabular import (
    Table,
    coerce_value,
    column_stats,
    extract_table,
    extract_tables,
    find_embedded_table,
    infer_column_types,
    merge_tables,
    parse_date,
    parse_number,
)


def _orders_csv(rows: int) -> str:
    lines = ["Order,Region,Amount"]
    lines.extend(f"ORD-{i:03d},North,{i}" for i in range(1, rows + 1))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Test: Value coercion
# ---------------------------------------------------------------------------


class TestParseNumber:
    """Tests for parse_number()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("42", 42),
            ("1,234.50", 1234.5),
            ("$1,000", 1000),
            ("₹ 2,500", 2500),
            ("12%", 0.12),
            ("(1,234)", -1234),
            ("2.5K", 2500),
            ("1.5M", 1_500_000),
            ("-3.75", -3.75),
        ],
    )
    def test_numeric_forms(self, raw, expected):
        assert parse_number(raw) == pytest.approx(expected)

    def test_integral_values_stay_ints(self):
        assert isinstance(parse_number("1,000"), int)
        assert isinstance(parse_number("1000.0"), float)

    @pytest.mark.parametrize(
        "raw", ["abc", "", "J4", "2024-01-15", "15/01/2024", "-", "555 1234", "3 4"],
    )
    def test_non_numbers(self, raw):
        assert parse_number(raw) is None

    def test_space_separated_digits_stay_strings(self):
        assert coerce_value("555 1234") == "555 1234"
        assert coerce_value("3 4") == "3 4"


class TestCoerceValue:
    """Tests for coerce_value()."""

    def test_blank_is_none(self):
        assert coerce_value("") is None
        assert coerce_value("   ") is None
        assert coerce_value(None) is None

    def test_booleans(self):
        assert coerce_value("TRUE") is True
        assert coerce_value("false") is False

    def test_strings_are_trimmed(self):
        assert coerce_value("  J4 ") == "J4"

    def test_numbers_before_strings(self):
        assert coerce_value("765.50") == 765.5


class TestParseDate:
    """Tests for parse_date()."""

    def test_day_first_by_default(self):
        assert parse_date("15/01/2024") == date(2024, 1, 15)
        assert parse_date("01/02/2024") == date(2024, 2, 1)

    def test_month_first(self):
        assert parse_date("01/15/2024", day_first=False) == date(2024, 1, 15)

    def test_iso_and_two_digit_year(self):
        assert parse_date("2024-01-15") == date(2024, 1, 15)
        assert parse_date("15-01-24") == date(2024, 1, 15)

    def test_impossible_or_unknown(self):
        assert parse_date("31/02/2024") is None
        assert parse_date("yesterday") is None
        assert parse_date(20240115) is None


class TestInferColumnTypes:
    """Tests for majority-vote type inference."""

    def test_majority_wins(self):
        rows = [{"A": 1}, {"A": 2}, {"A": "n/a"}]
        assert infer_column_types(("A",), rows) == {"A": "number"}

    def test_tie_prefers_string(self):
        rows = [{"A": 1}, {"A": "x"}]
        assert infer_column_types(("A",), rows) == {"A": "string"}

    def test_dates_and_booleans(self):
        rows = [
            {"D": "2024-01-01", "B": True},
            {"D": "15/02/2024", "B": False},
        ]
        assert infer_column_types(("D", "B"), rows) == {"D": "date", "B": "boolean"}

    def test_all_null_is_unknown(self):
        rows = [{"A": None}, {"A": None}]
        assert infer_column_types(("A",), rows) == {"A": "unknown"}


# ---------------------------------------------------------------------------
# Test: Delimited-line helpers
# ---------------------------------------------------------------------------


class TestDelimited:
    """Tests for the low-level line helpers."""

    def test_quoted_delimiters_are_literal(self):
        assert parse_delimited_line('A,"x, y",C') == ["A", "x, y", "C"]

    def test_doubled_quote(self):
        assert parse_delimited_line('"say ""hi""",2') == ['say "hi"', "2"]

    def test_pipe_lines_drop_outer_pipes(self):
        assert parse_delimited_line("| Name | Score |", "|") == ["Name", "Score"]

    def test_separator_row(self):
        assert is_separator_row("|---|:---:|")
        assert not is_separator_row("| a | b |")

    def test_separator_row_is_not_metadata(self):
        assert not is_metadata_line("--- | ---")
        assert is_metadata_line("--- Rows 1-10 ---")

    def test_clean_headers_are_unique(self):
        assert clean_headers(['"Name"', "Name", "", "Amount ($)"]) == [
            "Name", "Name_2", "column_3", "Amount",
        ]

    def test_detect_delimiter(self):
        assert detect_delimiter(["a\tb", "1\t2"]) == "\t"
        assert detect_delimiter(["a,b", "1,2"]) == ","
        assert detect_delimiter(["no delimiters here"]) is None

    def test_header_skips_context_lines(self):
        lines = ["Document: x.csv", "Columns: A, B", "", "A,B", "1,2"]
        assert find_header_index(lines, ",") == 3


# ---------------------------------------------------------------------------
# Test: Table extraction
# ---------------------------------------------------------------------------


class TestExtractTable:
    """Tests for extract_table()."""

    def test_currency_values_are_coerced(self):
        table = extract_table('Item,Price\nA,"1,234.50"\nB,765.50')
        assert table is not None
        assert [row["Price"] for row in table.rows] == [1234.5, 765.5]
        assert table.column_type("Price") == "number"

    def test_malformed_rows_are_skipped(self):
        table = extract_table("A,B\n1,2\n3\n4,5\n6,7,8")
        assert table.rows == [{"A": 1, "B": 2}, {"A": 4, "B": 5}]

    def test_context_lines_and_repeated_headers_are_skipped(self):
        text = (
            "Document: f.csv\nType: CSV Data Table\nColumns: A, B\n\n"
            "A,B\n1,2\nA,B\n3,4"
        )
        table = extract_table(text)
        assert table.headers == ("A", "B")
        assert len(table.rows) == 2

    def test_rows_are_homogeneous(self):
        table = extract_table("Name,Level,Note\nAlice,J2,\nBob,J4,late")
        for row in table.rows:
            assert tuple(row) == table.headers
        assert table.rows[0]["Note"] is None

    def test_too_little_text(self):
        assert extract_table("just one line") is None
        assert extract_table("") is None

    def test_single_column_is_not_a_table(self):
        assert extract_table("Header\nvalue\nvalue") is None

    def test_explicit_tab_delimiter(self):
        table = extract_table("Name\tScore\nAnn\t90", delimiter="\t")
        assert table.rows == [{"Name": "Ann", "Score": 90}]

    def test_distinct_values_first_seen(self):
        table = extract_table("Name,Level\nA,J4\nB,J2\nC,J4\nD,")
        assert table.distinct_values("Level") == ["J4", "J2"]

    def test_find_column_is_case_insensitive(self):
        table = extract_table("Name,Level\nA,J4")
        assert table.find_column("level") == "Level"
        assert table.find_column("salary") is None


class TestEmbeddedTables:
    """Tests for tables inside prose and markdown."""

    def test_markdown_pipe_table(self):
        text = (
            "Intro paragraph, with a comma.\n\n"
            "| Name | Score |\n|---|---|\n| Ann | 90 |\n| Ben | 85 |\n\n"
            "More text."
        )
        table = find_embedded_table(text)
        assert table is not None
        assert table.headers == ("Name", "Score")
        assert table.rows == [{"Name": "Ann", "Score": 90}, {"Name": "Ben", "Score": 85}]

    def test_pipe_table_without_outer_pipes(self):
        text = (
            "# Staff\n\n"
            "Name | Level\n--- | ---\nAlice | J2\nBob | J4\nCara | J4\n\n"
            "Levels are reviewed yearly."
        )
        table = find_embedded_table(text)
        assert table is not None
        assert table.headers == ("Name", "Level")
        assert [row["Name"] for row in table.rows] == ["Alice", "Bob", "Cara"]

    def test_prose_with_commas_is_not_a_table(self):
        text = (
            "The quarterly report was late, again.\n"
            "The finance team filed it yesterday, finally.\n"
            "Everyone on the review board agreed, mostly.\n"
        )
        assert find_embedded_table(text) is None


class TestExtractTables:
    """Tests for extract_tables() on documents."""

    def test_prefers_original_text(self):
        doc = Document(
            id=1, filename="a.csv", file_type="csv",
            text="garbled", original_text=_orders_csv(3),
        )
        tables = extract_tables(doc, [])
        assert len(tables) == 1
        assert tables[0].document_ids == (1,)
        assert len(tables[0].rows) == 3

    def test_rebuilds_from_chunks(self):
        text = _orders_csv(25)
        doc = Document(id=2, filename="orders.csv", file_type="csv", text=text)
        chunks = chunk_document(text, "csv", "orders.csv", document_id=2)
        tables = extract_tables(doc, chunks)
        assert len(tables) == 1
        assert len(tables[0].rows) == 25
        assert tables[0].rows[-1]["Order"] == "ORD-025"

    def test_extraction_is_idempotent(self):
        text = _orders_csv(12)
        doc = Document(id=3, filename="orders.csv", file_type="csv", text=text)
        chunks = chunk_document(text, "csv", "orders.csv", document_id=3)
        first = extract_tables(doc, chunks)[0]
        second = extract_tables(doc, chunks)[0]
        assert first.rows == second.rows
        assert first.column_types == second.column_types

    def test_prose_document_has_no_tables(self):
        doc = Document(id=4, filename="letter.txt", file_type="txt", text="Dear customer.")
        assert extract_tables(doc, chunk_document(doc.text, "txt")) == []


class TestMergeAndStats:
    """Tests for merge_tables() and column_stats()."""

    def test_same_headers_are_concatenated(self):
        a = extract_table(_orders_csv(2), name="a.csv", document_ids=(1,))
        b = extract_table(_orders_csv(3), name="b.csv", document_ids=(2,))
        merged = merge_tables([a, b])
        assert len(merged.rows) == 5
        assert merged.document_ids == (1, 2)

    def test_different_headers_keep_first(self):
        a = extract_table(_orders_csv(2), name="a.csv")
        b = extract_table("X,Y\n1,2", name="b.csv")
        assert merge_tables([a, b]) is a

    def test_no_tables(self):
        assert merge_tables([]) is None

    def test_numeric_stats(self):
        table = Table(headers=("Amount",), rows=[{"Amount": 10}, {"Amount": 20}, {"Amount": 30}])
        stats = column_stats(table, "Amount")
        assert stats.count == 3
        assert stats.total == 60
        assert stats.mean == 20
        assert stats.median == 20
        assert (stats.minimum, stats.maximum) == (10, 30)

    def test_string_stats(self):
        table = Table(headers=("R",), rows=[{"R": "N"}, {"R": "S"}, {"R": "N"}])
        stats = column_stats(table, "R")
        assert stats.unique == 2
        assert stats.top_values[0] == ("N", 2)
