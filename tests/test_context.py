# =============================================================================
# Unit Tests — Context Builder
# =============================================================================

from docquery.models.results import (
    AverageResult,
    CountResult,
    FieldMatch,
    FieldResults,
    NoData,
    RankedChunk,
    RankedChunks,
    SmallTalk,
)
from docquery.services.context import (
    CHUNK_OVERHEAD_TOKENS,
    build_ranked_context,
    count_tokens,
    format_number,
    format_result,
)


def _ranked(*texts: str) -> RankedChunks:
    return RankedChunks(chunks=[
        RankedChunk(document_id=1, chunk_index=i, chunk_type="text", text=t, score=10.0 - i)
        for i, t in enumerate(texts)
    ])


class TestFormatNumber:
    """Tests for format_number()."""

    def test_decimals_and_separators(self):
        assert format_number(1234.5) == "1,234.50"
        assert format_number(2000.0) == "2,000"
        assert format_number(42) == "42"

    def test_missing(self):
        assert format_number(None) == "n/a"


class TestFormatResult:
    """Tests for format_result()."""

    def test_count_with_filters(self):
        result = CountResult(count=2, rows_processed=2, filters=['Level = "J4"'])
        text = format_result(result, "how many employees have level J4")
        assert text.startswith("DATA QUERY RESULT\nQuery: how many employees have level J4\n")
        assert "COUNT: 2" in text
        assert '  - Level = "J4"' in text

    def test_average_shows_range(self):
        result = AverageResult(
            target_column="Price", average=19.0, count=5, minimum=5, maximum=30,
            rows_processed=5,
        )
        text = format_result(result)
        assert "AVERAGE of Price: 19" in text
        assert "Range: 5 - 30" in text
        assert "Median" not in text

    def test_average_shows_median(self):
        result = AverageResult(
            target_column="Price", average=19.0, count=5, minimum=5, maximum=30,
            median=20, rows_processed=5,
        )
        assert "Median: 20" in format_result(result)

    def test_field_results(self):
        result = FieldResults(results=[
            FieldMatch(field="Policy Number", value="AB12345", source="letter.txt"),
        ])
        text = format_result(result)
        assert "1. Policy Number: AB12345" in text
        assert "Source: letter.txt" in text

    def test_small_talk_has_no_context(self):
        assert format_result(SmallTalk()) == ""

    def test_no_data_message(self):
        assert format_result(NoData()) == NoData().message


class TestBuildRankedContext:
    """Tests for the token-budgeted ranked context."""

    def test_sources_are_numbered(self):
        text = build_ranked_context(_ranked("alpha", "beta"))
        assert "--- Source 1 (Relevance: 10.0) ---\nalpha" in text
        assert "--- Source 2 (Relevance: 9.0) ---\nbeta" in text

    def test_budget_stops_at_first_overflow(self):
        first = "alpha beta gamma " * 20
        second = "delta epsilon " * 20
        budget = count_tokens(first) + CHUNK_OVERHEAD_TOKENS
        text = build_ranked_context(_ranked(first, second), max_tokens=budget)
        assert first in text
        assert second not in text

    def test_first_chunk_over_budget_gives_empty_context(self):
        text = build_ranked_context(_ranked("alpha " * 50), max_tokens=CHUNK_OVERHEAD_TOKENS)
        assert text == ""

    def test_token_count(self):
        assert count_tokens("hello world") == 2
        assert count_tokens("") == 0
        assert count_tokens("alpha " * 50) > count_tokens("alpha " * 10)
