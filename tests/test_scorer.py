# =============================================================================
# Unit Tests — Relevance Scorer
# =============================================================================
#
# Lexical ranking signals and the final ordering of chunks.
# =============================================================================

import pytest

from docquery.models.documents import Chunk, ChunkType
from docquery.services.scorer import (
    ScoreWeights,
    analyze_query,
    detect_question_type,
    extract_dates,
    extract_keywords,
    extract_numbers,
    rank_chunks,
    score_chunk,
    to_ranked_chunks,
)


def _chunk(text: str, index: int = 0, chunk_type=ChunkType.TEXT, metadata=None) -> Chunk:
    """Helper to build a chunk of document 1."""
    return Chunk(
        document_id=1,
        index=index,
        text=text,
        chunk_type=chunk_type,
        metadata=metadata or {},
    )


# ---------------------------------------------------------------------------
# Test: Query analysis
# ---------------------------------------------------------------------------


class TestQueryAnalysis:
    """Signals extracted from the question."""

    def test_keywords_drop_stop_words(self):
        assert extract_keywords("What is the total revenue?") == ["total", "revenue"]

    def test_keywords_drop_bare_digits_and_short_words(self):
        assert extract_keywords("top 10 of Q3 sales") == ["top", "sales"]

    def test_month_name_dates_have_several_spellings(self):
        assert extract_dates("due on 2nd Feb 2026") == [
            "02/02/26", "02/02/2026", "02-02-26", "feb",
        ]

    def test_numeric_dates_are_kept_as_written(self):
        assert extract_dates("paid on 15/01/2024") == ["15/01/2024"]

    def test_numbers_with_and_without_separators(self):
        numbers = extract_numbers("amount 1,500 and 42")
        assert "1,500" in numbers
        assert "1500" in numbers
        assert "42" in numbers

    @pytest.mark.parametrize(
        ("question", "expected"),
        [
            ("what is the premium", "factual"),
            ("how many policies", "count"),
            ("how much is due", "quantity"),
            ("when does it expire", "temporal"),
            ("where is the office", "location"),
            ("who is the nominee", "person"),
            ("list the riders", "list"),
            ("compare both plans", "comparison"),
            ("renewal grace period", "general"),
        ],
    )
    def test_question_types(self, question, expected):
        assert detect_question_type(question) == expected


# ---------------------------------------------------------------------------
# Test: Component scores
# ---------------------------------------------------------------------------


class TestScoreChunk:
    """Tests for individual score components."""

    def test_keyword_hits(self):
        analysis = analyze_query("renewal terms")
        scored = score_chunk(_chunk("Renewal happens yearly. Renewals are automatic."), analysis)
        # one exact "renewal", one partial inside "renewals"
        assert scored.keyword == 15 + 5

    def test_date_match(self):
        analysis = analyze_query("what is due on 2nd Feb 2026")
        scored = score_chunk(_chunk("Next instalment due 02/02/2026."), analysis)
        assert scored.date == 60

    def test_number_match(self):
        analysis = analyze_query("which claims exceed 2500")
        scored = score_chunk(_chunk("Claims above 2500 need approval."), analysis)
        assert scored.number == 25

    def test_exact_phrase_bonus(self):
        analysis = analyze_query("renewal grace period?")
        scored = score_chunk(_chunk("The renewal grace period is thirty days."), analysis)
        assert scored.semantic == 3 * 12 + 40

    def test_summary_bonus_for_overview_questions(self):
        analysis = analyze_query("how many rows in total")
        summary = _chunk("Total Rows: 25", chunk_type=ChunkType.CSV_SUMMARY)
        assert score_chunk(summary, analysis).metadata == 25

    def test_heading_keywords(self):
        analysis = analyze_query("renewal terms")
        chunk = _chunk("body", chunk_type=ChunkType.MARKDOWN, metadata={"heading": "Renewal Terms"})
        assert score_chunk(chunk, analysis).metadata == 24

    def test_total_is_weighted_sum(self):
        analysis = analyze_query("renewal terms")
        weights = ScoreWeights(keyword=1, date=0, number=0, semantic=0, metadata=0)
        scored = score_chunk(_chunk("renewal terms apply"), analysis, weights)
        assert scored.total == scored.keyword

    def test_negative_weight_is_rejected(self):
        with pytest.raises(ValueError):
            ScoreWeights(keyword=-0.1)


# ---------------------------------------------------------------------------
# Test: Ranking
# ---------------------------------------------------------------------------


class TestRankChunks:
    """Tests for rank_chunks() and to_ranked_chunks()."""

    def test_best_chunk_first(self):
        chunks = [
            _chunk("Premiums are paid annually.", index=0),
            _chunk("The renewal grace period is thirty days.", index=1),
            _chunk("Renewal is automatic.", index=2),
        ]
        ranked = rank_chunks("how does the renewal grace period work", chunks)
        assert ranked[0].chunk.index == 1

    def test_zero_signal_keeps_input_order(self):
        chunks = [_chunk(f"unrelated text {i}", index=i) for i in range(4)]
        ranked = rank_chunks("xylophone", chunks)
        assert [s.chunk.index for s in ranked] == [0, 1, 2, 3]
        assert all(s.total == 0 for s in ranked)

    def test_limit(self):
        chunks = [_chunk(f"renewal note {i}", index=i) for i in range(6)]
        assert len(rank_chunks("renewal", chunks, limit=2)) == 2

    def test_empty_inputs(self):
        assert rank_chunks("anything", []) == []
        assert len(rank_chunks("", [_chunk("text")])) == 1

    def test_to_ranked_chunks(self):
        ranked = to_ranked_chunks(rank_chunks("renewal", [_chunk("renewal terms")]))
        entry = ranked.chunks[0]
        assert entry.document_id == 1
        assert entry.chunk_type == "text"
        assert set(entry.components) == {"keyword", "date", "number", "semantic", "metadata"}
        assert entry.score == pytest.approx(15 * 0.40 + 12 * 0.10 + 40 * 0.10)
