# =============================================================================
# Relevance Scorer — Multi-Signal Lexical Ranking of Chunks
# =============================================================================
#
# Used only when no table or field answers the question. Each chunk gets
# five component scores, combined as a weighted sum:
#
#   keyword   40%  exact whole-word hits ×15, extra substring hits ×5
#                  (keywords of 4+ chars); +20 for multi-line chunks on
#                  "how many" questions
#   date      25%  +60 per question date found in the chunk (numeric and
#                  month-name forms, each in several spellings)
#   number    15%  +25 per question number found (with and without
#                  thousands separators)
#   semantic  10%  longest run of consecutive question words present ×12,
#                  +40 when the whole question appears verbatim
#   metadata  10%  +15 table rows for factual questions, +25 table summary
#                  for all/total/how-many questions, +12 per keyword found
#                  in the chunk heading
#
# DESIGN DECISION: Lexical signals only.
# No embedding service is involved; scores are deterministic and cheap, and
# every component can be inspected on the returned ScoredChunk.
#
# The scorer never raises: a question with no usable signals scores every
# chunk 0 and the input order is kept.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from docquery.models.documents import Chunk, ChunkType
from docquery.models.results import RankedChunk, RankedChunks

logger = logging.getLogger(__name__)

STOP_WORDS: frozenset[str] = frozenset({
    "the", "is", "at", "which", "on", "a", "an", "and", "or", "but", "in",
    "with", "to", "for", "of", "as", "by", "that", "this", "it", "from",
    "are", "was", "were", "been", "be", "have", "has", "had", "do", "does",
    "did", "will", "would", "could", "should", "may", "might", "can",
    "what", "when", "where", "who", "how", "why",
})

MONTHS: dict[str, str] = {
    "jan": "01", "feb": "02", "mar": "03", "apr": "04", "may": "05", "jun": "06",
    "jul": "07", "aug": "08", "sep": "09", "oct": "10", "nov": "11", "dec": "12",
    "january": "01", "february": "02", "march": "03", "april": "04",
    "june": "06", "july": "07", "august": "08", "september": "09",
    "october": "10", "november": "11", "december": "12",
}
_MONTH_NAMES = "|".join(sorted(MONTHS, key=len, reverse=True))

KEYWORD_EXACT_POINTS = 15
KEYWORD_PARTIAL_POINTS = 5
KEYWORD_PARTIAL_MIN_LENGTH = 4
COUNT_LIST_BONUS = 20
DATE_POINTS = 60
NUMBER_POINTS = 25
STREAK_POINTS = 12
STREAK_MIN_WORD_LENGTH = 4
EXACT_PHRASE_BONUS = 40
CSV_FACTUAL_BONUS = 15
SUMMARY_OVERVIEW_BONUS = 25
HEADING_KEYWORD_POINTS = 12

_KEYWORD_JUNK = re.compile(r"[^\w\s/\-.]")
_PURE_DIGITS = re.compile(r"^\d+$")
_SLASH_DATE = re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}")
_DASH_DATE = re.compile(r"\d{1,2}-\d{1,2}-\d{2,4}")
_DAY_MONTH_YEAR = re.compile(
    rf"(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?({_MONTH_NAMES})\.?,?\s+(\d{{4}})",
    re.IGNORECASE,
)
_MONTH_DAY_YEAR = re.compile(
    rf"\b({_MONTH_NAMES})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})",
    re.IGNORECASE,
)
_GROUPED_NUMBER = re.compile(r"\d{1,3}(?:,\d{3})+(?:\.\d+)?")
_SIMPLE_NUMBER = re.compile(r"\b\d+(?:\.\d+)?\b")
_ENTITY_RUN = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_QUOTED = re.compile(r'"([^"]+)"')
_OVERVIEW_WORDS = ("all", "total", "how many")

QUESTION_TYPES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("factual", re.compile(r"\b(what|which)\b.*\b(is|are|was|were)\b")),
    ("count", re.compile(r"\bhow\s+many\b")),
    ("quantity", re.compile(r"\bhow\s+much\b")),
    ("temporal", re.compile(r"\bwhen\b")),
    ("location", re.compile(r"\bwhere\b")),
    ("person", re.compile(r"\bwho\b")),
    ("list", re.compile(r"\b(list|show|give|enumerate)\b")),
    ("comparison", re.compile(r"\b(compare|difference|vs)\b")),
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreWeights:
    keyword: float = 0.40
    date: float = 0.25
    number: float = 0.15
    semantic: float = 0.10
    metadata: float = 0.10

    def __post_init__(self) -> None:
        if min(self.keyword, self.date, self.number, self.semantic, self.metadata) < 0:
            raise ValueError("scorer weights must be non-negative")

    @classmethod
    def from_settings(cls, settings) -> ScoreWeights:
        return cls(
            keyword=settings.weight_keyword,
            date=settings.weight_date,
            number=settings.weight_number,
            semantic=settings.weight_semantic,
            metadata=settings.weight_metadata,
        )


@dataclass
class QueryAnalysis:
    """Signals extracted once per question and reused for every chunk."""

    text: str
    keywords: list[str] = field(default_factory=list)
    dates: list[str] = field(default_factory=list)
    numbers: list[str] = field(default_factory=list)
    question_type: str = "general"
    entities: list[str] = field(default_factory=list)
    streak_words: list[str] = field(default_factory=list)
    phrase: str = ""


@dataclass(frozen=True)
class ScoredChunk:
    chunk: Chunk
    keyword: float = 0.0
    date: float = 0.0
    number: float = 0.0
    semantic: float = 0.0
    metadata: float = 0.0
    total: float = 0.0

    def components(self) -> dict[str, float]:
        return {
            "keyword": self.keyword,
            "date": self.date,
            "number": self.number,
            "semantic": self.semantic,
            "metadata": self.metadata,
        }


# ---------------------------------------------------------------------------
# Query analysis
# ---------------------------------------------------------------------------


def extract_keywords(question: str) -> list[str]:
    """Lower-case keywords: longer than 2 chars, no stop words, no bare digits."""
    cleaned = _KEYWORD_JUNK.sub(" ", question.lower())
    words = []
    for word in cleaned.split():
        word = word.strip(".")
        if len(word) > 2 and word not in STOP_WORDS and not _PURE_DIGITS.match(word):
            words.append(word)
    return list(dict.fromkeys(words))


def extract_dates(question: str) -> list[str]:
    """
    Literal dates in the question, each in several equivalent spellings.

    "2nd Feb 2026" yields 02/02/26, 02/02/2026, 02-02-26 and "feb".
    """
    dates = _SLASH_DATE.findall(question) + _DASH_DATE.findall(question)
    for match in _DAY_MONTH_YEAR.finditer(question):
        dates.extend(_date_spellings(match.group(1), match.group(2), match.group(3)))
    for match in _MONTH_DAY_YEAR.finditer(question):
        dates.extend(_date_spellings(match.group(2), match.group(1), match.group(3)))
    return list(dict.fromkeys(dates))


def extract_numbers(question: str) -> list[str]:
    numbers: list[str] = []
    grouped = _GROUPED_NUMBER.findall(question)
    numbers.extend(grouped)
    numbers.extend(n.replace(",", "") for n in grouped)
    numbers.extend(_SIMPLE_NUMBER.findall(question))
    return list(dict.fromkeys(numbers))


def detect_question_type(question: str) -> str:
    lowered = question.lower()
    for name, pattern in QUESTION_TYPES:
        if pattern.search(lowered):
            return name
    return "general"


def extract_entities(question: str) -> list[str]:
    entities = _ENTITY_RUN.findall(question) + _QUOTED.findall(question)
    return list(dict.fromkeys(entities))


def analyze_query(question: str) -> QueryAnalysis:
    lowered = question.lower().strip()
    streak_words = [
        w for w in (word.strip("?!.,;:'\"()") for word in lowered.split())
        if len(w) >= STREAK_MIN_WORD_LENGTH
    ]
    return QueryAnalysis(
        text=lowered,
        keywords=extract_keywords(question),
        dates=extract_dates(question),
        numbers=extract_numbers(question),
        question_type=detect_question_type(question),
        entities=extract_entities(question),
        streak_words=streak_words,
        phrase=lowered.rstrip("?!. "),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_chunk(
    chunk: Chunk,
    analysis: QueryAnalysis,
    weights: ScoreWeights | None = None,
) -> ScoredChunk:
    """Score one chunk against an analysed question."""
    weights = weights or ScoreWeights()
    text = chunk.text.lower()

    keyword = 0.0
    for kw in analysis.keywords:
        exact = len(re.findall(rf"(?<!\w){re.escape(kw)}(?!\w)", text))
        keyword += exact * KEYWORD_EXACT_POINTS
        if len(kw) >= KEYWORD_PARTIAL_MIN_LENGTH:
            keyword += (text.count(kw) - exact) * KEYWORD_PARTIAL_POINTS
    if analysis.question_type == "count" and chunk.text.count("\n") >= 3:
        keyword += COUNT_LIST_BONUS

    date = sum(DATE_POINTS for d in analysis.dates if d.lower() in text)
    number = sum(NUMBER_POINTS for n in analysis.numbers if n in text)

    longest = streak = 0
    for word in analysis.streak_words:
        if word in text:
            streak += 1
            longest = max(longest, streak)
        else:
            streak = 0
    semantic = longest * STREAK_POINTS
    if analysis.phrase and analysis.phrase in text:
        semantic += EXACT_PHRASE_BONUS

    metadata = 0.0
    if chunk.chunk_type is ChunkType.CSV and analysis.question_type == "factual":
        metadata += CSV_FACTUAL_BONUS
    if chunk.is_summary and any(w in analysis.text for w in _OVERVIEW_WORDS):
        metadata += SUMMARY_OVERVIEW_BONUS
    heading = chunk.metadata.get("heading")
    if heading:
        heading_lower = str(heading).lower()
        metadata += sum(HEADING_KEYWORD_POINTS for kw in analysis.keywords if kw in heading_lower)

    total = (
        keyword * weights.keyword
        + date * weights.date
        + number * weights.number
        + semantic * weights.semantic
        + metadata * weights.metadata
    )
    return ScoredChunk(
        chunk=chunk,
        keyword=keyword,
        date=float(date),
        number=float(number),
        semantic=float(semantic),
        metadata=metadata,
        total=total,
    )


def rank_chunks(
    question: str,
    chunks: list[Chunk],
    limit: int | None = None,
    weights: ScoreWeights | None = None,
) -> list[ScoredChunk]:
    """
    Score and sort chunks, best first.

    Args:
        question: The user's question.
        chunks: Candidate chunks from all selected documents.
        limit: Keep only the first `limit` results (None keeps all).
        weights: Component weights; defaults to 40/25/15/10/10.

    Returns:
        ScoredChunks sorted by descending total. Equal totals keep input
        order.
    """
    if not chunks:
        return []
    analysis = analyze_query(question)
    scored = [score_chunk(chunk, analysis, weights) for chunk in chunks]
    scored.sort(key=lambda s: s.total, reverse=True)
    logger.info(
        "Ranked %d chunks (keywords=%s, dates=%d, numbers=%d, type=%s)",
        len(scored), analysis.keywords, len(analysis.dates),
        len(analysis.numbers), analysis.question_type,
    )
    return scored[:limit] if limit is not None else scored


def to_ranked_chunks(scored: list[ScoredChunk]) -> RankedChunks:
    """Convert scorer output into the serialisable result model."""
    return RankedChunks(chunks=[
        RankedChunk(
            document_id=s.chunk.document_id,
            chunk_index=s.chunk.index,
            chunk_type=s.chunk.chunk_type.value,
            text=s.chunk.text,
            score=round(s.total, 4),
            components=s.components(),
        )
        for s in scored
    ])


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _date_spellings(day: str, month_name: str, year: str) -> list[str]:
    day = day.zfill(2)
    month = MONTHS[month_name.lower()]
    short = year[2:]
    return [
        f"{day}/{month}/{short}",
        f"{day}/{month}/{year}",
        f"{day}-{month}-{short}",
        month_name.lower(),
    ]
