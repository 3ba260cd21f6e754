# =============================================================================
# Query Router — LangGraph Strategy Chain
# =============================================================================
#
# The router picks the strategy that answers a question, in priority order:
#
#   1. Small talk: greetings skip retrieval entirely
#   2. Tabular query: rebuild tables, parse intent, execute exactly
#   3. Field lookup: key/value fields and sections in prose
#   4. Ranked chunks: relevance scorer, run by answer() as the last resort
#
# GRAPH TOPOLOGY:
#
#   START ──▶ classify_greeting ──┬──▶ END                    (small talk)
#                                 └──▶ tabular ──┬──▶ END     (table answered)
#                                                └──▶ keyvalue ──▶ END
#
# DESIGN DECISION: Conditional edges, explicit short-circuit.
# Each node either produces the final result or leaves `result` unset and
# hands over to the next strategy. A node never guesses: an aggregate with no
# resolvable column ends the graph with an AmbiguousColumnResult so that
# answer() can fall back to ranked retrieval.
#
# DESIGN DECISION: Per-document work in worker threads.
# Provider reads and table/field extraction are synchronous and independent
# per document. The tabular node loads and extracts every document with
# asyncio.gather + asyncio.to_thread, then merges tables at this boundary.
#
# DESIGN DECISION: Graph compiled once at module level.
# The provider and the request-scoped TableCache travel in the state.
# NOTE: Neither is JSON-serialisable. Safe as long as no checkpointer is
# configured on the graph.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from docquery.config import settings
from docquery.models.documents import Chunk, Document
from docquery.models.results import (
    AmbiguousColumnResult,
    FieldResults,
    NoData,
    Result,
    SmallTalk,
)
from docquery.services.executor import OutlierPolicy, execute_query
from docquery.services.intent import parse_query_intent
from docquery.services.keyvalue import extract_document_fields, lookup_fields
from docquery.services.provider import DocumentProvider
from docquery.services.scorer import ScoreWeights, rank_chunks, to_ranked_chunks
from docquery.services.tabular import Table, extract_tables, merge_tables

logger = logging.getLogger(__name__)

GREETINGS = frozenset({
    "hi", "hello", "hey", "good morning", "good afternoon", "good evening",
    "how are you", "whats up", "what's up", "thanks", "thank you",
    "ok", "okay", "bye", "goodbye",
})

_QUESTION_WORDS = re.compile(
    r"\b(what|when|where|who|whom|which|why|how|list|show|tell|find|count)\b",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LoadedDocument:
    document: Document
    chunks: list[Chunk]


@dataclass
class RouteOutcome:
    """Final result plus the strategy that produced it."""

    result: Result
    strategy: str  # small_talk | tabular | field_lookup | ranked | none
    documents: list[LoadedDocument] = field(default_factory=list)


class TableCache:
    """
    Request-scoped memo of each document's tables.

    Extraction is deterministic, so the cache only saves repeated work within
    one route() call. It is never shared between requests.
    """

    def __init__(self) -> None:
        self._tables: dict[int, list[Table]] = {}

    def get(self, loaded: LoadedDocument) -> list[Table]:
        document_id = loaded.document.id
        if document_id not in self._tables:
            self._tables[document_id] = extract_tables(loaded.document, loaded.chunks)
        return self._tables[document_id]

    def __len__(self) -> int:
        return len(self._tables)


class RouterState(TypedDict, total=False):
    """
    State that flows through the router graph.

    Nodes only return the keys they update. `result` stays unset until a
    node settles the question.
    """

    # --- Input (set by caller) ---
    question: str
    document_ids: list[int]
    provider: DocumentProvider
    cache: TableCache

    # --- Intermediate (set by nodes) ---
    documents: list[LoadedDocument]

    # --- Output ---
    result: Result
    strategy: str


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def is_small_talk(question: str) -> bool:
    """
    True for greetings and very short non-questions.

    A question is small talk when it equals a known greeting (ignoring case
    and trailing punctuation) or has fewer than three words and none of them
    asks for anything.
    """
    lowered = question.lower().strip().rstrip("!?.")
    if not lowered:
        return True
    if lowered in GREETINGS:
        return True
    return len(lowered.split()) < 3 and not _QUESTION_WORDS.search(lowered)


async def route(
    question: str,
    document_ids: list[int],
    provider: DocumentProvider,
) -> RouteOutcome:
    """
    Run the strategy graph for one question.

    Args:
        question: The user's question.
        document_ids: Documents to answer from. Unknown ids are skipped and
            repeated ids are read once.
        provider: Source of documents and chunks.

    Returns:
        The outcome of the first strategy that settled the question, or
        NoData when neither tables nor fields matched.
    """
    initial_state: RouterState = {
        "question": question,
        "document_ids": list(dict.fromkeys(document_ids)),
        "provider": provider,
        "cache": TableCache(),
    }

    logger.info(
        "Routing question='%s' over %d documents", question[:80], len(document_ids),
    )
    state = await graph.ainvoke(initial_state)

    result = state.get("result")
    if result is None:
        result = NoData()
    strategy = state.get("strategy", "none")
    logger.info("Route complete: strategy=%s kind=%s", strategy, result.kind)
    return RouteOutcome(
        result=result,
        strategy=strategy,
        documents=state.get("documents", []),
    )


async def answer(
    question: str,
    document_ids: list[int],
    provider: DocumentProvider,
    limit: int | None = None,
    weights: ScoreWeights | None = None,
) -> RouteOutcome:
    """
    Route a question and fall back to ranked retrieval.

    When the graph ends without data, or with an aggregate whose column could
    not be determined, the selected documents' chunks are ranked instead.

    Args:
        question: The user's question.
        document_ids: Documents to answer from.
        provider: Source of documents and chunks.
        limit: Maximum ranked chunks; defaults to `retrieval_top_k`.
        weights: Scorer weights; defaults to the configured weights.

    Returns:
        A RouteOutcome whose result is structured, RankedChunks, SmallTalk
        or NoData (no chunks at all).
    """
    outcome = await route(question, document_ids, provider)
    if not isinstance(outcome.result, NoData | AmbiguousColumnResult):
        return outcome

    chunks = [chunk for loaded in outcome.documents for chunk in loaded.chunks]
    if not chunks:
        logger.info("No chunks to rank")
        return RouteOutcome(result=NoData(), strategy="none", documents=outcome.documents)

    scored = await asyncio.to_thread(
        rank_chunks,
        question,
        chunks,
        limit if limit is not None else settings.retrieval_top_k,
        weights or ScoreWeights.from_settings(settings),
    )
    return RouteOutcome(
        result=to_ranked_chunks(scored),
        strategy="ranked",
        documents=outcome.documents,
    )


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def classify_greeting_node(state: RouterState) -> dict:
    if is_small_talk(state["question"]):
        logger.info("Small talk detected; skipping retrieval")
        return {"result": SmallTalk(), "strategy": "small_talk"}
    return {}


async def tabular_node(state: RouterState) -> dict:
    """
    Answer from tables rebuilt out of the selected documents.

    Loads every document, extracts its tables in parallel and merges tables
    with identical headers. Leaves `result` unset when no table exists.
    """
    provider = state["provider"]
    documents = await _load_documents(provider, state["document_ids"])
    update: dict = {"documents": documents}

    cache = state.get("cache") or TableCache()
    per_document = await asyncio.gather(
        *(asyncio.to_thread(cache.get, loaded) for loaded in documents)
    )
    tables = [table for found in per_document for table in found]
    table = merge_tables(tables)
    if table is None:
        logger.info("No table in %d documents", len(documents))
        return update

    intent = parse_query_intent(state["question"], table)
    result = execute_query(
        table,
        intent,
        outlier_policy=OutlierPolicy.from_settings(settings),
        day_first=settings.date_day_first,
    )
    logger.info(
        "Tabular answer from %s: %s over %d rows",
        table.name, result.kind, len(table.rows),
    )
    update.update({"result": result, "strategy": "tabular"})
    return update


async def keyvalue_node(state: RouterState) -> dict:
    """Answer from labelled fields and section headings."""
    documents = state.get("documents", [])
    extracted = await asyncio.gather(
        *(asyncio.to_thread(_extract_fields, loaded) for loaded in documents)
    )
    matches = lookup_fields(state["question"], [d for d in extracted if not d.is_empty])
    if not matches:
        logger.info("No field matched the question")
        return {"result": NoData(), "strategy": "none"}

    logger.info("Field lookup matched %d entries", len(matches))
    return {"result": FieldResults(results=matches), "strategy": "field_lookup"}


# ---------------------------------------------------------------------------
# Conditional Edges
# ---------------------------------------------------------------------------


def _after_greeting(state: RouterState) -> str:
    return END if state.get("result") is not None else "tabular"


def _after_tabular(state: RouterState) -> str:
    return END if state.get("result") is not None else "keyvalue"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(RouterState)
_builder.add_node("classify_greeting", classify_greeting_node)
_builder.add_node("tabular", tabular_node)
_builder.add_node("keyvalue", keyvalue_node)

_builder.add_edge(START, "classify_greeting")
_builder.add_conditional_edges("classify_greeting", _after_greeting, ["tabular", END])
_builder.add_conditional_edges("tabular", _after_tabular, ["keyvalue", END])
_builder.add_edge("keyvalue", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _load_one(provider: DocumentProvider, document_id: int) -> LoadedDocument | None:
    document = provider.get_document(document_id)
    if document is None:
        logger.warning("Document %s not found; skipping", document_id)
        return None
    if document.original_text is None:
        original = provider.get_original_text(document_id)
        if original is not None:
            document = replace(document, original_text=original)
    return LoadedDocument(document=document, chunks=provider.get_chunks(document_id))


async def _load_documents(
    provider: DocumentProvider,
    document_ids: list[int],
) -> list[LoadedDocument]:
    loaded = await asyncio.gather(
        *(asyncio.to_thread(_load_one, provider, doc_id) for doc_id in document_ids)
    )
    return [doc for doc in loaded if doc is not None]


def _extract_fields(loaded: LoadedDocument):
    document = loaded.document
    text = document.original_text or document.text
    return extract_document_fields(text, document.filename)
