# =============================================================================
# Document Query Service
# =============================================================================
# Answers natural-language questions over uploaded documents. Tables and
# labelled fields are rebuilt from the stored chunks and queried exactly;
# relevance-ranked chunks are returned only when no structure exists.
#
# Package structure:
#   docquery/
#   ├── api/          → FastAPI route handlers (ask) and dependencies
#   ├── agents/       → LangGraph query router (small talk → tabular →
#   │                    field lookup → ranked chunks)
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Value types, query intents, results, API schemas
#   └── services/     → Chunking, extraction, intent parsing, execution,
#                        scoring, context building, document providers
# =============================================================================
