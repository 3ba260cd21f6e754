# =============================================================================
# Services Package — Business Logic
# =============================================================================
# Contains the query engine, separated from API handlers:
#   - chunker.py: Type-aware chunking (tables, code, markdown, prose)
#   - delimited.py: Delimited-line parsing and header detection
#   - tabular.py: Table reconstruction, type inference, merging
#   - keyvalue.py: Labelled fields, sections, lists, dates, amounts
#   - intent.py: Question → QueryIntent
#   - executor.py: QueryIntent × Table → exact result
#   - scorer.py: Multi-signal chunk ranking
#   - context.py: Results → model-ready text
#   - provider.py: Document/chunk access (in-memory, SQL)
# =============================================================================
