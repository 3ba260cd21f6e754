# =============================================================================
# Models Package
# =============================================================================
#   - documents.py: Document and Chunk value types
#   - query.py: QueryIntent and Filter
#   - results.py: Pydantic result union returned by the router
#   - requests.py / responses.py: API schemas
#
# These are SEPARATE from the database models (docquery/db/models.py).
# =============================================================================
