# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - ask.py: Question answering endpoint
#   - deps.py: Document provider dependency
# =============================================================================
