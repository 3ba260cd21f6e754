# =============================================================================
# Agents Package — LangGraph Query Routing
# =============================================================================
#   - router.py: LangGraph graph that tries small talk, then tabular query,
#     then field lookup; answer() adds the ranked-chunk fallback
# =============================================================================
