# =============================================================================
# Database Package
# =============================================================================
# Provides the sync SQLAlchemy engine, session management, and ORM models
# behind SqlDocumentProvider.
#
# Key exports:
#   - get_sync_session: context manager for database sessions
#   - Base: SQLAlchemy declarative base for ORM models
#   - Document, Chunk: ORM models for documents and their chunks
# =============================================================================
