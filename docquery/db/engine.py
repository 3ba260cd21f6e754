# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Synchronous SQLAlchemy only.
# The query engine is CPU-bound and pure; the provider read is the only
# blocking call and the router already runs it in a worker thread
# (`asyncio.to_thread`). A sync engine keeps SQLite usable with no extra
# driver.
#
# SESSION LIFECYCLE:
#   create → yield → commit (or rollback on error) → close
# =============================================================================

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from docquery.config import settings
from docquery.db.models import Base

# ---------------------------------------------------------------------------
# Lazy Initialization
# ---------------------------------------------------------------------------
# The engine is only created when the SQL provider is first used, so the
# in-memory provider and the tests never touch a database file.
# ---------------------------------------------------------------------------

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections may be shared across threads."""
    connect_args = {}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        connect_args = {"check_same_thread": False}
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=echo, connect_args=connect_args)


def get_engine() -> Engine:
    """Lazily create and cache the application engine."""
    global _engine
    if _engine is None:
        _engine = make_engine(settings.database_url, echo=settings.debug)
    return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            class_=Session,
            expire_on_commit=False,
        )
    return _session_factory


def init_db(engine: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine or get_engine())


@contextmanager
def get_sync_session(factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """
    Context manager that provides a database session.

    Usage:
        with get_sync_session() as session:
            doc = session.get(Document, document_id)
            # Auto-commits on exit, auto-rollbacks on exception
    """
    session = (factory or _get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
