# =============================================================================
# Unit Tests — Document Providers
# =============================================================================
#
# The SQL provider runs against a temporary SQLite file, so no database
# server is needed.
# =============================================================================

import pytest
from sqlalchemy.orm import sessionmaker

from docquery.db.engine import init_db, make_engine
from docquery.models.documents import ChunkType
from docquery.services.chunker import reassemble
from docquery.services.provider import InMemoryDocumentProvider, SqlDocumentProvider

ORDERS_CSV = "Order,Region,Amount\n" + "\n".join(
    f"ORD-{i:03d},North,{i * 10}" for i in range(1, 16)
)


@pytest.fixture
def sql_provider(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'docs.db'}")
    init_db(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield SqlDocumentProvider(session_factory=factory)
    engine.dispose()


class TestInMemoryProvider:
    """Tests for InMemoryDocumentProvider."""

    def test_ids_are_allocated_in_order(self):
        provider = InMemoryDocumentProvider()
        first = provider.add_document("a note", "a.txt")
        second = provider.add_document("another note", "b.txt")
        assert (first.id, second.id) == (1, 2)

    def test_explicit_id_moves_the_counter(self):
        provider = InMemoryDocumentProvider()
        provider.add_document("a note", "a.txt", document_id=10)
        assert provider.add_document("b note", "b.txt").id == 11

    def test_file_type_from_extension(self):
        provider = InMemoryDocumentProvider()
        doc = provider.add_document(ORDERS_CSV, "Orders.CSV")
        assert doc.file_type == "csv"
        assert provider.get_chunks(doc.id)[0].chunk_type is ChunkType.CSV_SUMMARY

    def test_chunks_round_trip(self):
        provider = InMemoryDocumentProvider()
        doc = provider.add_document(ORDERS_CSV, "orders.csv")
        assert reassemble(provider.get_chunks(doc.id)) == ORDERS_CSV

    def test_unknown_document(self):
        provider = InMemoryDocumentProvider()
        assert provider.get_document(99) is None
        assert provider.get_chunks(99) == []
        assert provider.get_original_text(99) is None

    def test_returned_chunk_list_is_a_copy(self):
        provider = InMemoryDocumentProvider()
        doc = provider.add_document("a note", "a.txt")
        provider.get_chunks(doc.id).clear()
        assert len(provider.get_chunks(doc.id)) == 1


class TestSqlProvider:
    """Tests for SqlDocumentProvider on SQLite."""

    def test_document_round_trip(self, sql_provider):
        stored = sql_provider.add_document(ORDERS_CSV, "orders.csv", original_text=ORDERS_CSV)
        loaded = sql_provider.get_document(stored.id)
        assert loaded.filename == "orders.csv"
        assert loaded.file_type == "csv"
        assert loaded.text == ORDERS_CSV

    def test_chunks_keep_order_and_metadata(self, sql_provider):
        stored = sql_provider.add_document(ORDERS_CSV, "orders.csv")
        chunks = sql_provider.get_chunks(stored.id)
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert chunks[0].is_summary
        assert chunks[1].metadata["columns"] == ["Order", "Region", "Amount"]
        assert reassemble(chunks) == ORDERS_CSV

    def test_original_text(self, sql_provider):
        with_original = sql_provider.add_document("decoded", "a.txt", original_text="raw bytes")
        without = sql_provider.add_document("decoded", "b.txt")
        assert sql_provider.get_original_text(with_original.id) == "raw bytes"
        assert sql_provider.get_original_text(without.id) is None

    def test_missing_document(self, sql_provider):
        assert sql_provider.get_document(404) is None
        assert sql_provider.get_chunks(404) == []
        assert sql_provider.get_original_text(404) is None
