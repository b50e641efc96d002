"""Unit tests for DocumentStore class."""
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from unittest.mock import MagicMock, patch
from models.document import Document, DocumentStatus, parse_timestamp
from services.document_store import DocumentStore
from services.errors import DocumentNotFoundError, StorageError

ROW = {
    "id": "doc-1",
    "user_id": "tenant-a",
    "file_name": "proposal.docx",
    "file_url": "https://files.example.com/proposal.docx",
    "file_type": "docx",
    "status": "processing",
    "chunk_count": 0,
    "processing_progress": 40,
    "chunks_processed": 4,
    "total_chunks": 10,
    "error": None,
    "processing_attempt": "attempt-1",
    "processing_started_at": "2026-02-21T02:08:26.18976+00:00",
    "processing_completed_at": None,
    "processing_failed_at": None,
}


def make_store(client):
    return DocumentStore(client=client)


class TestDocumentModel:
    """Test suite for Document row validation."""

    def test_from_row(self):
        """Test a full row maps onto the dataclass."""
        document = Document.from_row(ROW)

        assert document.document_id == "doc-1"
        assert document.status == DocumentStatus.PROCESSING
        assert document.processing_progress == 40
        assert document.processing_started_at == datetime(
            2026, 2, 21, 2, 8, 26, 189760, tzinfo=timezone.utc
        )

    def test_from_row_unknown_status(self):
        """Test statuses outside the enum are rejected."""
        with pytest.raises(ValueError, match="unknown status"):
            Document.from_row({**ROW, "status": "archived"})

    def test_from_row_missing_tenant(self):
        """Test rows without user_id are rejected."""
        with pytest.raises(ValueError, match="user_id"):
            Document.from_row({**ROW, "user_id": None})

    def test_parse_timestamp_formats(self):
        """Test Z suffixes and short fractions parse."""
        assert parse_timestamp(None) is None
        assert parse_timestamp("2026-01-01T00:00:00Z") == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert parse_timestamp("2026-01-01T00:00:00.5+00:00").microsecond == 500000


class TestDocumentStore:
    """Test suite for DocumentStore."""

    @patch('services.document_store.create_client')
    def test_initialization_with_credentials(self, mock_create_client):
        """Test a client is created from credentials when none is given."""
        store = DocumentStore(supabase_url="https://test.supabase.co", supabase_key="test_key")

        mock_create_client.assert_called_once_with("https://test.supabase.co", "test_key")
        assert store.table_name == "documents"

    def test_initialization_without_credentials(self):
        """Test initialization fails without Supabase credentials."""
        with pytest.raises(ValueError, match="SUPABASE_URL and SUPABASE_KEY"):
            DocumentStore(supabase_url=None, supabase_key=None)

    def test_get_success(self):
        """Test get returns a validated Document."""
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[ROW])
        store = make_store(mock_client)

        document = store.get("doc-1")

        assert document.document_id == "doc-1"
        mock_client.table.return_value.select.return_value.eq.assert_called_once_with("id", "doc-1")

    def test_get_not_found(self):
        """Test a missing row raises DocumentNotFoundError."""
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[])
        store = make_store(mock_client)

        with pytest.raises(DocumentNotFoundError) as exc_info:
            store.get("missing")
        assert exc_info.value.error.code == "NOT_FOUND"

    def test_get_invalid_row(self):
        """Test an invalid row surfaces as StorageError."""
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[{**ROW, "status": "bogus"}])
        store = make_store(mock_client)

        with pytest.raises(StorageError, match="Invalid document row"):
            store.get("doc-1")

    def test_get_database_error(self):
        """Test query failures become StorageError."""
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.side_effect = Exception("connection reset")
        store = make_store(mock_client)

        with pytest.raises(StorageError, match="connection reset"):
            store.get("doc-1")

    def test_mark_processing_never_reopens_completed(self):
        """Test the claim excludes completed documents and resets progress."""
        mock_client = MagicMock()
        update = mock_client.table.return_value.update
        neq = update.return_value.eq.return_value.neq
        neq.return_value.execute.return_value = MagicMock(data=[ROW])
        store = make_store(mock_client)

        assert store.mark_processing("doc-1", "attempt-2") is True

        values = update.call_args[0][0]
        assert values["status"] == "processing"
        assert values["processing_attempt"] == "attempt-2"
        assert values["processing_progress"] == 0
        assert values["error"] is None
        neq.assert_called_once_with("status", "completed")

    def test_mark_processing_returns_false_when_nothing_matched(self):
        """Test an empty update result means the claim failed."""
        mock_client = MagicMock()
        neq = mock_client.table.return_value.update.return_value.eq.return_value.neq
        neq.return_value.execute.return_value = MagicMock(data=[])
        store = make_store(mock_client)

        assert store.mark_processing("doc-1", "attempt-2") is False

    def test_update_progress_is_conditional_on_attempt(self):
        """Test progress writes are scoped to the owning attempt."""
        mock_client = MagicMock()
        update = mock_client.table.return_value.update
        first_eq = update.return_value.eq
        second_eq = first_eq.return_value.eq
        third_eq = second_eq.return_value.eq
        third_eq.return_value.execute.return_value = MagicMock(data=[ROW])
        store = make_store(mock_client)

        assert store.update_progress("doc-1", "attempt-1", 3, 7) is True

        assert update.call_args[0][0] == {
            "chunks_processed": 3,
            "total_chunks": 7,
            "processing_progress": 43,
        }
        first_eq.assert_called_once_with("id", "doc-1")
        second_eq.assert_called_once_with("processing_attempt", "attempt-1")
        third_eq.assert_called_once_with("status", "processing")

    def test_update_progress_superseded(self):
        """Test a foreign attempt's write reports False."""
        mock_client = MagicMock()
        third_eq = mock_client.table.return_value.update.return_value.eq.return_value.eq.return_value.eq
        third_eq.return_value.execute.return_value = MagicMock(data=[])
        store = make_store(mock_client)

        assert store.update_progress("doc-1", "stale", 1, 2) is False

    def test_mark_completed(self):
        """Test completion sets the final counters."""
        mock_client = MagicMock()
        update = mock_client.table.return_value.update
        update.return_value.eq.return_value.eq.return_value.eq.return_value.execute.return_value = \
            MagicMock(data=[ROW])
        store = make_store(mock_client)

        assert store.mark_completed("doc-1", "attempt-1", 12) is True

        values = update.call_args[0][0]
        assert values["status"] == "completed"
        assert values["chunk_count"] == 12
        assert values["processing_progress"] == 100
        assert values["error"] is None
        assert "processing_completed_at" in values

    def test_mark_failed_truncates_error(self):
        """Test error messages are capped at 2000 characters."""
        mock_client = MagicMock()
        update = mock_client.table.return_value.update
        status_eq = update.return_value.eq.return_value.eq
        status_eq.return_value.execute.return_value = MagicMock(data=[ROW])
        store = make_store(mock_client)

        assert store.mark_failed("doc-1", "x" * 5000) is True

        values = update.call_args[0][0]
        assert values["status"] == "failed"
        assert len(values["error"]) == 2000
        status_eq.return_value.eq.assert_not_called()

    def test_mark_failed_only_from_processing(self):
        """Test only processing documents can be marked failed."""
        mock_client = MagicMock()
        status_eq = mock_client.table.return_value.update.return_value.eq.return_value.eq
        status_eq.return_value.execute.return_value = MagicMock(data=[])
        store = make_store(mock_client)

        assert store.mark_failed("doc-1", "boom") is False
        status_eq.assert_called_once_with("status", "processing")

    def test_mark_failed_for_attempt(self):
        """Test the failure write can be scoped to an attempt."""
        mock_client = MagicMock()
        status_eq = mock_client.table.return_value.update.return_value.eq.return_value.eq
        scoped = status_eq.return_value.eq
        scoped.return_value.execute.return_value = MagicMock(data=[])
        store = make_store(mock_client)

        assert store.mark_failed("doc-1", "boom", attempt_id="attempt-1") is False
        scoped.assert_called_once_with("processing_attempt", "attempt-1")

    def test_is_active_attempt(self):
        """Test ownership requires the attempt id and processing status."""
        mock_client = MagicMock()
        select = mock_client.table.return_value.select
        id_eq = select.return_value.eq
        attempt_eq = id_eq.return_value.eq
        status_eq = attempt_eq.return_value.eq
        status_eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[{"id": "doc-1"}])
        store = make_store(mock_client)

        assert store.is_active_attempt("doc-1", "attempt-1") is True
        attempt_eq.assert_called_once_with("processing_attempt", "attempt-1")
        status_eq.assert_called_once_with("status", "processing")

        status_eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
        assert store.is_active_attempt("doc-1", "attempt-1") is False

    def test_get_for_tenant(self):
        """Test another tenant's document looks missing."""
        mock_client = MagicMock()
        query = mock_client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value = MagicMock(data=[ROW])
        store = make_store(mock_client)

        assert store.get_for_tenant("doc-1", "tenant-a").document_id == "doc-1"
        with pytest.raises(DocumentNotFoundError):
            store.get_for_tenant("doc-1", "tenant-b")

    def test_find_stale_processing(self):
        """Test stale documents are selected by status and start time."""
        mock_client = MagicMock()
        eq = mock_client.table.return_value.select.return_value.eq
        eq.return_value.lt.return_value.execute.return_value = MagicMock(
            data=[ROW, {**ROW, "id": "bad", "status": "bogus"}]
        )
        store = make_store(mock_client)
        cutoff = datetime(2026, 3, 1, tzinfo=timezone.utc)

        documents = store.find_stale_processing(cutoff)

        assert [d.document_id for d in documents] == ["doc-1"]
        eq.assert_called_once_with("status", "processing")
        eq.return_value.lt.assert_called_once_with("processing_started_at", cutoff.isoformat())

    def test_delete(self):
        """Test delete removes the document row."""
        mock_client = MagicMock()
        store = make_store(mock_client)

        store.delete("doc-1")

        mock_client.table.return_value.delete.return_value.eq.assert_called_once_with("id", "doc-1")
