"""Document status persistence using Supabase PostgreSQL."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from supabase import create_client, Client

from models.document import Document, DocumentStatus
from services.errors import DocumentNotFoundError, StorageError
from config import SUPABASE_URL, SUPABASE_KEY, DOCUMENTS_TABLE, MAX_ERROR_LENGTH

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentStore:
    """Reads documents and writes their lifecycle status and progress.

    Every write made on behalf of an ingestion attempt is conditional on
    ``processing_attempt`` still naming that attempt and the status still
    being ``processing``. An update that matches no row means a newer attempt
    took over the document or it was marked failed.
    """

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = DOCUMENTS_TABLE
    ):
        """
        Initialize the document store.

        Args:
            client: Shared Supabase client; created from credentials when omitted
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the documents table

        Raises:
            ValueError: If no client is given and credentials are missing
        """
        if client is None:
            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
            client = create_client(supabase_url, supabase_key)

        self.client: Client = client
        self.table_name = table_name

    def get(self, document_id: str) -> Document:
        """
        Load a document by id.

        Raises:
            DocumentNotFoundError: If no such document exists
            StorageError: If the query fails or the row is invalid
        """
        response = self._execute(
            "load document",
            self.client.table(self.table_name).select("*").eq("id", document_id).limit(1)
        )
        if not response.data:
            raise DocumentNotFoundError(
                f"Document not found: {document_id}",
                details={"document_id": document_id}
            )

        try:
            return Document.from_row(response.data[0])
        except ValueError as e:
            raise StorageError(f"Invalid document row: {str(e)}")

    def get_for_tenant(self, document_id: str, tenant_id: str) -> Document:
        """
        Load a document owned by a tenant.

        Another tenant's document is reported as missing.

        Raises:
            DocumentNotFoundError: If no such document exists for this tenant
        """
        document = self.get(document_id)
        if document.user_id != tenant_id:
            raise DocumentNotFoundError(
                f"Document not found: {document_id}",
                details={"document_id": document_id}
            )
        return document

    def mark_processing(self, document_id: str, attempt_id: str) -> bool:
        """
        Claim a document for an ingestion attempt and reset its progress.

        Completed documents are never reopened.

        Returns:
            True if the document was claimed, False if it is completed or gone
        """
        response = self._execute(
            "mark document processing",
            self.client.table(self.table_name)
            .update({
                "status": DocumentStatus.PROCESSING.value,
                "processing_attempt": attempt_id,
                "processing_started_at": _now(),
                "processing_progress": 0,
                "chunks_processed": 0,
                "total_chunks": 0,
                "error": None,
                "processing_failed_at": None,
            })
            .eq("id", document_id)
            .neq("status", DocumentStatus.COMPLETED.value)
        )
        claimed = bool(response.data)
        if claimed:
            logger.info(
                f"Document {document_id} marked as processing",
                extra={"document_id": document_id, "attempt_id": attempt_id}
            )
        return claimed

    def is_active_attempt(self, document_id: str, attempt_id: str) -> bool:
        """Whether the attempt still owns the document and it is still processing."""
        response = self._execute(
            "check document attempt",
            self.client.table(self.table_name)
            .select("id")
            .eq("id", document_id)
            .eq("processing_attempt", attempt_id)
            .eq("status", DocumentStatus.PROCESSING.value)
            .limit(1)
        )
        return bool(response.data)

    def update_progress(
        self,
        document_id: str,
        attempt_id: str,
        chunks_processed: int,
        total_chunks: int
    ) -> bool:
        """
        Record incremental progress for pollers.

        Returns:
            False if the attempt no longer owns the document
        """
        progress = round((chunks_processed / total_chunks) * 100) if total_chunks else 100
        return self._update_for_attempt(
            "update document progress",
            document_id,
            attempt_id,
            {
                "chunks_processed": chunks_processed,
                "total_chunks": total_chunks,
                "processing_progress": progress,
            }
        )

    def mark_completed(self, document_id: str, attempt_id: str, chunk_count: int) -> bool:
        """
        Finalize a successful attempt.

        Returns:
            False if the attempt no longer owns the document
        """
        completed = self._update_for_attempt(
            "mark document completed",
            document_id,
            attempt_id,
            {
                "status": DocumentStatus.COMPLETED.value,
                "chunk_count": chunk_count,
                "chunks_processed": chunk_count,
                "total_chunks": chunk_count,
                "processing_progress": 100,
                "error": None,
                "processing_completed_at": _now(),
            }
        )
        if completed:
            logger.info(
                f"Document {document_id} completed with {chunk_count} chunks",
                extra={"document_id": document_id, "attempt_id": attempt_id}
            )
        return completed

    def mark_failed(
        self,
        document_id: str,
        error_message: str,
        attempt_id: Optional[str] = None
    ) -> bool:
        """
        Mark a processing document failed with a human-readable error.

        Documents in any other status are left untouched. When ``attempt_id`` is given
        the write only applies while that attempt still owns the document.

        Returns:
            True if the document was marked failed
        """
        message = error_message or "Unknown error"
        query = (
            self.client.table(self.table_name)
            .update({
                "status": DocumentStatus.FAILED.value,
                "error": message[:MAX_ERROR_LENGTH],
                "processing_failed_at": _now(),
            })
            .eq("id", document_id)
            .eq("status", DocumentStatus.PROCESSING.value)
        )
        if attempt_id is not None:
            query = query.eq("processing_attempt", attempt_id)

        response = self._execute("mark document failed", query)
        failed = bool(response.data)
        if failed:
            logger.info(
                f"Document {document_id} marked as failed: {message[:200]}",
                extra={"document_id": document_id, "attempt_id": attempt_id}
            )
        return failed

    def find_stale_processing(self, started_before: datetime) -> List[Document]:
        """Return processing documents whose attempt started before the cutoff."""
        response = self._execute(
            "find stale documents",
            self.client.table(self.table_name)
            .select("*")
            .eq("status", DocumentStatus.PROCESSING.value)
            .lt("processing_started_at", started_before.isoformat())
        )

        documents = []
        for row in response.data or []:
            try:
                documents.append(Document.from_row(row))
            except ValueError as e:
                logger.warning(f"Skipping invalid document row: {e}")
        return documents

    def delete(self, document_id: str) -> None:
        """Delete a document row. Chunks must be removed first."""
        self._execute(
            "delete document",
            self.client.table(self.table_name).delete().eq("id", document_id)
        )
        logger.info(f"Deleted document {document_id}", extra={"document_id": document_id})

    def _update_for_attempt(
        self,
        action: str,
        document_id: str,
        attempt_id: str,
        values: Dict[str, Any]
    ) -> bool:
        response = self._execute(
            action,
            self.client.table(self.table_name)
            .update(values)
            .eq("id", document_id)
            .eq("processing_attempt", attempt_id)
            .eq("status", DocumentStatus.PROCESSING.value)
        )
        return bool(response.data)

    @staticmethod
    def _execute(action: str, query):
        try:
            return query.execute()
        except Exception as e:
            error_msg = f"Failed to {action}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)
