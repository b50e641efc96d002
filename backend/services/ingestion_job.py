"""Job entry points invoked by the dispatcher, the API and the CLI."""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from models.document import DocumentStatus, IngestionResult
from services.document_store import DocumentStore
from services.vector_store import ChunkStore
from services.ingestion_pipeline import IngestionPipeline
from services.worker_client import WorkerClient
from services.errors import WorkerError
from config import STALE_PROCESSING_MINUTES

logger = logging.getLogger(__name__)


class IngestionJob:
    """Runs or delegates ingestion and owns document lifecycle housekeeping."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        document_store: DocumentStore,
        chunk_store: ChunkStore,
        worker_client: Optional[WorkerClient] = None
    ):
        """
        Initialize IngestionJob.

        Args:
            pipeline: In-process pipeline
            document_store: Document status persistence
            chunk_store: Chunk persistence, used for cascade deletes
            worker_client: When set, processing is delegated to the worker
        """
        self.pipeline = pipeline
        self.document_store = document_store
        self.chunk_store = chunk_store
        self.worker_client = worker_client

    def handle(self, document_id: str) -> IngestionResult:
        """
        Process a document, in-process or through the worker.

        Before delegating, the document is moved to ``processing`` so the
        failure hook can fail it even if the worker is never reached.
        Errors propagate so the dispatcher can decide whether to retry.
        """
        if self.worker_client is None:
            return self.pipeline.ingest(document_id)

        document = self.document_store.get(document_id)
        if document.status == DocumentStatus.COMPLETED:
            logger.info(
                f"Document {document_id} already completed, not delegating",
                extra={"document_id": document_id}
            )
            return IngestionResult(
                document_id=document_id,
                status=DocumentStatus.COMPLETED,
                chunk_count=document.chunk_count,
                skipped=True
            )
        self.document_store.mark_processing(document_id, uuid.uuid4().hex)

        logger.info(
            f"Delegating document {document_id} to worker",
            extra={"document_id": document_id}
        )
        body = self.worker_client.process_document(document_id)

        try:
            status = DocumentStatus(body.get("status", DocumentStatus.PROCESSING.value))
        except ValueError:
            raise WorkerError(
                f"Worker returned unknown status: {body.get('status')}",
                details={"document_id": document_id},
                retryable=False
            )

        return IngestionResult(
            document_id=document_id,
            status=status,
            chunk_count=int(body.get("chunk_count") or 0),
            skipped=bool(body.get("skipped")),
            delegated=True,
            truncated=bool(body.get("truncated"))
        )

    def handle_failure(self, document_id: str, error_message: Optional[str]) -> bool:
        """
        Record a terminal failure reported by the dispatcher.

        Only a processing document is marked failed. A running attempt
        notices on its next write and stops.

        Returns:
            True if the document was marked failed

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        document = self.document_store.get(document_id)
        if document.status == DocumentStatus.COMPLETED:
            logger.info(
                f"Ignoring failure report for completed document {document_id}",
                extra={"document_id": document_id}
            )
            return False

        return self.document_store.mark_failed(
            document_id,
            error_message or "Processing failed after retries"
        )

    def fail_stale_documents(self, max_age_minutes: int = STALE_PROCESSING_MINUTES) -> List[str]:
        """
        Fail documents whose processing attempt outlived the time budget.

        Each write is conditional on the stale attempt still owning the
        document, so an attempt claimed in the meantime is not affected.

        Returns:
            Ids of the documents marked failed
        """
        if max_age_minutes < 1:
            raise ValueError("max_age_minutes must be positive")

        cutoff = datetime.now(timezone.utc) - timedelta(minutes=max_age_minutes)
        failed_ids = []

        for document in self.document_store.find_stale_processing(cutoff):
            message = f"Processing did not finish within {max_age_minutes} minutes"
            if self.document_store.mark_failed(
                document.document_id,
                message,
                attempt_id=document.processing_attempt
            ):
                failed_ids.append(document.document_id)

        if failed_ids:
            logger.warning(f"Marked {len(failed_ids)} stale documents as failed")
        return failed_ids

    def delete_document(self, document_id: str, tenant_id: str) -> int:
        """
        Delete a document and all of its chunks.

        Chunks are removed first so a partial failure never leaves chunks
        pointing at a missing document.

        Returns:
            Number of chunks deleted

        Raises:
            DocumentNotFoundError: If the document does not exist for this tenant
        """
        self.document_store.get_for_tenant(document_id, tenant_id)

        removed = self.chunk_store.delete_by_document(document_id)
        self.document_store.delete(document_id)

        logger.info(
            f"Deleted document {document_id} and {removed} chunks",
            extra={"document_id": document_id, "tenant_id": tenant_id}
        )
        return removed
