"""Ingestion pipeline: fetch, parse, embed and persist one document."""
import logging
import uuid
from typing import List

from models.document import Document, DocumentStatus, IngestionResult, ParsedChunk
from services.document_store import DocumentStore
from services.vector_store import ChunkStore
from services.source_fetcher import SourceFetcher
from services.document_parser import DocumentParser
from services.embedding_model import EmbeddingModel
from services.errors import IngestionError, IngestionSupersededError, StorageError
from config import PIPELINE_BATCH_SIZE, MAX_CHUNKS_PER_DOCUMENT

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Runs one document through fetch, parse, embed and store.

    Every call to ``ingest`` is an attempt with its own id. The attempt owns
    the document's status fields while the document is ``processing`` under
    that id. Once a newer attempt claims it or the failure hook fails it, the
    attempt removes its own chunks and stops.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        chunk_store: ChunkStore,
        embedding_model: EmbeddingModel,
        fetcher: SourceFetcher = None,
        parser: DocumentParser = None,
        batch_size: int = PIPELINE_BATCH_SIZE,
        max_chunks: int = MAX_CHUNKS_PER_DOCUMENT
    ):
        """
        Initialize IngestionPipeline.

        Args:
            document_store: Status and progress persistence
            chunk_store: Embedded chunk persistence
            embedding_model: Embedding generator
            fetcher: Source downloader (default: SourceFetcher())
            parser: Document parser (default: DocumentParser())
            batch_size: Chunks embedded and stored per progress update
            max_chunks: Chunks kept per document, extra chunks are dropped
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        if max_chunks < 1:
            raise ValueError("max_chunks must be positive")

        self.document_store = document_store
        self.chunk_store = chunk_store
        self.embedding_model = embedding_model
        self.fetcher = fetcher or SourceFetcher()
        self.parser = parser or DocumentParser()
        self.batch_size = batch_size
        self.max_chunks = max_chunks

    def ingest(self, document_id: str) -> IngestionResult:
        """
        Process a document end to end.

        Safe to call repeatedly: a completed document is skipped without
        touching the chunk store, and any other state is reprocessed from
        scratch.

        Args:
            document_id: Document to process

        Returns:
            IngestionResult describing the outcome

        Raises:
            DocumentNotFoundError: If the document does not exist
            IngestionSupersededError: If the attempt lost the document mid-run
            IngestionError: Any other failure, after the document is marked failed
        """
        document = self.document_store.get(document_id)

        if document.status == DocumentStatus.COMPLETED:
            logger.info(
                f"Document {document_id} already completed, skipping",
                extra={"document_id": document_id}
            )
            return self._skipped(document)

        attempt_id = uuid.uuid4().hex
        if not self.document_store.mark_processing(document_id, attempt_id):
            # Completed by a concurrent attempt between the read and the claim
            current = self.document_store.get(document_id)
            if current.status == DocumentStatus.COMPLETED:
                return self._skipped(current)
            raise StorageError(f"Could not claim document {document_id} for processing")

        try:
            return self._process(document, attempt_id)
        except IngestionSupersededError:
            raise
        except Exception as e:
            self._record_failure(document_id, attempt_id, e)
            raise

    def _process(self, document: Document, attempt_id: str) -> IngestionResult:
        document_id = document.document_id
        context = {"document_id": document_id, "attempt_id": attempt_id}

        self.chunk_store.delete_by_document(document_id)

        data = self.fetcher.fetch(document.file_url)
        parsed = self.parser.parse(data, document.file_type)

        chunks: List[ParsedChunk] = parsed.chunks
        truncated = parsed.truncated
        if len(chunks) > self.max_chunks:
            logger.warning(
                f"Document has {len(chunks)} chunks, limiting to {self.max_chunks}",
                extra=context
            )
            chunks = chunks[:self.max_chunks]
            truncated = True

        total = len(chunks)
        logger.info(f"Embedding {total} chunks in batches of {self.batch_size}", extra=context)

        processed = 0
        batches = self.embedding_model.stream_embeddings(chunks, batch_size=self.batch_size)
        for batch_number, embedded in enumerate(batches, start=1):
            if not self.document_store.is_active_attempt(document_id, attempt_id):
                self._abandon(document_id, attempt_id)

            self.chunk_store.insert_chunks(document_id, document.user_id, embedded, attempt_id)
            processed += len(embedded)

            if not self.document_store.update_progress(document_id, attempt_id, processed, total):
                self._abandon(document_id, attempt_id)

            logger.info(
                f"Progress: {processed}/{total} chunks",
                extra={**context, "batch": batch_number}
            )

        stored = self.chunk_store.count_for_document(document_id, attempt_id=attempt_id)
        if stored != total:
            if not self.document_store.is_active_attempt(document_id, attempt_id):
                self._abandon(document_id, attempt_id)
            # Rows overwritten by another attempt's upsert
            raise StorageError(
                f"Stored {stored} of {total} chunks for document {document_id}",
                details={"document_id": document_id, "stored": stored, "expected": total}
            )

        if not self.document_store.mark_completed(document_id, attempt_id, total):
            self._abandon(document_id, attempt_id)

        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.COMPLETED,
            chunk_count=total,
            truncated=truncated
        )

    def _abandon(self, document_id: str, attempt_id: str) -> None:
        """Remove this attempt's chunks and stop; the document is no longer ours."""
        removed = self.chunk_store.delete_by_attempt(document_id, attempt_id)
        logger.warning(
            f"Attempt no longer owns document {document_id}, removed {removed} chunks",
            extra={"document_id": document_id, "attempt_id": attempt_id}
        )
        raise IngestionSupersededError(
            f"Document {document_id} was claimed by a newer attempt or marked failed",
            details={"document_id": document_id, "attempt_id": attempt_id}
        )

    def _record_failure(self, document_id: str, attempt_id: str, error: Exception) -> None:
        """Mark the document failed; the caller re-raises the original error."""
        if isinstance(error, IngestionError):
            message = error.message
        else:
            message = str(error) or type(error).__name__

        logger.error(
            f"Processing failed for document {document_id}: {message}",
            extra={"document_id": document_id, "attempt_id": attempt_id},
            exc_info=not isinstance(error, IngestionError)
        )

        try:
            marked = self.document_store.mark_failed(document_id, message, attempt_id=attempt_id)
        except StorageError as e:
            logger.error(f"Could not record failure for document {document_id}: {e.message}")
            return

        if not marked:
            logger.info(
                f"Failure not recorded, attempt no longer owns document {document_id}",
                extra={"document_id": document_id, "attempt_id": attempt_id}
            )

    @staticmethod
    def _skipped(document: Document) -> IngestionResult:
        return IngestionResult(
            document_id=document.document_id,
            status=DocumentStatus.COMPLETED,
            chunk_count=document.chunk_count,
            skipped=True
        )
