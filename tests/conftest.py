"""Shared fixtures and in-memory fakes for the ingestion tests."""
import io
import sys
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from models.chunk import Chunk, EmbeddedChunk, ScoredChunk
from models.document import Document, DocumentStatus
from services.errors import DocumentNotFoundError


def build_docx(paragraphs: List[str], document_xml: Optional[str] = None) -> bytes:
    """Build a minimal DOCX container in memory."""
    if document_xml is None:
        body = "".join(
            f'<w:p><w:r><w:t xml:space="preserve">{text}</w:t></w:r></w:p>'
            for text in paragraphs
        )
        document_xml = (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
            '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
            f"<w:body>{body}</w:body></w:document>"
        )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        archive.writestr("word/document.xml", document_xml)
    return buffer.getvalue()


class FakeDocumentStore:
    """DocumentStore stand-in that keeps rows in a dict and records writes."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.progress_updates: List[int] = []
        self.failed_writes: List[str] = []
        # Called with (document_id, processed) before each progress write
        self.before_progress: Optional[Callable[[str, int], None]] = None

    def add(self, document: Document) -> Document:
        self.documents[document.document_id] = document
        return document

    def get(self, document_id):
        if document_id not in self.documents:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return self.documents[document_id]

    def get_for_tenant(self, document_id, tenant_id):
        document = self.get(document_id)
        if document.user_id != tenant_id:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        return document

    def mark_processing(self, document_id, attempt_id):
        document = self.documents.get(document_id)
        if document is None or document.status == DocumentStatus.COMPLETED:
            return False
        document.status = DocumentStatus.PROCESSING
        document.processing_attempt = attempt_id
        document.processing_progress = 0
        document.chunks_processed = 0
        document.total_chunks = 0
        document.error = None
        return True

    def is_active_attempt(self, document_id, attempt_id):
        document = self.documents.get(document_id)
        return (
            document is not None
            and document.status == DocumentStatus.PROCESSING
            and document.processing_attempt == attempt_id
        )

    def update_progress(self, document_id, attempt_id, chunks_processed, total_chunks):
        if self.before_progress is not None:
            self.before_progress(document_id, chunks_processed)
        if not self.is_active_attempt(document_id, attempt_id):
            return False
        document = self.documents[document_id]
        document.chunks_processed = chunks_processed
        document.total_chunks = total_chunks
        document.processing_progress = round(chunks_processed / total_chunks * 100)
        self.progress_updates.append(document.processing_progress)
        return True

    def mark_completed(self, document_id, attempt_id, chunk_count):
        if not self.is_active_attempt(document_id, attempt_id):
            return False
        document = self.documents[document_id]
        document.status = DocumentStatus.COMPLETED
        document.chunk_count = chunk_count
        document.processing_progress = 100
        document.error = None
        return True

    def mark_failed(self, document_id, error_message, attempt_id=None):
        document = self.documents.get(document_id)
        if document is None or document.status != DocumentStatus.PROCESSING:
            return False
        if attempt_id is not None and document.processing_attempt != attempt_id:
            return False
        document.status = DocumentStatus.FAILED
        document.error = error_message
        self.failed_writes.append(error_message)
        return True

    def find_stale_processing(self, started_before):
        return [
            document for document in self.documents.values()
            if document.status == DocumentStatus.PROCESSING
            and document.processing_started_at is not None
            and document.processing_started_at < started_before
        ]

    def delete(self, document_id):
        self.documents.pop(document_id, None)


class FakeChunkStore:
    """ChunkStore stand-in holding rows in a list and counting writes.

    Inserts replace rows with the same (document_id, chunk_index), like the
    upsert the real store issues.
    """

    def __init__(self):
        self.rows: List[dict] = []
        self.insert_calls = 0
        self.delete_calls = 0

    def insert_chunks(self, document_id, user_id, chunks, attempt_id=None):
        self.insert_calls += 1
        for chunk in chunks:
            self.rows = [
                row for row in self.rows
                if not (row["document_id"] == document_id and row["chunk_index"] == chunk.chunk_index)
            ]
            self.rows.append({
                "document_id": document_id,
                "user_id": user_id,
                "chunk_index": chunk.chunk_index,
                "content": chunk.content,
                "embedding": chunk.embedding,
                "metadata": chunk.metadata,
                "attempt_id": attempt_id,
            })
        return len(chunks)

    def delete_by_document(self, document_id):
        self.delete_calls += 1
        before = len(self.rows)
        self.rows = [row for row in self.rows if row["document_id"] != document_id]
        return before - len(self.rows)

    def delete_by_attempt(self, document_id, attempt_id):
        self.delete_calls += 1
        before = len(self.rows)
        self.rows = [
            row for row in self.rows
            if not (row["document_id"] == document_id and row["attempt_id"] == attempt_id)
        ]
        return before - len(self.rows)

    def count_for_document(self, document_id, attempt_id=None):
        return sum(
            1 for row in self.rows
            if row["document_id"] == document_id
            and (attempt_id is None or row["attempt_id"] == attempt_id)
        )

    def match(self, query_embedding, match_count, tenant_id=None):
        scored = [
            ScoredChunk(
                chunk=Chunk(
                    chunk_id=f"{row['document_id']}_{row['chunk_index']}",
                    document_id=row["document_id"],
                    user_id=row["user_id"],
                    chunk_index=row["chunk_index"],
                    content=row["content"],
                    metadata=row["metadata"]
                ),
                relevance_score=0.5
            )
            for row in self.rows
        ]
        return scored[:match_count]


class FakeFetcher:
    """SourceFetcher stand-in returning fixed bytes."""

    def __init__(self, data: bytes = b"", error: Exception = None):
        self.data = data
        self.error = error
        self.urls: List[str] = []

    def fetch(self, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.data

    def close(self):
        pass


class FakeEmbeddingModel:
    """EmbeddingModel stand-in producing deterministic 3-d vectors."""

    def __init__(self, fail_at_index: Optional[int] = None, error: Exception = None):
        self.fail_at_index = fail_at_index
        self.error = error
        self.embedded_indices: List[int] = []

    def embed_text(self, text):
        return [float(len(text)), 0.0, 1.0]

    def stream_embeddings(self, chunks, batch_size=5):
        batch = []
        for chunk in chunks:
            if chunk.chunk_index == self.fail_at_index:
                raise self.error
            self.embedded_indices.append(chunk.chunk_index)
            batch.append(EmbeddedChunk(
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=[float(chunk.chunk_index), 0.0, 1.0],
                metadata=dict(chunk.metadata)
            ))
            if len(batch) == batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def close(self):
        pass


@pytest.fixture
def document_store():
    return FakeDocumentStore()


@pytest.fixture
def chunk_store():
    return FakeChunkStore()


@pytest.fixture
def make_document(document_store):
    """Factory registering a document in the fake store."""
    def _make(document_id="doc-1", user_id="tenant-a", status=DocumentStatus.PENDING, **fields):
        return document_store.add(Document(
            document_id=document_id,
            user_id=user_id,
            file_url=fields.pop("file_url", f"https://files.example.com/{document_id}.docx"),
            file_type=fields.pop("file_type", "docx"),
            status=status,
            **fields
        ))
    return _make
