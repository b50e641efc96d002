"""Request and response schemas for the HTTP API."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ProcessDocumentRequest(BaseModel):
    """Trigger payload: process this document by id."""
    document_id: str = Field(..., min_length=1)


class ProcessDocumentResponse(BaseModel):
    """Outcome of a processing request."""
    document_id: str
    status: str
    chunk_count: int = 0
    skipped: bool = False
    delegated: bool = False
    truncated: bool = False


class FailureNotification(BaseModel):
    """Payload sent by the job dispatcher once its retries are exhausted."""
    document_id: str = Field(..., min_length=1)
    error: Optional[str] = None


class DocumentStatusResponse(BaseModel):
    """Progress snapshot for polling clients."""
    document_id: str
    status: str
    processing_progress: int
    chunks_processed: int
    total_chunks: int
    chunk_count: int
    error: Optional[str] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    processing_failed_at: Optional[datetime] = None


class SearchRequest(BaseModel):
    """Tenant-scoped similarity search."""
    query: str
    tenant_id: str = Field(..., min_length=1)
    k: int = Field(default=10, ge=1, le=100)


class SearchResult(BaseModel):
    """One retrieved chunk, without its vector."""
    chunk_id: str
    document_id: str
    chunk_index: int
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    relevance_score: float


class SearchResponse(BaseModel):
    """Ordered search results, most similar first."""
    results: List[SearchResult]
    count: int
