"""Main entry point for the Bidwinner ingestion and retrieval API."""
import logging
import time
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from config import PORT, CORS_ORIGINS, LOG_FORMAT, LOG_LEVEL
from logger import setup_logging
from dependencies import Services, build_services
from models.api import (
    ProcessDocumentRequest,
    ProcessDocumentResponse,
    FailureNotification,
    DocumentStatusResponse,
    SearchRequest,
    SearchResult,
    SearchResponse,
)
from services.document_store import DocumentStore
from services.ingestion_job import IngestionJob
from services.retrieval_engine import RetrievalEngine
from services.errors import IngestionError, status_code_for, error_detail

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Bidwinner Ingestion Service",
    description="Document ingestion and tenant-scoped retrieval for RFP drafting",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
services: Services = None
ingestion_job: IngestionJob = None
document_store: DocumentStore = None
retrieval_engine: RetrievalEngine = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global services, ingestion_job, document_store, retrieval_engine

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing Bidwinner ingestion services...")

    try:
        services = build_services()
        ingestion_job = services.job
        document_store = services.document_store
        retrieval_engine = services.retrieval_engine
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Close HTTP connection pools."""
    if services is not None:
        services.close()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Bidwinner Ingestion API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "bidwinner-ingest",
        "version": "1.0.0"
    }


@app.post("/documents/process", response_model=ProcessDocumentResponse)
def process_document(request: ProcessDocumentRequest) -> ProcessDocumentResponse:
    """
    Process an uploaded document: fetch, parse, embed and store its chunks.

    Called by the job dispatcher with at-least-once delivery. Reprocessing a
    completed document is a no-op.

    Returns:
        ProcessDocumentResponse with the final status and chunk count

    Raises:
        HTTPException: 404 unknown document, 409 superseded attempt,
            503 retryable failure, 422 permanent failure
    """
    start_time = time.time()
    document_id = request.document_id

    try:
        result = ingestion_job.handle(document_id)
    except IngestionError as e:
        logger.error(
            f"Processing error for document {document_id}: {e.error.code} {e.error.message}",
            extra={"document_id": document_id}
        )
        raise HTTPException(status_code=status_code_for(e), detail=error_detail(e))
    except Exception as e:
        logger.error(f"Unexpected error processing document {document_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error: {str(e)}"
        )

    latency_ms = int((time.time() - start_time) * 1000)
    logger.info(
        f"Document {document_id} {result.status.value} "
        f"({result.chunk_count} chunks) in {latency_ms}ms",
        extra={"document_id": document_id}
    )

    return ProcessDocumentResponse(
        document_id=result.document_id,
        status=result.status.value,
        chunk_count=result.chunk_count,
        skipped=result.skipped,
        delegated=result.delegated,
        truncated=result.truncated
    )


@app.post("/documents/failed")
def report_failure(notification: FailureNotification):
    """Failure hook for the dispatcher once its retries are exhausted."""
    try:
        marked = ingestion_job.handle_failure(notification.document_id, notification.error)
    except IngestionError as e:
        raise HTTPException(status_code=status_code_for(e), detail=error_detail(e))

    return {"document_id": notification.document_id, "marked_failed": marked}


@app.get("/documents/{document_id}", response_model=DocumentStatusResponse)
def get_document_status(
    document_id: str,
    tenant_id: str = Query(..., min_length=1)
) -> DocumentStatusResponse:
    """Return processing status and progress for polling clients of the owning tenant."""
    try:
        document = document_store.get_for_tenant(document_id, tenant_id)
    except IngestionError as e:
        raise HTTPException(status_code=status_code_for(e), detail=error_detail(e))

    return DocumentStatusResponse(
        document_id=document.document_id,
        status=document.status.value,
        processing_progress=document.processing_progress,
        chunks_processed=document.chunks_processed,
        total_chunks=document.total_chunks,
        chunk_count=document.chunk_count,
        error=document.error,
        processing_started_at=document.processing_started_at,
        processing_completed_at=document.processing_completed_at,
        processing_failed_at=document.processing_failed_at
    )


@app.delete("/documents/{document_id}")
def delete_document(document_id: str, tenant_id: str = Query(..., min_length=1)):
    """Delete a document and its chunks."""
    try:
        removed = ingestion_job.delete_document(document_id, tenant_id)
    except IngestionError as e:
        raise HTTPException(status_code=status_code_for(e), detail=error_detail(e))

    return {"document_id": document_id, "deleted": True, "chunks_deleted": removed}


@app.post("/search", response_model=SearchResponse)
def search(request: SearchRequest) -> SearchResponse:
    """
    Tenant-scoped similarity search over stored chunks.

    Returns:
        SearchResponse ordered by relevance, at most k results

    Raises:
        HTTPException: 400 for invalid input, 503 if embedding or lookup fails
    """
    try:
        scored_chunks = retrieval_engine.search(request.query, request.tenant_id, request.k)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IngestionError as e:
        logger.error(f"Search failed: {e.error.message}", extra={"tenant_id": request.tenant_id})
        raise HTTPException(status_code=503, detail=error_detail(e))

    results = [
        SearchResult(
            chunk_id=scored.chunk.chunk_id,
            document_id=scored.chunk.document_id,
            chunk_index=scored.chunk.chunk_index,
            content=scored.chunk.content,
            metadata=scored.chunk.metadata,
            relevance_score=scored.relevance_score
        )
        for scored in scored_chunks
    ]
    return SearchResponse(results=results, count=len(results))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
