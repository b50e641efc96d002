"""Standalone worker that runs document ingestion for delegating API servers."""
import hmac
import logging
from typing import Optional
from fastapi import FastAPI, Header, HTTPException

from config import WORKER_PORT, WORKER_API_KEY, LOG_FORMAT, LOG_LEVEL
from logger import setup_logging
from dependencies import Services, build_services
from models.api import ProcessDocumentRequest, ProcessDocumentResponse
from services.ingestion_pipeline import IngestionPipeline
from services.errors import IngestionError, status_code_for, error_detail

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Bidwinner Ingestion Worker",
    description="Runs the ingestion pipeline on behalf of the API",
    version="1.0.0"
)

services: Services = None
pipeline: IngestionPipeline = None
worker_api_key: Optional[str] = WORKER_API_KEY


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global services, pipeline

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    if not worker_api_key:
        logger.warning("WORKER_API_KEY is not set, all requests will be rejected")

    try:
        services = build_services(delegate_to_worker=False)
        pipeline = services.pipeline
        logger.info("Worker services initialized")
    except Exception as e:
        logger.error(f"Failed to initialize worker services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Close HTTP connection pools."""
    if services is not None:
        services.close()


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"ok": True}


@app.post("/process-document", response_model=ProcessDocumentResponse)
def process_document(
    request: ProcessDocumentRequest,
    x_worker_key: Optional[str] = Header(default=None)
) -> ProcessDocumentResponse:
    """
    Run the ingestion pipeline for one document.

    Requires the shared secret in the x-worker-key header.
    """
    if not worker_api_key or not x_worker_key or not hmac.compare_digest(x_worker_key, worker_api_key):
        raise HTTPException(status_code=401, detail="Unauthorized")

    document_id = request.document_id
    logger.info(f"Worker processing document {document_id}", extra={"document_id": document_id})

    try:
        result = pipeline.ingest(document_id)
    except IngestionError as e:
        raise HTTPException(status_code=status_code_for(e), detail=error_detail(e))
    except Exception as e:
        logger.error(f"Unexpected worker error for document {document_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Internal server error: {str(e)}")

    return ProcessDocumentResponse(
        document_id=result.document_id,
        status=result.status.value,
        chunk_count=result.chunk_count,
        skipped=result.skipped,
        truncated=result.truncated
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=WORKER_PORT)
