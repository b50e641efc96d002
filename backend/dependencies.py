"""
Service container.

Builds the Supabase client, the HTTP clients and every service exactly once
per process. The API, the worker and the CLI all take their services from
here.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from supabase import create_client

from config import (
    SUPABASE_URL,
    SUPABASE_KEY,
    WORKER_URL,
    WORKER_API_KEY,
    WORKER_TIMEOUT,
    FETCH_TIMEOUT,
    EMBEDDING_TIMEOUT,
)
from services.chunking_engine import ChunkingEngine
from services.document_parser import DocumentParser
from services.document_store import DocumentStore
from services.embedding_model import EmbeddingModel
from services.ingestion_job import IngestionJob
from services.ingestion_pipeline import IngestionPipeline
from services.retrieval_engine import RetrievalEngine
from services.source_fetcher import SourceFetcher
from services.vector_store import ChunkStore
from services.worker_client import WorkerClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived service instances shared by one process."""
    document_store: DocumentStore
    chunk_store: ChunkStore
    embedding_model: EmbeddingModel
    pipeline: IngestionPipeline
    job: IngestionJob
    retrieval_engine: RetrievalEngine

    def close(self) -> None:
        """Close the HTTP connection pools."""
        self.embedding_model.close()
        self.pipeline.fetcher.close()
        if self.job.worker_client is not None:
            self.job.worker_client.close()


def build_services(delegate_to_worker: bool = True) -> Services:
    """
    Construct every service with its clients.

    Args:
        delegate_to_worker: Hand processing to the worker when it is
            configured. The worker itself passes False.

    Raises:
        ValueError: If required credentials are missing
    """
    if not SUPABASE_URL or not SUPABASE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

    supabase = create_client(SUPABASE_URL, SUPABASE_KEY)
    document_store = DocumentStore(client=supabase)
    chunk_store = ChunkStore(client=supabase)

    embedding_model = EmbeddingModel(http_client=httpx.Client(timeout=EMBEDDING_TIMEOUT))
    fetcher = SourceFetcher(http_client=httpx.Client(timeout=FETCH_TIMEOUT, follow_redirects=True))
    parser = DocumentParser(chunking_engine=ChunkingEngine())

    pipeline = IngestionPipeline(
        document_store=document_store,
        chunk_store=chunk_store,
        embedding_model=embedding_model,
        fetcher=fetcher,
        parser=parser
    )

    worker_client: Optional[WorkerClient] = None
    if delegate_to_worker and WORKER_URL and WORKER_API_KEY:
        worker_client = WorkerClient(http_client=httpx.Client(timeout=WORKER_TIMEOUT))
        logger.info("Processing will be delegated to the worker")

    job = IngestionJob(pipeline, document_store, chunk_store, worker_client=worker_client)
    retrieval_engine = RetrievalEngine(chunk_store, embedding_model)

    return Services(
        document_store=document_store,
        chunk_store=chunk_store,
        embedding_model=embedding_model,
        pipeline=pipeline,
        job=job,
        retrieval_engine=retrieval_engine
    )
