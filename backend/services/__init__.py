"""Services for the Bidwinner ingestion service."""
from .errors import (
    ErrorInfo,
    IngestionError,
    DocumentNotFoundError,
    UnsupportedFormatError,
    EmptyOrUnreadableError,
    MalformedDocumentError,
    FileTooLargeError,
    FetchFailedError,
    RateLimitError,
    EmbeddingServiceError,
    StorageError,
    IngestionSupersededError,
    WorkerError,
)
from .chunking_engine import ChunkingEngine, split_windows
from .document_parser import DocumentParser, parse_document
from .embedding_model import EmbeddingModel
from .source_fetcher import SourceFetcher
from .document_store import DocumentStore
from .vector_store import ChunkStore
from .ingestion_pipeline import IngestionPipeline
from .worker_client import WorkerClient
from .ingestion_job import IngestionJob
from .retrieval_engine import RetrievalEngine

__all__ = [
    'ErrorInfo', 'IngestionError', 'DocumentNotFoundError', 'UnsupportedFormatError',
    'EmptyOrUnreadableError', 'MalformedDocumentError', 'FileTooLargeError',
    'FetchFailedError', 'RateLimitError', 'EmbeddingServiceError', 'StorageError',
    'IngestionSupersededError', 'WorkerError', 'ChunkingEngine', 'split_windows',
    'DocumentParser', 'parse_document', 'EmbeddingModel', 'SourceFetcher',
    'DocumentStore', 'ChunkStore', 'IngestionPipeline', 'WorkerClient',
    'IngestionJob', 'RetrievalEngine'
]
