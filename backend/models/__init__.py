"""Data models for the Bidwinner ingestion service."""
from .document import Document, DocumentStatus, ParsedChunk, ParsedDocument, IngestionResult
from .chunk import Chunk, ScoredChunk, TextWindow, ChunkingResult, EmbeddedChunk
from .api import (
    ProcessDocumentRequest,
    ProcessDocumentResponse,
    FailureNotification,
    DocumentStatusResponse,
    SearchRequest,
    SearchResult,
    SearchResponse,
)

__all__ = [
    "Document",
    "DocumentStatus",
    "ParsedChunk",
    "ParsedDocument",
    "IngestionResult",
    "Chunk",
    "ScoredChunk",
    "TextWindow",
    "ChunkingResult",
    "EmbeddedChunk",
    "ProcessDocumentRequest",
    "ProcessDocumentResponse",
    "FailureNotification",
    "DocumentStatusResponse",
    "SearchRequest",
    "SearchResult",
    "SearchResponse",
]
