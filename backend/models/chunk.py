"""Chunk data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class TextWindow:
    """A contiguous run of words cut from extracted text."""
    content: str
    start_index: int  # word offset, inclusive
    end_index: int  # word offset, exclusive


@dataclass
class ChunkingResult:
    """Windows produced by the chunker, with truncation reported."""
    windows: List[TextWindow]
    total_windows: int
    truncated: bool = False


@dataclass
class EmbeddedChunk:
    """A parsed chunk paired with its embedding vector."""
    chunk_index: int
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Chunk:
    """Represents a stored document chunk for retrieval."""
    chunk_id: str
    document_id: str
    user_id: str
    chunk_index: int
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScoredChunk:
    """Chunk with relevance score from retrieval."""
    chunk: Chunk
    relevance_score: float  # 0.0 to 1.0
