"""Retrieval engine for tenant-scoped similarity search over document chunks."""
import logging
from typing import List
from models.chunk import ScoredChunk
from services.vector_store import ChunkStore
from services.embedding_model import EmbeddingModel
from config import SEARCH_OVERFETCH_FACTOR, DEFAULT_SEARCH_K

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Orchestrate query embedding and tenant-filtered chunk retrieval."""

    def __init__(
        self,
        chunk_store: ChunkStore,
        embedding_model: EmbeddingModel,
        overfetch_factor: int = SEARCH_OVERFETCH_FACTOR
    ):
        """
        Initialize the retrieval engine.

        Args:
            chunk_store: ChunkStore instance for similarity search
            embedding_model: EmbeddingModel instance for query embedding
            overfetch_factor: Multiplier on k for the index request
        """
        if overfetch_factor < 1:
            raise ValueError("overfetch_factor must be at least 1")

        self.chunk_store = chunk_store
        self.embedding_model = embedding_model
        self.overfetch_factor = overfetch_factor
        logger.info("Initialized RetrievalEngine")

    def search(self, query_text: str, tenant_id: str, k: int = DEFAULT_SEARCH_K) -> List[ScoredChunk]:
        """
        Return the k chunks of one tenant most similar to the query.

        Implements the following strategy:
        1. Embed the query
        2. Ask the index for k * overfetch_factor neighbours, since it may not
           support exact pre-filtering by tenant
        3. Keep only chunks whose user_id equals tenant_id
        4. Order by similarity descending and keep the first k

        Args:
            query_text: Free-text query
            tenant_id: Tenant whose chunks may be returned
            k: Maximum number of results

        Returns:
            Scored chunks, empty for a blank query or when nothing matches

        Raises:
            ValueError: If k < 1 or tenant_id is missing
            EmbeddingServiceError: If the query cannot be embedded
            StorageError: If the index lookup fails
        """
        if k < 1:
            raise ValueError("k must be at least 1")

        if not tenant_id:
            raise ValueError("tenant_id is required")

        if not query_text or not query_text.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        logger.debug(f"Embedding query: {query_text[:100]}...")
        query_embedding = self.embedding_model.embed_text(query_text)

        match_count = k * self.overfetch_factor
        candidates = self.chunk_store.match(query_embedding, match_count, tenant_id=tenant_id)

        # Hard tenant filter, regardless of what the index did
        tenant_chunks = [
            scored for scored in candidates
            if scored.chunk.user_id == tenant_id
        ]

        dropped = len(candidates) - len(tenant_chunks)
        if dropped:
            logger.debug(
                f"Discarded {dropped} candidates from other tenants",
                extra={"tenant_id": tenant_id}
            )

        tenant_chunks.sort(key=lambda scored: scored.relevance_score, reverse=True)
        results = tenant_chunks[:k]

        logger.info(
            f"Retrieved {len(results)} chunks from {len(candidates)} candidates",
            extra={"tenant_id": tenant_id}
        )
        return results
