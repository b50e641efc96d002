"""Chunk store implementation using Supabase pgvector."""
import logging
from typing import List, Optional
import numpy as np
from supabase import create_client, Client

from models.chunk import Chunk, EmbeddedChunk, ScoredChunk
from services.errors import StorageError
from config import (
    SUPABASE_URL,
    SUPABASE_KEY,
    CHUNKS_TABLE,
    MATCH_CHUNKS_FUNCTION,
    EMBEDDING_DIMENSION,
)

logger = logging.getLogger(__name__)


class ChunkStore:
    """Store chunk embeddings and run nearest-neighbour lookups with pgvector."""

    def __init__(
        self,
        client: Optional[Client] = None,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        table_name: str = CHUNKS_TABLE,
        match_function: str = MATCH_CHUNKS_FUNCTION,
        dimension: int = EMBEDDING_DIMENSION
    ):
        """
        Initialize the chunk store.

        Args:
            client: Shared Supabase client; created from credentials when omitted
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table to store chunks
            match_function: Name of the similarity-search RPC
            dimension: Vector length every stored embedding must have

        Raises:
            ValueError: If no client is given and credentials are missing
        """
        if client is None:
            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
            client = create_client(supabase_url, supabase_key)

        self.client: Client = client
        self.table_name = table_name
        self.match_function = match_function
        self.dimension = dimension

        logger.info(f"Initialized ChunkStore with table: {table_name}")

    def insert_chunks(
        self,
        document_id: str,
        user_id: str,
        chunks: List[EmbeddedChunk],
        attempt_id: Optional[str] = None
    ) -> int:
        """
        Persist embedded chunks for a document.

        Rows are upserted on (document_id, chunk_index) so a redelivered
        batch overwrites rather than duplicates.

        Args:
            document_id: Owning document
            user_id: Owning tenant, denormalized for query scoping
            chunks: Embedded chunks to store
            attempt_id: Ingestion attempt writing the rows

        Returns:
            Number of chunks written

        Raises:
            ValueError: If chunks is empty
            StorageError: If a vector is invalid or the database operation fails
        """
        if not chunks:
            raise ValueError("Chunks list cannot be empty")

        records = []
        for chunk in chunks:
            vector = self._validate_vector(chunk.embedding, chunk.chunk_index)
            records.append({
                "document_id": document_id,
                "user_id": user_id,
                "chunk_index": chunk.chunk_index,
                "content": chunk.content,
                "embedding": vector.tolist(),
                "metadata": chunk.metadata or {},
                "attempt_id": attempt_id,
            })

        try:
            self.client.table(self.table_name).upsert(
                records, on_conflict="document_id,chunk_index"
            ).execute()
        except Exception as e:
            error_msg = f"Failed to add chunks to vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)

        logger.debug(
            f"Stored {len(records)} chunks for document {document_id}",
            extra={"document_id": document_id, "attempt_id": attempt_id}
        )
        return len(records)

    def delete_by_document(self, document_id: str) -> int:
        """Delete every chunk belonging to a document. Returns the number removed."""
        try:
            response = (
                self.client.table(self.table_name)
                .delete()
                .eq("document_id", document_id)
                .execute()
            )
        except Exception as e:
            error_msg = f"Failed to delete chunks for document {document_id}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)

        deleted = len(response.data or [])
        if deleted:
            logger.info(f"Cleared {deleted} existing chunks for document {document_id}")
        return deleted

    def delete_by_attempt(self, document_id: str, attempt_id: str) -> int:
        """Delete the chunks one ingestion attempt wrote for a document."""
        try:
            response = (
                self.client.table(self.table_name)
                .delete()
                .eq("document_id", document_id)
                .eq("attempt_id", attempt_id)
                .execute()
            )
        except Exception as e:
            error_msg = f"Failed to delete chunks for attempt {attempt_id}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)
        return len(response.data or [])

    def count_for_document(self, document_id: str, attempt_id: Optional[str] = None) -> int:
        """Get the number of chunks stored for a document, optionally by one attempt."""
        try:
            query = (
                self.client.table(self.table_name)
                .select("id", count="exact")
                .eq("document_id", document_id)
            )
            if attempt_id is not None:
                query = query.eq("attempt_id", attempt_id)
            response = query.execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count chunks for document {document_id}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)

    def match(
        self,
        query_embedding: List[float],
        match_count: int,
        tenant_id: Optional[str] = None
    ) -> List[ScoredChunk]:
        """
        Find the chunks nearest to a query vector using cosine similarity.

        The index may not support exact pre-filtering, so rows for other
        tenants can come back; callers must filter by ``chunk.user_id``.

        Args:
            query_embedding: Embedding vector for the query
            match_count: Number of neighbours to request from the index
            tenant_id: Passed to the RPC as a filter hint

        Returns:
            Candidates ordered by relevance, scores clamped to [0, 1]

        Raises:
            ValueError: If query_embedding is empty or match_count is invalid
            StorageError: If the database operation fails
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        if match_count <= 0:
            raise ValueError("match_count must be positive")

        try:
            # Expected RPC, created in Supabase with:
            # CREATE OR REPLACE FUNCTION match_document_chunks(
            #   query_embedding vector(1536),
            #   match_count int,
            #   filter_user_id text DEFAULT NULL
            # )
            # RETURNS TABLE (
            #   id text, document_id text, user_id text, chunk_index int,
            #   content text, metadata jsonb, similarity float
            # )
            # LANGUAGE sql STABLE
            # AS $$
            #   SELECT c.id, c.document_id, c.user_id, c.chunk_index,
            #          c.content, c.metadata,
            #          1 - (c.embedding <=> query_embedding) AS similarity
            #   FROM document_chunks c
            #   WHERE filter_user_id IS NULL OR c.user_id = filter_user_id
            #   ORDER BY c.embedding <=> query_embedding
            #   LIMIT match_count;
            # $$;
            response = self.client.rpc(
                self.match_function,
                {
                    "query_embedding": query_embedding,
                    "match_count": match_count,
                    "filter_user_id": tenant_id
                }
            ).execute()
        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg)

        scored_chunks = []
        for row in response.data or []:
            chunk = Chunk(
                chunk_id=str(row["id"]),
                document_id=str(row["document_id"]),
                user_id=str(row["user_id"]),
                chunk_index=int(row["chunk_index"]),
                content=row["content"],
                metadata=row.get("metadata") or {}
            )
            relevance_score = max(0.0, min(1.0, float(row["similarity"])))
            scored_chunks.append(ScoredChunk(chunk=chunk, relevance_score=relevance_score))

        logger.debug(f"Index returned {len(scored_chunks)} candidate chunks")
        return scored_chunks

    def _validate_vector(self, embedding: List[float], chunk_index: int) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float64)
        if vector.shape != (self.dimension,):
            raise StorageError(
                f"Chunk {chunk_index} embedding has shape {vector.shape}, "
                f"expected ({self.dimension},)",
                details={"chunk_index": chunk_index},
                retryable=False
            )
        if not np.all(np.isfinite(vector)):
            raise StorageError(
                f"Chunk {chunk_index} embedding contains non-finite values",
                details={"chunk_index": chunk_index},
                retryable=False
            )
        return vector
