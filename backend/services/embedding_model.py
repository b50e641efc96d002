"""Embedding model integration with an OpenAI-compatible embeddings API."""
import logging
import random
import time
from typing import Iterable, Iterator, List, Optional

import httpx
import tiktoken

from models.chunk import EmbeddedChunk
from models.document import ParsedChunk
from services.errors import EmbeddingServiceError, RateLimitError
from config import (
    OPENAI_API_KEY,
    EMBEDDING_API_URL,
    EMBEDDING_MODEL,
    EMBEDDING_DIMENSION,
    EMBEDDING_MAX_INPUT_TOKENS,
    EMBEDDING_MAX_RETRIES,
    EMBEDDING_BASE_DELAY,
    EMBEDDING_TIMEOUT,
    EMBEDDING_STREAM_BATCH_SIZE,
)

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """Client for the embeddings endpoint with rate-limit-aware retry."""

    def __init__(
        self,
        api_key: Optional[str] = OPENAI_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        api_url: str = EMBEDDING_API_URL,
        dimension: int = EMBEDDING_DIMENSION,
        max_retries: int = EMBEDDING_MAX_RETRIES,
        base_delay: float = EMBEDDING_BASE_DELAY,
        timeout: float = EMBEDDING_TIMEOUT,
        max_input_tokens: int = EMBEDDING_MAX_INPUT_TOKENS,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize the embedding client.

        Args:
            api_key: Embeddings API key
            model_name: Model identifier (default: text-embedding-ada-002)
            api_url: Embeddings endpoint URL
            dimension: Expected vector length for this model
            max_retries: Total attempts made when the service rate-limits
            base_delay: Initial delay in seconds, doubled on every attempt
            timeout: Request timeout in seconds
            max_input_tokens: Longest input the model accepts
            http_client: Shared HTTP client; one is created when omitted
        """
        if not api_key:
            raise ValueError("OPENAI_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.api_url = api_url
        self.dimension = dimension
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.max_input_tokens = max_input_tokens
        self.client = http_client or httpx.Client(timeout=timeout)
        self._encoder = None

        logger.info(f"Initialized EmbeddingModel with model: {model_name}")

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.client.close()

    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ValueError: If text is empty
            EmbeddingServiceError: If the call fails or rate-limit retries run out
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._embed_with_retry(self._truncate(text))

    def embed_chunks(self, chunks: Iterable[ParsedChunk]) -> List[EmbeddedChunk]:
        """Embed every chunk and collect the results in chunk order."""
        embedded: List[EmbeddedChunk] = []
        for batch in self.stream_embeddings(chunks):
            embedded.extend(batch)
        return embedded

    def stream_embeddings(
        self,
        chunks: Iterable[ParsedChunk],
        batch_size: int = EMBEDDING_STREAM_BATCH_SIZE
    ) -> Iterator[List[EmbeddedChunk]]:
        """
        Lazily embed chunks, yielding one list per batch.

        Chunks inside a batch are embedded sequentially so the service sees
        at most one request at a time. Nothing beyond the current batch is
        held in memory.

        Args:
            chunks: Parsed chunks in ordinal order
            batch_size: Chunks per yielded batch

        Yields:
            Lists of EmbeddedChunk, preserving chunk_index
        """
        if batch_size < 1:
            raise ValueError("batch_size must be positive")

        batch: List[EmbeddedChunk] = []
        batch_number = 0
        for chunk in chunks:
            try:
                embedding = self.embed_text(chunk.content)
            except Exception as e:
                logger.error(f"Error generating embedding for chunk {chunk.chunk_index}: {e}")
                raise

            batch.append(EmbeddedChunk(
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                embedding=embedding,
                metadata=dict(chunk.metadata)
            ))

            if len(batch) == batch_size:
                batch_number += 1
                logger.debug(f"Embedded batch {batch_number} ({len(batch)} chunks)")
                yield batch
                batch = []

        if batch:
            batch_number += 1
            logger.debug(f"Embedded batch {batch_number} ({len(batch)} chunks)")
            yield batch

    def _embed_with_retry(self, text: str) -> List[float]:
        """
        Call the embeddings API, retrying only on rate limits.

        The delay before retry n (0-based) is base_delay * 2**n plus up to
        one second of jitter, so concurrent callers do not retry in lockstep.
        """
        for attempt in range(self.max_retries):
            try:
                return self._request_embedding(text)
            except RateLimitError as e:
                if attempt == self.max_retries - 1:
                    error_msg = f"Rate limited after {self.max_retries} attempts: {e.message}"
                    logger.error(error_msg)
                    raise EmbeddingServiceError(
                        error_msg,
                        details={"attempts": self.max_retries},
                        retryable=True
                    )

                delay = self.base_delay * (2 ** attempt) + random.uniform(0, 1)
                logger.warning(
                    f"Rate limited. Retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                time.sleep(delay)

        raise EmbeddingServiceError("Embedding retries misconfigured: max_retries must be positive")

    def _request_embedding(self, text: str) -> List[float]:
        """Issue one embeddings request and validate the returned vector."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {"model": self.model_name, "input": text}

        try:
            response = self.client.post(self.api_url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise EmbeddingServiceError(
                f"Embedding request timed out after {self.timeout}s", retryable=True
            )
        except httpx.RequestError as e:
            raise EmbeddingServiceError(f"Network error: {str(e)}", retryable=True)

        if response.status_code == 429:
            raise RateLimitError(f"Rate limit exceeded (HTTP 429): {response.text[:200]}")

        if response.status_code == 401:
            logger.error("Authentication failed for embeddings API")
            raise EmbeddingServiceError("Invalid API key", details={"status": 401})

        if response.status_code != 200:
            error_msg = f"API request failed with status {response.status_code}: {response.text[:500]}"
            logger.error(error_msg)
            raise EmbeddingServiceError(error_msg, details={"status": response.status_code})

        try:
            embedding = response.json()["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingServiceError(f"Malformed embeddings response: {str(e)}")

        if len(embedding) != self.dimension:
            raise EmbeddingServiceError(
                f"Expected {self.dimension}-dimensional embedding, got {len(embedding)}",
                details={"model": self.model_name}
            )

        return embedding

    def _truncate(self, text: str) -> str:
        """Cut text to the model's token limit."""
        # A token spans at least one character, so short texts always fit
        if len(text) <= self.max_input_tokens:
            return text

        if self._encoder is None:
            try:
                self._encoder = tiktoken.encoding_for_model(self.model_name)
            except KeyError:
                self._encoder = tiktoken.get_encoding("cl100k_base")

        tokens = self._encoder.encode(text)
        if len(tokens) <= self.max_input_tokens:
            return text

        logger.warning(
            f"Truncating embedding input from {len(tokens)} to {self.max_input_tokens} tokens"
        )
        return self._encoder.decode(tokens[:self.max_input_tokens])
