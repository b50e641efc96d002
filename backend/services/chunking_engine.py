"""Chunking engine producing overlapping word windows."""
import logging
from typing import List

from models.chunk import ChunkingResult, TextWindow
from config import CHUNK_SIZE, CHUNK_OVERLAP, WORDS_PER_TOKEN, MAX_CHUNKS

logger = logging.getLogger(__name__)


def words_for_tokens(tokens: int, words_per_token: float = WORDS_PER_TOKEN) -> int:
    """Approximate a token budget as a word count (floor)."""
    return int(tokens * words_per_token)


def split_windows(
    text: str,
    target_words: int,
    overlap_words: int,
    max_chunks: int = MAX_CHUNKS
) -> ChunkingResult:
    """
    Split text into consecutive overlapping windows of whole words.

    Each window holds ``target_words`` words (the last may be shorter) and
    shares ``overlap_words`` words with its predecessor. The window that
    reaches the end of the text is the last one emitted.

    Args:
        text: Raw extracted text
        target_words: Words per window
        overlap_words: Words shared by consecutive windows; clamped to
            ``target_words - 1`` so every step moves forward
        max_chunks: Maximum number of windows to materialize

    Returns:
        ChunkingResult with the windows, the number of windows the full text
        would produce, and whether the result was truncated

    Raises:
        ValueError: If target_words < 1, overlap_words < 0 or max_chunks < 1
    """
    if target_words < 1:
        raise ValueError("target_words must be positive")
    if overlap_words < 0:
        raise ValueError("overlap_words cannot be negative")
    if max_chunks < 1:
        raise ValueError("max_chunks must be positive")

    words = text.split() if text else []
    if not words:
        return ChunkingResult(windows=[], total_windows=0)

    overlap = min(overlap_words, target_words - 1)
    windows: List[TextWindow] = []
    total_windows = 0

    start = 0
    while start < len(words):
        end = min(start + target_words, len(words))
        total_windows += 1

        # Past the cap we only count, so huge inputs never build strings
        if len(windows) < max_chunks:
            windows.append(TextWindow(
                content=" ".join(words[start:end]),
                start_index=start,
                end_index=end
            ))

        if end == len(words):
            break

        start = end - overlap

    truncated = total_windows > len(windows)
    if truncated:
        logger.warning(
            f"Chunk cap reached: keeping {len(windows)} of {total_windows} windows "
            f"({len(words)} words)"
        )

    return ChunkingResult(windows=windows, total_windows=total_windows, truncated=truncated)


class ChunkingEngine:
    """Segments extracted text into overlapping, word-bounded chunks."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        max_chunks: int = MAX_CHUNKS
    ):
        """
        Initialize ChunkingEngine.

        Args:
            chunk_size: Target chunk size in tokens
            chunk_overlap: Overlap between chunks in tokens
            max_chunks: Hard cap on chunks produced per text
        """
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_chunks = max_chunks
        self.target_words = max(1, words_for_tokens(chunk_size))
        self.overlap_words = words_for_tokens(chunk_overlap)

    def chunk(self, text: str) -> ChunkingResult:
        """Split text using the configured token budget."""
        result = split_windows(
            text,
            target_words=self.target_words,
            overlap_words=self.overlap_words,
            max_chunks=self.max_chunks
        )
        logger.debug(
            f"Chunked text into {len(result.windows)} windows "
            f"({self.target_words} words, {self.overlap_words} overlap)"
        )
        return result
