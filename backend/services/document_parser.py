"""Document parsing service for uploaded DOCX files."""
import io
import logging
import re
import zipfile
import zlib
from bisect import bisect_right
from typing import List

from models.document import ParsedChunk, ParsedDocument
from services.chunking_engine import ChunkingEngine
from services.errors import (
    EmptyOrUnreadableError,
    MalformedDocumentError,
    UnsupportedFormatError,
)
from config import MIN_TEXT_LENGTH, MAX_TEXT_RUNS, MAX_DOCUMENT_XML_BYTES

logger = logging.getLogger(__name__)

SUPPORTED_FORMAT = "docx"
DOCUMENT_PART = "word/document.xml"

# Text runs, tabs, explicit breaks and paragraph ends, in document order.
# "<w:t(?:\s...)?>" keeps <w:tbl>, <w:tc>, <w:tab> etc. from matching as runs.
_TOKEN_PATTERN = re.compile(
    r"<w:t(?:\s[^>]*)?>(.*?)</w:t>|<w:(tab|br|cr)\b[^>]*>|</w:p>",
    re.DOTALL
)
_ENTITY_PATTERN = re.compile(r"&(amp|lt|gt|quot|apos);")
_ENTITIES = {"amp": "&", "lt": "<", "gt": ">", "quot": '"', "apos": "'"}
_HORIZONTAL_SPACE = re.compile(r"[ \t\r\f\v]+")


def decode_xml_entities(value: str) -> str:
    """Decode the five predefined XML entities in a single pass."""
    return _ENTITY_PATTERN.sub(lambda match: _ENTITIES[match.group(1)], value)


def normalize_whitespace(text: str) -> str:
    """Collapse space runs, trim every line and drop blank lines."""
    lines = (_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


class DocumentParser:
    """Extracts text from DOCX containers and splits it into chunks."""

    def __init__(
        self,
        chunking_engine: ChunkingEngine = None,
        min_text_length: int = MIN_TEXT_LENGTH,
        max_text_runs: int = MAX_TEXT_RUNS,
        max_xml_bytes: int = MAX_DOCUMENT_XML_BYTES
    ):
        """
        Initialize DocumentParser.

        Args:
            chunking_engine: Chunker applied to the extracted text
            min_text_length: Shortest extracted text accepted as content
            max_text_runs: Text-run fragments allowed before the scan aborts
            max_xml_bytes: Largest uncompressed document part accepted
        """
        self.chunking_engine = chunking_engine or ChunkingEngine()
        self.min_text_length = min_text_length
        self.max_text_runs = max_text_runs
        self.max_xml_bytes = max_xml_bytes

    def parse(self, data: bytes, file_type: str) -> ParsedDocument:
        """
        Parse an uploaded file into normalized text and ordered chunks.

        Args:
            data: Raw file bytes
            file_type: Declared format of the upload

        Returns:
            ParsedDocument with full text and chunks numbered from 0

        Raises:
            UnsupportedFormatError: If file_type is not docx
            MalformedDocumentError: If the container or its XML is unusable
            EmptyOrUnreadableError: If too little text was extracted
        """
        normalized_type = (file_type or "").strip().lower().lstrip(".")
        if normalized_type != SUPPORTED_FORMAT:
            raise UnsupportedFormatError(
                f"Unsupported file type: {file_type}. Only DOCX files are supported.",
                details={"file_type": file_type}
            )

        xml_content = self._read_document_xml(data)
        full_text = self.extract_text(xml_content)

        if len(full_text) < self.min_text_length:
            raise EmptyOrUnreadableError(
                "No text content found in DOCX",
                details={"extracted_length": len(full_text)}
            )

        result = self.chunking_engine.chunk(full_text)
        paragraph_starts = self._paragraph_word_offsets(full_text)

        chunks = [
            ParsedChunk(
                chunk_index=index,
                content=window.content,
                metadata={
                    "word_start": window.start_index,
                    "word_end": window.end_index,
                    "paragraph": bisect_right(paragraph_starts, window.start_index) - 1,
                }
            )
            for index, window in enumerate(result.windows)
        ]

        logger.info(
            f"Parsed DOCX: {len(full_text)} characters, {len(chunks)} chunks"
            + (f" (truncated from {result.total_windows})" if result.truncated else "")
        )
        return ParsedDocument(full_text=full_text, chunks=chunks, truncated=result.truncated)

    def extract_text(self, xml_content: str) -> str:
        """
        Pull run text out of WordprocessingML without building a DOM.

        Args:
            xml_content: Contents of word/document.xml

        Returns:
            Whitespace-normalized text, one line per paragraph or break

        Raises:
            MalformedDocumentError: If the number of text runs exceeds the limit
        """
        parts: List[str] = []
        run_count = 0

        for match in _TOKEN_PATTERN.finditer(xml_content):
            run_text, tag = match.group(1), match.group(2)
            if run_text is not None:
                run_count += 1
                if run_count > self.max_text_runs:
                    raise MalformedDocumentError(
                        "DOCX appears malformed: excessive text nodes",
                        details={"max_text_runs": self.max_text_runs}
                    )
                parts.append(decode_xml_entities(run_text))
            elif tag == "tab":
                parts.append(" ")
            else:
                parts.append("\n")

        return normalize_whitespace("".join(parts))

    def _read_document_xml(self, data: bytes) -> str:
        """Read the main document part out of the ZIP container."""
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                try:
                    info = archive.getinfo(DOCUMENT_PART)
                except KeyError:
                    raise MalformedDocumentError(f"{DOCUMENT_PART} not found in DOCX")

                if info.file_size > self.max_xml_bytes:
                    raise MalformedDocumentError(
                        "DOCX appears malformed: document part is too large",
                        details={"uncompressed_bytes": info.file_size}
                    )

                return archive.read(info).decode("utf-8", errors="replace")
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
            # NotImplementedError: unsupported compression, RuntimeError: encrypted member
            raise MalformedDocumentError(f"Failed to open DOCX container: {str(e)}")

    @staticmethod
    def _paragraph_word_offsets(full_text: str) -> List[int]:
        """Word offset at which each line of the normalized text begins."""
        offsets = []
        position = 0
        for line in full_text.split("\n"):
            offsets.append(position)
            position += len(line.split())
        return offsets


def parse_document(data: bytes, file_type: str) -> ParsedDocument:
    """Parse with default limits."""
    return DocumentParser().parse(data, file_type)
