"""Document data models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class DocumentStatus(str, Enum):
    """Document processing lifecycle states (mirrors the documents table)."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse timestamp string from Supabase, handling various formats.

    Supabase can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This normalizes
    the fractional part to six digits.

    Args:
        value: Timestamp string from Supabase, or None

    Returns:
        datetime object, or None when no value is stored
    """
    if not value:
        return None

    timestamp_str = value.replace("Z", "+00:00")

    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        head, tail = timestamp_str.split(".", 1)
        tz = ""
        for sign in ("+", "-"):
            if sign in tail:
                tail, tz = tail.split(sign, 1)
                tz = sign + tz
                break
        timestamp_str = f"{head}.{tail[:6].ljust(6, '0')}{tz}"

    return datetime.fromisoformat(timestamp_str)


@dataclass
class Document:
    """Represents one uploaded source file and its processing state."""
    document_id: str
    user_id: str
    file_url: str
    file_type: str
    file_name: Optional[str] = None
    status: DocumentStatus = DocumentStatus.PENDING
    chunk_count: int = 0
    processing_progress: int = 0
    chunks_processed: int = 0
    total_chunks: int = 0
    error: Optional[str] = None
    processing_attempt: Optional[str] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    processing_failed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Document":
        """
        Build a Document from a documents-table row, validating its shape.

        Args:
            row: Row dictionary as returned by Supabase

        Returns:
            Document instance

        Raises:
            ValueError: If required fields are missing or status is unknown
        """
        for key in ("id", "user_id"):
            if not row.get(key):
                raise ValueError(f"Document row is missing required field '{key}'")

        raw_status = row.get("status") or DocumentStatus.PENDING.value
        try:
            status = DocumentStatus(raw_status)
        except ValueError:
            raise ValueError(f"Document {row['id']} has unknown status '{raw_status}'")

        return cls(
            document_id=str(row["id"]),
            user_id=str(row["user_id"]),
            file_url=row.get("file_url") or "",
            file_type=row.get("file_type") or "",
            file_name=row.get("file_name"),
            status=status,
            chunk_count=int(row.get("chunk_count") or 0),
            processing_progress=int(row.get("processing_progress") or 0),
            chunks_processed=int(row.get("chunks_processed") or 0),
            total_chunks=int(row.get("total_chunks") or 0),
            error=row.get("error"),
            processing_attempt=row.get("processing_attempt"),
            processing_started_at=parse_timestamp(row.get("processing_started_at")),
            processing_completed_at=parse_timestamp(row.get("processing_completed_at")),
            processing_failed_at=parse_timestamp(row.get("processing_failed_at")),
        )


@dataclass
class ParsedChunk:
    """One chunk of parsed document text, ready for embedding."""
    chunk_index: int
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedDocument:
    """Text extracted from an uploaded file plus its ordered chunks."""
    full_text: str
    chunks: List[ParsedChunk]
    truncated: bool = False


@dataclass
class IngestionResult:
    """Outcome of one ingestion attempt."""
    document_id: str
    status: DocumentStatus
    chunk_count: int = 0
    skipped: bool = False
    delegated: bool = False
    truncated: bool = False
