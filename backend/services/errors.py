"""Error taxonomy for document ingestion and retrieval."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorInfo:
    """Structured error information surfaced to API callers."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class IngestionError(Exception):
    """Base exception carrying structured error information.

    ``retryable`` tells the job dispatcher whether re-invoking the same step
    can succeed without a different source file.
    """

    code = "INGESTION_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.error = ErrorInfo(code=self.code, message=message, details=details or {})
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.error.message


class DocumentNotFoundError(IngestionError):
    """Referenced document id does not exist."""
    code = "NOT_FOUND"


class UnsupportedFormatError(IngestionError):
    """Declared file format is not the supported structured type."""
    code = "UNSUPPORTED_FORMAT"


class EmptyOrUnreadableError(IngestionError):
    """Extracted text is below the minimal content threshold."""
    code = "EMPTY_OR_UNREADABLE"


class MalformedDocumentError(EmptyOrUnreadableError):
    """Container could not be read or its scan exceeded sanity limits."""
    code = "MALFORMED_DOCUMENT"


class FileTooLargeError(IngestionError):
    """Source file exceeds the configured size cap."""
    code = "FILE_TOO_LARGE"


class FetchFailedError(IngestionError):
    """Network or HTTP error while retrieving source bytes."""
    code = "FETCH_FAILED"
    retryable = True


class RateLimitError(IngestionError):
    """Embedding service signalled a rate limit. Handled inside the generator."""
    code = "RATE_LIMITED"
    retryable = True


class EmbeddingServiceError(IngestionError):
    """Embedding call failed, or rate-limit retries were exhausted."""
    code = "EMBEDDING_SERVICE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False
    ):
        super().__init__(message, details)
        self.retryable = retryable


class StorageError(IngestionError):
    """Document or chunk persistence failed."""
    code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = True
    ):
        super().__init__(message, details)
        self.retryable = retryable


class IngestionSupersededError(IngestionError):
    """The document was claimed by a newer attempt or failed while this one ran."""
    code = "SUPERSEDED"


class WorkerError(IngestionError):
    """Remote worker could not be reached or rejected the request."""
    code = "WORKER_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = True
    ):
        super().__init__(message, details)
        self.retryable = retryable


def status_code_for(error: IngestionError) -> int:
    """
    HTTP status used when an ingestion error reaches an API boundary.

    404 for unknown documents, 409 for superseded attempts, 503 for errors
    a retry can fix, 422 for everything else.
    """
    if isinstance(error, DocumentNotFoundError):
        return 404
    if isinstance(error, IngestionSupersededError):
        return 409
    if error.retryable:
        return 503
    return 422


def error_detail(error: IngestionError) -> Dict[str, Any]:
    """Response body for an ingestion error."""
    return {
        "error": {
            "code": error.error.code,
            "message": error.error.message,
            "details": error.error.details
        }
    }
