"""Fetches uploaded source files over HTTP with a size cap."""
import logging
from typing import Optional

import httpx

from services.errors import FetchFailedError, FileTooLargeError
from config import MAX_FILE_SIZE_MB, FETCH_TIMEOUT

logger = logging.getLogger(__name__)


class SourceFetcher:
    """Downloads source bytes from pre-signed or public URLs."""

    def __init__(
        self,
        max_file_size_mb: int = MAX_FILE_SIZE_MB,
        timeout: float = FETCH_TIMEOUT,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize SourceFetcher.

        Args:
            max_file_size_mb: Largest file accepted, in megabytes
            timeout: Request timeout in seconds
            http_client: Shared HTTP client; one is created when omitted
        """
        self.max_file_size_mb = max_file_size_mb
        self.max_bytes = max_file_size_mb * 1024 * 1024
        self.client = http_client or httpx.Client(timeout=timeout, follow_redirects=True)

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.client.close()

    def fetch(self, url: str) -> bytes:
        """
        Download a file, refusing anything above the size cap.

        A HEAD request checks the declared length first. When HEAD is not
        available the download proceeds and the cap is enforced on the
        streamed body instead.

        Args:
            url: Source URL

        Returns:
            File contents

        Raises:
            FileTooLargeError: If the declared or actual size exceeds the cap
            FetchFailedError: On network errors or non-2xx responses
        """
        if not url:
            raise FetchFailedError("Document has no source URL")

        declared = self.content_length(url)
        if declared is not None:
            logger.info(f"File size: {declared / 1024 / 1024:.2f}MB")
            if declared > self.max_bytes:
                raise self._too_large(declared)

        try:
            with self.client.stream("GET", url) as response:
                if response.is_error:
                    raise FetchFailedError(
                        f"Failed to fetch file: {response.status_code} {response.reason_phrase}",
                        details={"status": response.status_code}
                    )

                buffer = bytearray()
                for block in response.iter_bytes():
                    buffer.extend(block)
                    if len(buffer) > self.max_bytes:
                        raise self._too_large(len(buffer))
        except httpx.HTTPError as e:
            raise FetchFailedError(f"Failed to fetch file: {str(e)}")

        logger.info(f"Downloaded {len(buffer)} bytes")
        return bytes(buffer)

    def content_length(self, url: str) -> Optional[int]:
        """Return the Content-Length reported by HEAD, or None if unavailable."""
        try:
            response = self.client.head(url)
        except httpx.HTTPError as e:
            logger.info(f"HEAD failed, continuing with GET: {e}")
            return None

        if response.is_error:
            logger.info(f"HEAD returned {response.status_code}, continuing with GET")
            return None

        raw = response.headers.get("content-length")
        try:
            return int(raw) if raw else None
        except ValueError:
            return None

    def _too_large(self, size: int) -> FileTooLargeError:
        return FileTooLargeError(
            f"File too large: {size / 1024 / 1024:.2f}MB exceeds {self.max_file_size_mb}MB limit",
            details={"bytes": size, "limit_bytes": self.max_bytes}
        )
