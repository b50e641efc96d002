"""Client for delegating document processing to a remote worker."""
import logging
import time
from typing import Any, Dict, Optional

import httpx

from services.errors import WorkerError
from config import WORKER_URL, WORKER_API_KEY, WORKER_TIMEOUT

logger = logging.getLogger(__name__)

WORKER_KEY_HEADER = "x-worker-key"


class WorkerClient:
    """Synchronous RPC to the worker's process-document endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = WORKER_URL,
        api_key: Optional[str] = WORKER_API_KEY,
        timeout: float = WORKER_TIMEOUT,
        max_attempts: int = 2,
        http_client: Optional[httpx.Client] = None
    ):
        """
        Initialize WorkerClient.

        Args:
            base_url: Worker base URL
            api_key: Shared secret sent in the x-worker-key header
            timeout: Request timeout in seconds, covering the whole ingest
            max_attempts: Attempts made on transport failures or 5xx responses
            http_client: Shared HTTP client; one is created when omitted

        Raises:
            ValueError: If base_url or api_key is missing
        """
        if not base_url or not api_key:
            raise ValueError("WORKER_URL and WORKER_API_KEY must both be set to delegate processing")

        self.endpoint = f"{base_url.rstrip('/')}/process-document"
        self.api_key = api_key
        self.max_attempts = max(1, max_attempts)
        self.client = http_client or httpx.Client(timeout=timeout)

        logger.info(f"WorkerClient initialized for {self.endpoint}")

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        self.client.close()

    def process_document(self, document_id: str) -> Dict[str, Any]:
        """
        Ask the worker to ingest a document and wait for the outcome.

        Args:
            document_id: Document to process

        Returns:
            The worker's JSON response body

        Raises:
            WorkerError: If the worker stays unreachable or rejects the request
        """
        headers = {WORKER_KEY_HEADER: self.api_key}
        payload = {"document_id": document_id}
        last_error = ""

        for attempt in range(1, self.max_attempts + 1):
            start_time = time.time()
            try:
                response = self.client.post(self.endpoint, headers=headers, json=payload)
            except httpx.TransportError as e:
                last_error = f"Worker unreachable: {str(e)}"
                logger.warning(f"{last_error} (attempt {attempt}/{self.max_attempts})")
                continue

            latency_ms = int((time.time() - start_time) * 1000)

            if response.status_code >= 500:
                last_error = f"Worker responded {response.status_code}: {response.text[:500]}"
                logger.warning(f"{last_error} (attempt {attempt}/{self.max_attempts})")
                continue

            if response.is_error:
                raise WorkerError(
                    f"Worker responded {response.status_code}: {response.text[:500]}",
                    details={"status": response.status_code, "document_id": document_id},
                    retryable=False
                )

            logger.info(
                f"Worker processed document {document_id} in {latency_ms}ms",
                extra={"document_id": document_id}
            )
            try:
                return response.json()
            except ValueError:
                raise WorkerError(
                    "Worker returned a non-JSON response",
                    details={"document_id": document_id}
                )

        raise WorkerError(
            last_error or "Worker request failed",
            details={"attempts": self.max_attempts, "document_id": document_id}
        )
