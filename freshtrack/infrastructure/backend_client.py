"""
Infrastructure layer: inventory backend client with retry logic.
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from freshtrack.config import settings
from freshtrack.domain.errors import BackendError, TransientFetchError
from freshtrack.domain.models import Batch
from freshtrack.infrastructure.api_constants import (
    AlertSourceIds,
    APIConstants,
    BackendEndpoints,
)

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    # Server errors and transport failures are retried, client errors are not
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.RequestError)


def parse_content_range_total(header: Optional[str]) -> int:
    """
    Extract the total row count from a Content-Range header.

    Args:
        header: Header value such as ``0-24/57`` or ``*/0``

    Returns:
        Total number of matching rows

    Raises:
        BackendError: If the header is missing or carries no exact total
    """
    if not header or "/" not in header:
        raise BackendError(f"Missing or malformed Content-Range header: {header!r}")
    total = header.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        raise BackendError(f"Backend did not report an exact count: {header!r}")
    return int(total)


class BackendClient:
    """
    Client for the inventory backend.

    Implements the bulk read, mutate and unacknowledged-count operations the
    core needs, with exponential backoff on transient failures.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the HTTP client from explicit values or settings."""
        self.base_url = base_url or settings.backend_base_url
        self.api_key = api_key if api_key is not None else settings.backend_api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
                "accept": APIConstants.CONTENT_TYPE_JSON,
            },
            timeout=timeout or settings.backend_timeout,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        response = await self.client.request(method, endpoint, **kwargs)
        response.raise_for_status()
        return response

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> httpx.Response:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments for the request

        Returns:
            The successful response

        Raises:
            TransientFetchError: Transport failure or 5xx after retries
            BackendError: The backend rejected the request (4xx)
        """
        try:
            return await self._send(method, endpoint, **kwargs)
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            message = f"Backend request failed: {status_code} - {e.response.text}"
            if status_code >= 500:
                raise TransientFetchError(message, status_code=status_code) from e
            raise BackendError(message, status_code=status_code) from e
        except httpx.RequestError as e:
            raise TransientFetchError(f"Backend request error: {str(e)}") from e

    @staticmethod
    def _decode(response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{context}: response is not valid JSON ({e})") from e

    @staticmethod
    def _to_batch(row: Any, context: str) -> Batch:
        if not isinstance(row, dict):
            raise BackendError(f"{context}: expected a row object, got {type(row).__name__}")
        try:
            return Batch(**row)
        except ValidationError as e:
            raise BackendError(
                f"{context}: invalid row {row.get('id')!r}: {e.error_count()} validation error(s)"
            ) from e

    @classmethod
    def _single_row(cls, response: httpx.Response, context: str) -> Batch:
        data = cls._decode(response, context)
        if isinstance(data, list):
            if not data:
                raise BackendError(f"{context}: no row returned", status_code=404)
            data = data[0]
        return cls._to_batch(data, context)

    async def fetch_active_batches(self, warehouse_id: Optional[str] = None) -> list[Batch]:
        """
        Bulk read of non-expired batches, newest entry first.

        Args:
            warehouse_id: Optional warehouse scope (None = every warehouse)

        Returns:
            List of Batch instances in backend order

        Raises:
            BackendError: Also when the body is not JSON or a row is invalid
        """
        context = f"active batches (warehouse={warehouse_id})"
        response = await self._make_request(
            "GET",
            BackendEndpoints.BATCHES,
            params=BackendEndpoints.active_batches_params(warehouse_id),
        )
        rows = self._decode(response, context)
        if not isinstance(rows, list):
            raise BackendError(f"{context}: expected a list of rows, got {type(rows).__name__}")
        logger.debug(f"Fetched {len(rows)} {context}")
        return [self._to_batch(row, context) for row in rows]

    async def insert_batch(self, values: dict[str, Any]) -> Batch:
        """
        Insert a batch row and return the persisted record.

        Args:
            values: Column values, JSON-serializable
        """
        response = await self._make_request(
            "POST",
            BackendEndpoints.BATCHES,
            json=values,
            headers={"Prefer": APIConstants.PREFER_REPRESENTATION},
        )
        return self._single_row(response, "insert batch")

    async def update_batch(self, record_id: str, changes: dict[str, Any]) -> Batch:
        """
        Update columns of a batch row and return the persisted record.

        Args:
            record_id: Internal row id
            changes: Column values to set, JSON-serializable
        """
        response = await self._make_request(
            "PATCH",
            BackendEndpoints.BATCHES,
            params=BackendEndpoints.row_filter(record_id),
            json=changes,
            headers={"Prefer": APIConstants.PREFER_REPRESENTATION},
        )
        return self._single_row(response, f"update batch {record_id}")

    async def get_batch(self, record_id: str) -> Batch:
        """
        Fetch a single batch row by internal id.

        Raises:
            BackendError: With status 404 if the row does not exist
        """
        response = await self._make_request(
            "GET",
            BackendEndpoints.BATCHES,
            params={"select": "*", **BackendEndpoints.row_filter(record_id)},
        )
        return self._single_row(response, f"batch {record_id}")

    async def delete_batch(self, record_id: str) -> None:
        """Hard-delete a batch row."""
        await self._make_request(
            "DELETE",
            BackendEndpoints.BATCHES,
            params=BackendEndpoints.row_filter(record_id),
        )

    async def count_unacknowledged(self, source_id: str, warehouse_id: str) -> int:
        """
        Count unacknowledged alerts of one source for a warehouse.

        Args:
            source_id: Logical alert source (see AlertSourceIds)
            warehouse_id: Warehouse to count for

        Returns:
            Number of unacknowledged alerts
        """
        endpoint, params = AlertSourceIds.query_for(source_id, warehouse_id)
        response = await self._make_request(
            "HEAD",
            endpoint,
            params=params,
            headers={"Prefer": APIConstants.PREFER_COUNT_EXACT},
        )
        return parse_content_range_total(response.headers.get("content-range"))
