"""HTTP document store client.

Talks to the document service's internal REST API. The service owns the
database; this worker reads and writes whole documents through it and
relies on HTTP 409 for failed conditional updates.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from audio_notes.storage.interface import DocumentStore
from audio_notes.utils.errors import ConflictError, StorageError

logger = logging.getLogger(__name__)


class HttpDocumentStore(DocumentStore):
    """DocumentStore backed by the internal documents API.

    Reads configuration from environment variables:
        DOCUMENT_STORE_URL, DOCUMENT_STORE_SECRET
    """

    def __init__(
        self,
        base_url: str | None = None,
        internal_secret: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = (
            base_url or os.environ.get("DOCUMENT_STORE_URL", "")
        ).rstrip("/")
        self.internal_secret = internal_secret or os.environ.get(
            "DOCUMENT_STORE_SECRET", ""
        )

        if not self.base_url:
            raise StorageError(
                "DOCUMENT_STORE_URL is required", operation="init"
            )
        if not self.internal_secret:
            raise StorageError(
                "DOCUMENT_STORE_SECRET is required", operation="init"
            )

        self._client = httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        """Build authentication headers for internal endpoints."""
        return {
            "X-Internal-Secret": self.internal_secret,
            "Content-Type": "application/json",
        }

    def _url(self, collection: str, doc_id: str | None = None) -> str:
        url = f"{self.base_url}/internal/documents/{collection}"
        return f"{url}/{doc_id}" if doc_id else url

    async def close(self) -> None:
        """Close the shared HTTP client and release connection pool."""
        await self._client.aclose()

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch a document by id.

        Returns:
            The document body, or None on HTTP 404.

        Raises:
            StorageError: If the API call fails.
        """
        try:
            response = await self._client.get(
                self._url(collection, doc_id), headers=self._headers()
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._status_error("get", collection, doc_id, exc) from exc
        except httpx.RequestError as exc:
            raise self._request_error("get", collection, doc_id, exc) from exc

        return response.json().get("data")

    async def create(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        """Create a document.

        Raises:
            ConflictError: If the document already exists (HTTP 409).
            StorageError: If the API call fails.
        """
        try:
            response = await self._client.post(
                self._url(collection),
                headers=self._headers(),
                json={"id": doc_id, "data": data},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._status_error("create", collection, doc_id, exc) from exc
        except httpx.RequestError as exc:
            raise self._request_error("create", collection, doc_id, exc) from exc

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        """Replace a document, optionally conditioned on current values.

        Raises:
            ConflictError: If the precondition failed (HTTP 409).
            StorageError: If the API call fails.
        """
        payload: dict[str, Any] = {"data": data}
        if expected:
            payload["expected"] = expected

        try:
            response = await self._client.put(
                self._url(collection, doc_id),
                headers=self._headers(),
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._status_error("update", collection, doc_id, exc) from exc
        except httpx.RequestError as exc:
            raise self._request_error("update", collection, doc_id, exc) from exc

    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Run an equality query.

        Raises:
            StorageError: If the API call fails.
        """
        try:
            response = await self._client.post(
                f"{self._url(collection)}/query",
                headers=self._headers(),
                json={"filters": filters, "limit": limit},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise self._status_error("query", collection, None, exc) from exc
        except httpx.RequestError as exc:
            raise self._request_error("query", collection, None, exc) from exc

        return list(response.json().get("documents", []))

    @staticmethod
    def _status_error(
        operation: str,
        collection: str,
        doc_id: str | None,
        exc: httpx.HTTPStatusError,
    ) -> StorageError:
        status = exc.response.status_code
        target = f"{collection}/{doc_id}" if doc_id else collection
        error_cls = ConflictError if status == 409 else StorageError
        return error_cls(
            f"Document {operation} failed for '{target}': HTTP {status}",
            operation=operation,
            status_code=status,
        )

    @staticmethod
    def _request_error(
        operation: str,
        collection: str,
        doc_id: str | None,
        exc: httpx.RequestError,
    ) -> StorageError:
        target = f"{collection}/{doc_id}" if doc_id else collection
        return StorageError(
            f"Document {operation} failed for '{target}': {exc}",
            operation=operation,
        )
