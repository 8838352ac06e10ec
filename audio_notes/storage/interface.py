"""Abstract document store and blob store interfaces.

The pipeline only needs a narrow slice of each store: whole-document reads
and writes (optionally conditioned on current field values) and simple
equality queries on the document side; save, download, signed URL and
delete on the blob side.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class ChangeEvent:
    """A document change notification.

    ``before`` is None for newly created documents. Delivery is
    at-least-once, so consumers must be idempotent.
    """

    collection: str
    document_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None

    @classmethod
    def from_message_body(cls, body: dict[str, Any]) -> ChangeEvent:
        """Deserialize and validate a change-event message body.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        collection = body.get("collection")
        if not collection or not isinstance(collection, str):
            raise ValueError("Missing or invalid 'collection' in message")

        document_id = body.get("document_id")
        if not document_id or not isinstance(document_id, str):
            raise ValueError("Missing or invalid 'document_id' in message")

        before = body.get("before")
        after = body.get("after")
        for name, value in (("before", before), ("after", after)):
            if value is not None and not isinstance(value, dict):
                raise ValueError(f"Invalid '{name}' in message: expected object")

        return cls(
            collection=collection,
            document_id=document_id,
            before=before,
            after=after,
        )


class DocumentStore(ABC):
    """Persistent key/value document store."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the document, or None when it does not exist."""

    @abstractmethod
    async def create(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        """Create a document. Raises ConflictError if it already exists."""

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        """Replace a whole document.

        Args:
            collection: Collection name.
            doc_id: Document identifier.
            data: Full new document body.
            expected: Optional field values the stored document must still
                have for the write to apply.

        Raises:
            ConflictError: If ``expected`` does not match the stored values.
            StorageError: If the document does not exist or the write fails.
        """

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Return up to ``limit`` documents whose fields equal ``filters``."""


class BlobStore(ABC):
    """Blob/file storage. Methods are blocking; call via asyncio.to_thread."""

    @abstractmethod
    def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        """Store bytes at ``key``."""

    @abstractmethod
    def download_to(self, key: str, destination: str) -> None:
        """Download the object at ``key`` to a local file path."""

    @abstractmethod
    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        """Return a time-limited read URL for ``key``."""

    @abstractmethod
    def delete_object(self, key: str) -> None:
        """Delete ``key``. Deleting a missing object is not an error."""
