"""In-process document and blob stores.

Used for local runs and tests. The document store delivers a ChangeEvent
to every registered listener after each successful write, mirroring a
change-notification trigger.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from audio_notes.storage.interface import BlobStore, ChangeEvent, DocumentStore
from audio_notes.utils.errors import AudioFetchError, ConflictError, StorageError

logger = logging.getLogger(__name__)

ChangeListener = Callable[[ChangeEvent], Awaitable[None]]


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document store with change notifications."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: list[ChangeListener] = []
        self.events: list[ChangeEvent] = []

    def subscribe(self, listener: ChangeListener) -> None:
        """Register an async listener invoked after every write."""
        self._listeners.append(listener)

    def _docs(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> None:
        docs = self._docs(collection)
        if doc_id in docs:
            raise ConflictError(
                f"Document '{collection}/{doc_id}' already exists",
                operation="create",
            )
        docs[doc_id] = copy.deepcopy(data)
        await self._notify(collection, doc_id, None, docs[doc_id])

    async def update(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected: dict[str, Any] | None = None,
    ) -> None:
        docs = self._docs(collection)
        current = docs.get(doc_id)
        if current is None:
            raise StorageError(
                f"Document '{collection}/{doc_id}' does not exist",
                operation="update",
                status_code=404,
            )
        if expected:
            for key, value in expected.items():
                if current.get(key) != value:
                    raise ConflictError(
                        f"Conditional update of '{collection}/{doc_id}' failed: "
                        f"'{key}' is {current.get(key)!r}, expected {value!r}",
                        operation="update",
                        status_code=409,
                    )
        docs[doc_id] = copy.deepcopy(data)
        await self._notify(collection, doc_id, current, docs[doc_id])

    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        matches = [
            copy.deepcopy(doc)
            for doc in self._docs(collection).values()
            if all(doc.get(key) == value for key, value in filters.items())
        ]
        return matches[:limit]

    async def _notify(
        self,
        collection: str,
        doc_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> None:
        event = ChangeEvent(
            collection=collection,
            document_id=doc_id,
            before=copy.deepcopy(before),
            after=copy.deepcopy(after),
        )
        self.events.append(event)
        for listener in self._listeners:
            await listener(event)


class InMemoryBlobStore(BlobStore):
    """Dict-backed blob store."""

    def __init__(self, url_base: str = "memory://blobs") -> None:
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.deleted: list[str] = []
        self._url_base = url_base.rstrip("/")

    def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type

    def download_to(self, key: str, destination: str) -> None:
        if key not in self.objects:
            raise AudioFetchError(f"Blob '{key}' does not exist", key=key)
        with open(destination, "wb") as f:
            f.write(self.objects[key])

    def signed_url(self, key: str, expires_in: int = 3600) -> str:
        if key not in self.objects:
            raise StorageError(
                f"Blob '{key}' does not exist", operation="signed_url"
            )
        return f"{self._url_base}/{key}?expires_in={expires_in}"

    def delete_object(self, key: str) -> None:
        self.objects.pop(key, None)
        self.content_types.pop(key, None)
        self.deleted.append(key)
