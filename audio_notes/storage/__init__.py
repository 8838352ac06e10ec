"""Document and blob storage backends."""

from audio_notes.storage.interface import BlobStore, ChangeEvent, DocumentStore
from audio_notes.storage.memory import InMemoryBlobStore, InMemoryDocumentStore

__all__ = [
    "BlobStore",
    "ChangeEvent",
    "DocumentStore",
    "InMemoryBlobStore",
    "InMemoryDocumentStore",
]
