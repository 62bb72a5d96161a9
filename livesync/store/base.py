"""Abstract document store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from livesync.errors import DocumentTypeError, IntegrityFault
from livesync.store.models import (
    ChunkDocument,
    DocumentListing,
    MetadataDocument,
    PutResult,
    parse_document,
)


class DocumentStore(ABC):
    """Minimal document store the sync engine writes through.

    Any backend with a reachability probe, a full listing, get-by-id,
    put-with-revision and delete-by-revision can implement this. ``get``
    returns None for a missing document; ``put`` and ``delete`` raise
    ConflictError on a stale revision and ``delete`` raises NotFoundError
    for an unknown id.
    """

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the store answers, False for an HTTP error status."""
        ...

    @abstractmethod
    async def all_docs(self) -> DocumentListing:
        """Enumerate every document id with its current revision."""
        ...

    @abstractmethod
    async def get(self, doc_id: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def put(self, doc: dict[str, Any]) -> PutResult:
        ...

    @abstractmethod
    async def delete(self, doc_id: str, rev: str) -> bool:
        ...

    async def aclose(self) -> None:
        """Release any held connections."""
        return None

    # -- Typed helpers --------------------------------------------------------

    async def get_metadata(self, path: str) -> MetadataDocument | None:
        """Fetch the metadata record for *path*, or None if absent."""
        raw = await self.get(path)
        if raw is None:
            return None
        doc = parse_document(raw)
        if not isinstance(doc, MetadataDocument):
            raise DocumentTypeError("get_metadata", f"expected a file record, got {doc.type!r}", doc_id=path)
        return doc

    async def get_chunk(self, chunk_id: str) -> ChunkDocument | None:
        """Fetch the chunk *chunk_id*, or None if absent."""
        raw = await self.get(chunk_id)
        if raw is None:
            return None
        doc = parse_document(raw)
        if not isinstance(doc, ChunkDocument):
            raise DocumentTypeError("get_chunk", f"expected a chunk, got {doc.type!r}", doc_id=chunk_id)
        return doc

    async def put_document(self, doc: MetadataDocument | ChunkDocument) -> PutResult:
        return await self.put(doc.to_document())

    async def read_file(self, path: str) -> str | None:
        """Reassemble a file from its metadata record and chunks.

        Returns None if there is no record for *path*. Chunks are fetched in
        ``chunk_refs`` order; a missing chunk raises IntegrityFault.
        """
        meta = await self.get_metadata(path)
        if meta is None:
            return None

        parts: list[str] = []
        for chunk_id in meta.chunk_refs:
            chunk = await self.get_chunk(chunk_id)
            if chunk is None:
                raise IntegrityFault(path, chunk_id)
            parts.append(chunk.payload)
        return "".join(parts)
