"""Document store clients for LiveSync."""

from livesync.store.base import DocumentStore
from livesync.store.couchdb import CouchDBClient
from livesync.store.models import (
    ChunkDocument,
    DocumentListing,
    ListingEntry,
    MetadataDocument,
    PutResult,
    parse_document,
)

__all__ = [
    "ChunkDocument",
    "CouchDBClient",
    "DocumentListing",
    "DocumentStore",
    "ListingEntry",
    "MetadataDocument",
    "PutResult",
    "parse_document",
]
