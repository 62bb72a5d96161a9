"""Pydantic models for documents in the LiveSync CouchDB layout.

Metadata and chunk documents share one database and are told apart by the
``type`` discriminant. Every raw JSON body crossing the store boundary goes
through :func:`parse_document` before the rest of the code touches it.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from livesync.errors import DocumentTypeError


class MetadataDocument(BaseModel):
    """Describes one synced file: path, timestamps, size and chunk list."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    revision: str | None = Field(default=None, alias="_rev")
    type: Literal["plain", "newnote"] = "plain"
    path: str
    chunk_refs: list[str] = Field(default_factory=list, alias="children")
    created_at: int = Field(alias="ctime", description="Epoch milliseconds")
    modified_at: int = Field(alias="mtime", description="Epoch milliseconds")
    size_bytes: int = Field(alias="size", ge=0, description="UTF-8 byte length")
    eden: dict[str, Any] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChunkDocument(BaseModel):
    """An immutable, content-addressed leaf holding raw text."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    revision: str | None = Field(default=None, alias="_rev")
    type: Literal["leaf"] = "leaf"
    payload: str = Field(alias="data")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


StoreDocument = Annotated[MetadataDocument | ChunkDocument, Field(discriminator="type")]

_document_adapter: TypeAdapter[MetadataDocument | ChunkDocument] = TypeAdapter(StoreDocument)


def parse_document(raw: dict[str, Any]) -> MetadataDocument | ChunkDocument:
    """Validate a raw store body into a tagged document.

    Raises DocumentTypeError when the discriminant is missing or unknown,
    or when the body does not match the tagged shape.
    """
    try:
        return _document_adapter.validate_python(raw)
    except ValidationError as e:
        doc_id = raw.get("_id") if isinstance(raw, dict) else None
        raise DocumentTypeError("parse", str(e), doc_id=doc_id) from e


class ListingEntry(BaseModel):
    """One row of a collection listing."""

    model_config = ConfigDict(frozen=True)

    id: str
    rev: str


class DocumentListing(BaseModel):
    """Every document id in the store with its current revision."""

    total: int = 0
    entries: list[ListingEntry] = Field(default_factory=list)


class PutResult(BaseModel):
    """Outcome of a successful create or update."""

    model_config = ConfigDict(frozen=True)

    id: str
    rev: str
