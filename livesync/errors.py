"""Exception hierarchy for LiveSync."""

from __future__ import annotations


class LiveSyncError(Exception):
    """Base class for every error raised by livesync."""


class StoreError(LiveSyncError):
    """A document store call failed."""

    def __init__(
        self,
        operation: str,
        message: str,
        doc_id: str | None = None,
        status: int | None = None,
    ) -> None:
        self.operation = operation
        self.doc_id = doc_id
        self.status = status
        target = f" {doc_id}" if doc_id else ""
        super().__init__(f"{operation}{target} failed: {message}")


class ConflictError(StoreError):
    """The submitted revision is stale, or the document already exists."""


class NotFoundError(StoreError):
    """The document does not exist."""


class StoreAuthError(StoreError):
    """Credentials were rejected by the store."""


class NetworkUnavailableError(StoreError):
    """The store could not be reached at the transport level."""

    def __init__(self, operation: str, cause: Exception, doc_id: str | None = None) -> None:
        super().__init__(operation, f"network unavailable ({cause})", doc_id=doc_id)
        self.__cause__ = cause


class DocumentTypeError(StoreError):
    """A stored document has a missing or unexpected ``type`` discriminant."""


class IntegrityFault(LiveSyncError):
    """A metadata record references a chunk that cannot be fetched."""

    def __init__(self, path: str, chunk_id: str) -> None:
        self.path = path
        self.chunk_id = chunk_id
        super().__init__(f"Missing chunk {chunk_id} for file {path}")


class ConfigValidationError(LiveSyncError):
    """Required configuration is missing or invalid."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Configuration errors: " + "; ".join(problems))


class RevisionDiffError(LiveSyncError):
    """``git diff`` could not produce a change list."""
