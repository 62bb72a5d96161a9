"""CouchDB client for the Self-hosted LiveSync document layout.

LiveSync stores each file as two kinds of document in one database:

- a metadata document with ``_id`` = path, ``type: "plain"``, and
  ``children`` listing chunk ids, plus ``ctime``/``mtime``/``size``
- leaf documents with ``_id`` = ``h:<hash>`` and ``type: "leaf"`` holding
  the text in ``data``

Writing in that shape is what lets the Obsidian plugin pick files up.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote, urlparse

import httpx

from livesync.errors import (
    ConflictError,
    NetworkUnavailableError,
    NotFoundError,
    StoreAuthError,
    StoreError,
)
from livesync.store.base import DocumentStore
from livesync.store.models import DocumentListing, ListingEntry, PutResult

logger = logging.getLogger(__name__)

_MAX_ERROR_BODY = 200

DEFAULT_CORS_ORIGINS = ["app://obsidian.md", "capacitor://localhost", "http://localhost"]

_CORS_SETTINGS = {
    ("httpd", "enable_cors"): "true",
    ("cors", "credentials"): "true",
    ("cors", "methods"): "GET, PUT, POST, HEAD, DELETE",
    ("cors", "headers"): "accept, authorization, content-type, origin, referer, x-csrf-token",
}

# Size limits for large notes and attachments, plus authenticated access only
NODE_SETTINGS = {
    ("chttpd", "max_http_request_size"): "4294967296",
    ("couchdb", "max_document_size"): "50000000",
    ("chttpd", "require_valid_user"): "true",
}


def _validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"CouchDB url must be http(s), got {parsed.scheme!r}")
    if "\r" in url or "\n" in url:
        raise ValueError("CRLF injection detected in CouchDB url")
    if not parsed.hostname:
        raise ValueError(f"CouchDB url has no host: {url!r}")
    return url.rstrip("/")


class CouchDBClient(DocumentStore):
    """Async CouchDB client over httpx.

    Each call retries at most ``retries`` times on transport failures
    (connect/read errors, timeouts). HTTP error statuses are never retried.
    """

    def __init__(
        self,
        url: str,
        database: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 30.0,
        retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = _validate_url(url)
        self.database = database
        self._retries = max(0, retries)
        self._db_path = "/" + quote(database, safe="")
        auth = httpx.BasicAuth(username, password) if username else None
        self._client = httpx.AsyncClient(
            base_url=self.url,
            auth=auth,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> CouchDBClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- DocumentStore --------------------------------------------------------

    async def ping(self) -> bool:
        resp = await self._request("ping", "GET", self._db_path)
        if not resp.is_success:
            logger.debug("ping %s/%s -> %s", self.url, self.database, resp.status_code)
        return resp.is_success

    async def all_docs(self, include_docs: bool = False) -> DocumentListing:
        resp = await self._request(
            "all_docs",
            "GET",
            f"{self._db_path}/_all_docs",
            params={"include_docs": str(include_docs).lower()},
        )
        self._raise_for_status(resp, "all_docs")
        data = resp.json()
        entries = [
            ListingEntry(id=row["id"], rev=row["value"]["rev"])
            for row in data.get("rows", [])
            if "value" in row
        ]
        return DocumentListing(total=data.get("total_rows", len(entries)), entries=entries)

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        resp = await self._request("get", "GET", self._doc_path(doc_id), doc_id=doc_id)
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, "get", doc_id)
        return resp.json()

    async def put(self, doc: dict[str, Any]) -> PutResult:
        doc_id = doc.get("_id")
        if not doc_id:
            raise ValueError("document has no _id")
        resp = await self._request("put", "PUT", self._doc_path(doc_id), doc_id=doc_id, json=doc)
        self._raise_for_status(resp, "put", doc_id)
        data = resp.json()
        return PutResult(id=data.get("id", doc_id), rev=data["rev"])

    async def delete(self, doc_id: str, rev: str) -> bool:
        resp = await self._request(
            "delete", "DELETE", self._doc_path(doc_id), doc_id=doc_id, params={"rev": rev}
        )
        self._raise_for_status(resp, "delete", doc_id)
        return bool(resp.json().get("ok", True))

    # -- Provisioning ---------------------------------------------------------

    async def ensure_database(self) -> bool:
        """Create the database. Returns True if created, False if it already existed."""
        resp = await self._request("create_database", "PUT", self._db_path)
        if resp.status_code == 412:
            logger.info("Database %s already exists", self.database)
            return False
        self._raise_for_status(resp, "create_database")
        logger.info("Created database %s", self.database)
        return True

    async def setup_single_node(
        self,
        username: str,
        password: str,
        bind_address: str = "0.0.0.0",
        port: int = 5984,
    ) -> bool:
        """Finish CouchDB's single-node cluster setup.

        Returns False when the node rejects the request, which is what an
        already configured node does.
        """
        resp = await self._request(
            "cluster_setup",
            "POST",
            "/_cluster_setup",
            json={
                "action": "enable_single_node",
                "username": username,
                "password": password,
                "bind_address": bind_address,
                "port": port,
            },
        )
        if resp.status_code in (401, 403):
            self._raise_for_status(resp, "cluster_setup")
        if not resp.is_success:
            logger.info("Cluster setup skipped (%s): node may already be configured", resp.status_code)
            return False
        logger.info("Configured single-node cluster on %s", self.url)
        return True

    async def configure_cors(self, origins: list[str] | None = None) -> None:
        """Enable CORS on the node so the Obsidian plugin can connect."""
        settings = dict(_CORS_SETTINGS)
        settings[("cors", "origins")] = ",".join(origins or DEFAULT_CORS_ORIGINS)
        await self._put_node_config("configure_cors", settings)
        logger.info("Configured CORS on %s", self.url)

    async def configure_node(self, settings: dict[tuple[str, str], str] | None = None) -> None:
        """Apply request/document size limits and ``require_valid_user``."""
        await self._put_node_config("configure_node", settings or NODE_SETTINGS)
        logger.info("Applied node settings on %s", self.url)

    async def _put_node_config(self, operation: str, settings: dict[tuple[str, str], str]) -> None:
        for (section, key), value in settings.items():
            resp = await self._request(
                operation, "PUT", f"/_node/_local/_config/{section}/{key}", json=value
            )
            self._raise_for_status(resp, operation, f"{section}/{key}")

    # -- Internals ------------------------------------------------------------

    def _doc_path(self, doc_id: str) -> str:
        return f"{self._db_path}/{quote(doc_id, safe='')}"

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        doc_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        attempt = 0
        while True:
            try:
                return await self._client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                if attempt >= self._retries:
                    raise NetworkUnavailableError(operation, e, doc_id=doc_id) from e
                attempt += 1
                logger.warning("%s %s: %s, retrying", operation, doc_id or path, e)

    @staticmethod
    def _raise_for_status(resp: httpx.Response, operation: str, doc_id: str | None = None) -> None:
        if resp.is_success:
            return
        status = resp.status_code
        message = f"{status} {resp.reason_phrase} - {resp.text[:_MAX_ERROR_BODY]}"
        if status == 409:
            raise ConflictError(operation, message, doc_id=doc_id, status=status)
        if status == 404:
            raise NotFoundError(operation, message, doc_id=doc_id, status=status)
        if status in (401, 403):
            raise StoreAuthError(operation, message, doc_id=doc_id, status=status)
        raise StoreError(operation, message, doc_id=doc_id, status=status)
