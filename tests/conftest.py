"""Shared test fixtures for livesync."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from urllib.parse import parse_qs, unquote

import httpx
import pytest

from livesync.config.models import CouchDBSettings, LiveSyncConfig
from livesync.store.couchdb import CouchDBClient
from livesync.sync.engine import SyncEngine

COUCH_URL = "http://couch.test:5984"
COUCH_DB = "obsidian-livesync"


class FakeCouchDB:
    """In-memory CouchDB with revision checks, served via httpx.MockTransport."""

    def __init__(self, database: str = COUCH_DB) -> None:
        self.database = database
        self.docs: dict[str, dict] = {}
        self.node_config: dict[str, str] = {}
        self.cluster_setup: dict | None = None
        self.requests: list[httpx.Request] = []
        self.db_exists = True
        self.auth_ok = True

    # -- helpers for assertions ------------------------------------------

    def mutations(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method in ("PUT", "DELETE")]

    def chunks(self) -> dict[str, dict]:
        return {k: v for k, v in self.docs.items() if v.get("type") == "leaf"}

    def seed(self, doc: dict) -> dict:
        """Insert a document directly, assigning a revision."""
        doc = dict(doc)
        doc["_rev"] = f"1-{uuid.uuid4().hex}"
        self.docs[doc["_id"]] = doc
        return doc

    # -- transport --------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.auth_ok:
            return httpx.Response(401, json={"error": "unauthorized"})

        raw_path, _, raw_query = request.url.raw_path.decode("ascii").partition("?")
        query = {k: v[0] for k, v in parse_qs(raw_query).items()}
        prefix = f"/{self.database}"

        if raw_path == "/_cluster_setup":
            if self.cluster_setup is not None:
                return httpx.Response(400, json={"error": "bad_request", "reason": "Cluster is already finalized"})
            self.cluster_setup = json.loads(request.content)
            return httpx.Response(201, json={"ok": True})
        if raw_path.startswith("/_node/"):
            self.node_config[raw_path.removeprefix("/_node/_local/_config/")] = json.loads(request.content)
            return httpx.Response(200, json="")
        if raw_path == prefix:
            return self._database(request)
        if not self.db_exists:
            return httpx.Response(404, json={"error": "not_found", "reason": "Database does not exist."})
        if raw_path == f"{prefix}/_all_docs":
            rows = [
                {"id": k, "key": k, "value": {"rev": v["_rev"]}}
                for k, v in sorted(self.docs.items())
            ]
            return httpx.Response(200, json={"total_rows": len(rows), "offset": 0, "rows": rows})
        if raw_path.startswith(prefix + "/"):
            doc_id = unquote(raw_path[len(prefix) + 1:])
            if request.method == "GET":
                return self._get(doc_id)
            if request.method == "PUT":
                return self._put(doc_id, json.loads(request.content))
            if request.method == "DELETE":
                return self._delete(doc_id, query.get("rev"))
        return httpx.Response(400, json={"error": "bad_request"})

    def _database(self, request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            if self.db_exists:
                return httpx.Response(412, json={"error": "file_exists"})
            self.db_exists = True
            return httpx.Response(201, json={"ok": True})
        if not self.db_exists:
            return httpx.Response(404, json={"error": "not_found"})
        return httpx.Response(200, json={"db_name": self.database, "doc_count": len(self.docs)})

    def _get(self, doc_id: str) -> httpx.Response:
        doc = self.docs.get(doc_id)
        if doc is None:
            return httpx.Response(404, json={"error": "not_found", "reason": "missing"})
        return httpx.Response(200, json=doc)

    def _put(self, doc_id: str, body: dict) -> httpx.Response:
        current = self.docs.get(doc_id)
        submitted = body.get("_rev")
        if current is None and submitted is not None:
            return httpx.Response(409, json={"error": "conflict", "reason": "Document update conflict."})
        if current is not None and submitted != current["_rev"]:
            return httpx.Response(409, json={"error": "conflict", "reason": "Document update conflict."})
        generation = int(current["_rev"].split("-")[0]) + 1 if current else 1
        rev = f"{generation}-{uuid.uuid4().hex}"
        stored = dict(body)
        stored["_id"] = doc_id
        stored["_rev"] = rev
        self.docs[doc_id] = stored
        return httpx.Response(201, json={"ok": True, "id": doc_id, "rev": rev})

    def _delete(self, doc_id: str, rev: str | None) -> httpx.Response:
        current = self.docs.get(doc_id)
        if current is None:
            return httpx.Response(404, json={"error": "not_found", "reason": "deleted"})
        if rev != current["_rev"]:
            return httpx.Response(409, json={"error": "conflict", "reason": "Document update conflict."})
        del self.docs[doc_id]
        return httpx.Response(200, json={"ok": True, "id": doc_id, "rev": rev})


@pytest.fixture
def couch() -> FakeCouchDB:
    return FakeCouchDB()


@pytest.fixture
def store(couch: FakeCouchDB) -> CouchDBClient:
    return CouchDBClient(
        COUCH_URL,
        COUCH_DB,
        username="admin",
        password="password",
        transport=httpx.MockTransport(couch.handler),
    )


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def sample_config(vault: Path) -> LiveSyncConfig:
    return LiveSyncConfig(
        couchdb=CouchDBSettings(url=COUCH_URL, username="admin", password="password"),
        vault_root=str(vault),
        extensions=[".md", ".txt"],
    )


@pytest.fixture
def engine(sample_config: LiveSyncConfig, store: CouchDBClient) -> SyncEngine:
    return SyncEngine(sample_config, store=store)


def write_note(vault: Path, rel: str, content: str) -> Path:
    """Write *content* as UTF-8 bytes (no newline translation)."""
    path = vault / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode("utf-8"))
    return path


@pytest.fixture
def write(vault: Path):
    """Return a helper that writes a note into the test vault."""
    return lambda rel, content: write_note(vault, rel, content)


@pytest.fixture(autouse=True)
def _reset_livesync_logger():
    """Undo configure_logging so caplog sees records in every test."""
    yield
    logger = logging.getLogger("livesync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
