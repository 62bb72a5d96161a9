"""SyncEngine: mirrors vault files into the document store."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Iterable
from pathlib import Path

from livesync.chunks import identify
from livesync.config.models import LiveSyncConfig
from livesync.errors import ConflictError, StoreError
from livesync.store.base import DocumentStore
from livesync.store.couchdb import CouchDBClient
from livesync.store.models import ChunkDocument, MetadataDocument
from livesync.sync.git import DEFAULT_RANGE, diff_revisions
from livesync.sync.models import SyncError, SyncResult
from livesync.sync.scanner import collect_files, has_allowed_extension, is_ignored

logger = logging.getLogger(__name__)


def client_from_config(config: LiveSyncConfig) -> CouchDBClient:
    return CouchDBClient(
        url=config.couchdb.url,
        database=config.couchdb.database,
        username=config.couchdb.username,
        password=config.couchdb.password,
        timeout=config.couchdb.timeout,
        retries=config.couchdb.retries,
    )


def _to_ms(seconds: float) -> int:
    return int(seconds * 1000)


class SyncEngine:
    """Reconciles vault paths against the store.

    Each file becomes one content-addressed chunk plus a metadata record
    keyed by its vault-relative POSIX path. Paths in a batch run as
    concurrent tasks (bounded by ``max_concurrency``); the steps for a
    single path run in order: check chunk, create chunk if absent, fetch
    the existing record, write the record.
    """

    def __init__(self, config: LiveSyncConfig, store: DocumentStore | None = None) -> None:
        self.config = config
        self.root = Path(config.vault_root).resolve()
        self.store = store if store is not None else client_from_config(config)
        self._owns_store = store is None

    async def __aenter__(self) -> SyncEngine:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_store:
            await self.store.aclose()

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    # -- Public API ----------------------------------------------------------

    async def sync_paths(self, paths: Iterable[str], delete: bool = False) -> SyncResult:
        """Sync each path independently; failures land in ``result.errors``.

        A path missing on disk is deleted from the store when *delete* is
        set, and skipped otherwise.
        """
        start = time.monotonic()
        unique = list(dict.fromkeys(self._dedupe_key(p) for p in paths))
        limiter = asyncio.Semaphore(self.config.max_concurrency)

        async def run(path: str) -> tuple[str, str | None, str | None]:
            async with limiter:
                return await self._process(path, delete)

        outcomes = await asyncio.gather(*(run(p) for p in unique))

        result = SyncResult()
        for key, action, error in outcomes:
            if error is not None:
                result.errors.append(SyncError(path=key, error=error))
            elif action == "synced":
                result.synced.append(key)
            elif action == "deleted":
                result.deleted.append(key)
        result.duration = time.monotonic() - start
        return result

    async def delete_file(self, path: str) -> bool:
        """Delete the record for *path*. Returns True if one was deleted."""
        return await self._delete_record(self._relative(path))

    async def sync_from_revision_diff(self, revision_range: str = DEFAULT_RANGE) -> SyncResult:
        """Sync the files changed in *revision_range* of the vault's git repo."""
        changes = await asyncio.to_thread(diff_revisions, self.root, revision_range)
        changed = [p for p in changes.changed if self._is_candidate(p)]
        removed = [p for p in changes.removed if self._is_candidate(p)]
        logger.debug("git %s: %d added/modified, %d deleted", revision_range, len(changed), len(removed))

        result = SyncResult()
        if not changed and not removed:
            logger.info("No matching changes in %s", revision_range)
            return result
        if changed:
            result.merge(await self.sync_paths(changed))
        if removed:
            result.merge(await self.sync_paths(removed, delete=True))
        return result

    async def sync_directory(self, root: str | Path | None = None) -> SyncResult:
        """Sync every matching file under *root* (default: the vault root)."""
        base = Path(root).resolve() if root is not None else self.root
        if not base.is_relative_to(self.root):
            raise ValueError(f"{base} is outside the vault root {self.root}")
        files = await asyncio.to_thread(
            collect_files, base, self.config.extensions, self.config.ignore_dirs
        )
        paths = [(base / f).relative_to(self.root).as_posix() for f in files]
        logger.info("Found %d files to sync", len(paths))
        return await self.sync_paths(paths)

    async def read_file(self, path: str) -> str | None:
        """Reassemble the stored content of *path*, or None if not stored."""
        return await self.store.read_file(self._relative(path))

    # -- Internals -----------------------------------------------------------

    async def _process(self, path: str, delete: bool) -> tuple[str, str | None, str | None]:
        """Returns (key, action, error) where action is synced/deleted/None."""
        try:
            key = self._relative(path)
            abs_path = self.root / key
            if not abs_path.exists():
                if not delete:
                    logger.debug("Skip %s: not found on disk", key)
                    return key, None, None
                deleted = await self._delete_record(key)
                return key, "deleted" if deleted else None, None
            await self._write_record(key, abs_path)
            return key, "synced", None
        except Exception as exc:
            logger.error("Error syncing %s: %s", path, exc)
            return path, None, str(exc)

    async def _write_record(self, key: str, abs_path: Path) -> None:
        raw, stat = await asyncio.to_thread(_read_with_stat, abs_path)
        content = raw.decode("utf-8")
        chunk_id = identify(raw)

        existing_chunk = await self.store.get_chunk(chunk_id)
        if existing_chunk is None and not self.dry_run:
            try:
                await self.store.put_document(ChunkDocument(id=chunk_id, payload=content))
            except ConflictError:
                # Identical content stored by a concurrent sync
                logger.debug("Chunk %s already created", chunk_id)

        existing = await self.store.get_metadata(key)
        mtime = stat.st_mtime_ns // 1_000_000
        if existing is not None:
            created_at = existing.created_at
            modified_at = max(mtime, existing.modified_at)
        else:
            created_at = _to_ms(getattr(stat, "st_birthtime", stat.st_ctime))
            modified_at = mtime

        record = MetadataDocument(
            id=key,
            revision=existing.revision if existing else None,
            path=key,
            chunk_refs=[chunk_id],
            created_at=created_at,
            modified_at=modified_at,
            size_bytes=len(raw),
        )
        if self.dry_run:
            logger.info("Would sync (dry run): %s (%d bytes)", key, len(raw))
            return
        await self.store.put_document(record)
        logger.info("Synced: %s", key)

    async def _delete_record(self, key: str) -> bool:
        existing = await self.store.get_metadata(key)
        if existing is None:
            logger.debug("Skip %s: not in store", key)
            return False
        if self.dry_run:
            logger.info("Would delete (dry run): %s", key)
            return True
        if not existing.revision:
            raise StoreError("delete", "record has no revision", doc_id=key)
        await self.store.delete(key, existing.revision)
        logger.info("Deleted: %s", key)
        return True

    def _relative(self, path: str | Path) -> str:
        """Vault-relative POSIX key for *path*; rejects paths outside the vault."""
        p = Path(path)
        absolute = Path(os.path.normpath(p if p.is_absolute() else self.root / p))
        if not absolute.is_relative_to(self.root) or absolute == self.root:
            raise ValueError(f"Path traversal detected: {path}")
        return absolute.relative_to(self.root).as_posix()

    def _dedupe_key(self, path: str | Path) -> str:
        """Vault key for *path*; the raw string if it does not normalise."""
        try:
            return self._relative(path)
        except ValueError:
            return str(path)

    def _is_candidate(self, rel_path: str) -> bool:
        return has_allowed_extension(rel_path, self.config.extensions) and not is_ignored(
            rel_path, self.config.ignore_dirs
        )


def _read_with_stat(path: Path) -> tuple[bytes, os.stat_result]:
    stat = path.stat()
    return path.read_bytes(), stat
