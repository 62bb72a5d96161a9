"""File watcher with per-path debounce that feeds the sync engine."""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from livesync.sync.scanner import has_allowed_extension, is_hidden, is_ignored

if TYPE_CHECKING:
    from livesync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

Action = Literal["sync", "delete"]


@dataclass
class _Pending:
    action: Action
    handle: asyncio.TimerHandle


class _EventForwarder(FileSystemEventHandler):
    """Translates watchdog events (observer thread) into watcher actions."""

    def __init__(self, watcher: ChangeWatcher) -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.submit("sync", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.submit("sync", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._watcher.submit("delete", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher.submit("delete", event.src_path)
        self._watcher.submit("sync", event.dest_path)


class ChangeWatcher:
    """Watches a vault and dispatches debounced sync/delete calls.

    Each path has one pending slot. A new event for a path cancels its armed
    timer and re-arms it, so a burst of writes produces one dispatch once the
    path has been quiet for ``debounce_seconds``. The last event type wins:
    a delete arriving while a sync is pending replaces it, and vice versa.

    A path has at most one dispatch in flight. A timer that fires while the
    path's previous dispatch is still running leaves a follow-up action
    (again, the last one wins) that starts when the running one finishes.

    The timer map belongs to this instance and lives on the event loop that
    called :meth:`start`; watchdog's observer thread only hands events over
    with ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        engine: SyncEngine,
        root: Path | str | None = None,
        extensions: list[str] | None = None,
        debounce_seconds: float | None = None,
        ignore_dirs: list[str] | None = None,
    ) -> None:
        config = engine.config
        self._engine = engine
        self._root = Path(root if root is not None else engine.root).resolve()
        self._extensions = extensions if extensions is not None else list(config.extensions)
        self._debounce = debounce_seconds if debounce_seconds is not None else config.debounce_seconds
        self._ignore = ignore_dirs if ignore_dirs is not None else list(config.ignore_dirs)
        self._pending: dict[str, _Pending] = {}
        self._active: dict[str, asyncio.Task[None]] = {}
        self._followups: dict[str, Action] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Observer | None = None
        self._closed = False

    @property
    def root(self) -> Path:
        return self._root

    @property
    def running(self) -> bool:
        return self._loop is not None and not self._closed

    @property
    def pending(self) -> dict[str, Action]:
        """Paths with an armed timer, mapped to the action they will run."""
        return {path: p.action for path, p in self._pending.items()}

    async def start(self, observe: bool = True) -> None:
        """Begin watching. With ``observe=False`` only :meth:`submit` feeds events."""
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        if observe:
            self._observer = Observer()
            self._observer.schedule(_EventForwarder(self), str(self._root), recursive=True)
            self._observer.start()
        logger.info("Watching %s for changes", self._root)
        logger.info("Extensions: %s, debounce: %.0fms", ", ".join(self._extensions), self._debounce * 1000)
        if self._engine.dry_run:
            logger.info("Dry-run mode: no changes will be written")

    async def close(self, flush: bool = False) -> None:
        """Stop accepting events, settle pending timers, await in-flight dispatches.

        Pending timers are cancelled, or dispatched immediately if *flush*.
        """
        if self._closed:
            return
        self._closed = True
        if self._observer is not None:
            observer = self._observer
            self._observer = None
            observer.stop()
            await asyncio.to_thread(observer.join, 5)

        pending = list(self._pending.items())
        self._pending.clear()
        for path, slot in pending:
            slot.handle.cancel()
            if flush:
                self._dispatch(path, slot.action)

        while self._active:
            await asyncio.gather(*self._active.values(), return_exceptions=True)
        logger.info("Stopped watching %s", self._root)

    def submit(self, action: Action, src_path: str | bytes) -> None:
        """Record a filesystem event. Safe to call from any thread."""
        if self._closed or self._loop is None:
            return
        if isinstance(src_path, bytes):
            src_path = os.fsdecode(src_path)
        rel = self._relative(src_path)
        if rel is None:
            return
        self._loop.call_soon_threadsafe(self._arm, rel, action)

    # -- Internals -----------------------------------------------------------

    def _relative(self, src_path: str) -> str | None:
        """Filter by extension, ignore list and hidden parts; return the vault-relative path."""
        if not has_allowed_extension(src_path, self._extensions):
            return None
        try:
            rel = Path(os.path.abspath(src_path)).relative_to(self._root)
        except ValueError:
            try:
                rel = Path(src_path).resolve().relative_to(self._root)
            except ValueError:
                return None
        if is_ignored(rel, self._ignore) or is_hidden(rel):
            return None
        return rel.as_posix()

    def _arm(self, rel: str, action: Action) -> None:
        if self._closed or self._loop is None:
            return
        existing = self._pending.pop(rel, None)
        if existing is not None:
            existing.handle.cancel()
        handle = self._loop.call_later(self._debounce, self._fire, rel, action)
        self._pending[rel] = _Pending(action=action, handle=handle)

    def _fire(self, rel: str, action: Action) -> None:
        self._pending.pop(rel, None)
        self._dispatch(rel, action)

    def _dispatch(self, rel: str, action: Action) -> None:
        if self._loop is None:
            raise RuntimeError("ChangeWatcher.start() has not been called")
        if rel in self._active:
            self._followups[rel] = action
            return
        task = self._loop.create_task(self._run(rel, action))
        self._active[rel] = task
        task.add_done_callback(functools.partial(self._finished, rel))

    def _finished(self, rel: str, task: asyncio.Task[None]) -> None:
        if self._active.get(rel) is task:
            del self._active[rel]
        action = self._followups.pop(rel, None)
        if action is not None:
            self._dispatch(rel, action)

    async def _run(self, rel: str, action: Action) -> None:
        try:
            if action == "delete":
                logger.info("Detected delete: %s", rel)
                await self._engine.delete_file(rel)
            else:
                logger.info("Detected change: %s", rel)
                result = await self._engine.sync_paths([rel])
                for err in result.errors:
                    logger.error("Sync failed for %s: %s", err.path, err.error)
        except Exception:
            logger.exception("Watcher dispatch failed for %s", rel)
