"""obsidian-git-livesync: mirror a git-tracked vault into Self-hosted LiveSync's CouchDB."""

from livesync.chunks import identify
from livesync.config import LiveSyncConfig, load_config
from livesync.errors import (
    ConfigValidationError,
    ConflictError,
    IntegrityFault,
    LiveSyncError,
    NetworkUnavailableError,
    NotFoundError,
    StoreError,
)
from livesync.store import CouchDBClient, DocumentStore
from livesync.sync import SyncEngine, SyncResult
from livesync.watcher import ChangeWatcher

__version__ = "0.1.0"

__all__ = [
    "ChangeWatcher",
    "ConfigValidationError",
    "ConflictError",
    "CouchDBClient",
    "DocumentStore",
    "IntegrityFault",
    "LiveSyncConfig",
    "LiveSyncError",
    "NetworkUnavailableError",
    "NotFoundError",
    "StoreError",
    "SyncEngine",
    "SyncResult",
    "identify",
    "load_config",
]
