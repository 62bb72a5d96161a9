"""One-way vault to CouchDB synchronization."""

from livesync.sync.engine import SyncEngine, client_from_config
from livesync.sync.git import RevisionChanges, diff_revisions, parse_name_status
from livesync.sync.models import SyncError, SyncResult
from livesync.sync.scanner import collect_files, has_allowed_extension

__all__ = [
    "RevisionChanges",
    "SyncEngine",
    "SyncError",
    "SyncResult",
    "client_from_config",
    "collect_files",
    "diff_revisions",
    "has_allowed_extension",
    "parse_name_status",
]
