"""Change lists from ``git diff`` between two revisions."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from livesync.errors import RevisionDiffError

logger = logging.getLogger(__name__)

DEFAULT_RANGE = "HEAD~1..HEAD"

# Statuses whose paths exist after the change
_SYNC_STATUSES = {"A", "M", "T"}
_DELETE_STATUSES = {"D"}


@dataclass
class RevisionChanges:
    """Paths changed between two revisions, split by what to do with them."""

    changed: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.changed and not self.removed


def parse_name_status(output: str) -> RevisionChanges:
    """Parse ``git diff --name-status -z --no-renames`` output.

    Entries are NUL-separated ``STATUS\\0PATH`` pairs. Unknown statuses
    (unmerged, broken pairs) are skipped.
    """
    changes = RevisionChanges()
    tokens = output.split("\0")
    for status, path in zip(tokens[0::2], tokens[1::2]):
        status = status.strip()
        if not status or not path:
            continue
        code = status[0]
        if code in _SYNC_STATUSES:
            changes.changed.append(path)
        elif code in _DELETE_STATUSES:
            changes.removed.append(path)
        else:
            logger.debug("Ignoring git status %s for %s", status, path)
    return changes


def diff_revisions(repo_dir: Path, revision_range: str = DEFAULT_RANGE, timeout: float = 30.0) -> RevisionChanges:
    """Run ``git diff`` in *repo_dir* and classify the changed paths.

    Paths are relative to *repo_dir* (``--relative``), so a vault that is a
    subdirectory of the repository only sees its own files. Bytes that are
    not UTF-8 decode as surrogate escapes, the same as ``os.fsdecode``.
    """
    if revision_range.startswith("-"):
        raise RevisionDiffError(f"Invalid revision range: {revision_range!r}")
    try:
        result = subprocess.run(
            [
                "git", "diff", "--name-status", "--no-renames", "--relative", "-z",
                revision_range, "--",
            ],
            cwd=repo_dir,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="surrogateescape",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise RevisionDiffError("git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise RevisionDiffError(f"git diff timed out after {timeout}s") from e

    if result.returncode != 0:
        raise RevisionDiffError(
            f"git diff {revision_range} failed: {result.stderr.strip() or result.returncode}"
        )
    return parse_name_status(result.stdout)
