"""post-receive hook: syncs pushed notes into CouchDB.

Git feeds ``<old-rev> <new-rev> <ref-name>`` lines on stdin. Pushes to the
tracked branches are synced by diffing old..new in the vault checkout; an
initial push (all-zero old rev) syncs the whole vault.
"""

from __future__ import annotations

import logging
import shlex
import stat
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from livesync.sync.engine import SyncEngine
from livesync.sync.models import SyncResult

logger = logging.getLogger("livesync.hooks")

TRACKED_BRANCHES = ("main", "master")

_HOOK_TEMPLATE = """\
#!/bin/sh
# post-receive hook installed by livesync
exec {command} hook run
"""


@dataclass(frozen=True)
class RefUpdate:
    old: str
    new: str
    ref: str

    @property
    def branch(self) -> str:
        return self.ref.removeprefix("refs/heads/")

    @property
    def is_create(self) -> bool:
        return set(self.old) == {"0"}

    @property
    def is_delete(self) -> bool:
        return set(self.new) == {"0"}


def parse_ref_updates(lines: Iterable[str]) -> list[RefUpdate]:
    updates = []
    for line in lines:
        parts = line.split()
        if len(parts) != 3:
            if line.strip():
                logger.warning("Ignoring malformed hook input: %r", line)
            continue
        updates.append(RefUpdate(*parts))
    return updates


async def run_post_receive(
    engine: SyncEngine,
    lines: Iterable[str],
    branches: Iterable[str] = TRACKED_BRANCHES,
) -> SyncResult:
    tracked = set(branches)
    result = SyncResult()
    for update in parse_ref_updates(lines):
        if update.branch not in tracked or update.is_delete:
            logger.debug("Skipping ref %s", update.ref)
            continue
        if update.is_create:
            logger.info("Initial push to %s: syncing whole vault", update.branch)
            result.merge(await engine.sync_directory())
        else:
            logger.info("Push to %s: syncing %s..%s", update.branch, update.old[:8], update.new[:8])
            result.merge(await engine.sync_from_revision_diff(f"{update.old}..{update.new}"))
    return result


def install_hook(git_dir: Path, config_path: str | None = None, executable: str = "livesync") -> Path:
    """Write an executable ``hooks/post-receive`` shim into *git_dir*.

    *git_dir* is a bare repository or the ``.git`` directory of a checkout.
    An existing hook is not overwritten.
    """
    hooks_dir = git_dir / "hooks"
    if not hooks_dir.is_dir():
        raise FileNotFoundError(f"Not a git directory (no hooks/): {git_dir}")
    target = hooks_dir / "post-receive"
    if target.exists():
        raise FileExistsError(f"{target} already exists")

    command = shlex.quote(executable)
    if config_path:
        command += f" --config {shlex.quote(str(Path(config_path).resolve()))}"
    target.write_text(_HOOK_TEMPLATE.format(command=command))
    target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return target
