"""Vault directory walking and extension filtering."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path, PurePosixPath


def has_allowed_extension(path: str | Path, extensions: Iterable[str]) -> bool:
    """True if the file name ends with one of *extensions* (e.g. ``.md``)."""
    name = Path(path).name
    return any(name.endswith(ext) for ext in extensions)


def is_ignored(rel_path: str | Path, ignore_dirs: Iterable[str]) -> bool:
    """True if any component of *rel_path* is an ignored directory name."""
    ignore = set(ignore_dirs)
    return any(part in ignore for part in PurePosixPath(Path(rel_path).as_posix()).parts)


def is_hidden(rel_path: str | Path) -> bool:
    """True if any component of *rel_path* is a dotfile or dot-directory."""
    return any(part.startswith(".") for part in PurePosixPath(Path(rel_path).as_posix()).parts)


def collect_files(
    root: Path,
    extensions: Iterable[str],
    ignore_dirs: Iterable[str],
) -> list[str]:
    """Return sorted POSIX paths, relative to *root*, of every matching file."""
    extensions = list(extensions)
    ignore = set(ignore_dirs)
    files: list[str] = []
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root)
        if any(part in ignore for part in rel.parts):
            continue
        if p.is_file() and has_allowed_extension(p, extensions):
            files.append(rel.as_posix())
    return files
