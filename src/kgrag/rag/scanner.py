"""Directory scanning and change detection for the knowledge folder.

Supports a full listing for the initial scan and a snapshot-based delta
(added / modified / deleted) for polling watchers.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from kgrag.utils.paths import to_relative_path

Snapshot = dict[str, tuple[int, int]]


def scan_directory(
    root: Path,
    accept: Callable[[Path], bool] | None = None,
) -> list[Path]:
    """List files under root, iteratively, keeping those accept() allows.

    Hidden directories (dot-prefixed) are not descended into.
    """
    if not root.is_dir():
        return []

    files: list[Path] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError:
            continue
        for entry in entries:
            if entry.is_dir():
                if not entry.name.startswith("."):
                    pending.append(entry)
            elif entry.is_file() and (accept is None or accept(entry)):
                files.append(entry)
    return sorted(files)


def take_snapshot(
    root: Path,
    project_root: Path,
    accept: Callable[[Path], bool] | None = None,
) -> Snapshot:
    """Map each file's project-relative path to (mtime_ns, size)."""
    snapshot: Snapshot = {}
    for path in scan_directory(root, accept):
        try:
            st = path.stat()
        except OSError:
            continue
        snapshot[to_relative_path(path, project_root)] = (st.st_mtime_ns, st.st_size)
    return snapshot


def find_changes(
    current: Snapshot,
    previous: Snapshot,
) -> tuple[list[str], list[str], list[str]]:
    """Find added, modified, and deleted files.

    Returns (added, modified, deleted) file lists.
    """
    added = [f for f in current if f not in previous]
    deleted = [f for f in previous if f not in current]
    modified = [
        f for f in current
        if f in previous and current[f] != previous[f]
    ]
    return added, modified, deleted
