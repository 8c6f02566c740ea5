"""Project path helpers for kgrag."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from start directory to find project root.

    Project root is identified by the presence of a .kgrag/ directory.
    """
    current = (start or Path.cwd()).resolve()
    for directory in [current, *current.parents]:
        if (directory / ".kgrag").is_dir():
            return directory
    return None


def get_kgrag_dir(project_root: Path) -> Path:
    """Get .kgrag/ directory, creating if needed."""
    d = project_root / ".kgrag"
    d.mkdir(exist_ok=True)
    return d


def get_database_path(project_root: Path) -> Path:
    """Get the SQLite database path for a project."""
    return get_kgrag_dir(project_root) / "knowledge.sqlite"


def get_knowledge_dir(project_root: Path, name: str = "Knowledge") -> Path:
    """Get the watched knowledge folder path."""
    return project_root / name


def get_user_settings_path() -> Path:
    """Get user-level settings.json path."""
    return Path.home() / ".kgrag" / "settings.json"


def get_project_settings_path(project_root: Path) -> Path:
    """Get project-level settings.json path."""
    return project_root / ".kgrag" / "settings.json"


def to_relative_path(file_path: Path | str, project_root: Path | str) -> str:
    """Relative path of file_path under project_root, always forward-slash separated."""
    rel = os.path.relpath(os.fspath(file_path), os.fspath(project_root))
    return rel.replace("\\", "/")


def project_hash(project_root: Path | str) -> str:
    """Short deterministic hash of a project root, used for store ids."""
    return hashlib.md5(str(project_root).encode("utf-8")).hexdigest()[:8]
