"""kgrag configuration management.

Loads and merges settings from project and user-level settings.json files.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kgrag.utils.paths import (
    get_project_settings_path,
    get_user_settings_path,
)


RAG_MODES = ("local", "cloud")

DEFAULT_LOCAL_SETTINGS: dict[str, Any] = {
    "api_base": "http://localhost:8000/v1",
    "api_key": "",
    "embedding_model": "text-embedding-3-small",
    "inference_model": "gpt-4.1",
    "timeout": 60.0,
    "embedding_dimensions": None,
}

DEFAULT_SETTINGS: dict[str, Any] = {
    "mode": "local",
    "knowledge_dir": "Knowledge",
    "chunk_size": 1000,
    "chunk_overlap": 100,
    "log_level": "INFO",
    "local": DEFAULT_LOCAL_SETTINGS,
}


@dataclass
class LocalRagSettings:
    """Connection settings for the self-hosted OpenAI-compatible backend."""

    api_base: str = "http://localhost:8000/v1"
    api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    inference_model: str = "gpt-4.1"
    timeout: float = 60.0
    embedding_dimensions: int | None = None

    def __post_init__(self) -> None:
        self.api_base = self.api_base.rstrip("/")

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_base": self.api_base,
            "api_key": self.api_key,
            "embedding_model": self.embedding_model,
            "inference_model": self.inference_model,
            "timeout": self.timeout,
            "embedding_dimensions": self.embedding_dimensions,
        }


@dataclass
class KgragSettings:
    """Merged kgrag settings."""

    mode: str = "local"
    knowledge_dir: str = "Knowledge"
    chunk_size: int = 1000
    chunk_overlap: int = 100
    log_level: str = "INFO"
    local: LocalRagSettings = field(default_factory=LocalRagSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "knowledge_dir": self.knowledge_dir,
            "chunk_size": self.chunk_size,
            "chunk_overlap": self.chunk_overlap,
            "log_level": self.log_level,
            "local": self.local.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> KgragSettings:
        local = d.get("local") or {}
        return cls(
            mode=d.get("mode", "local"),
            knowledge_dir=d.get("knowledge_dir", "Knowledge"),
            chunk_size=d.get("chunk_size", 1000),
            chunk_overlap=d.get("chunk_overlap", 100),
            log_level=d.get("log_level", "INFO"),
            local=LocalRagSettings(
                api_base=local.get("api_base", DEFAULT_LOCAL_SETTINGS["api_base"]),
                api_key=local.get("api_key", ""),
                embedding_model=local.get("embedding_model", DEFAULT_LOCAL_SETTINGS["embedding_model"]),
                inference_model=local.get("inference_model", DEFAULT_LOCAL_SETTINGS["inference_model"]),
                timeout=local.get("timeout", 60.0),
                embedding_dimensions=local.get("embedding_dimensions"),
            ),
        )


def load_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base, returning new dict.

    - Dicts are recursively merged
    - Lists are replaced (not appended)
    - Scalars are replaced
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_settings(project_root: Path | None = None) -> KgragSettings:
    """Load and merge settings from user + project levels.

    Precedence: project settings override user settings override defaults.
    """
    merged = dict(DEFAULT_SETTINGS)

    user_settings = load_json_file(get_user_settings_path())
    if user_settings:
        merged = deep_merge(merged, user_settings)

    if project_root is not None:
        project_settings = load_json_file(get_project_settings_path(project_root))
        if project_settings:
            merged = deep_merge(merged, project_settings)

    return KgragSettings.from_dict(merged)


def save_settings(settings: KgragSettings, path: Path) -> None:
    """Save settings to a JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.to_dict(), indent=2) + "\n",
        encoding="utf-8",
    )


def validate_settings(settings: KgragSettings) -> list[str]:
    """Validate settings, returning list of error messages (empty if valid)."""
    errors = []

    if settings.mode not in RAG_MODES:
        errors.append(f"mode must be one of: {', '.join(RAG_MODES)}")

    if not isinstance(settings.chunk_size, int) or settings.chunk_size < 1:
        errors.append("chunk_size must be a positive integer")

    if not isinstance(settings.chunk_overlap, int) or settings.chunk_overlap < 0:
        errors.append("chunk_overlap must be a non-negative integer")

    if not isinstance(settings.knowledge_dir, str) or not settings.knowledge_dir.strip():
        errors.append("knowledge_dir must be a non-empty string")

    if not isinstance(logging.getLevelName(str(settings.log_level).upper()), int):
        errors.append("log_level must be a logging level name")

    local = settings.local
    if not local.api_base.startswith(("http://", "https://")):
        errors.append("local.api_base must be an http(s) URL")

    if not isinstance(local.timeout, (int, float)) or local.timeout <= 0:
        errors.append("local.timeout must be a positive number")

    dims = local.embedding_dimensions
    if dims is not None and (not isinstance(dims, int) or dims < 1):
        errors.append("local.embedding_dimensions must be a positive integer or null")

    return errors
