"""prdvec configuration management.

Loads and merges settings from project and user-level settings.json files.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from prdvec.utils.paths import (
    get_project_settings_path,
    get_user_settings_path,
)
from prdvec.vectors.schema import (
    CHUNK_OVERLAP,
    DEFAULT_MODEL,
    EMBEDDING_DIM,
    MAX_CHUNK_SIZE,
    PREVIEW_LENGTH,
)

logger = logging.getLogger(__name__)

EMBEDDING_PROVIDERS = ("sentence-transformers", "hash")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_SETTINGS: dict[str, Any] = {
    "db_path": ".prdvec/prdvec.db",
    "embedding_provider": "sentence-transformers",
    "model": DEFAULT_MODEL,
    "dimension": EMBEDDING_DIM,
    "max_chunk_size": MAX_CHUNK_SIZE,
    "chunk_overlap": CHUNK_OVERLAP,
    "preview_length": PREVIEW_LENGTH,
    "search_limit": 10,
    "search_threshold": 0.5,
    "similar_limit": 5,
    "similar_threshold": 0.3,
    "log_level": "WARNING",
}


@dataclass
class PrdvecSettings:
    """Merged prdvec settings."""

    db_path: str = ".prdvec/prdvec.db"
    embedding_provider: str = "sentence-transformers"
    model: str = DEFAULT_MODEL
    dimension: int = EMBEDDING_DIM
    max_chunk_size: int = MAX_CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    preview_length: int = PREVIEW_LENGTH
    search_limit: int = 10
    search_threshold: float = 0.5
    similar_limit: int = 5
    similar_threshold: float = 0.3
    log_level: str = "WARNING"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrdvecSettings:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_json_file(path: Path) -> dict[str, Any]:
    """Load a JSON file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
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


def load_settings(project_root: Path | None = None) -> PrdvecSettings:
    """Load and merge settings from user + project levels.

    Precedence: project settings override user settings override defaults.
    """
    merged = dict(DEFAULT_SETTINGS)

    # User-level settings (lower precedence)
    user_settings = load_json_file(get_user_settings_path())
    if user_settings:
        merged = deep_merge(merged, user_settings)

    # Project-level settings (higher precedence)
    if project_root is not None:
        project_settings = load_json_file(get_project_settings_path(project_root))
        if project_settings:
            merged = deep_merge(merged, project_settings)

    return PrdvecSettings.from_dict(merged)


def save_settings(settings: PrdvecSettings | dict[str, Any], path: Path) -> None:
    """Save settings to a JSON file.

    A plain dict is written as given, so a project file can hold only the
    keys it overrides.
    """
    data = settings.to_dict() if isinstance(settings, PrdvecSettings) else settings
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(data, indent=2) + "\n",
        encoding="utf-8",
    )


def coerce_setting(key: str, raw: str) -> Any:
    """Convert a command-line string to the type of a settings field.

    Raises:
        KeyError: ``key`` is not a known setting.
        ValueError: ``raw`` cannot be converted.
    """
    if key not in DEFAULT_SETTINGS:
        raise KeyError(key)
    default = DEFAULT_SETTINGS[key]
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def validate_settings(settings: PrdvecSettings) -> list[str]:
    """Validate settings, returning list of error messages (empty if valid)."""
    errors = []

    if settings.embedding_provider not in EMBEDDING_PROVIDERS:
        errors.append(
            f"embedding_provider must be one of {', '.join(EMBEDDING_PROVIDERS)}"
        )

    if not isinstance(settings.db_path, str) or not settings.db_path:
        errors.append("db_path must be a non-empty string")

    for name in ("dimension", "max_chunk_size", "preview_length", "search_limit", "similar_limit"):
        value = getattr(settings, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            errors.append(f"{name} must be a positive integer")

    overlap = settings.chunk_overlap
    if not isinstance(overlap, int) or isinstance(overlap, bool) or overlap < 0:
        errors.append("chunk_overlap must be a non-negative integer")
    elif isinstance(settings.max_chunk_size, int) and overlap >= settings.max_chunk_size:
        errors.append("chunk_overlap must be smaller than max_chunk_size")

    for name in ("search_threshold", "similar_threshold"):
        value = getattr(settings, name)
        if not isinstance(value, (int, float)) or not (-1.0 <= value <= 1.0):
            errors.append(f"{name} must be a float between -1.0 and 1.0")

    if not isinstance(settings.log_level, str) or settings.log_level.upper() not in LOG_LEVELS:
        errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    return errors
