"""Project path helpers for prdvec."""

from __future__ import annotations

from pathlib import Path


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from start directory to find project root.

    Project root is identified by the presence of a .prdvec/ or .git/
    directory.
    """
    current = (start or Path.cwd()).resolve()
    for directory in [current, *current.parents]:
        if (directory / ".prdvec").is_dir():
            return directory
        if (directory / ".git").exists():
            return directory
    return None


def get_project_root(start: Path | None = None) -> Path:
    """Get project root, falling back to the start directory."""
    root = find_project_root(start)
    if root is None:
        return (start or Path.cwd()).resolve()
    return root


def get_user_settings_path() -> Path:
    """Get user-level settings.json path."""
    return Path.home() / ".prdvec" / "settings.json"


def get_project_settings_path(project_root: Path) -> Path:
    """Get project-level settings.json path."""
    return project_root / ".prdvec" / "settings.json"


def resolve_db_path(project_root: Path, db_path: str) -> Path:
    """Resolve the configured database path against the project root."""
    p = Path(db_path).expanduser()
    if p.is_absolute():
        return p
    return project_root / p
