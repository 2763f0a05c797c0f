"""Recursive file listing that honors .gitignore-style ignore files.

Hidden files are listed like any other file; only the ``.git`` and
``.prdvec`` directories are always skipped. Ignore files apply to the
directory they live in and everything below it, with the last matching rule
winning. The user's global gitignore and ``.git/info/exclude`` apply from
the walk root down.
"""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator


IGNORE_FILE_NAMES = (".gitignore", ".ignore")
ALWAYS_SKIPPED_DIRS = frozenset({".git", ".prdvec"})


@dataclass
class IgnoreRule:
    """One pattern line from an ignore file."""
    pattern: str
    base: Path
    negate: bool = False
    dir_only: bool = False
    anchored: bool = False

    def matches(self, path: Path, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        try:
            rel = path.relative_to(self.base).as_posix()
        except ValueError:
            return False
        if self.anchored:
            return fnmatch.fnmatchcase(rel, self.pattern)
        return (
            fnmatch.fnmatchcase(path.name, self.pattern)
            or fnmatch.fnmatchcase(rel, self.pattern)
            or fnmatch.fnmatchcase(rel, f"*/{self.pattern}")
        )


def parse_ignore_lines(lines: list[str], base: Path) -> list[IgnoreRule]:
    """Parse ignore-file lines into rules relative to ``base``."""
    rules = []
    for raw in lines:
        line = raw.rstrip("\n").rstrip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        if line.startswith("\\"):
            line = line[1:]
        dir_only = line.endswith("/")
        line = line.rstrip("/")
        if line.startswith("**/"):
            line = line[3:]
            anchored = False
        else:
            anchored = "/" in line
            line = line.lstrip("/")
        if line:
            rules.append(IgnoreRule(line, base, negate, dir_only, anchored))
    return rules


def load_ignore_rules(directory: Path) -> list[IgnoreRule]:
    """Rules from the ignore files found directly inside ``directory``."""
    rules: list[IgnoreRule] = []
    for name in IGNORE_FILE_NAMES:
        path = directory / name
        if path.is_file():
            rules.extend(_read_rules(path, directory))
    return rules


def is_ignored(path: Path, is_dir: bool, rules: list[IgnoreRule]) -> bool:
    """Apply rules in order; the last one that matches decides."""
    ignored = False
    for rule in rules:
        if rule.matches(path, is_dir):
            ignored = not rule.negate
    return ignored


def _read_rules(path: Path, base: Path) -> list[IgnoreRule]:
    try:
        return parse_ignore_lines(path.read_text(encoding="utf-8").splitlines(), base)
    except (OSError, UnicodeDecodeError):
        return []


def _configured_excludes_file(gitconfig: Path) -> Path | None:
    """The ``core.excludesFile`` entry of a git config file, if any."""
    try:
        lines = gitconfig.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return None
    section = ""
    for raw in lines:
        line = raw.strip()
        if not line or line[0] in "#;":
            continue
        if line.startswith("["):
            section = line.strip("[]").strip().lower()
            continue
        key, sep, value = line.partition("=")
        if section == "core" and sep and key.strip().lower() == "excludesfile":
            return Path(value.strip().strip('"')).expanduser()
    return None


def global_ignore_file() -> Path | None:
    """Path of the user's global gitignore, as git itself resolves it.

    ``core.excludesFile`` from ~/.gitconfig wins over the XDG git config,
    and without either the XDG default ``git/ignore`` is used.
    """
    xdg_git = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config") / "git"
    for gitconfig in (Path.home() / ".gitconfig", xdg_git / "config"):
        configured = _configured_excludes_file(gitconfig)
        if configured is not None:
            return configured
    default = xdg_git / "ignore"
    return default if default.is_file() else None


def walk_files(
    root: Path,
    on_error: Callable[[OSError], None] | None = None,
    use_global_ignore: bool = True,
) -> Iterator[Path]:
    """Yield every non-ignored file under ``root`` in a stable order.

    Directory listing errors are passed to ``on_error`` (if given) and the
    affected directory is skipped.
    The user's global gitignore applies unless ``use_global_ignore`` is off.
    """
    root = Path(root)
    if root.is_file():
        yield root
        return

    # Lowest precedence first: global excludes, then the repository's own.
    base_rules: list[IgnoreRule] = []
    if use_global_ignore:
        global_file = global_ignore_file()
        if global_file is not None and global_file.is_file():
            base_rules.extend(_read_rules(global_file, root))
    exclude = root / ".git" / "info" / "exclude"
    if exclude.is_file():
        base_rules.extend(_read_rules(exclude, root))

    rules_by_dir: dict[Path, list[IgnoreRule]] = {}

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        current = Path(dirpath)
        inherited = rules_by_dir.get(current.parent, base_rules) if current != root else base_rules
        rules = inherited + load_ignore_rules(current)
        rules_by_dir[current] = rules

        dirnames[:] = sorted(
            d for d in dirnames
            if d not in ALWAYS_SKIPPED_DIRS and not is_ignored(current / d, True, rules)
        )
        for name in sorted(filenames):
            file_path = current / name
            if not is_ignored(file_path, False, rules):
                yield file_path
