"""Shared test fixtures for prdvec."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from prdvec.errors import ProviderError
from prdvec.tasks import SqliteTaskSource
from prdvec.vectors.embedder import EmbeddingProvider
from prdvec.vectors.store import VectorStore


VOCABULARY = (
    "auth", "login", "password", "database", "query",
    "render", "parse", "network",
)


class KeywordProvider(EmbeddingProvider):
    """Bag-of-keywords embeddings: one axis per vocabulary word plus a bias axis.

    Texts sharing keywords point the same way, so similarity ordering in tests
    is predictable without loading a model.
    """

    DIMENSION = len(VOCABULARY) + 1

    def __init__(self, fail_on: str | None = None):
        super().__init__(self.DIMENSION)
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def _encode(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        rows = []
        for text in texts:
            if self.fail_on is not None and self.fail_on in text:
                raise RuntimeError(f"cannot embed text containing {self.fail_on!r}")
            lower = text.lower()
            row = [float(lower.count(word)) for word in VOCABULARY]
            row.append(0.1)
            rows.append(row)
        return rows


class BrokenProvider(EmbeddingProvider):
    def _encode(self, texts: list[str]) -> list[list[float]]:
        raise ProviderError("backend offline")


@pytest.fixture
def conn():
    """In-memory SQLite connection."""
    c = sqlite3.connect(":memory:")
    yield c
    c.close()


@pytest.fixture
def embedder() -> KeywordProvider:
    return KeywordProvider()


@pytest.fixture
def store(conn: sqlite3.Connection) -> VectorStore:
    """Vector store sized for the keyword provider."""
    s = VectorStore(conn, dimension=KeywordProvider.DIMENSION)
    s.ensure_schema()
    return s


@pytest.fixture
def task_source(conn: sqlite3.Connection) -> SqliteTaskSource:
    """Task tables with three live tasks and one cancelled task."""
    conn.executescript(
        """
        CREATE TABLE tasks (
            id TEXT PRIMARY KEY,
            display_id INTEGER,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT
        );
        CREATE TABLE acceptance_criteria (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_display_id INTEGER,
            criterion TEXT NOT NULL
        );
        INSERT INTO tasks VALUES ('t-1', 1, 'Add login form', 'Users need auth with a password', 'pending');
        INSERT INTO tasks VALUES ('t-2', 2, 'Speed up database query', NULL, 'in_progress');
        INSERT INTO tasks VALUES ('t-3', 3, 'Render charts', 'Render the network graph', NULL);
        INSERT INTO tasks VALUES ('t-4', 4, 'Old login idea', 'auth', 'cancelled');
        INSERT INTO acceptance_criteria (task_display_id, criterion) VALUES (1, 'Password is hashed');
        INSERT INTO acceptance_criteria (task_display_id, criterion) VALUES (1, 'Login errors are shown');
        """
    )
    return SqliteTaskSource(conn)


@pytest.fixture
def home_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated home directory so user-level settings never leak into tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def tmp_project(tmp_path: Path, home_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A project directory using the offline hash provider, set as the cwd."""
    project = tmp_path / "project"
    prdvec_dir = project / ".prdvec"
    prdvec_dir.mkdir(parents=True)
    (prdvec_dir / "settings.json").write_text(json.dumps({
        "embedding_provider": "hash",
    }))
    monkeypatch.chdir(project)
    return project
