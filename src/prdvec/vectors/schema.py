"""SQLite schema and record types for the vector index."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


EMBEDDING_DIM = 384  # all-MiniLM-L6-v2
DEFAULT_MODEL = "all-MiniLM-L6-v2"
MAX_CHUNK_SIZE = 1000
CHUNK_OVERLAP = 100
PREVIEW_LENGTH = 200

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS embeddings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type TEXT NOT NULL,
    content_id TEXT NOT NULL,
    chunk_index INTEGER DEFAULT 0,
    content_preview TEXT,
    content_hash TEXT NOT NULL,
    embedding BLOB NOT NULL,
    metadata TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(content_type, content_id, chunk_index)
);
CREATE INDEX IF NOT EXISTS idx_embeddings_type ON embeddings(content_type);
CREATE INDEX IF NOT EXISTS idx_embeddings_content_id ON embeddings(content_id);
CREATE INDEX IF NOT EXISTS idx_embeddings_hash ON embeddings(content_hash);
CREATE TABLE IF NOT EXISTS vector_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type TEXT NOT NULL UNIQUE,
    total_items INTEGER DEFAULT 0,
    total_chunks INTEGER DEFAULT 0,
    last_indexed_at TEXT,
    index_duration_ms INTEGER
);
"""


class ContentType(Enum):
    """Kinds of indexable content."""

    TASK = "task"
    CODE = "code"
    DOC = "doc"

    @classmethod
    def from_str(cls, value: str) -> ContentType | None:
        """Parse a user-supplied type name, accepting plural aliases."""
        return _ALIASES.get(value.strip().lower())

    @property
    def icon(self) -> str:
        return _ICONS[self]

    def __str__(self) -> str:
        return self.value


_ALIASES: dict[str, ContentType] = {
    "task": ContentType.TASK,
    "tasks": ContentType.TASK,
    "code": ContentType.CODE,
    "doc": ContentType.DOC,
    "docs": ContentType.DOC,
}

_ICONS: dict[ContentType, str] = {
    ContentType.TASK: "📋",
    ContentType.CODE: "💻",
    ContentType.DOC: "📄",
}


@dataclass
class EmbeddingRecord:
    """A stored embedding row, without its vector."""
    id: int
    content_type: ContentType
    content_id: str
    chunk_index: int
    content_preview: str | None
    content_hash: str
    metadata: str | None
    created_at: str
    updated_at: str

    @property
    def key(self) -> tuple[ContentType, str]:
        return (self.content_type, self.content_id)


@dataclass
class VectorStats:
    """Aggregate indexing statistics for one content type."""
    content_type: ContentType
    total_items: int
    total_chunks: int
    last_indexed_at: str | None = None
    index_duration_ms: int | None = None


@dataclass
class SearchResult:
    """A ranked match returned by a similarity query."""
    record: EmbeddingRecord
    similarity: float
    rank: int = 0
