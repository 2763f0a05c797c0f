"""SQLite storage for chunk embeddings and per-type index statistics.

Vectors are stored as BLOBs of little-endian float32 values. Nothing is
cached: every read decodes fresh from the database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Sequence

import numpy as np

from prdvec.errors import EmbeddingDimensionError, ValidationError
from prdvec.vectors.schema import (
    EMBEDDING_DIM,
    SCHEMA_SQL,
    ContentType,
    EmbeddingRecord,
    VectorStats,
)

_VECTOR_DTYPE = np.dtype("<f4")

_RECORD_COLUMNS = (
    "id, content_type, content_id, chunk_index, content_preview, "
    "content_hash, metadata, created_at, updated_at, embedding"
)


def encode_embedding(embedding: Sequence[float]) -> bytes:
    """Encode a vector as concatenated little-endian 4-byte floats."""
    return np.asarray(embedding, dtype=_VECTOR_DTYPE).tobytes()


def decode_embedding(blob: bytes) -> list[float]:
    """Decode a BLOB produced by :func:`encode_embedding`."""
    if len(blob) % _VECTOR_DTYPE.itemsize:
        raise ValidationError(
            f"Embedding blob length {len(blob)} is not a multiple of {_VECTOR_DTYPE.itemsize}"
        )
    return np.frombuffer(blob, dtype=_VECTOR_DTYPE).tolist()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_record(row: sqlite3.Row | tuple) -> EmbeddingRecord:
    return EmbeddingRecord(
        id=row[0],
        content_type=ContentType(row[1]),
        content_id=row[2],
        chunk_index=row[3],
        content_preview=row[4],
        content_hash=row[5],
        metadata=row[6],
        created_at=row[7],
        updated_at=row[8],
    )


class VectorStore:
    """Keyed embedding storage backed by a SQLite connection."""

    def __init__(self, conn: sqlite3.Connection, dimension: int = EMBEDDING_DIM):
        self.conn = conn
        self.dimension = dimension

    def ensure_schema(self) -> None:
        """Create tables and seed an empty stats row per content type."""
        with self.conn:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.executemany(
                "INSERT OR IGNORE INTO vector_stats (content_type, total_items, total_chunks) "
                "VALUES (?, 0, 0)",
                [(ct.value,) for ct in ContentType],
            )

    def store_embedding(
        self,
        content_type: ContentType,
        content_id: str,
        chunk_index: int,
        content_preview: str | None,
        content_hash: str,
        embedding: Sequence[float],
        metadata: str | None = None,
    ) -> int:
        """Insert or update one chunk embedding and return its row id.

        Raises:
            EmbeddingDimensionError: the vector length differs from the store's
                dimension. Nothing is written.
        """
        if len(embedding) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(embedding))

        blob = encode_embedding(embedding)
        now = _now()
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO embeddings (content_type, content_id, chunk_index, content_preview,
                                        content_hash, embedding, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(content_type, content_id, chunk_index)
                DO UPDATE SET
                    content_preview = excluded.content_preview,
                    content_hash = excluded.content_hash,
                    embedding = excluded.embedding,
                    metadata = excluded.metadata,
                    updated_at = excluded.updated_at
                """,
                (
                    content_type.value,
                    content_id,
                    chunk_index,
                    content_preview,
                    content_hash,
                    blob,
                    metadata,
                    now,
                    now,
                ),
            )
        row = self.conn.execute(
            "SELECT id FROM embeddings WHERE content_type = ? AND content_id = ? AND chunk_index = ?",
            (content_type.value, content_id, chunk_index),
        ).fetchone()
        return row[0]

    def get_content_hash(self, content_type: ContentType, content_id: str) -> str | None:
        """Hash recorded for a content unit (from its first chunk), if any."""
        row = self.conn.execute(
            "SELECT content_hash FROM embeddings "
            "WHERE content_type = ? AND content_id = ? AND chunk_index = 0",
            (content_type.value, content_id),
        ).fetchone()
        return row[0] if row else None

    def get_embedding(
        self,
        content_type: ContentType,
        content_id: str,
        chunk_index: int = 0,
    ) -> tuple[EmbeddingRecord, list[float]] | None:
        """Fetch a single chunk and its decoded vector."""
        row = self.conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM embeddings "
            "WHERE content_type = ? AND content_id = ? AND chunk_index = ?",
            (content_type.value, content_id, chunk_index),
        ).fetchone()
        if row is None:
            return None
        return _row_to_record(row), decode_embedding(row[9])

    def delete_embeddings(self, content_type: ContentType, content_id: str) -> int:
        """Delete every chunk of a content unit, returning the row count."""
        with self.conn:
            cur = self.conn.execute(
                "DELETE FROM embeddings WHERE content_type = ? AND content_id = ?",
                (content_type.value, content_id),
            )
        return cur.rowcount

    def delete_all_by_type(self, content_type: ContentType) -> int:
        """Delete every embedding of one content type."""
        with self.conn:
            cur = self.conn.execute(
                "DELETE FROM embeddings WHERE content_type = ?",
                (content_type.value,),
            )
        return cur.rowcount

    def get_all_embeddings(
        self, content_type: ContentType | None = None
    ) -> list[tuple[EmbeddingRecord, list[float]]]:
        """Every stored chunk with its vector, ordered by (type, id, chunk index)."""
        sql = f"SELECT {_RECORD_COLUMNS} FROM embeddings"
        params: tuple = ()
        if content_type is not None:
            sql += " WHERE content_type = ?"
            params = (content_type.value,)
        sql += " ORDER BY content_type, content_id, chunk_index"

        return [
            (_row_to_record(row), decode_embedding(row[9]))
            for row in self.conn.execute(sql, params)
        ]

    def count_embeddings(self, content_type: ContentType | None = None) -> int:
        """Number of stored chunks, optionally for one type."""
        if content_type is None:
            row = self.conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
        else:
            row = self.conn.execute(
                "SELECT COUNT(*) FROM embeddings WHERE content_type = ?",
                (content_type.value,),
            ).fetchone()
        return row[0]

    def get_stats(self) -> list[VectorStats]:
        """Per-type statistics rows, ordered by content type."""
        rows = self.conn.execute(
            "SELECT content_type, total_items, total_chunks, last_indexed_at, index_duration_ms "
            "FROM vector_stats ORDER BY content_type"
        ).fetchall()
        stats = []
        for ct, items, chunks, last_indexed, duration in rows:
            content_type = ContentType.from_str(ct)
            if content_type is None:
                continue
            stats.append(VectorStats(
                content_type=content_type,
                total_items=items or 0,
                total_chunks=chunks or 0,
                last_indexed_at=last_indexed,
                index_duration_ms=duration,
            ))
        return stats

    def update_stats(
        self,
        content_type: ContentType,
        total_items: int,
        total_chunks: int,
        duration_ms: int,
    ) -> None:
        """Replace the statistics row for a content type."""
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO vector_stats (content_type, total_items, total_chunks,
                                          last_indexed_at, index_duration_ms)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(content_type)
                DO UPDATE SET
                    total_items = excluded.total_items,
                    total_chunks = excluded.total_chunks,
                    last_indexed_at = excluded.last_indexed_at,
                    index_duration_ms = excluded.index_duration_ms
                """,
                (content_type.value, total_items, total_chunks, _now(), duration_ms),
            )
