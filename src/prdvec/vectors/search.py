"""Brute-force cosine similarity search over stored embeddings.

Every query scans the candidate pool from the store, so cost grows linearly
with the number of stored chunks.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from prdvec.errors import NotFoundError
from prdvec.vectors.embedder import EmbeddingProvider
from prdvec.vectors.schema import ContentType, EmbeddingRecord, SearchResult
from prdvec.vectors.store import VectorStore

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors, in [-1, 1].

    Returns 0.0 for empty or zero-magnitude vectors and for length mismatches.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    sim = float(np.dot(va, vb) / denominator)
    return max(-1.0, min(1.0, sim))


def _score(
    query: Sequence[float],
    candidates: list[tuple[EmbeddingRecord, list[float]]],
    threshold: float,
) -> list[SearchResult]:
    results = []
    for record, embedding in candidates:
        similarity = cosine_similarity(query, embedding)
        if similarity >= threshold:
            results.append(SearchResult(record=record, similarity=similarity))
    # sorted() is stable, so equal scores keep storage order
    return sorted(results, key=lambda r: r.similarity, reverse=True)


class VectorSearch:
    """Ranked similarity queries against a :class:`VectorStore`."""

    def __init__(self, store: VectorStore, embedder: EmbeddingProvider | None = None):
        self.store = store
        self.embedder = embedder

    def search_text(
        self,
        query: str,
        content_type: ContentType | None = None,
        limit: int = 10,
        threshold: float = 0.5,
    ) -> list[SearchResult]:
        """Embed ``query`` and search with the resulting vector."""
        if self.embedder is None:
            raise ValueError("Text search requires an embedding provider")
        vector = self.embedder.embed_one(query)
        return self.search_embedding(vector, content_type, limit, threshold)

    def search_embedding(
        self,
        vector: Sequence[float],
        content_type: ContentType | None = None,
        limit: int = 10,
        threshold: float = 0.5,
    ) -> list[SearchResult]:
        """Chunks scoring at least ``threshold``, best first, at most ``limit``.

        A non-positive ``limit`` returns nothing.
        """
        candidates = self.store.get_all_embeddings(content_type)
        results = _score(vector, candidates, threshold)
        for rank, result in enumerate(results, 1):
            result.rank = rank
        logger.debug(
            "Vector search over %d chunks matched %d", len(candidates), len(results)
        )
        return results[:max(limit, 0)]

    def find_similar(
        self,
        content_type: ContentType,
        content_id: str,
        search_types: Sequence[ContentType] | None = None,
        limit: int = 5,
        threshold: float = 0.3,
    ) -> list[SearchResult]:
        """Items most similar to an already indexed one.

        The source's first chunk is the query. The source item is excluded and
        each other item appears once, represented by its best-scoring chunk.

        Raises:
            NotFoundError: the source item has no stored embedding.
        """
        source = self.store.get_embedding(content_type, content_id, 0)
        if source is None:
            raise NotFoundError(f"Content not found: {content_id}")
        _, source_vector = source

        if search_types:
            candidates = []
            for search_type in dict.fromkeys(search_types):
                candidates.extend(self.store.get_all_embeddings(search_type))
        else:
            candidates = self.store.get_all_embeddings()

        candidates = [
            (record, embedding)
            for record, embedding in candidates
            if not (record.content_type == content_type and record.content_id == content_id)
        ]

        seen: set[tuple[ContentType, str]] = set()
        deduped: list[SearchResult] = []
        for result in _score(source_vector, candidates, threshold):
            if result.record.key in seen:
                continue
            seen.add(result.record.key)
            result.rank = len(deduped) + 1
            deduped.append(result)

        return deduped[:max(limit, 0)]
