"""Embedding providers for the vector index.

Providers turn text into fixed-dimension float vectors. The backing model is
loaded lazily on the first call, so constructing a provider is cheap and the
indexer and search code never need to know which backend is in use.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Sequence

import numpy as np

from prdvec.errors import EmbeddingDimensionError, ProviderError
from prdvec.vectors.schema import DEFAULT_MODEL, EMBEDDING_DIM

logger = logging.getLogger(__name__)


class EmbeddingProvider:
    """Base class for embedding backends.

    Subclasses implement ``_encode``; this class handles ordering, error
    wrapping and dimension validation.
    """

    def __init__(self, dimension: int = EMBEDDING_DIM):
        self.dimension = dimension

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts, returning one vector per input in the same order.

        Raises:
            ProviderError: the backend failed or returned the wrong count.
            EmbeddingDimensionError: a vector has the wrong length.
        """
        if not texts:
            return []
        try:
            raw = self._encode(list(texts))
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Embedding backend failed: {e}") from e

        vectors = [[float(x) for x in row] for row in raw]
        if len(vectors) != len(texts):
            raise ProviderError(
                f"Embedding backend returned {len(vectors)} vectors for {len(texts)} texts"
            )
        for i, vector in enumerate(vectors):
            if len(vector) != self.dimension:
                raise EmbeddingDimensionError(self.dimension, len(vector), index=i)
        return vectors

    def embed_one(self, text: str) -> list[float]:
        """Embed a single text."""
        return self.embed_batch([text])[0]

    def _encode(self, texts: list[str]) -> Any:
        raise NotImplementedError


class SentenceTransformerProvider(EmbeddingProvider):
    """Local sentence-transformers model, loaded on first use."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        dimension: int = EMBEDDING_DIM,
        device: str | None = None,
        batch_size: int = 32,
    ):
        super().__init__(dimension)
        self.model_name = model_name
        self.device = device
        self.batch_size = batch_size
        self._model = None

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def _get_model(self) -> Any:
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model %s", self.model_name)
            self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    def _encode(self, texts: list[str]) -> Any:
        model = self._get_model()
        return model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )


class HashEmbeddingProvider(EmbeddingProvider):
    """Deterministic pseudo-embeddings derived from a SHA-256 of the text.

    Identical texts always map to the same unit vector; different texts map
    to near-orthogonal ones. Useful offline and in tests, useless for meaning.
    """

    def _encode(self, texts: list[str]) -> Any:
        rows = []
        for text in texts:
            seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "little")
            rng = np.random.default_rng(seed)
            vec = rng.standard_normal(self.dimension).astype(np.float32)
            norm = np.linalg.norm(vec)
            rows.append(vec / norm if norm > 0 else vec)
        return rows


def create_provider(settings: Any) -> EmbeddingProvider:
    """Build the embedding provider named by ``settings.embedding_provider``."""
    name = settings.embedding_provider
    if name == "hash":
        return HashEmbeddingProvider(dimension=settings.dimension)
    if name == "sentence-transformers":
        return SentenceTransformerProvider(
            model_name=settings.model,
            dimension=settings.dimension,
        )
    raise ValueError(f"Unknown embedding provider: {name}")
