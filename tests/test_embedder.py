"""Tests for embedding providers."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from prdvec.errors import EmbeddingDimensionError, ProviderError, ValidationError
from prdvec.vectors.embedder import (
    EmbeddingProvider,
    HashEmbeddingProvider,
    SentenceTransformerProvider,
    create_provider,
)


class FixedProvider(EmbeddingProvider):
    def __init__(self, rows, dimension=3):
        super().__init__(dimension)
        self.rows = rows
        self.calls = 0

    def _encode(self, texts):
        self.calls += 1
        return self.rows


class TestEmbeddingProvider:
    def test_empty_batch_skips_backend(self):
        p = FixedProvider([[1.0, 2.0, 3.0]])
        assert p.embed_batch([]) == []
        assert p.calls == 0

    def test_embed_one(self):
        p = FixedProvider([[1, 2, 3]])
        assert p.embed_one("hello") == [1.0, 2.0, 3.0]

    def test_preserves_order(self):
        p = FixedProvider([[1, 0, 0], [0, 1, 0]])
        assert p.embed_batch(["a", "b"]) == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]

    def test_dimension_mismatch_names_index(self):
        p = FixedProvider([[1, 0, 0], [1, 0]])
        with pytest.raises(EmbeddingDimensionError) as exc_info:
            p.embed_batch(["a", "b"])
        err = exc_info.value
        assert err.index == 1
        assert err.expected == 3
        assert err.actual == 2
        assert isinstance(err, ValidationError)

    def test_wrong_count_is_provider_error(self):
        p = FixedProvider([[1, 0, 0]])
        with pytest.raises(ProviderError):
            p.embed_batch(["a", "b"])

    def test_backend_exception_is_wrapped(self):
        class Exploding(EmbeddingProvider):
            def _encode(self, texts):
                raise RuntimeError("out of memory")

        with pytest.raises(ProviderError, match="out of memory"):
            Exploding(3).embed_one("x")

    def test_accepts_numpy_arrays(self):
        p = FixedProvider(np.array([[0.5, 0.25, 0.0]], dtype=np.float32))
        assert p.embed_one("x") == [0.5, 0.25, 0.0]


class TestHashEmbeddingProvider:
    def test_deterministic(self):
        p = HashEmbeddingProvider(dimension=16)
        assert p.embed_one("same text") == p.embed_one("same text")

    def test_unit_length(self):
        vec = HashEmbeddingProvider(dimension=384).embed_one("hello world")
        assert len(vec) == 384
        assert np.linalg.norm(vec) == pytest.approx(1.0, abs=1e-5)

    def test_different_texts_differ(self):
        p = HashEmbeddingProvider(dimension=16)
        assert p.embed_one("a") != p.embed_one("b")


class TestSentenceTransformerProvider:
    def test_model_is_loaded_lazily(self):
        p = SentenceTransformerProvider()
        assert not p.loaded
        assert p.embed_batch([]) == []
        assert not p.loaded

    def test_encode_uses_model(self):
        fake_model = MagicMock()
        fake_model.encode.return_value = np.zeros((2, 384), dtype=np.float32)
        fake_module = SimpleNamespace(SentenceTransformer=MagicMock(return_value=fake_model))

        with patch.dict("sys.modules", {"sentence_transformers": fake_module}):
            p = SentenceTransformerProvider(model_name="all-MiniLM-L6-v2")
            vectors = p.embed_batch(["one", "two"])

        assert len(vectors) == 2
        assert all(len(v) == 384 for v in vectors)
        assert p.loaded
        fake_module.SentenceTransformer.assert_called_once_with("all-MiniLM-L6-v2", device=None)
        _, kwargs = fake_model.encode.call_args
        assert kwargs["normalize_embeddings"] is True

    def test_model_load_failure_is_provider_error(self):
        fake_module = SimpleNamespace(
            SentenceTransformer=MagicMock(side_effect=OSError("no network"))
        )
        with patch.dict("sys.modules", {"sentence_transformers": fake_module}):
            p = SentenceTransformerProvider()
            with pytest.raises(ProviderError, match="no network"):
                p.embed_one("x")


class TestCreateProvider:
    def test_hash(self):
        settings = SimpleNamespace(embedding_provider="hash", dimension=32, model="unused")
        p = create_provider(settings)
        assert isinstance(p, HashEmbeddingProvider)
        assert p.dimension == 32

    def test_sentence_transformers(self):
        settings = SimpleNamespace(
            embedding_provider="sentence-transformers", dimension=384, model="all-MiniLM-L6-v2"
        )
        p = create_provider(settings)
        assert isinstance(p, SentenceTransformerProvider)
        assert p.model_name == "all-MiniLM-L6-v2"

    def test_unknown(self):
        settings = SimpleNamespace(embedding_provider="magic", dimension=384, model="x")
        with pytest.raises(ValueError):
            create_provider(settings)
