"""Error types raised by the prdvec indexing and search core."""

from __future__ import annotations


class VectorError(Exception):
    """Base class for prdvec errors."""


class ValidationError(VectorError):
    """Input rejected before any state was changed (e.g. wrong vector length)."""


class EmbeddingDimensionError(ValidationError):
    """A vector does not have the configured embedding dimension."""

    def __init__(self, expected: int, actual: int, index: int | None = None):
        self.expected = expected
        self.actual = actual
        self.index = index
        where = f" at index {index}" if index is not None else ""
        super().__init__(
            f"Invalid embedding dimension{where}: got {actual}, expected {expected}"
        )


class NotFoundError(VectorError):
    """Requested content has no stored embedding."""


class ProviderError(VectorError):
    """The embedding backend failed to produce vectors."""
