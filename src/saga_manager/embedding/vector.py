"""Fixed-dimension embedding vector value object.

Vectors are held as little-endian float32, which is also the on-disk
encoding: ``to_binary`` is a straight ``tobytes`` of the backing array,
so any vector built through the constructor round-trips bit-exactly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

import numpy as np
from numpy.typing import NDArray

from ..exceptions import DimensionMismatch, InvalidVector

logger = logging.getLogger(__name__)

DTYPE = np.dtype("<f4")
BYTES_PER_FLOAT = DTYPE.itemsize


class EmbeddingVector:
    """Immutable embedding; dimension is fixed at construction."""

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[float] | NDArray):
        try:
            array = np.array(values, dtype=DTYPE)
        except (TypeError, ValueError) as e:
            raise InvalidVector(f"Embedding values must be numeric: {e}") from e

        if array.ndim != 1:
            raise InvalidVector(f"Embedding must be one-dimensional, got shape {array.shape}")
        if array.size == 0:
            raise InvalidVector("Embedding must not be empty")
        # Values beyond float32 range overflow to inf here and are rejected too
        if not np.isfinite(array).all():
            raise InvalidVector("Embedding contains NaN or infinite values")

        array.flags.writeable = False
        self._values = array

    # ------------------------------------------------------------------
    # Binary encoding
    # ------------------------------------------------------------------

    @classmethod
    def from_binary(cls, data: bytes) -> EmbeddingVector:
        """Decode little-endian float32 bytes."""
        if len(data) == 0 or len(data) % BYTES_PER_FLOAT != 0:
            raise InvalidVector(
                f"Embedding byte length must be a positive multiple of {BYTES_PER_FLOAT}, got {len(data)}"
            )
        return cls(np.frombuffer(data, dtype=DTYPE))

    @classmethod
    def parse(cls, data: bytes | None) -> EmbeddingVector | None:
        """Decode *data*, returning None instead of raising when it is malformed."""
        if data is None:
            return None
        try:
            return cls.from_binary(data)
        except InvalidVector as e:
            logger.debug(f"Ignoring malformed embedding: {e}")
            return None

    def to_binary(self) -> bytes:
        return self._values.tobytes()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return int(self._values.size)

    def to_list(self) -> list[float]:
        return self._values.tolist()

    def __len__(self) -> int:
        return self.dimension

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingVector):
            return NotImplemented
        return self.to_binary() == other.to_binary()

    def __hash__(self) -> int:
        return hash(self.to_binary())

    def __repr__(self) -> str:
        return f"EmbeddingVector(dimension={self.dimension})"

    # ------------------------------------------------------------------
    # Similarity math
    # ------------------------------------------------------------------

    def _check_dimension(self, other: EmbeddingVector) -> None:
        if self.dimension != other.dimension:
            raise DimensionMismatch(self.dimension, other.dimension)

    def cosine_similarity(self, other: EmbeddingVector) -> float:
        """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
        self._check_dimension(other)
        a = self._values.astype(np.float64)
        b = other._values.astype(np.float64)

        # float32 products are exact in float64, so fsum gives order-independent dots
        dot_aa = math.fsum(a * a)
        dot_bb = math.fsum(b * b)
        if dot_aa == 0.0 or dot_bb == 0.0:
            return 0.0

        # sqrt(d * d) == d, so v . v / sqrt(|v|^2 |v|^2) is exactly 1.0
        similarity = math.fsum(a * b) / math.sqrt(dot_aa * dot_bb)
        return max(-1.0, min(1.0, similarity))

    def euclidean_distance(self, other: EmbeddingVector) -> float:
        self._check_dimension(other)
        diff = self._values.astype(np.float64) - other._values.astype(np.float64)
        return float(np.linalg.norm(diff))
