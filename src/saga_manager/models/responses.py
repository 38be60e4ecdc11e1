"""Service-layer result models.

Typed Pydantic models for what the aggregator, search engine and
embedding backfill hand back, so callers get attribute access instead
of ``result.get("key", default)`` roulette.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .fragment import ContentFragment
from .validators import NonNegativeInt, SagaId, Similarity

# ---------------------------------------------------------------------------
# Quality recompute
# ---------------------------------------------------------------------------


class RecomputeResult(BaseModel):
    """Aggregate counts from one ``recompute`` batch.

    ``processed`` counts every entity actually analysed (written or not),
    ``updated`` only successful writes, ``failed`` per-item failures.
    Entities that vanished before analysis land in ``skipped``.
    """

    processed: NonNegativeInt = 0
    updated: NonNegativeInt = 0
    failed: NonNegativeInt = 0
    skipped: NonNegativeInt = 0
    deadline_exceeded: bool = False


class SagaQualityOverview(BaseModel):
    """Averages and grade distribution of persisted metrics in a saga."""

    saga_id: SagaId
    average_completeness: float = 0.0
    average_consistency: float = 0.0
    average_overall: float = 0.0
    distribution: dict[str, int] = Field(default_factory=lambda: {"A": 0, "B": 0, "C": 0, "D": 0})
    total: NonNegativeInt = 0


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchResult(BaseModel):
    """A fragment paired with its cosine similarity to the query."""

    fragment: ContentFragment
    similarity: Similarity


# ---------------------------------------------------------------------------
# Embedding maintenance
# ---------------------------------------------------------------------------


class BulkEmbeddingResult(BaseModel):
    """Outcome of one bulk embedding pass."""

    processed: NonNegativeInt = 0
    failed: NonNegativeInt = 0
    model: str | None = None
