"""Shared Pydantic types and validators for reuse across models.

Centralises id constraints, range-limited scores and ordered
de-duplication so every model speaks the same language.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator, Field

# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

EntityId = Annotated[int, Field(gt=0)]
"""Positive entity identifier."""

SagaId = Annotated[int, Field(gt=0)]
"""Positive saga identifier."""

RecordId = Annotated[int, Field(gt=0)]
"""Positive identifier for fragments, relationships, timeline events."""


# ---------------------------------------------------------------------------
# Numeric types
# ---------------------------------------------------------------------------

Score = Annotated[int, Field(ge=0, le=100)]
"""Integer in [0, 100]: quality scores, importance, relationship strength."""

NonNegativeInt = Annotated[int, Field(ge=0)]
"""Integer ≥ 0, for counts."""

Similarity = Annotated[float, Field(ge=-1.0, le=1.0)]
"""Cosine similarity in [-1.0, 1.0]."""


# ---------------------------------------------------------------------------
# String constraints
# ---------------------------------------------------------------------------

Slug = Annotated[str, Field(min_length=1, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")]
"""URL-safe lowercase slug."""

RelationshipType = Annotated[str, Field(min_length=1, max_length=50)]
"""Free-form relationship type label."""

EmbeddingHash = Annotated[str, Field(pattern=r"^[0-9a-f]{64}$")]
"""SHA-256 hex digest of the embedded text."""


# ---------------------------------------------------------------------------
# Ordered de-duplication
# ---------------------------------------------------------------------------


def dedupe_ordered(v: Any) -> list[Any]:
    """Drop repeated values while keeping first-seen order.

    * ``["a", "b", "a"]`` → ``["a", "b"]``
    * ``None`` → ``[]``
    """
    if v is None:
        return []
    seen: set[Any] = set()
    result = []
    for item in v:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


UniqueList = BeforeValidator(dedupe_ordered)
"""Attach to a ``list[...]`` annotation to make it order-stable and duplicate-free."""
