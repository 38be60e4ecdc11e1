"""Storage ports and reference in-memory adapters."""

from .base import EntityStore, FragmentStore, QualityMetricsStore, RelationshipStore, TimelineStore
from .memory import (
    InMemoryEntityStore,
    InMemoryFragmentStore,
    InMemoryQualityMetricsStore,
    InMemoryRelationshipStore,
    InMemoryTimelineStore,
)

__all__ = [
    "EntityStore",
    "FragmentStore",
    "InMemoryEntityStore",
    "InMemoryFragmentStore",
    "InMemoryQualityMetricsStore",
    "InMemoryRelationshipStore",
    "InMemoryTimelineStore",
    "QualityMetricsStore",
    "RelationshipStore",
    "TimelineStore",
]
