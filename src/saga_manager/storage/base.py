"""
Storage ports consumed by the quality engine and semantic search.

Each store is an abstract async interface; concrete adapters (database,
in-memory) are injected into the services that need them. Optional
lookups return ``None`` rather than raising.
"""

from abc import ABC, abstractmethod

from ..models.entity import Entity
from ..models.fragment import ContentFragment
from ..models.quality import QualityMetrics
from ..models.relationship import Relationship
from ..models.timeline import TimelineEvent


class EntityStore(ABC):
    """Read access to saga entities."""

    @abstractmethod
    async def find_by_id(self, entity_id: int) -> Entity | None:
        """Return the entity or None when it does not exist."""

    @abstractmethod
    async def exists(self, entity_id: int) -> bool:
        """Cheap existence check used by orphan detection."""

    @abstractmethod
    async def find_by_saga(self, saga_id: int) -> list[Entity]:
        """All entities of a saga, ascending by id."""


class RelationshipStore(ABC):
    """Read access to the relationship graph."""

    @abstractmethod
    async def find_by_source(self, entity_id: int) -> list[Relationship]:
        """Outgoing relationships of *entity_id*.

        Order must be stable across calls within one analysis run.
        """


class FragmentStore(ABC):
    """Content fragments and their stored embeddings."""

    @abstractmethod
    async def find_by_id(self, fragment_id: int) -> ContentFragment | None:
        """Return the fragment or None."""

    @abstractmethod
    async def find_by_entity(self, entity_id: int) -> list[ContentFragment]:
        """All fragments attached to an entity."""

    @abstractmethod
    async def find_without_embedding(self, limit: int) -> list[ContentFragment]:
        """Up to *limit* fragments that still lack an embedding, ascending by id."""

    @abstractmethod
    async def find_with_embedding(self, limit: int) -> list[ContentFragment]:
        """Up to *limit* fragments that carry an embedding, ascending by id."""

    @abstractmethod
    async def count_without_embedding(self) -> int:
        """Size of the embedding backlog."""

    @abstractmethod
    async def save(self, fragment: ContentFragment) -> ContentFragment:
        """Insert or update a fragment; returns it with its id assigned."""

    @abstractmethod
    async def save_many(self, fragments: list[ContentFragment]) -> list[ContentFragment]:
        """Persist several fragments in one round trip."""


class TimelineStore(ABC):
    """Read access to timeline events."""

    @abstractmethod
    async def find_by_entity(self, entity_id: int) -> list[TimelineEvent]:
        """Events the entity takes part in (as event, participant or location)."""


class QualityMetricsStore(ABC):
    """One upserted metrics row per entity."""

    @abstractmethod
    async def find_by_entity(self, entity_id: int) -> QualityMetrics | None:
        """Return the entity's metrics or None if never computed."""

    @abstractmethod
    async def find_needing_verification(self, saga_id: int, staleness_seconds: int, limit: int) -> list[int]:
        """Entity ids of the saga with absent or stale metrics.

        Never-verified entities come first, then oldest ``last_verified``;
        ties break on ascending entity id.
        """

    @abstractmethod
    async def find_by_saga(self, saga_id: int) -> list[QualityMetrics]:
        """All persisted metrics for entities of a saga."""

    @abstractmethod
    async def save(self, metrics: QualityMetrics) -> None:
        """Upsert by entity id."""
