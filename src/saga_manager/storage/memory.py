"""
In-memory implementations of the storage ports.

Dict-backed, single-process adapters. They hand out deep copies so
callers cannot mutate stored state behind the store's back, which keeps
them faithful stand-ins for a real database in tests and small tools.
"""

import logging
import time
from collections.abc import Callable, Iterable

from ..models.entity import Entity
from ..models.fragment import ContentFragment
from ..models.quality import QualityMetrics
from ..models.relationship import Relationship
from ..models.timeline import TimelineEvent
from .base import EntityStore, FragmentStore, QualityMetricsStore, RelationshipStore, TimelineStore

logger = logging.getLogger(__name__)


class InMemoryEntityStore(EntityStore):
    def __init__(self, entities: Iterable[Entity] = ()):
        self._entities: dict[int, Entity] = {}
        self._next_id = 1
        for entity in entities:
            self.add(entity)

    def add(self, entity: Entity) -> Entity:
        if entity.id is None:
            entity = entity.model_copy(update={"id": self._next_id})
        self._entities[entity.id] = entity.model_copy(deep=True)
        self._next_id = max(self._next_id, entity.id + 1)
        return entity

    def delete(self, entity_id: int) -> None:
        """Remove an entity without cascading, like the production schema."""
        self._entities.pop(entity_id, None)

    async def find_by_id(self, entity_id: int) -> Entity | None:
        entity = self._entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    async def exists(self, entity_id: int) -> bool:
        return entity_id in self._entities

    async def find_by_saga(self, saga_id: int) -> list[Entity]:
        return [
            e.model_copy(deep=True)
            for _, e in sorted(self._entities.items())
            if e.saga_id == saga_id
        ]


class InMemoryRelationshipStore(RelationshipStore):
    def __init__(self, relationships: Iterable[Relationship] = ()):
        self._relationships: list[Relationship] = []
        self._next_id = 1
        for relationship in relationships:
            self.add(relationship)

    def add(self, relationship: Relationship) -> Relationship:
        if relationship.id is None:
            relationship = relationship.model_copy(update={"id": self._next_id})
        self._relationships.append(relationship.model_copy(deep=True))
        self._next_id = max(self._next_id, relationship.id + 1)
        return relationship

    async def find_by_source(self, entity_id: int) -> list[Relationship]:
        # Insertion order is the stable order
        return [r.model_copy(deep=True) for r in self._relationships if r.source_entity_id == entity_id]


class InMemoryFragmentStore(FragmentStore):
    def __init__(self, fragments: Iterable[ContentFragment] = ()):
        self._fragments: dict[int, ContentFragment] = {}
        self._next_id = 1
        for fragment in fragments:
            self._put(fragment)

    def _put(self, fragment: ContentFragment) -> ContentFragment:
        if fragment.id is None:
            fragment = fragment.model_copy(update={"id": self._next_id})
        self._fragments[fragment.id] = fragment.model_copy(deep=True)
        self._next_id = max(self._next_id, fragment.id + 1)
        return fragment

    def _ordered(self) -> list[ContentFragment]:
        return [f for _, f in sorted(self._fragments.items())]

    async def find_by_id(self, fragment_id: int) -> ContentFragment | None:
        fragment = self._fragments.get(fragment_id)
        return fragment.model_copy(deep=True) if fragment else None

    async def find_by_entity(self, entity_id: int) -> list[ContentFragment]:
        return [f.model_copy(deep=True) for f in self._ordered() if f.entity_id == entity_id]

    async def find_without_embedding(self, limit: int) -> list[ContentFragment]:
        pending = [f for f in self._ordered() if not f.has_embedding()]
        return [f.model_copy(deep=True) for f in pending[:limit]]

    async def find_with_embedding(self, limit: int) -> list[ContentFragment]:
        embedded = [f for f in self._ordered() if f.has_embedding()]
        return [f.model_copy(deep=True) for f in embedded[:limit]]

    async def count_without_embedding(self) -> int:
        return sum(1 for f in self._fragments.values() if not f.has_embedding())

    async def save(self, fragment: ContentFragment) -> ContentFragment:
        return self._put(fragment)

    async def save_many(self, fragments: list[ContentFragment]) -> list[ContentFragment]:
        return [self._put(f) for f in fragments]


class InMemoryTimelineStore(TimelineStore):
    def __init__(self, events: Iterable[TimelineEvent] = ()):
        self._events: list[TimelineEvent] = [e.model_copy(deep=True) for e in events]

    def add(self, event: TimelineEvent) -> None:
        self._events.append(event.model_copy(deep=True))

    async def find_by_entity(self, entity_id: int) -> list[TimelineEvent]:
        matches = [e for e in self._events if e.involves(entity_id)]
        return [e.model_copy(deep=True) for e in sorted(matches, key=lambda e: e.normalized_timestamp)]


class InMemoryQualityMetricsStore(QualityMetricsStore):
    """Metrics keyed by entity id; saga membership is resolved through *entities*."""

    def __init__(self, entities: InMemoryEntityStore, clock: Callable[[], float] = time.time):
        self._entities = entities
        self._clock = clock
        self._metrics: dict[int, QualityMetrics] = {}

    async def find_by_entity(self, entity_id: int) -> QualityMetrics | None:
        metrics = self._metrics.get(entity_id)
        return metrics.model_copy(deep=True) if metrics else None

    async def find_needing_verification(self, saga_id: int, staleness_seconds: int, limit: int) -> list[int]:
        cutoff = self._clock() - staleness_seconds
        due: list[tuple[float, int]] = []
        for entity in await self._entities.find_by_saga(saga_id):
            metrics = self._metrics.get(entity.id)
            if metrics is None:
                # Never verified sorts ahead of any timestamp
                due.append((float("-inf"), entity.id))
                continue
            verified_at = metrics.last_verified.timestamp()
            if verified_at < cutoff:
                due.append((verified_at, entity.id))
        due.sort()
        return [entity_id for _, entity_id in due[:limit]]

    async def find_by_saga(self, saga_id: int) -> list[QualityMetrics]:
        entity_ids = [e.id for e in await self._entities.find_by_saga(saga_id)]
        return [self._metrics[i].model_copy(deep=True) for i in entity_ids if i in self._metrics]

    async def save(self, metrics: QualityMetrics) -> None:
        self._metrics[metrics.entity_id] = metrics.model_copy(deep=True)
