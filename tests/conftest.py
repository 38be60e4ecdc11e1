import os
import sys

import pytest

# Keep test runs independent of whatever embedding endpoint the shell points at
os.environ.setdefault("SAGA_EMBEDDING_PROVIDER", "http")

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

from saga_manager.models.entity import Entity, EntityType  # noqa: E402
from saga_manager.storage.memory import (  # noqa: E402
    InMemoryEntityStore,
    InMemoryFragmentStore,
    InMemoryQualityMetricsStore,
    InMemoryRelationshipStore,
    InMemoryTimelineStore,
)


def make_entity(entity_id: int, saga_id: int = 1, name: str | None = None) -> Entity:
    name = name or f"Entity {entity_id}"
    return Entity(
        id=entity_id,
        saga_id=saga_id,
        type=EntityType.CHARACTER,
        canonical_name=name,
        slug=f"entity-{entity_id}",
    )


@pytest.fixture
def entity_store():
    return InMemoryEntityStore()


@pytest.fixture
def relationship_store():
    return InMemoryRelationshipStore()


@pytest.fixture
def fragment_store():
    return InMemoryFragmentStore()


@pytest.fixture
def timeline_store():
    return InMemoryTimelineStore()


@pytest.fixture
def clock():
    """Mutable fake clock: set ``clock.now`` to move time."""

    class _Clock:
        now = 1_700_000_000.0

        def __call__(self) -> float:
            return self.now

    return _Clock()


@pytest.fixture
def metrics_store(entity_store, clock):
    return InMemoryQualityMetricsStore(entity_store, clock=clock)
