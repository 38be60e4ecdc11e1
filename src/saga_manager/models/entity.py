"""Saga entity model."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .validators import EmbeddingHash, EntityId, SagaId, Score, Slug


class EntityType(str, Enum):
    """Closed set of entity kinds a saga may contain."""

    CHARACTER = "character"
    LOCATION = "location"
    EVENT = "event"
    FACTION = "faction"
    ARTIFACT = "artifact"
    CONCEPT = "concept"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity(BaseModel):
    """A typed node within a saga."""

    model_config = ConfigDict(populate_by_name=True)

    id: EntityId | None = None
    saga_id: SagaId
    type: EntityType
    canonical_name: str = Field(min_length=1, max_length=255)
    slug: Slug
    importance_score: Score = 50
    embedding_hash: EmbeddingHash | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
