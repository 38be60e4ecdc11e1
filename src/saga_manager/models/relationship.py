"""Directed, typed relationship between two saga entities."""

from datetime import datetime, timezone
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator

from .validators import EntityId, RecordId, RelationshipType, Score

# Strength bands
STRONG_THRESHOLD = 70
WEAK_THRESHOLD = 30


class Relationship(BaseModel):
    """Outgoing edge from ``source_entity_id`` to ``target_entity_id``.

    The target is not guaranteed to exist: entity deletion does not
    cascade, which is what orphan detection looks for. Self-references
    are representable so that stored data can be analysed as-is.
    """

    id: RecordId | None = None
    source_entity_id: EntityId
    target_entity_id: EntityId
    type: RelationshipType
    strength: Score = 50
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_validity_period(self) -> Self:
        if self.valid_from is not None and self.valid_until is not None and self.valid_until < self.valid_from:
            raise ValueError("valid_until cannot be before valid_from")
        return self

    @property
    def signature(self) -> tuple[int, str]:
        """(target, type) pair used to spot duplicate edges."""
        return (self.target_entity_id, self.type)

    def is_strong(self) -> bool:
        return self.strength >= STRONG_THRESHOLD

    def is_weak(self) -> bool:
        return self.strength <= WEAK_THRESHOLD

    def is_moderate(self) -> bool:
        return WEAK_THRESHOLD < self.strength < STRONG_THRESHOLD

    def has_temporal_bounds(self) -> bool:
        return self.valid_from is not None or self.valid_until is not None

    def is_currently_valid(self, as_of: datetime | None = None) -> bool:
        """Check whether ``as_of`` (default: now) falls inside the validity interval."""
        as_of = as_of or datetime.now(timezone.utc)
        if self.valid_from is not None and as_of < self.valid_from:
            return False
        if self.valid_until is not None and as_of > self.valid_until:
            return False
        return True

    def involves(self, entity_id: int) -> bool:
        return entity_id in (self.source_entity_id, self.target_entity_id)

    def metadata_value(self, key: str, default: Any = None) -> Any:
        return (self.metadata or {}).get(key, default)
