"""Timeline event model."""

from pydantic import BaseModel, Field

from .validators import EntityId, RecordId, SagaId


class TimelineEvent(BaseModel):
    """A dated event in a saga's canon, linked to the entities it involves."""

    id: RecordId | None = None
    saga_id: SagaId
    event_entity_id: EntityId | None = None
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    # In-universe date as written ("10,191 AG"), plus a sortable projection
    canon_date: str = Field(min_length=1, max_length=100)
    normalized_timestamp: int
    participants: list[EntityId] = Field(default_factory=list)
    locations: list[EntityId] = Field(default_factory=list)

    def involves(self, entity_id: int) -> bool:
        return (
            self.event_entity_id == entity_id
            or entity_id in self.participants
            or entity_id in self.locations
        )
