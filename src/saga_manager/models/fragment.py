"""Content fragment model: a unit of entity text, optionally embedded."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, Field, field_validator, model_validator

from .validators import EntityId, NonNegativeInt, RecordId

if TYPE_CHECKING:
    from ..embedding.vector import EmbeddingVector

MAX_FRAGMENT_LENGTH = 65_535
# Rough estimate: ~4 characters per token
CHARS_PER_TOKEN = 4


def estimate_token_count(text: str) -> int:
    """Estimate the token count of *text*, capped at the column maximum."""
    return min(math.ceil(len(text) / CHARS_PER_TOKEN), MAX_FRAGMENT_LENGTH)


class ContentFragment(BaseModel):
    """Free text attached to an entity.

    ``embedding`` holds the encoded vector bytes exactly as stored; it is
    parsed lazily so one corrupt row cannot break loading a whole page.
    """

    id: RecordId | None = None
    entity_id: EntityId
    text: str = Field(max_length=MAX_FRAGMENT_LENGTH)
    token_count: NonNegativeInt | None = None
    embedding: bytes | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Fragment text cannot be empty")
        return v

    @model_validator(mode="after")
    def fill_token_count(self) -> Self:
        if self.token_count is None:
            self.token_count = estimate_token_count(self.text)
        return self

    def has_embedding(self) -> bool:
        return self.embedding is not None

    def set_embedding(self, vector: EmbeddingVector) -> None:
        self.embedding = vector.to_binary()

    def clear_embedding(self) -> None:
        self.embedding = None

    def update_text(self, text: str) -> None:
        """Replace the text; the old embedding no longer describes it and is dropped."""
        if len(text) > MAX_FRAGMENT_LENGTH:
            raise ValueError(f"Fragment text exceeds maximum length of {MAX_FRAGMENT_LENGTH} characters")
        self.text = self.text_not_blank(text)
        self.token_count = estimate_token_count(text)
        self.embedding = None

    def preview(self, max_length: int = 100) -> str:
        if len(self.text) <= max_length:
            return self.text
        return self.text[: max_length - 3] + "..."

    def contains(self, term: str) -> bool:
        return term.lower() in self.text.lower()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "fragment_text": self.text,
            "preview": self.preview(),
            "has_embedding": self.has_embedding(),
            "token_count": self.token_count,
            "created_at": self.created_at.isoformat(),
        }
