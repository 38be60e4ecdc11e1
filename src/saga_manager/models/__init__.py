"""Domain models for sagas, entities, fragments and quality metrics."""

from .entity import Entity, EntityType
from .fragment import ContentFragment
from .quality import IssueCode, QualityMetrics
from .relationship import Relationship
from .responses import BulkEmbeddingResult, RecomputeResult, SagaQualityOverview, SearchResult
from .timeline import TimelineEvent

__all__ = [
    "BulkEmbeddingResult",
    "ContentFragment",
    "Entity",
    "EntityType",
    "IssueCode",
    "QualityMetrics",
    "RecomputeResult",
    "Relationship",
    "SagaQualityOverview",
    "SearchResult",
    "TimelineEvent",
]
