"""Quality aggregation, semantic search and embedding maintenance services."""

from .embedding_maintenance import EmbeddingBackfillService
from .quality_service import QualityMetricsAggregator
from .search_service import SemanticSearchEngine

__all__ = ["EmbeddingBackfillService", "QualityMetricsAggregator", "SemanticSearchEngine"]
