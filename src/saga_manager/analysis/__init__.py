"""Per-entity quality analyzers."""

from .completeness import CompletenessAnalyzer
from .consistency import RelationshipGraphAnalyzer
from .result import AnalysisResult

__all__ = ["AnalysisResult", "CompletenessAnalyzer", "RelationshipGraphAnalyzer"]
