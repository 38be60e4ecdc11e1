"""Quality metrics models.

``QualityMetrics`` is the single persisted row per entity: completeness
and consistency scores plus the issue codes that explain them. It is
overwritten, never appended, on every recompute.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field

from .validators import EntityId, Score, UniqueList

# Score bands shared by grades and the poor-score attention check
EXCELLENT_SCORE = 90
GOOD_SCORE = 70
FAIR_SCORE = 50

CRITICAL_SEVERITY = 4


class IssueCode(str, Enum):
    """Closed set of quality issues the analyzers can report."""

    MISSING_FRAGMENTS = "missing_fragments"
    NO_EMBEDDING = "no_embedding"
    MISSING_RELATIONSHIPS = "missing_relationships"
    MISSING_TIMELINE = "missing_timeline"
    ORPHAN_RELATIONSHIP = "orphan_relationship"
    CIRCULAR_RELATIONSHIP = "circular_relationship"
    DUPLICATE_RELATIONSHIP = "duplicate_relationship"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def severity(self) -> int:
        """Severity 1-5, 5 being the most severe."""
        return _SEVERITIES[self]

    @property
    def category(self) -> str:
        return _CATEGORIES[self]

    @property
    def is_critical(self) -> bool:
        return self.severity >= CRITICAL_SEVERITY

    @classmethod
    def by_category(cls, category: str) -> list[IssueCode]:
        return [code for code in cls if code.category == category]


_LABELS = {
    IssueCode.MISSING_FRAGMENTS: "No content fragments",
    IssueCode.NO_EMBEDDING: "Missing vector embedding",
    IssueCode.MISSING_RELATIONSHIPS: "No relationships defined",
    IssueCode.MISSING_TIMELINE: "Not linked to timeline",
    IssueCode.ORPHAN_RELATIONSHIP: "Orphan relationship reference",
    IssueCode.CIRCULAR_RELATIONSHIP: "Circular relationship detected",
    IssueCode.DUPLICATE_RELATIONSHIP: "Duplicate relationship",
}

_SEVERITIES = {
    IssueCode.MISSING_FRAGMENTS: 2,
    IssueCode.NO_EMBEDDING: 2,
    IssueCode.MISSING_RELATIONSHIPS: 3,
    IssueCode.MISSING_TIMELINE: 3,
    IssueCode.DUPLICATE_RELATIONSHIP: 3,
    IssueCode.ORPHAN_RELATIONSHIP: 4,
    IssueCode.CIRCULAR_RELATIONSHIP: 5,
}

_CATEGORIES = {
    IssueCode.MISSING_RELATIONSHIPS: "completeness",
    IssueCode.MISSING_TIMELINE: "completeness",
    IssueCode.ORPHAN_RELATIONSHIP: "consistency",
    IssueCode.CIRCULAR_RELATIONSHIP: "consistency",
    IssueCode.DUPLICATE_RELATIONSHIP: "consistency",
    IssueCode.MISSING_FRAGMENTS: "content",
    IssueCode.NO_EMBEDDING: "content",
}


def clamp_score(value: int) -> int:
    """Clamp a raw score into [0, 100]."""
    return max(0, min(100, value))


def score_grade(score: int) -> str:
    """Letter grade for a 0-100 score."""
    if score >= EXCELLENT_SCORE:
        return "A"
    if score >= GOOD_SCORE:
        return "B"
    if score >= FAIR_SCORE:
        return "C"
    return "D"


IssueList = Annotated[list[IssueCode], UniqueList]


class QualityMetrics(BaseModel):
    """Persisted completeness/consistency scores for one entity."""

    entity_id: EntityId
    completeness_score: Score
    consistency_score: Score
    issues: IssueList = Field(default_factory=list)
    last_verified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def overall_score(self) -> int:
        """Mean of both scores, halves rounded up."""
        return (self.completeness_score + self.consistency_score + 1) // 2

    @property
    def grade(self) -> str:
        return score_grade(self.overall_score)

    def has_issue(self, issue: IssueCode) -> bool:
        return issue in self.issues

    def has_critical_issues(self) -> bool:
        return any(issue.is_critical for issue in self.issues)

    def passes_threshold(self, min_score: int = GOOD_SCORE) -> bool:
        return self.overall_score >= min_score and not self.has_critical_issues()

    def needs_attention(self) -> bool:
        return bool(self.issues) or self.overall_score < FAIR_SCORE

    def issues_by_category(self, category: str) -> list[IssueCode]:
        return [issue for issue in self.issues if issue.category == category]

    def issue_severity_counts(self) -> dict[int, int]:
        counts = {level: 0 for level in range(1, 6)}
        for issue in self.issues:
            counts[issue.severity] += 1
        return counts

    def is_stale(self, max_age_seconds: int, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_verified.timestamp() > max_age_seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "completeness_score": self.completeness_score,
            "consistency_score": self.consistency_score,
            "overall_score": self.overall_score,
            "overall_grade": self.grade,
            "last_verified": self.last_verified.isoformat(),
            "issues": [
                {
                    "code": issue.value,
                    "label": issue.label,
                    "severity": issue.severity,
                    "category": issue.category,
                    "critical": issue.is_critical,
                }
                for issue in self.issues
            ],
            "has_critical_issues": self.has_critical_issues(),
            "needs_attention": self.needs_attention(),
        }
