"""Analyzer output shared by completeness and consistency checks."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..models.quality import IssueCode, clamp_score
from ..models.validators import dedupe_ordered


@dataclass(frozen=True)
class AnalysisResult:
    """Score in [0, 100] plus issues in first-detected order, no repeats."""

    score: int
    issues: tuple[IssueCode, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "score", clamp_score(self.score))
        object.__setattr__(self, "issues", tuple(dedupe_ordered(self.issues)))


class ScoreSheet:
    """Running tally: start at 100, subtract penalties, record each issue once."""

    def __init__(self, start: int = 100) -> None:
        self._score = start
        self._issues: list[IssueCode] = []

    def penalize(self, issue: IssueCode, penalty: int) -> None:
        if issue in self._issues:
            return
        self._score -= penalty
        self._issues.append(issue)

    def result(self) -> AnalysisResult:
        return AnalysisResult(score=self._score, issues=tuple(self._issues))
