"""
Relationship graph consistency analysis.

Scores one entity's outgoing relationships for three structural defects,
starting from 100 and subtracting a fixed penalty per defect kind:

    ORPHAN_RELATIONSHIP     -20  a target entity no longer exists
    CIRCULAR_RELATIONSHIP   -15  A -> A, or A -> B -> A
    DUPLICATE_RELATIONSHIP  -10  two edges share (target, type)

Each defect kind is penalised at most once no matter how many edges
exhibit it.

Cycle detection is deliberately bounded to depth 2: only self-loops and
direct back-edges are found. A -> B -> C -> A goes undetected. Deeper
traversal would cost one store round trip per hop per edge, and the
check runs for every entity in a recompute batch.
"""

import logging

from ..models.quality import IssueCode
from ..models.relationship import Relationship
from ..storage.base import EntityStore, RelationshipStore
from .result import AnalysisResult, ScoreSheet

logger = logging.getLogger(__name__)

ORPHAN_PENALTY = 20
CIRCULAR_PENALTY = 15
DUPLICATE_PENALTY = 10

# Self-loop is depth 1, back-edge through one neighbour is depth 2
MAX_CYCLE_DEPTH = 2


class RelationshipGraphAnalyzer:
    """Detects orphan, circular and duplicate relationships for one entity."""

    def __init__(self, relationships: RelationshipStore, entities: EntityStore):
        self._relationships = relationships
        self._entities = entities

    async def analyze(self, entity_id: int) -> AnalysisResult:
        outgoing = await self._relationships.find_by_source(entity_id)
        sheet = ScoreSheet()

        if await self._has_orphan(outgoing):
            sheet.penalize(IssueCode.ORPHAN_RELATIONSHIP, ORPHAN_PENALTY)

        if await self._has_short_cycle(entity_id, outgoing):
            sheet.penalize(IssueCode.CIRCULAR_RELATIONSHIP, CIRCULAR_PENALTY)

        if self._has_duplicate(outgoing):
            sheet.penalize(IssueCode.DUPLICATE_RELATIONSHIP, DUPLICATE_PENALTY)

        result = sheet.result()
        if result.issues:
            logger.debug(
                "Entity %s consistency %d: %s",
                entity_id,
                result.score,
                [issue.value for issue in result.issues],
            )
        return result

    async def _has_orphan(self, outgoing: list[Relationship]) -> bool:
        for relationship in outgoing:
            if not await self._entities.exists(relationship.target_entity_id):
                return True
        return False

    async def _has_short_cycle(self, entity_id: int, outgoing: list[Relationship]) -> bool:
        # Duplicate edges share a target; fetch each neighbour's edges once
        checked: set[int] = set()
        for relationship in outgoing:
            target_id = relationship.target_entity_id
            if target_id == entity_id:
                return True
            if target_id in checked:
                continue
            checked.add(target_id)

            second_level = await self._relationships.find_by_source(target_id)
            if any(r.target_entity_id == entity_id for r in second_level):
                return True
        return False

    @staticmethod
    def _has_duplicate(outgoing: list[Relationship]) -> bool:
        signatures: set[tuple[int, str]] = set()
        for relationship in outgoing:
            if relationship.signature in signatures:
                return True
            signatures.add(relationship.signature)
        return False
