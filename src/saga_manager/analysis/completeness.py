"""Completeness analysis: does the entity have the content it should?"""

import logging

from ..models.quality import IssueCode
from ..storage.base import FragmentStore, RelationshipStore, TimelineStore
from .result import AnalysisResult, ScoreSheet

logger = logging.getLogger(__name__)

MISSING_FRAGMENTS_PENALTY = 20
NO_EMBEDDING_PENALTY = 10
MISSING_RELATIONSHIPS_PENALTY = 15
MISSING_TIMELINE_PENALTY = 10


class CompletenessAnalyzer:
    """Checks fragments, embeddings, outgoing relationships and timeline presence.

    NO_EMBEDDING is only evaluated when fragments exist, so it never
    appears together with MISSING_FRAGMENTS.
    """

    def __init__(
        self,
        fragments: FragmentStore,
        relationships: RelationshipStore,
        timeline: TimelineStore,
    ):
        self._fragments = fragments
        self._relationships = relationships
        self._timeline = timeline

    async def analyze(self, entity_id: int) -> AnalysisResult:
        sheet = ScoreSheet()

        fragments = await self._fragments.find_by_entity(entity_id)
        if not fragments:
            sheet.penalize(IssueCode.MISSING_FRAGMENTS, MISSING_FRAGMENTS_PENALTY)
        elif not any(f.has_embedding() for f in fragments):
            sheet.penalize(IssueCode.NO_EMBEDDING, NO_EMBEDDING_PENALTY)

        if not await self._relationships.find_by_source(entity_id):
            sheet.penalize(IssueCode.MISSING_RELATIONSHIPS, MISSING_RELATIONSHIPS_PENALTY)

        if not await self._timeline.find_by_entity(entity_id):
            sheet.penalize(IssueCode.MISSING_TIMELINE, MISSING_TIMELINE_PENALTY)

        return sheet.result()
