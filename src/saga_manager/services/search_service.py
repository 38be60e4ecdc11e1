"""
Semantic search over embedded content fragments.

Brute-force cosine scan: the query is embedded once, then compared with
every candidate fragment. Candidates are either all fragments of one
entity or a bounded page of ``limit * candidate_multiplier`` embedded
fragments. There is no vector index, so cost is O(candidates) per query.
"""

import logging

from ..config import SearchSettings
from ..embedding.service import EmbeddingService
from ..embedding.vector import EmbeddingVector
from ..exceptions import DimensionMismatch, ValidationError
from ..hooks import HookRegistry, SearchEvent
from ..models.fragment import ContentFragment
from ..models.responses import SearchResult
from ..storage.base import FragmentStore

logger = logging.getLogger(__name__)


class SemanticSearchEngine:
    """Embeds a query and ranks fragments by cosine similarity."""

    def __init__(
        self,
        fragments: FragmentStore,
        embeddings: EmbeddingService,
        settings: SearchSettings | None = None,
        hooks: HookRegistry | None = None,
    ):
        self.fragments = fragments
        self.embeddings = embeddings
        self.settings = settings or SearchSettings()
        self._hooks = hooks or HookRegistry()

    async def _candidates(self, entity_id: int | None, limit: int) -> list[ContentFragment]:
        if entity_id is not None:
            return await self.fragments.find_by_entity(entity_id)
        return await self.fragments.find_with_embedding(limit * self.settings.candidate_multiplier)

    async def search(
        self,
        query_text: str,
        entity_id: int | None = None,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SearchResult]:
        """
        Find fragments semantically similar to *query_text*.

        Args:
            query_text: Free-text query
            entity_id: Restrict the scan to this entity's fragments
            limit: Maximum results (default: settings.default_limit)
            min_similarity: Similarity floor in [-1, 1] (default: settings.min_similarity)

        Returns:
            Results sorted by similarity descending, ties by ascending fragment id

        Raises:
            ValidationError: empty query or out-of-range parameters
            ServiceError: the query could not be embedded
        """
        if not query_text or not query_text.strip():
            raise ValidationError("Search query must not be empty")
        limit = self.settings.default_limit if limit is None else limit
        if limit < 1:
            raise ValidationError(f"limit must be at least 1, got {limit}")
        min_similarity = self.settings.min_similarity if min_similarity is None else min_similarity
        if not -1.0 <= min_similarity <= 1.0:
            raise ValidationError(f"min_similarity must be within [-1, 1], got {min_similarity}")
        if entity_id is not None and entity_id <= 0:
            raise ValidationError(f"entity_id must be positive, got {entity_id}")

        query_vector = await self.embeddings.embed(query_text)
        candidates = await self._candidates(entity_id, limit)

        scored: list[SearchResult] = []
        skipped = 0
        for fragment in candidates:
            similarity = self._score(query_vector, fragment)
            if similarity is None:
                skipped += 1
                continue
            if similarity >= min_similarity:
                scored.append(SearchResult(fragment=fragment, similarity=similarity))

        # Unstored fragments have no id; order them after stored ones
        scored.sort(key=lambda r: (-r.similarity, r.fragment.id if r.fragment.id is not None else float("inf")))
        results = scored[:limit]

        if skipped:
            logger.debug(f"Search skipped {skipped} of {len(candidates)} candidates without a usable embedding")
        await self._hooks.fire_post(
            "post_search",
            SearchEvent(
                query=query_text,
                entity_id=entity_id,
                result_fragment_ids=[r.fragment.id for r in results if r.fragment.id is not None],
                result_count=len(results),
                candidates_scanned=len(candidates),
            ),
        )
        return results

    @staticmethod
    def _score(query_vector: EmbeddingVector, fragment: ContentFragment) -> float | None:
        """Similarity of one fragment, or None when it cannot be compared."""
        vector = EmbeddingVector.parse(fragment.embedding)
        if vector is None:
            return None
        try:
            return query_vector.cosine_similarity(vector)
        except DimensionMismatch as e:
            logger.debug(f"Fragment {fragment.id} embedding not comparable: {e}")
            return None
