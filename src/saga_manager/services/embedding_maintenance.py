"""
Bulk embedding generation for fragments that lack one.

All texts of a pass go to the embedding service in ONE ``embed_batch``
call; per-fragment problems (no vector returned, unknown fragment id,
failed write) are counted as ``failed`` and never abort the pass.
"""

import logging

from ..embedding.service import EmbeddingService
from ..exceptions import ValidationError
from ..hooks import EmbeddingsGeneratedEvent, HookRegistry
from ..models.fragment import ContentFragment
from ..models.responses import BulkEmbeddingResult
from ..storage.base import FragmentStore

logger = logging.getLogger(__name__)


class EmbeddingBackfillService:
    """Fills in missing fragment embeddings."""

    def __init__(
        self,
        fragments: FragmentStore,
        embeddings: EmbeddingService,
        hooks: HookRegistry | None = None,
    ):
        self.fragments = fragments
        self.embeddings = embeddings
        self._hooks = hooks or HookRegistry()

    async def pending_count(self) -> int:
        """Number of fragments still waiting for an embedding."""
        return await self.fragments.count_without_embedding()

    async def _load(self, limit: int, fragment_ids: list[int] | None) -> tuple[list[ContentFragment], int]:
        if not fragment_ids:
            return await self.fragments.find_without_embedding(limit), 0

        loaded: list[ContentFragment] = []
        missing = 0
        for fragment_id in fragment_ids:
            fragment = await self.fragments.find_by_id(fragment_id)
            if fragment is None:
                logger.warning(f"Fragment {fragment_id} not found, counting as failed")
                missing += 1
            else:
                loaded.append(fragment)
        return loaded, missing

    async def generate_missing(self, limit: int = 50, fragment_ids: list[int] | None = None) -> BulkEmbeddingResult:
        """
        Embed fragments and store the vectors.

        Args:
            limit: Maximum fragments when picking from the backlog
            fragment_ids: Embed exactly these fragments instead (re-embeds
                even if they already carry a vector)

        Returns:
            BulkEmbeddingResult with processed/failed counts and the model name

        Raises:
            ValidationError: limit is not positive
        """
        if limit < 1:
            raise ValidationError(f"limit must be at least 1, got {limit}")

        fragments, failed = await self._load(limit, fragment_ids)
        result = BulkEmbeddingResult(failed=failed, model=self.embeddings.model_name)
        if not fragments:
            logger.info("No fragments to embed")
            return result

        vectors = await self.embeddings.embed_batch([f.text for f in fragments])

        embedded: list[ContentFragment] = []
        for index, fragment in enumerate(fragments):
            vector = vectors[index] if index < len(vectors) else None
            if vector is None:
                result.failed += 1
                continue
            fragment.set_embedding(vector)
            embedded.append(fragment)

        saved, save_failures = await self._persist(embedded)
        result.processed += saved
        result.failed += save_failures

        logger.info(
            f"Embedding backfill: processed={result.processed} failed={result.failed} model={result.model}"
        )
        await self._hooks.fire_post(
            "post_embeddings_generated",
            EmbeddingsGeneratedEvent(processed=result.processed, failed=result.failed, model=result.model),
        )
        return result

    async def _persist(self, fragments: list[ContentFragment]) -> tuple[int, int]:
        """Write all fragments at once; on failure retry one by one to isolate bad rows."""
        if not fragments:
            return 0, 0
        try:
            await self.fragments.save_many(fragments)
            return len(fragments), 0
        except Exception as e:
            logger.warning(f"Bulk save of {len(fragments)} fragments failed ({e}); retrying individually")

        saved = failed = 0
        for fragment in fragments:
            try:
                await self.fragments.save(fragment)
                saved += 1
            except Exception as e:
                failed += 1
                logger.error(f"Failed to save embedding for fragment {fragment.id}: {e}")
        return saved, failed
