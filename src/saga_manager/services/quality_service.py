"""
Quality metrics aggregation.

Selects entities due for (re)analysis, runs the completeness and
consistency analyzers, and upserts one QualityMetrics row per entity.
Batch recomputation isolates per-entity failures into counters so one
bad entity never aborts the batch; only wholesale precondition
violations (bad saga id, bad limit, vetoing pre-hook) raise.
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from ..analysis.completeness import CompletenessAnalyzer
from ..analysis.consistency import RelationshipGraphAnalyzer
from ..config import QualitySettings
from ..exceptions import NotFoundError, PersistenceError, ValidationError
from ..hooks import HookRegistry, MetricsSavedEvent, RecomputeCompletedEvent, RecomputeRequest
from ..models.quality import GOOD_SCORE, QualityMetrics, score_grade
from ..models.responses import RecomputeResult, SagaQualityOverview
from ..models.validators import dedupe_ordered
from ..storage.base import EntityStore, FragmentStore, QualityMetricsStore, RelationshipStore, TimelineStore
from ..utils.locks import EntityLockRegistry

logger = logging.getLogger(__name__)


def _require_positive(value: int | None, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer, got {value!r}")


class QualityMetricsAggregator:
    """
    Drives both analyzers per entity and persists the merged result.

    Writes are serialised per entity id through an EntityLockRegistry, so
    concurrent recomputes of the same entity run analysis + save one after
    the other. Share one registry between aggregators that write to the
    same metrics store.
    """

    def __init__(
        self,
        metrics: QualityMetricsStore,
        entities: EntityStore,
        relationships: RelationshipStore,
        fragments: FragmentStore,
        timeline: TimelineStore,
        settings: QualitySettings | None = None,
        hooks: HookRegistry | None = None,
        locks: EntityLockRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.metrics = metrics
        self.entities = entities
        self.settings = settings or QualitySettings()
        self._hooks = hooks or HookRegistry()
        self._locks = locks or EntityLockRegistry()
        self._clock = clock
        self._completeness = CompletenessAnalyzer(fragments, relationships, timeline)
        self._consistency = RelationshipGraphAnalyzer(relationships, entities)

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def _analyze(self, entity_id: int) -> QualityMetrics:
        completeness = await self._completeness.analyze(entity_id)
        consistency = await self._consistency.analyze(entity_id)
        return QualityMetrics(
            entity_id=entity_id,
            completeness_score=completeness.score,
            consistency_score=consistency.score,
            issues=dedupe_ordered([*completeness.issues, *consistency.issues]),
            last_verified=datetime.fromtimestamp(self._clock(), timezone.utc),
        )

    async def analyze_entity(self, entity_id: int) -> QualityMetrics:
        """Analyse one entity without persisting anything.

        Raises:
            ValidationError: entity_id is not a positive integer
            NotFoundError: the entity does not exist
        """
        _require_positive(entity_id, "entity_id")
        if await self.entities.find_by_id(entity_id) is None:
            raise NotFoundError("Entity", entity_id)
        return await self._analyze(entity_id)

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    async def _select_work(self, saga_id: int, entity_id: int | None, limit: int) -> list[int]:
        if entity_id is not None:
            return [entity_id]
        return await self.metrics.find_needing_verification(saga_id, self.settings.staleness_seconds, limit)

    async def recompute(
        self,
        saga_id: int,
        entity_id: int | None = None,
        limit: int | None = None,
        deadline: float | None = None,
    ) -> RecomputeResult:
        """
        Recompute and persist quality metrics.

        Args:
            saga_id: Saga whose entities are analysed
            entity_id: Analyse only this entity; otherwise pick stale ones
            limit: Maximum entities per batch (default: settings.batch_limit)
            deadline: ``time.monotonic()`` value after which no new entity
                is started; already-written metrics stay in place

        Returns:
            RecomputeResult with processed/updated/failed/skipped counts.
            Entities that no longer exist are skipped, not failed.

        Raises:
            ValidationError: saga_id, entity_id or limit are invalid
            HookValidationError: a pre_recompute hook vetoed the batch
        """
        _require_positive(saga_id, "saga_id")
        if entity_id is not None:
            _require_positive(entity_id, "entity_id")
        limit = self.settings.batch_limit if limit is None else limit
        _require_positive(limit, "limit")

        await self._hooks.fire_pre(
            "pre_recompute", RecomputeRequest(saga_id=saga_id, entity_id=entity_id, limit=limit)
        )

        work = await self._select_work(saga_id, entity_id, limit)
        result = RecomputeResult()
        logger.info(f"Recomputing quality metrics for saga {saga_id}: {len(work)} entities queued")

        for current_id in work:
            if deadline is not None and time.monotonic() >= deadline:
                result.deadline_exceeded = True
                logger.warning(
                    f"Recompute deadline reached for saga {saga_id} after {result.processed} entities; "
                    f"{len(work) - result.processed - result.skipped} left for the next run"
                )
                break
            await self._recompute_one(current_id, result)

        logger.info(
            f"Quality recompute for saga {saga_id} done: processed={result.processed} "
            f"updated={result.updated} failed={result.failed} skipped={result.skipped}"
        )
        await self._hooks.fire_post(
            "post_recompute", RecomputeCompletedEvent(saga_id=saga_id, **result.model_dump())
        )
        return result

    async def _recompute_one(self, entity_id: int, result: RecomputeResult) -> None:
        async with self._locks.hold(entity_id):
            try:
                entity = await self.entities.find_by_id(entity_id)
            except Exception as e:
                result.processed += 1
                result.failed += 1
                logger.error(f"Entity lookup failed for {entity_id}: {e.__class__.__name__}: {e}")
                return

            if entity is None:
                # Deleted between selection and analysis; nothing to score
                result.skipped += 1
                logger.debug(f"Entity {entity_id} no longer exists, skipping")
                return

            result.processed += 1
            try:
                metrics = await self._analyze(entity_id)
                await self._save(metrics)
            except Exception as e:
                result.failed += 1
                logger.error(f"Quality recompute failed for entity {entity_id}: {e}")
                return

            result.updated += 1

        await self._hooks.fire_post(
            "post_metrics_saved",
            MetricsSavedEvent(
                entity_id=metrics.entity_id,
                completeness_score=metrics.completeness_score,
                consistency_score=metrics.consistency_score,
                issues=list(metrics.issues),
            ),
        )

    async def _save(self, metrics: QualityMetrics) -> None:
        try:
            await self.metrics.save(metrics)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"saving quality metrics for entity {metrics.entity_id}", e) from e

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_metrics(self, entity_id: int) -> QualityMetrics:
        """Persisted metrics for an entity; raises NotFoundError if never computed."""
        _require_positive(entity_id, "entity_id")
        metrics = await self.metrics.find_by_entity(entity_id)
        if metrics is None:
            raise NotFoundError("QualityMetrics", entity_id)
        return metrics

    async def saga_overview(self, saga_id: int) -> SagaQualityOverview:
        """Average scores and grade distribution across a saga's metrics."""
        _require_positive(saga_id, "saga_id")
        rows = await self.metrics.find_by_saga(saga_id)
        overview = SagaQualityOverview(saga_id=saga_id, total=len(rows))
        if not rows:
            return overview

        count = len(rows)
        overview.average_completeness = round(sum(m.completeness_score for m in rows) / count, 1)
        overview.average_consistency = round(sum(m.consistency_score for m in rows) / count, 1)
        overview.average_overall = round(
            sum(m.completeness_score + m.consistency_score for m in rows) / (2 * count), 1
        )
        for m in rows:
            overview.distribution[score_grade(m.overall_score)] += 1
        return overview

    async def find_below_threshold(
        self, saga_id: int, threshold: int = GOOD_SCORE, limit: int = 100
    ) -> list[QualityMetrics]:
        """Metrics whose overall score is under *threshold*, worst first."""
        _require_positive(saga_id, "saga_id")
        _require_positive(limit, "limit")
        if not 0 <= threshold <= 100:
            raise ValidationError(f"threshold must be within 0-100, got {threshold}")
        rows = [m for m in await self.metrics.find_by_saga(saga_id) if m.overall_score < threshold]
        rows.sort(key=lambda m: (m.completeness_score + m.consistency_score, m.entity_id))
        return rows[:limit]

    async def find_with_issues(self, saga_id: int, limit: int = 20, offset: int = 0) -> list[QualityMetrics]:
        """Page through metrics that carry at least one issue, most issues first."""
        _require_positive(saga_id, "saga_id")
        _require_positive(limit, "limit")
        if offset < 0:
            raise ValidationError(f"offset must not be negative, got {offset}")
        rows = [m for m in await self.metrics.find_by_saga(saga_id) if m.issues]
        rows.sort(key=lambda m: (-len(m.issues), m.entity_id))
        return rows[offset : offset + limit]
