"""
Unit tests for QualityMetricsAggregator.

Uses the in-memory stores throughout; failure isolation is exercised
with store subclasses that raise for selected entity ids.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from conftest import make_entity
from saga_manager.config import QualitySettings
from saga_manager.embedding.vector import EmbeddingVector
from saga_manager.exceptions import NotFoundError, ValidationError
from saga_manager.hooks import HookRegistry, HookValidationError
from saga_manager.models.fragment import ContentFragment
from saga_manager.models.quality import IssueCode, QualityMetrics
from saga_manager.models.relationship import Relationship
from saga_manager.models.timeline import TimelineEvent
from saga_manager.services.quality_service import QualityMetricsAggregator
from saga_manager.storage.memory import InMemoryEntityStore, InMemoryQualityMetricsStore
from saga_manager.utils.locks import EntityLockRegistry

BARE_ISSUES = [
    IssueCode.MISSING_FRAGMENTS,
    IssueCode.MISSING_RELATIONSHIPS,
    IssueCode.MISSING_TIMELINE,
]


@pytest.fixture
def saga(entity_store):
    """Saga 1 holds entities 1-3, saga 2 holds entity 4."""
    for i in range(1, 4):
        entity_store.add(make_entity(i))
    entity_store.add(make_entity(4, saga_id=2))
    return entity_store


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def aggregator(metrics_store, saga, relationship_store, fragment_store, timeline_store, hooks, clock):
    return QualityMetricsAggregator(
        metrics_store,
        saga,
        relationship_store,
        fragment_store,
        timeline_store,
        hooks=hooks,
        clock=clock,
    )


def _at(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


async def _make_complete(entity_id, fragment_store, relationship_store, timeline_store, target_id=3):
    fragment = ContentFragment(entity_id=entity_id, text="House Atreides rules Caladan.")
    fragment.set_embedding(EmbeddingVector([0.3, 0.4]))
    await fragment_store.save(fragment)
    relationship_store.add(Relationship(source_entity_id=entity_id, target_entity_id=target_id, type="ally_of"))
    timeline_store.add(
        TimelineEvent(
            saga_id=1,
            title="Departure",
            canon_date="10,191 AG",
            normalized_timestamp=10191,
            participants=[entity_id],
        )
    )


# ---------------------------------------------------------------------------
# analyze_entity
# ---------------------------------------------------------------------------


class TestAnalyzeEntity:
    @pytest.mark.asyncio
    async def test_bare_entity(self, aggregator, metrics_store):
        metrics = await aggregator.analyze_entity(1)
        assert metrics.completeness_score == 55
        assert metrics.consistency_score == 100
        assert metrics.issues == BARE_ISSUES
        # Analysis alone persists nothing
        assert await metrics_store.find_by_entity(1) is None

    @pytest.mark.asyncio
    async def test_complete_entity(self, aggregator, fragment_store, relationship_store, timeline_store):
        await _make_complete(1, fragment_store, relationship_store, timeline_store)

        metrics = await aggregator.analyze_entity(1)
        assert metrics.completeness_score == 100
        assert metrics.consistency_score == 100
        assert metrics.issues == []

    @pytest.mark.asyncio
    async def test_completeness_issues_listed_before_consistency(self, aggregator, relationship_store):
        relationship_store.add(Relationship(source_entity_id=1, target_entity_id=99, type="ally_of"))

        metrics = await aggregator.analyze_entity(1)
        assert metrics.issues == [
            IssueCode.MISSING_FRAGMENTS,
            IssueCode.MISSING_TIMELINE,
            IssueCode.ORPHAN_RELATIONSHIP,
        ]
        assert metrics.consistency_score == 80

    @pytest.mark.asyncio
    async def test_missing_entity(self, aggregator):
        with pytest.raises(NotFoundError, match="Entity 42 not found"):
            await aggregator.analyze_entity(42)


# ---------------------------------------------------------------------------
# recompute: selection and counting
# ---------------------------------------------------------------------------


class TestRecompute:
    @pytest.mark.asyncio
    async def test_single_entity(self, aggregator, metrics_store):
        result = await aggregator.recompute(1, entity_id=2)

        assert result.processed == 1
        assert result.updated == 1
        assert result.failed == 0
        assert result.deadline_exceeded is False
        saved = await metrics_store.find_by_entity(2)
        assert saved.completeness_score == 55
        assert saved.issues == BARE_ISSUES

    @pytest.mark.asyncio
    async def test_missing_entity_is_skipped(self, aggregator, metrics_store):
        result = await aggregator.recompute(1, entity_id=99)

        assert result.processed == 0
        assert result.updated == 0
        assert result.failed == 0
        assert result.skipped == 1
        assert await metrics_store.find_by_entity(99) is None

    @pytest.mark.asyncio
    async def test_batch_covers_only_the_saga(self, aggregator, metrics_store):
        result = await aggregator.recompute(1)

        assert result.processed == 3
        assert result.updated == 3
        assert await metrics_store.find_by_entity(4) is None

    @pytest.mark.asyncio
    async def test_fresh_metrics_not_recomputed(self, aggregator, metrics_store, clock):
        await aggregator.recompute(1)
        assert (await metrics_store.find_by_entity(1)).last_verified == _at(clock.now)

        clock.now += 60
        result = await aggregator.recompute(1)
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_recomputed_metrics_become_due_again(self, aggregator, clock):
        await aggregator.recompute(1, entity_id=1)

        clock.now += QualitySettings().staleness_seconds + 1
        result = await aggregator.recompute(1)

        # 2 and 3 were never verified, 1 has gone stale
        assert result.processed == 3
        assert result.updated == 3

    @pytest.mark.asyncio
    async def test_never_verified_first_then_oldest(self, aggregator, metrics_store, clock, hooks):
        week = QualitySettings().staleness_seconds
        await metrics_store.save(
            QualityMetrics(entity_id=1, completeness_score=10, consistency_score=10, last_verified=_at(clock.now - week - 10))
        )
        await metrics_store.save(
            QualityMetrics(entity_id=2, completeness_score=10, consistency_score=10, last_verified=_at(clock.now - week - 500))
        )
        # entity 3 has never been verified

        order = []

        async def record(event):
            order.append(event.entity_id)

        hooks.add("post_metrics_saved", record)

        result = await aggregator.recompute(1, limit=2)
        assert result.processed == 2
        assert order == [3, 2]

    @pytest.mark.asyncio
    async def test_recently_verified_excluded(self, aggregator, metrics_store, clock):
        await metrics_store.save(
            QualityMetrics(entity_id=1, completeness_score=10, consistency_score=10, last_verified=_at(clock.now - 10))
        )

        result = await aggregator.recompute(1)
        assert result.processed == 2
        assert (await metrics_store.find_by_entity(1)).completeness_score == 10

    @pytest.mark.asyncio
    async def test_overwrites_existing_row(self, aggregator, metrics_store, clock):
        await metrics_store.save(
            QualityMetrics(
                entity_id=1,
                completeness_score=0,
                consistency_score=0,
                issues=[IssueCode.CIRCULAR_RELATIONSHIP],
                last_verified=_at(clock.now - 10),
            )
        )

        await aggregator.recompute(1, entity_id=1)

        saved = await metrics_store.find_by_entity(1)
        assert saved.completeness_score == 55
        assert saved.consistency_score == 100
        assert IssueCode.CIRCULAR_RELATIONSHIP not in saved.issues

    @pytest.mark.asyncio
    async def test_idempotent(self, aggregator, metrics_store, relationship_store):
        relationship_store.add(Relationship(source_entity_id=1, target_entity_id=2, type="ally_of"))
        relationship_store.add(Relationship(source_entity_id=2, target_entity_id=1, type="ally_of"))

        await aggregator.recompute(1, entity_id=1)
        first = await metrics_store.find_by_entity(1)
        await aggregator.recompute(1, entity_id=1)
        second = await metrics_store.find_by_entity(1)

        assert (first.completeness_score, first.consistency_score, first.issues) == (
            second.completeness_score,
            second.consistency_score,
            second.issues,
        )
        assert second.last_verified >= first.last_verified

    @pytest.mark.asyncio
    async def test_empty_saga(self, aggregator):
        result = await aggregator.recompute(77)
        assert result.processed == 0
        assert result.updated == 0


# ---------------------------------------------------------------------------
# recompute: validation and failure isolation
# ---------------------------------------------------------------------------


class TestRecomputeValidation:
    @pytest.mark.parametrize("saga_id", [0, -1, True, None])
    @pytest.mark.asyncio
    async def test_invalid_saga_id(self, aggregator, saga_id):
        with pytest.raises(ValidationError, match="saga_id"):
            await aggregator.recompute(saga_id)

    @pytest.mark.asyncio
    async def test_invalid_entity_id(self, aggregator):
        with pytest.raises(ValidationError, match="entity_id"):
            await aggregator.recompute(1, entity_id=0)

    @pytest.mark.parametrize("limit", [0, -5])
    @pytest.mark.asyncio
    async def test_invalid_limit(self, aggregator, limit):
        with pytest.raises(ValidationError, match="limit"):
            await aggregator.recompute(1, limit=limit)

    @pytest.mark.asyncio
    async def test_limit_defaults_to_settings(
        self, metrics_store, saga, relationship_store, fragment_store, timeline_store
    ):
        aggregator = QualityMetricsAggregator(
            metrics_store,
            saga,
            relationship_store,
            fragment_store,
            timeline_store,
            settings=QualitySettings(batch_limit=1),
        )
        result = await aggregator.recompute(1)
        assert result.processed == 1


class _FailingMetricsStore(InMemoryQualityMetricsStore):
    def __init__(self, entities, clock, failing_ids):
        super().__init__(entities, clock=clock)
        self.failing_ids = set(failing_ids)

    async def save(self, metrics):
        if metrics.entity_id in self.failing_ids:
            raise ConnectionError("database went away")
        await super().save(metrics)


class _FlakyEntityStore(InMemoryEntityStore):
    def __init__(self, failing_ids):
        super().__init__()
        self.failing_ids = set(failing_ids)

    async def find_by_id(self, entity_id):
        if entity_id in self.failing_ids:
            raise TimeoutError("lookup timed out")
        return await super().find_by_id(entity_id)


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failed_write_does_not_abort_batch(
        self, saga, clock, relationship_store, fragment_store, timeline_store
    ):
        metrics_store = _FailingMetricsStore(saga, clock, failing_ids=[2])
        aggregator = QualityMetricsAggregator(
            metrics_store, saga, relationship_store, fragment_store, timeline_store, clock=clock
        )

        result = await aggregator.recompute(1)

        assert result.processed == 3
        assert result.updated == 2
        assert result.failed == 1
        assert await metrics_store.find_by_entity(1) is not None
        assert await metrics_store.find_by_entity(2) is None
        assert await metrics_store.find_by_entity(3) is not None

    @pytest.mark.asyncio
    async def test_failed_lookup_counts_as_failed(self, clock, relationship_store, fragment_store, timeline_store):
        entities = _FlakyEntityStore(failing_ids=[1])
        entities.add(make_entity(1))
        entities.add(make_entity(2))
        metrics_store = InMemoryQualityMetricsStore(entities, clock=clock)
        aggregator = QualityMetricsAggregator(
            metrics_store, entities, relationship_store, fragment_store, timeline_store, clock=clock
        )

        result = await aggregator.recompute(1)

        assert result.processed == 2
        assert result.updated == 1
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_counters_are_consistent(self, saga, clock, relationship_store, fragment_store, timeline_store):
        metrics_store = _FailingMetricsStore(saga, clock, failing_ids=[1, 3])
        aggregator = QualityMetricsAggregator(
            metrics_store, saga, relationship_store, fragment_store, timeline_store, clock=clock
        )

        result = await aggregator.recompute(1)

        assert result.updated + result.failed == result.processed
        assert result.failed <= result.processed


# ---------------------------------------------------------------------------
# recompute: deadline
# ---------------------------------------------------------------------------


class TestDeadline:
    @pytest.mark.asyncio
    async def test_expired_deadline_processes_nothing(self, aggregator, metrics_store):
        with patch("saga_manager.services.quality_service.time") as mock_time:
            mock_time.monotonic.return_value = 100.0
            result = await aggregator.recompute(1, deadline=50.0)

        assert result.deadline_exceeded is True
        assert result.processed == 0
        assert await metrics_store.find_by_saga(1) == []

    @pytest.mark.asyncio
    async def test_stops_between_entities_and_keeps_written_rows(self, aggregator, metrics_store):
        with patch("saga_manager.services.quality_service.time") as mock_time:
            mock_time.monotonic.side_effect = [0.0, 1.0, 10.0]
            result = await aggregator.recompute(1, deadline=5.0)

        assert result.deadline_exceeded is True
        assert result.processed == 2
        assert result.updated == 2
        assert len(await metrics_store.find_by_saga(1)) == 2

    @pytest.mark.asyncio
    async def test_no_deadline(self, aggregator):
        result = await aggregator.recompute(1)
        assert result.deadline_exceeded is False


# ---------------------------------------------------------------------------
# recompute: hooks and serialisation
# ---------------------------------------------------------------------------


class TestRecomputeHooks:
    @pytest.mark.asyncio
    async def test_pre_hook_can_veto(self, aggregator, hooks, metrics_store):
        async def guard(request):
            if request.limit > 50:
                raise HookValidationError("batch too large")

        hooks.add("pre_recompute", guard)

        with pytest.raises(HookValidationError):
            await aggregator.recompute(1, limit=100)
        assert await metrics_store.find_by_saga(1) == []

    @pytest.mark.asyncio
    async def test_post_hooks_receive_events(self, aggregator, hooks):
        saved, completed = [], []

        async def on_saved(event):
            saved.append(event)

        async def on_completed(event):
            completed.append(event)

        hooks.add("post_metrics_saved", on_saved)
        hooks.add("post_recompute", on_completed)

        await aggregator.recompute(1)

        assert [e.entity_id for e in saved] == [1, 2, 3]
        assert saved[0].issues == BARE_ISSUES
        assert len(completed) == 1
        assert completed[0].saga_id == 1
        assert completed[0].updated == 3

    @pytest.mark.asyncio
    async def test_failing_post_hook_does_not_break_recompute(self, aggregator, hooks):
        async def broken(event):
            raise RuntimeError("webhook down")

        hooks.add("post_metrics_saved", broken)

        result = await aggregator.recompute(1)
        assert result.updated == 3

    @pytest.mark.asyncio
    async def test_concurrent_recomputes_of_one_entity_are_serialised(
        self, saga, clock, relationship_store, fragment_store, timeline_store
    ):
        events = []

        class _SlowStore(InMemoryQualityMetricsStore):
            async def save(self, metrics):
                events.append(("start", metrics.entity_id))
                await asyncio.sleep(0.01)
                await super().save(metrics)
                events.append(("end", metrics.entity_id))

        locks = EntityLockRegistry()
        aggregator = QualityMetricsAggregator(
            _SlowStore(saga, clock=clock),
            saga,
            relationship_store,
            fragment_store,
            timeline_store,
            locks=locks,
            clock=clock,
        )

        await asyncio.gather(
            aggregator.recompute(1, entity_id=1),
            aggregator.recompute(1, entity_id=1),
        )

        assert events == [("start", 1), ("end", 1), ("start", 1), ("end", 1)]
        assert len(locks) == 0


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


async def _score_saga(metrics_store):
    """Entity 1: 85 (B) with two issues, entity 2: 100 (A), entity 3: 45 (D) with one issue."""
    await metrics_store.save(
        QualityMetrics(
            entity_id=1,
            completeness_score=80,
            consistency_score=90,
            issues=[IssueCode.MISSING_TIMELINE, IssueCode.DUPLICATE_RELATIONSHIP],
        )
    )
    await metrics_store.save(QualityMetrics(entity_id=2, completeness_score=100, consistency_score=100))
    await metrics_store.save(
        QualityMetrics(
            entity_id=3, completeness_score=40, consistency_score=50, issues=[IssueCode.MISSING_FRAGMENTS]
        )
    )
    await metrics_store.save(QualityMetrics(entity_id=4, completeness_score=0, consistency_score=0))


class TestReporting:
    @pytest.mark.asyncio
    async def test_get_metrics(self, aggregator, metrics_store):
        await _score_saga(metrics_store)
        metrics = await aggregator.get_metrics(2)
        assert metrics.overall_score == 100

    @pytest.mark.asyncio
    async def test_get_metrics_missing(self, aggregator):
        with pytest.raises(NotFoundError):
            await aggregator.get_metrics(1)

    @pytest.mark.asyncio
    async def test_saga_overview(self, aggregator, metrics_store):
        await _score_saga(metrics_store)
        overview = await aggregator.saga_overview(1)

        assert overview.total == 3
        assert overview.average_completeness == 73.3
        assert overview.average_consistency == 80.0
        assert overview.average_overall == 76.7
        assert overview.distribution == {"A": 1, "B": 1, "C": 0, "D": 1}

    @pytest.mark.asyncio
    async def test_saga_overview_empty(self, aggregator):
        overview = await aggregator.saga_overview(1)
        assert overview.total == 0
        assert overview.average_overall == 0.0

    @pytest.mark.asyncio
    async def test_find_below_threshold(self, aggregator, metrics_store):
        await _score_saga(metrics_store)
        assert [m.entity_id for m in await aggregator.find_below_threshold(1)] == [3]
        assert [m.entity_id for m in await aggregator.find_below_threshold(1, threshold=90)] == [3, 1]
        assert [m.entity_id for m in await aggregator.find_below_threshold(1, threshold=90, limit=1)] == [3]

    @pytest.mark.asyncio
    async def test_find_below_threshold_validates(self, aggregator):
        with pytest.raises(ValidationError):
            await aggregator.find_below_threshold(1, threshold=101)

    @pytest.mark.asyncio
    async def test_find_with_issues(self, aggregator, metrics_store):
        await _score_saga(metrics_store)
        assert [m.entity_id for m in await aggregator.find_with_issues(1)] == [1, 3]
        assert [m.entity_id for m in await aggregator.find_with_issues(1, offset=1)] == [3]
        assert await aggregator.find_with_issues(1, offset=5) == []

    @pytest.mark.asyncio
    async def test_find_with_issues_negative_offset(self, aggregator):
        with pytest.raises(ValidationError, match="offset"):
            await aggregator.find_with_issues(1, offset=-1)
