"""Quality engine lifecycle hooks.

Provides HookRegistry for registering async pre/post callbacks on
recompute, search and embedding operations. Handlers run in registration
order, synchronously with the operation that fires them.
Pre-hooks can veto operations by raising HookValidationError.
Post-hooks are fire-and-forget: failures are logged but never propagate.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

from .models.quality import IssueCode
from .models.validators import EntityId, NonNegativeInt, SagaId, Score

logger = logging.getLogger(__name__)

HookName = Literal[
    "pre_recompute",
    "post_metrics_saved",
    "post_recompute",
    "post_search",
    "post_embeddings_generated",
]

AsyncHookFn = Callable[[Any], Awaitable[None]]


class HookValidationError(Exception):
    """Raised by a pre-hook to reject an operation."""


class RecomputeRequest(BaseModel):
    """Context for the pre-recompute hook."""

    saga_id: SagaId
    entity_id: EntityId | None = None
    limit: NonNegativeInt


class MetricsSavedEvent(BaseModel):
    """Fired after one entity's metrics row was written."""

    entity_id: EntityId
    completeness_score: Score
    consistency_score: Score
    issues: list[IssueCode] = Field(default_factory=list)


class RecomputeCompletedEvent(BaseModel):
    """Fired once per recompute batch with its counts."""

    saga_id: SagaId
    processed: NonNegativeInt = 0
    updated: NonNegativeInt = 0
    failed: NonNegativeInt = 0
    skipped: NonNegativeInt = 0
    deadline_exceeded: bool = False


class SearchEvent(BaseModel):
    """Fired after a semantic search returns."""

    query: str
    entity_id: EntityId | None = None
    result_fragment_ids: list[int] = Field(default_factory=list)
    result_count: NonNegativeInt = 0
    candidates_scanned: NonNegativeInt = 0


class EmbeddingsGeneratedEvent(BaseModel):
    """Fired after a bulk embedding pass."""

    processed: NonNegativeInt = 0
    failed: NonNegativeInt = 0
    model: str | None = None


class HookRegistry:
    """Registry of async lifecycle hook callbacks.

    Usage::

        registry = HookRegistry()

        async def guard(request: RecomputeRequest) -> None:
            if request.limit > 1_000:
                raise HookValidationError("batch too large")

        async def alert(event: MetricsSavedEvent) -> None:
            if IssueCode.CIRCULAR_RELATIONSHIP in event.issues:
                await pager.notify(event.entity_id)

        registry.add("pre_recompute", guard)
        registry.add("post_metrics_saved", alert)

        aggregator = QualityMetricsAggregator(..., hooks=registry)
    """

    def __init__(self) -> None:
        self._hooks: dict[str, list[AsyncHookFn]] = {}

    def add(self, name: HookName, fn: AsyncHookFn) -> None:
        """Register an async hook handler.

        Args:
            name: Hook event name (e.g. "pre_recompute", "post_search").
            fn: Async callable receiving the event model for this hook type.
        """
        self._hooks.setdefault(name, []).append(fn)

    def has(self, name: HookName) -> bool:
        return bool(self._hooks.get(name))

    async def fire_pre(self, name: str, event: Any) -> None:
        """Fire all pre-hooks for *name*.

        All exceptions propagate; callers must handle HookValidationError
        to abort the operation gracefully.
        """
        for handler in self._hooks.get(name, []):
            await handler(event)

    async def fire_post(self, name: str, event: Any) -> None:
        """Fire all post-hooks for *name*.

        Exceptions are caught and logged as WARNING; they never propagate.
        """
        for handler in self._hooks.get(name, []):
            try:
                await handler(event)
            except Exception as exc:
                logger.warning("Post-hook '%s' raised (non-fatal): %s", name, exc)
