"""External collaborators the pipeline calls out to."""

from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from pillarflow.pipeline.constants import StageType
from pillarflow.pipeline.models import BudgetTier, Strategy

ScoreTrigger = Literal["generation", "stage_update", "audit_review", "fiche_review", "manual"]


@runtime_checkable
class ContentGenerator(Protocol):
    """Produces stage content. Timeouts and retries are the generator's job."""

    async def generate(self, stage_type: StageType, context: dict[str, Any]) -> dict[str, Any]: ...


@runtime_checkable
class ScoreRecalculator(Protocol):
    """Recomputes strategy-level aggregate scores. Must be idempotent."""

    async def recompute(self, strategy_id: str, trigger: ScoreTrigger) -> None: ...


@runtime_checkable
class WidgetRecomputer(Protocol):
    """Recomputes every dashboard widget of a strategy."""

    async def compute_all(self, strategy_id: str) -> None: ...


@runtime_checkable
class MarketContextSync(Protocol):
    """Copies track-stage output into the cross-stage market context."""

    async def sync(self, strategy_id: str, content: dict[str, Any]) -> None: ...


@runtime_checkable
class BudgetTierGenerator(Protocol):
    """Builds the default budget tiers from implementation-stage content."""

    async def generate(self, strategy: Strategy, content: dict[str, Any]) -> list[BudgetTier]: ...
