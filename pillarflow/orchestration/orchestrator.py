"""Everything that happens after a stage finishes generating, in one place."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pillarflow.freshness.propagator import clear_stage_staleness
from pillarflow.orchestration.detached import Detached
from pillarflow.orchestration.hooks import (
    StaticBudgetTierGenerator,
    TrackContextSync,
    seed_budget_tiers_if_needed,
)
from pillarflow.pipeline.constants import (
    IMPLEMENTATION_STAGE,
    MARKET_CONTEXT_STAGE,
    POST_GENERATION_PHASE,
    StageType,
)
from pillarflow.pipeline.models import StageStatus, StrategyStatus
from pillarflow.pipeline.phases import status_for_phase

if TYPE_CHECKING:
    from pillarflow.interfaces.collaborators import (
        BudgetTierGenerator,
        MarketContextSync,
        ScoreRecalculator,
        WidgetRecomputer,
    )
    from pillarflow.interfaces.persistence import StrategyStore

logger = logging.getLogger(__name__)


class StageCompletionOrchestrator:
    """Runs the post-generation sequence for a stage.

    Sequence (in order, per call):
        1. Clear the stage's staleness marker
        2. Recompute aggregate scores (detached)
        3. Apply the phase mapped to this stage type, if any
        4. Stage hooks: track -> market context sync (detached),
           implementation -> seed budget tiers once (errors logged)
        5. Mark the strategy complete if every stage is complete
        6. Recompute dashboard widgets (detached)

    Steps 1, 3 and 5 write structural state and propagate store errors.
    The rest never fail the call.
    """

    def __init__(
        self,
        store: StrategyStore,
        scorer: ScoreRecalculator | None = None,
        widgets: WidgetRecomputer | None = None,
        market_sync: MarketContextSync | None = None,
        budget_generator: BudgetTierGenerator | None = None,
        detached: Detached | None = None,
    ) -> None:
        self.store = store
        self.scorer = scorer
        self.widgets = widgets
        self.market_sync = market_sync if market_sync is not None else TrackContextSync(store)
        self.budget_generator = budget_generator or StaticBudgetTierGenerator()
        self.detached = detached or Detached(logger)

    async def on_stage_completed(
        self,
        strategy_id: str,
        stage_id: str,
        stage_type: StageType | str,
        content: dict[str, Any] | None,
    ) -> None:
        stage_type = StageType(stage_type)
        ctx = {"strategy": strategy_id, "stage": stage_id, "type": stage_type.value}

        # 1. staleness
        clear_stage_staleness(self.store, stage_id)

        # 2. scores
        if self.scorer is not None:
            self.detached.spawn(self.scorer.recompute(strategy_id, "generation"), "score-recompute", **ctx)

        # 3. phase
        target = POST_GENERATION_PHASE[stage_type]
        if target is not None:
            self.store.update_strategy(
                strategy_id, phase=target.value, status=status_for_phase(target)
            )
            logger.info("Strategy %s moved to phase %s after stage %s", strategy_id, target.value, stage_type.value)

        # 4. stage hooks
        await self._run_stage_hooks(strategy_id, stage_type, content, ctx)

        # 5. whole-workflow completion
        self._check_all_complete(strategy_id)

        # 6. widgets
        if self.widgets is not None:
            self.detached.spawn(self.widgets.compute_all(strategy_id), "widget-recompute", **ctx)

    async def _run_stage_hooks(
        self,
        strategy_id: str,
        stage_type: StageType,
        content: dict[str, Any] | None,
        ctx: dict[str, str],
    ) -> None:
        if stage_type is MARKET_CONTEXT_STAGE and content:
            self.detached.spawn(self.market_sync.sync(strategy_id, content), "market-context-sync", **ctx)
        elif stage_type is IMPLEMENTATION_STAGE:
            await seed_budget_tiers_if_needed(self.store, self.budget_generator, strategy_id, content)

    def _check_all_complete(self, strategy_id: str) -> None:
        # Independent of the phase map: both paths must converge on "complete".
        stages = self.store.list_stages(strategy_id)
        if not stages or any(s.status is not StageStatus.complete for s in stages):
            return

        strategy = self.store.get_strategy(strategy_id)
        if strategy.status is StrategyStatus.complete and strategy.completed_at is not None:
            return
        self.store.update_strategy(
            strategy_id,
            status=StrategyStatus.complete,
            completed_at=strategy.completed_at or datetime.now(UTC),
        )
        logger.info("All stages complete, strategy %s marked complete", strategy_id)

    async def drain(self) -> None:
        """Wait for detached work spawned by earlier calls."""
        await self.detached.drain()
