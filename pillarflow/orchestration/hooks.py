"""Stage-specific side effects: track-stage market sync and budget tier seeding."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pillarflow.config.models import BudgetConfig, TierSpec
from pillarflow.pipeline.models import BudgetTier, MarketContext, Strategy

if TYPE_CHECKING:
    from pillarflow.interfaces.collaborators import BudgetTierGenerator
    from pillarflow.interfaces.persistence import StrategyStore

logger = logging.getLogger(__name__)

# market_reality key -> (opportunity type, impact)
_OPPORTUNITY_SOURCES = {
    "macro_trends": ("PREDICTIVE", "HIGH"),
    "weak_signals": ("COMPETITIVE", "MEDIUM"),
    "emerging_patterns": ("INTERNAL", "LOW"),
}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def extract_channels(content: dict[str, Any]) -> list[str]:
    """Unique channel names mentioned by implementation content, in first-seen order."""
    seen: dict[str, None] = {}

    activation = content.get("activation") or {}
    if isinstance(activation, dict):
        for bucket in ("owned", "earned", "paid", "shared"):
            for item in _as_list(activation.get(bucket)):
                if isinstance(item, dict):
                    seen.setdefault(str(item.get("channel") or "").strip(), None)

    for campaign in _as_list(content.get("campaigns")):
        if isinstance(campaign, dict):
            for channel in _as_list(campaign.get("channels")):
                seen.setdefault(str(channel or "").strip(), None)

    for touchpoint in _as_list(content.get("touchpoints")):
        if isinstance(touchpoint, dict):
            seen.setdefault(str(touchpoint.get("channel") or "").strip(), None)

    return [c for c in seen if c]


class StaticBudgetTierGenerator:
    """Builds tiers from configured brackets, spreading the brand's channels evenly."""

    def __init__(self, config: BudgetConfig | None = None) -> None:
        self.config = config or BudgetConfig()

    def _tier(self, strategy_id: str, spec: TierSpec, channels: list[str]) -> BudgetTier:
        picked = channels[: spec.max_channels]
        share = round(100 / len(picked), 1) if picked else 0.0
        return BudgetTier(
            strategy_id=strategy_id,
            tier=spec.name,
            min_budget=spec.min_budget,
            max_budget=spec.max_budget,
            channels=[{"channel": c, "allocation": share} for c in picked],
            description=spec.description,
        )

    async def generate(self, strategy: Strategy, content: dict[str, Any]) -> list[BudgetTier]:
        channels = extract_channels(content)
        if not channels:
            logger.info("No channels in implementation content for %s, using bare tiers", strategy.id)
        return [self._tier(strategy.id, spec, channels) for spec in self.config.tiers]


async def seed_budget_tiers_if_needed(
    store: StrategyStore,
    generator: BudgetTierGenerator,
    strategy_id: str,
    content: dict[str, Any] | None,
) -> int:
    """Seed default tiers once per strategy. Failures are logged and reported as 0."""
    try:
        if store.count_budget_tiers(strategy_id) > 0:
            return 0
        strategy = store.get_strategy(strategy_id)
        tiers = await generator.generate(strategy, content or {})
        store.add_budget_tiers(tiers)
        logger.info("Seeded %d budget tiers for %s", len(tiers), strategy_id)
        return len(tiers)
    except Exception:
        logger.exception("Failed to seed budget tiers for %s", strategy_id)
        return 0


class TrackContextSync:
    """Copies competitors and market opportunities from track content into the store."""

    def __init__(self, store: StrategyStore) -> None:
        self.store = store

    async def sync(self, strategy_id: str, content: dict[str, Any]) -> None:
        competitors = []
        for bench in _as_list(content.get("competitive_benchmark")):
            if not isinstance(bench, dict):
                continue
            name = str(bench.get("competitor") or "").strip()
            if not name:
                continue
            competitors.append({
                "name": name,
                "positioning": bench.get("market_share") or None,
                "strengths": _as_list(bench.get("strengths")),
                "weaknesses": _as_list(bench.get("weaknesses")),
            })

        opportunities = []
        reality = content.get("market_reality") or {}
        if isinstance(reality, dict):
            for key, (kind, impact) in _OPPORTUNITY_SOURCES.items():
                for title in _as_list(reality.get(key)):
                    if str(title).strip():
                        opportunities.append({"title": str(title).strip(), "type": kind, "impact": impact})

        self.store.save_market_context(MarketContext(
            strategy_id=strategy_id,
            competitors=competitors,
            opportunities=opportunities,
        ))
        logger.debug(
            "Synced %d competitors and %d opportunities for %s",
            len(competitors), len(opportunities), strategy_id,
        )
