"""Post-generation orchestration: the single call site after a stage completes."""

from pillarflow.orchestration.detached import Detached
from pillarflow.orchestration.hooks import (
    StaticBudgetTierGenerator,
    TrackContextSync,
    extract_channels,
    seed_budget_tiers_if_needed,
)
from pillarflow.orchestration.orchestrator import StageCompletionOrchestrator

__all__ = [
    "Detached",
    "StageCompletionOrchestrator",
    "StaticBudgetTierGenerator",
    "TrackContextSync",
    "extract_channels",
    "seed_budget_tiers_if_needed",
]
