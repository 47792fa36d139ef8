"""Workflow vocabulary, records, and the phase state machine."""

from pillarflow.pipeline.constants import (
    LEGACY_PHASE_MAP,
    PHASES,
    POST_GENERATION_PHASE,
    SKIPPABLE_PHASES,
    TERMINAL_PHASE,
    Phase,
    StageType,
)
from pillarflow.pipeline.models import (
    BudgetTier,
    DerivedDocument,
    DocumentStatus,
    MarketContext,
    Stage,
    StageStatus,
    Strategy,
    StrategyStatus,
)
from pillarflow.pipeline.phases import (
    TransitionResult,
    advance_phase,
    resolve_phase,
    revert_phase,
    validate_forward,
    validate_reversion,
)

__all__ = [
    "BudgetTier",
    "DerivedDocument",
    "DocumentStatus",
    "LEGACY_PHASE_MAP",
    "MarketContext",
    "PHASES",
    "POST_GENERATION_PHASE",
    "Phase",
    "SKIPPABLE_PHASES",
    "Stage",
    "StageStatus",
    "StageType",
    "Strategy",
    "StrategyStatus",
    "TERMINAL_PHASE",
    "TransitionResult",
    "advance_phase",
    "resolve_phase",
    "revert_phase",
    "validate_forward",
    "validate_reversion",
]
