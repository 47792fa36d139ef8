"""Interfaces for stores, signal sinks, and external collaborators."""

from pillarflow.interfaces.collaborators import (
    BudgetTierGenerator,
    ContentGenerator,
    MarketContextSync,
    ScoreRecalculator,
    WidgetRecomputer,
)
from pillarflow.interfaces.persistence import (
    DocumentNotFoundError,
    RecordNotFoundError,
    StageNotFoundError,
    StrategyNotFoundError,
    StrategyStore,
    ThresholdNotFoundError,
)
from pillarflow.interfaces.signals import (
    Confidence,
    SignalLayer,
    SignalPayload,
    SignalRecorder,
    SignalStatus,
)

__all__ = [
    "BudgetTierGenerator",
    "Confidence",
    "ContentGenerator",
    "DocumentNotFoundError",
    "MarketContextSync",
    "RecordNotFoundError",
    "ScoreRecalculator",
    "SignalLayer",
    "SignalPayload",
    "SignalRecorder",
    "SignalStatus",
    "StageNotFoundError",
    "StrategyNotFoundError",
    "StrategyStore",
    "ThresholdNotFoundError",
    "WidgetRecomputer",
]
