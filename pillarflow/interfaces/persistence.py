"""Persistence interface for strategies, stages, documents, and thresholds."""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pillarflow.metrics.models import MetricThreshold
from pillarflow.pipeline.constants import KNOWN_PHASE_NAMES
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


class RecordNotFoundError(LookupError):
    """Raised when a store lookup finds nothing."""

    kind = "record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind} not found: {record_id!r}")


class StrategyNotFoundError(RecordNotFoundError):
    kind = "Strategy"


class StageNotFoundError(RecordNotFoundError):
    kind = "Stage"


class DocumentNotFoundError(RecordNotFoundError):
    kind = "Document"


class ThresholdNotFoundError(RecordNotFoundError):
    kind = "Threshold"


@runtime_checkable
class StrategyStore(Protocol):
    """Record storage backend (in-memory, SQLite, or a service adapter).

    Lookups by id raise a :class:`RecordNotFoundError` subclass when the
    record is missing. Staleness is written as a (reason, since) pair and
    implementations must reject one without the other.
    """

    # strategies
    def create_strategy(self, strategy: Strategy) -> Strategy: ...

    def get_strategy(self, strategy_id: str) -> Strategy: ...

    def list_strategies(self) -> list[Strategy]: ...

    def update_strategy(
        self,
        strategy_id: str,
        *,
        phase: str | None = None,
        status: StrategyStatus | None = None,
        completed_at: datetime | None = None,
    ) -> Strategy: ...

    # stages
    def get_stage(self, stage_id: str) -> Stage: ...

    def list_stages(self, strategy_id: str) -> list[Stage]: ...

    def record_generation(
        self,
        stage_id: str,
        content: dict[str, Any] | None,
        status: StageStatus = StageStatus.complete,
    ) -> Stage: ...

    def set_stage_staleness(
        self, stage_id: str, reason: str | None, since: datetime | None
    ) -> None: ...

    # derived documents
    def add_document(self, document: DerivedDocument) -> DerivedDocument: ...

    def get_document(self, document_id: str) -> DerivedDocument: ...

    def list_documents(
        self,
        strategy_id: str,
        statuses: Collection[DocumentStatus] | None = None,
    ) -> list[DerivedDocument]: ...

    def mark_document_stale(self, document_id: str, reason: str, since: datetime) -> bool:
        """Flag a draft or validated document stale. Returns False if it was not eligible."""
        ...

    # metric thresholds
    def upsert_threshold(self, threshold: MetricThreshold) -> MetricThreshold: ...

    def list_thresholds(self, strategy_id: str) -> list[MetricThreshold]: ...

    def delete_threshold(self, threshold_id: str) -> None: ...

    # stage side-effect targets
    def count_budget_tiers(self, strategy_id: str) -> int: ...

    def add_budget_tiers(self, tiers: list[BudgetTier]) -> None: ...

    def list_budget_tiers(self, strategy_id: str) -> list[BudgetTier]: ...

    def save_market_context(self, context: MarketContext) -> None: ...

    def get_market_context(self, strategy_id: str) -> MarketContext | None: ...


def check_stale_pair(reason: str | None, since: datetime | None) -> None:
    """Raise ValueError unless reason and since are both set or both None."""
    if (reason is None) != (since is None):
        raise ValueError("stale reason and timestamp must be set or cleared together")


def check_phase(phase: str) -> None:
    """Raise ValueError unless phase is canonical or a known legacy name."""
    if phase not in KNOWN_PHASE_NAMES:
        raise ValueError(f"Unknown phase: {phase!r}")
