"""StrategyStore and SignalRecorder kept in process memory."""

from __future__ import annotations

import uuid
from collections.abc import Collection
from datetime import UTC, datetime
from typing import Any

from pillarflow.interfaces.persistence import (
    DocumentNotFoundError,
    StageNotFoundError,
    StrategyNotFoundError,
    ThresholdNotFoundError,
    check_phase,
    check_stale_pair,
)
from pillarflow.interfaces.signals import SignalPayload
from pillarflow.metrics.models import MetricThreshold
from pillarflow.pipeline.constants import StageType, stage_order
from pillarflow.pipeline.models import (
    STALEABLE_STATUSES,
    BudgetTier,
    DerivedDocument,
    DocumentStatus,
    MarketContext,
    Stage,
    StageStatus,
    Strategy,
    StrategyStatus,
)


def new_stages(strategy_id: str) -> list[Stage]:
    """One pending stage per stage type."""
    return [
        Stage(id=str(uuid.uuid4()), strategy_id=strategy_id, type=t)
        for t in StageType
    ]


class InMemoryStore:
    """Dict-backed store for tests and embedding. Not shared across processes."""

    def __init__(self) -> None:
        self._strategies: dict[str, Strategy] = {}
        self._stages: dict[str, Stage] = {}
        self._documents: dict[str, DerivedDocument] = {}
        self._thresholds: dict[str, MetricThreshold] = {}
        self._budget_tiers: dict[str, list[BudgetTier]] = {}
        self._market: dict[str, MarketContext] = {}
        self.signals: list[tuple[str, str, SignalPayload]] = []

    # -- strategies ------------------------------------------------------------

    def create_strategy(self, strategy: Strategy) -> Strategy:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy already exists: {strategy.id!r}")
        self._strategies[strategy.id] = strategy
        for stage in new_stages(strategy.id):
            self._stages[stage.id] = stage
        return strategy

    def get_strategy(self, strategy_id: str) -> Strategy:
        try:
            return self._strategies[strategy_id]
        except KeyError:
            raise StrategyNotFoundError(strategy_id) from None

    def list_strategies(self) -> list[Strategy]:
        return sorted(self._strategies.values(), key=lambda s: s.created_at)

    def update_strategy(
        self,
        strategy_id: str,
        *,
        phase: str | None = None,
        status: StrategyStatus | None = None,
        completed_at: datetime | None = None,
    ) -> Strategy:
        current = self.get_strategy(strategy_id)
        changes: dict[str, Any] = {}
        if phase is not None:
            check_phase(phase)
            changes["phase"] = phase
        if status is not None:
            changes["status"] = status
        if completed_at is not None:
            changes["completed_at"] = completed_at
        updated = current.model_copy(update=changes)
        self._strategies[strategy_id] = updated
        return updated

    # -- stages ----------------------------------------------------------------

    def get_stage(self, stage_id: str) -> Stage:
        try:
            return self._stages[stage_id]
        except KeyError:
            raise StageNotFoundError(stage_id) from None

    def list_stages(self, strategy_id: str) -> list[Stage]:
        stages = [s for s in self._stages.values() if s.strategy_id == strategy_id]
        return sorted(stages, key=lambda s: stage_order(s.type))

    def record_generation(
        self,
        stage_id: str,
        content: dict[str, Any] | None,
        status: StageStatus = StageStatus.complete,
    ) -> Stage:
        stage = self.get_stage(stage_id)
        now = datetime.now(UTC)
        changes: dict[str, Any] = {"content": content, "status": status, "updated_at": now}
        if status is StageStatus.complete:
            changes["generated_at"] = now
        updated = stage.model_copy(update=changes)
        self._stages[stage_id] = updated
        return updated

    def set_stage_staleness(
        self, stage_id: str, reason: str | None, since: datetime | None
    ) -> None:
        check_stale_pair(reason, since)
        stage = self.get_stage(stage_id)
        self._stages[stage_id] = stage.model_copy(
            update={"stale_reason": reason, "stale_since": since}
        )

    # -- derived documents -----------------------------------------------------

    def add_document(self, document: DerivedDocument) -> DerivedDocument:
        self.get_strategy(document.strategy_id)
        self._documents[document.id] = document
        return document

    def get_document(self, document_id: str) -> DerivedDocument:
        try:
            return self._documents[document_id]
        except KeyError:
            raise DocumentNotFoundError(document_id) from None

    def list_documents(
        self,
        strategy_id: str,
        statuses: Collection[DocumentStatus] | None = None,
    ) -> list[DerivedDocument]:
        return [
            d for d in self._documents.values()
            if d.strategy_id == strategy_id and (statuses is None or d.status in statuses)
        ]

    def mark_document_stale(self, document_id: str, reason: str, since: datetime) -> bool:
        doc = self.get_document(document_id)
        if doc.status not in STALEABLE_STATUSES:
            return False
        self._documents[document_id] = doc.model_copy(update={
            "status": DocumentStatus.stale,
            "stale_reason": reason,
            "stale_since": since,
        })
        return True

    # -- metric thresholds -----------------------------------------------------

    def upsert_threshold(self, threshold: MetricThreshold) -> MetricThreshold:
        for existing in self._thresholds.values():
            if (existing.strategy_id, existing.metric_key) == (threshold.strategy_id, threshold.metric_key):
                updated = threshold.model_copy(update={"id": existing.id, "last_updated": datetime.now(UTC)})
                self._thresholds[existing.id] = updated
                return updated
        self._thresholds[threshold.id] = threshold
        return threshold

    def list_thresholds(self, strategy_id: str) -> list[MetricThreshold]:
        return [t for t in self._thresholds.values() if t.strategy_id == strategy_id]

    def delete_threshold(self, threshold_id: str) -> None:
        if self._thresholds.pop(threshold_id, None) is None:
            raise ThresholdNotFoundError(threshold_id)

    # -- side-effect targets ---------------------------------------------------

    def count_budget_tiers(self, strategy_id: str) -> int:
        return len(self._budget_tiers.get(strategy_id, []))

    def add_budget_tiers(self, tiers: list[BudgetTier]) -> None:
        for tier in tiers:
            self._budget_tiers.setdefault(tier.strategy_id, []).append(tier)

    def list_budget_tiers(self, strategy_id: str) -> list[BudgetTier]:
        return list(self._budget_tiers.get(strategy_id, []))

    def save_market_context(self, context: MarketContext) -> None:
        self._market[context.strategy_id] = context

    def get_market_context(self, strategy_id: str) -> MarketContext | None:
        return self._market.get(strategy_id)

    # -- SignalRecorder --------------------------------------------------------

    def record(self, strategy_id: str, payload: SignalPayload) -> str:
        signal_id = str(uuid.uuid4())
        self.signals.append((signal_id, strategy_id, payload))
        return signal_id
