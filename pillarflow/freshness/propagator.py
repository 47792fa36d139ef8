"""Stage staleness markers and their cascade to derived documents."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel

from pillarflow.pipeline.constants import StageType, stage_order
from pillarflow.pipeline.models import STALEABLE_STATUSES

if TYPE_CHECKING:
    from pillarflow.interfaces.persistence import StrategyStore

logger = logging.getLogger(__name__)


class PropagationResult(BaseModel):
    marked_stale: int = 0


class InvalidationResult(BaseModel):
    stages_marked: list[str] = []
    documents_marked: int = 0


def _normalize(stage_types: Iterable[StageType | str]) -> set[StageType]:
    return {StageType(t) for t in stage_types}


def stale_reason_for(stage_types: Iterable[StageType]) -> str:
    """Human-readable reason listing stage types in workflow order."""
    ordered = sorted(stage_types, key=stage_order)
    return "Source stage(s) stale: " + ", ".join(t.value for t in ordered)


def mark_stage_stale(
    store: StrategyStore,
    stage_id: str,
    reason: str,
    now: datetime | None = None,
) -> None:
    """Flag a stage stale. Reason and timestamp are always written together."""
    if not reason.strip():
        raise ValueError("stale reason cannot be empty")
    store.set_stage_staleness(stage_id, reason, now or datetime.now(UTC))


def clear_stage_staleness(store: StrategyStore, stage_id: str) -> None:
    store.set_stage_staleness(stage_id, None, None)


def propagate_staleness(
    store: StrategyStore,
    strategy_id: str,
    stale_stage_types: Iterable[StageType | str],
    now: datetime | None = None,
) -> PropagationResult:
    """Flag every draft/validated document built from any of the given stage types.

    Documents that are already stale or archived are left alone, so the first
    recorded cause stays authoritative and repeat calls return 0.
    """
    stale_types = _normalize(stale_stage_types)
    if not stale_types:
        return PropagationResult()

    now = now or datetime.now(UTC)
    docs = store.list_documents(strategy_id, statuses=STALEABLE_STATUSES)

    marked = 0
    for doc in docs:
        affected = doc.source_stages & stale_types
        if not affected:
            continue
        if store.mark_document_stale(doc.id, stale_reason_for(affected), now):
            marked += 1

    if marked:
        logger.info(
            "Marked %d document(s) stale for strategy %s (stages: %s)",
            marked,
            strategy_id,
            ", ".join(sorted(t.value for t in stale_types)),
        )
    return PropagationResult(marked_stale=marked)


def invalidate_stages(
    store: StrategyStore,
    strategy_id: str,
    stage_types: Iterable[StageType | str],
    reason: str,
    now: datetime | None = None,
) -> InvalidationResult:
    """Mark the strategy's stages of the given types stale and cascade to documents.

    Entry point for external events (signal mutations, mission debriefs,
    client interventions) that make a stage's output out of date.
    """
    types = _normalize(stage_types)
    now = now or datetime.now(UTC)

    marked_ids: list[str] = []
    for stage in store.list_stages(strategy_id):
        if stage.type in types:
            mark_stage_stale(store, stage.id, reason, now=now)
            marked_ids.append(stage.id)

    result = propagate_staleness(store, strategy_id, types, now=now)
    return InvalidationResult(stages_marked=marked_ids, documents_marked=result.marked_stale)
