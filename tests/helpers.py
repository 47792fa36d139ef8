"""Builders shared across test modules."""

from __future__ import annotations

import uuid

from pillarflow.pipeline.constants import StageType
from pillarflow.pipeline.models import DerivedDocument, DocumentStatus


def make_document(strategy_id: str, sources, **overrides) -> DerivedDocument:
    defaults = dict(
        id=str(uuid.uuid4()),
        strategy_id=strategy_id,
        source_stages=frozenset(StageType(s) for s in sources),
        status=DocumentStatus.draft,
    )
    defaults.update(overrides)
    return DerivedDocument(**defaults)


def stage_id(store, strategy_id: str, stage_type: StageType | str) -> str:
    for stage in store.list_stages(strategy_id):
        if stage.type is StageType(stage_type):
            return stage.id
    raise AssertionError(f"no stage {stage_type} for {strategy_id}")
