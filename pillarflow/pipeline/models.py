"""Pydantic records for strategies, stages, and derived documents."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from pillarflow.pipeline.constants import KNOWN_PHASE_NAMES, Phase, StageType


def utcnow() -> datetime:
    return datetime.now(UTC)


class StrategyStatus(str, Enum):
    """Lifecycle states for a strategy."""

    draft = "draft"
    generating = "generating"
    complete = "complete"
    archived = "archived"


class StageStatus(str, Enum):
    """Generation states for a single stage."""

    pending = "pending"
    generating = "generating"
    complete = "complete"
    error = "error"


class DocumentStatus(str, Enum):
    """Lifecycle states for a derived document."""

    draft = "draft"
    validated = "validated"
    stale = "stale"
    archived = "archived"


# Only these document statuses can become stale; stale docs keep their first cause.
STALEABLE_STATUSES = frozenset({DocumentStatus.draft, DocumentStatus.validated})


class _StaleMarked(BaseModel):
    """Shared staleness pair. Reason and timestamp are set or cleared together."""

    stale_reason: str | None = None
    stale_since: datetime | None = None

    @model_validator(mode="after")
    def _check_stale_pair(self) -> _StaleMarked:
        if (self.stale_reason is None) != (self.stale_since is None):
            raise ValueError("stale_reason and stale_since must be set or cleared together")
        return self

    @property
    def is_stale(self) -> bool:
        return self.stale_since is not None


class Strategy(BaseModel):
    """Aggregate root: one brand's end-to-end generation workflow.

    ``phase`` is stored as a raw string so legacy names survive a load;
    :func:`pillarflow.pipeline.phases.resolve_phase` canonicalises it. Names
    outside the canonical order and the legacy map are rejected.
    """

    id: str = Field(min_length=1)
    name: str = ""
    phase: str = Phase.fiche.value
    status: StrategyStatus = StrategyStatus.draft
    vertical: str | None = None
    coherence_score: float | None = None
    risk_score: float | None = None
    bmf_score: float | None = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @field_validator("phase", mode="before")
    @classmethod
    def _known_phase(cls, v: Any) -> Any:
        if isinstance(v, Phase):
            return v.value
        if not isinstance(v, str) or v not in KNOWN_PHASE_NAMES:
            raise ValueError(f"Unknown phase: {v!r}")
        return v


class Stage(_StaleMarked):
    """One pillar of a strategy. Content is opaque to this library."""

    id: str = Field(min_length=1)
    strategy_id: str
    type: StageType
    status: StageStatus = StageStatus.pending
    content: dict[str, Any] | None = None
    generated_at: datetime | None = None
    updated_at: datetime = Field(default_factory=utcnow)


class DerivedDocument(_StaleMarked):
    """An artifact built from a subset of stage outputs.

    ``content`` is opaque here. Freshness reads its assertion timestamps
    and nothing in this library writes it.
    """

    id: str = Field(min_length=1)
    strategy_id: str
    kind: str = "brief"
    status: DocumentStatus = DocumentStatus.draft
    source_stages: frozenset[StageType] = Field(default_factory=frozenset)
    generated_at: datetime | None = None
    content: dict[str, Any] | None = None


class BudgetTier(BaseModel):
    """A spend bracket seeded once from the implementation stage."""

    strategy_id: str
    tier: str
    min_budget: float = Field(ge=0)
    max_budget: float = Field(ge=0)
    channels: list[dict[str, Any]] = Field(default_factory=list)
    description: str | None = None


class MarketContext(BaseModel):
    """Cross-stage market context synced from the track stage."""

    strategy_id: str
    competitors: list[dict[str, Any]] = Field(default_factory=list)
    opportunities: list[dict[str, Any]] = Field(default_factory=list)
    synced_at: datetime = Field(default_factory=utcnow)
