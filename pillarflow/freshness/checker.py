"""Age-based freshness reports for stages and derived documents.

Documents may carry opaque ``content``. When it holds
``sections[].blocks[]`` with a ``source_ref.updated_at`` timestamp per block,
each block is an assertion whose own age is reported alongside the
document's generation age.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from pillarflow.config.models import ThresholdProfile
from pillarflow.freshness.classifier import FreshnessStatus, classify_days, days_since, thresholds_for
from pillarflow.pipeline.constants import StageType
from pillarflow.pipeline.models import STALEABLE_STATUSES, DerivedDocument, DocumentStatus

if TYPE_CHECKING:
    from pillarflow.interfaces.persistence import StrategyStore

logger = logging.getLogger(__name__)

# Reported age for records that were never generated
NEVER_DAYS = 999

BADGE_COLORS = {
    FreshnessStatus.FRESH: "green",
    FreshnessStatus.AGING: "orange",
    FreshnessStatus.STALE: "red",
}


class FreshnessBadge(BaseModel):
    """Compact freshness marker for one timestamp. ``days_since`` is None when never set."""

    status: FreshnessStatus
    color: str
    label: str
    days_since: int | None = None


class StageFreshness(BaseModel):
    stage_id: str
    stage_type: StageType
    status: FreshnessStatus
    days_since_update: int
    stale_reason: str | None = None


class StalenessReport(BaseModel):
    """Non-fresh stages of a strategy, plus the ones explicitly flagged stale."""

    strategy_id: str
    aging_or_stale: list[StageFreshness] = Field(default_factory=list)
    flagged: list[StageFreshness] = Field(default_factory=list)


class AssertionStats(BaseModel):
    total: int = 0
    stale: int = 0
    oldest_days: int | None = None


class DocumentFreshness(BaseModel):
    document_id: str
    kind: str
    status: FreshnessStatus
    days_since_generation: int
    oldest_assertion_days: int | None = None
    stale_assertions: int = 0
    total_assertions: int = 0


class FreshnessSummary(BaseModel):
    total: int = 0
    fresh: int = 0
    aging: int = 0
    stale: int = 0
    oldest_days: int = 0


class FreshnessReport(BaseModel):
    strategy_id: str
    documents: list[DocumentFreshness] = Field(default_factory=list)
    summary: FreshnessSummary = Field(default_factory=FreshnessSummary)


def freshness_badge(
    timestamp: datetime | None,
    profile: ThresholdProfile,
    now: datetime | None = None,
) -> FreshnessBadge:
    age = days_since(timestamp, now)
    status = classify_days(age, profile)
    return FreshnessBadge(
        status=status,
        color=BADGE_COLORS[status],
        label="N/A" if age is None else f"{age}d",
        days_since=age,
    )


def _parse_updated_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def check_assertion_freshness(
    source_ref: Mapping[str, Any],
    vertical: str | None,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> FreshnessBadge:
    """Badge for one assertion's ``source_ref``. A missing or unreadable ``updated_at`` is STALE."""
    raw = source_ref.get("updated_at")
    timestamp = _parse_updated_at(raw) if raw else None
    return freshness_badge(timestamp, thresholds_for(vertical, profiles), now)


def analyze_assertions(
    content: Mapping[str, Any] | None,
    profile: ThresholdProfile,
    now: datetime | None = None,
) -> AssertionStats:
    """Count the blocks of ``content`` and how many cite stale sources.

    Blocks without a ``source_ref.updated_at`` count toward the total but
    are neither stale nor aged. A timestamp that cannot be parsed counts
    as stale.
    """
    stats = AssertionStats()
    sections = content.get("sections") if isinstance(content, Mapping) else None
    if not isinstance(sections, list):
        return stats

    for section in sections:
        blocks = section.get("blocks") if isinstance(section, Mapping) else None
        if not isinstance(blocks, list):
            continue
        for block in blocks:
            stats.total += 1
            source_ref = block.get("source_ref") if isinstance(block, Mapping) else None
            raw = source_ref.get("updated_at") if isinstance(source_ref, Mapping) else None
            if not raw:
                continue
            age = days_since(_parse_updated_at(raw), now)
            if age is not None:
                stats.oldest_days = age if stats.oldest_days is None else max(stats.oldest_days, age)
            if classify_days(age, profile) is FreshnessStatus.STALE:
                stats.stale += 1
    return stats


def _document_freshness(
    doc: DerivedDocument, profile: ThresholdProfile, now: datetime | None
) -> DocumentFreshness:
    age = days_since(doc.generated_at, now)
    assertions = analyze_assertions(doc.content, profile, now)
    return DocumentFreshness(
        document_id=doc.id,
        kind=doc.kind,
        status=classify_days(age, profile),
        days_since_generation=NEVER_DAYS if age is None else age,
        oldest_assertion_days=assertions.oldest_days,
        stale_assertions=assertions.stale,
        total_assertions=assertions.total,
    )


def check_staleness(
    store: StrategyStore,
    strategy_id: str,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> StalenessReport:
    """Classify every stage by its last generation (or update) time."""
    strategy = store.get_strategy(strategy_id)
    profile = thresholds_for(strategy.vertical, profiles)
    report = StalenessReport(strategy_id=strategy_id)

    for stage in store.list_stages(strategy_id):
        last_touch = stage.generated_at or stage.updated_at
        age = days_since(last_touch, now)
        entry = StageFreshness(
            stage_id=stage.id,
            stage_type=stage.type,
            status=classify_days(age, profile),
            days_since_update=NEVER_DAYS if age is None else age,
            stale_reason=stage.stale_reason,
        )
        if entry.status is not FreshnessStatus.FRESH:
            report.aging_or_stale.append(entry)
        if stage.is_stale:
            report.flagged.append(entry)

    return report


def check_document_freshness(
    store: StrategyStore,
    document_id: str,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> DocumentFreshness:
    """Freshness of a single document, judged against its strategy's vertical."""
    doc = store.get_document(document_id)
    strategy = store.get_strategy(doc.strategy_id)
    return _document_freshness(doc, thresholds_for(strategy.vertical, profiles), now)


def document_freshness_report(
    store: StrategyStore,
    strategy_id: str,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> FreshnessReport:
    """Freshness of every non-archived document, with summary counts.

    ``summary.oldest_days`` takes each document's oldest assertion when it
    has dated ones, else its generation age. Never-generated documents
    without dated assertions do not contribute.
    """
    strategy = store.get_strategy(strategy_id)
    profile = thresholds_for(strategy.vertical, profiles)

    report = FreshnessReport(strategy_id=strategy_id)
    statuses = [s for s in DocumentStatus if s is not DocumentStatus.archived]
    for doc in store.list_documents(strategy_id, statuses=statuses):
        entry = _document_freshness(doc, profile, now)
        report.documents.append(entry)
        oldest = entry.oldest_assertion_days
        if oldest is None and doc.generated_at is not None:
            oldest = entry.days_since_generation
        if oldest is not None:
            report.summary.oldest_days = max(report.summary.oldest_days, oldest)

    summary = report.summary
    summary.total = len(report.documents)
    summary.fresh = sum(1 for d in report.documents if d.status is FreshnessStatus.FRESH)
    summary.aging = sum(1 for d in report.documents if d.status is FreshnessStatus.AGING)
    summary.stale = sum(1 for d in report.documents if d.status is FreshnessStatus.STALE)
    return report


def mark_stale_documents(
    store: StrategyStore,
    strategy_id: str,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> int:
    """Scheduled sweep: flag draft/validated documents whose generation age is STALE.

    A document that was never generated is STALE too. Returns the number
    of documents newly marked.
    """
    now = now or datetime.now(UTC)
    strategy = store.get_strategy(strategy_id)
    profile = thresholds_for(strategy.vertical, profiles)

    marked = 0
    for doc in store.list_documents(strategy_id, statuses=STALEABLE_STATUSES):
        age = days_since(doc.generated_at, now)
        if classify_days(age, profile) is not FreshnessStatus.STALE:
            continue
        if age is None:
            reason = "Never generated"
        else:
            reason = f"Generated {age} days ago (threshold {profile.aging_days} days exceeded)"
        if store.mark_document_stale(doc.id, reason, now):
            marked += 1

    if marked:
        logger.info("Age sweep marked %d document(s) stale for strategy %s", marked, strategy_id)
    return marked
