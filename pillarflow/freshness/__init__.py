"""Freshness tracking: age classification, staleness markers, and cascade to documents."""

from pillarflow.freshness.checker import (
    AssertionStats,
    DocumentFreshness,
    FreshnessBadge,
    FreshnessReport,
    StageFreshness,
    StalenessReport,
    analyze_assertions,
    check_assertion_freshness,
    check_document_freshness,
    check_staleness,
    document_freshness_report,
    freshness_badge,
    mark_stale_documents,
)
from pillarflow.freshness.classifier import (
    FreshnessStatus,
    classify,
    classify_freshness,
    days_since,
    thresholds_for,
)
from pillarflow.freshness.propagator import (
    InvalidationResult,
    PropagationResult,
    clear_stage_staleness,
    invalidate_stages,
    mark_stage_stale,
    propagate_staleness,
)

__all__ = [
    "AssertionStats",
    "DocumentFreshness",
    "FreshnessBadge",
    "FreshnessReport",
    "FreshnessStatus",
    "InvalidationResult",
    "PropagationResult",
    "StageFreshness",
    "StalenessReport",
    "analyze_assertions",
    "check_assertion_freshness",
    "check_document_freshness",
    "check_staleness",
    "classify",
    "classify_freshness",
    "clear_stage_staleness",
    "days_since",
    "document_freshness_report",
    "freshness_badge",
    "invalidate_stages",
    "mark_stage_stale",
    "mark_stale_documents",
    "propagate_staleness",
    "thresholds_for",
]
