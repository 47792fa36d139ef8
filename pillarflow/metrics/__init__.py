"""Metric threshold monitoring."""

from pillarflow.metrics.models import (
    AlertType,
    EvaluationCycleResult,
    EvaluationResult,
    MetricAlert,
    MetricThreshold,
)
from pillarflow.metrics.monitor import (
    create_alert_signals,
    delete_threshold,
    evaluate_thresholds,
    get_thresholds,
    new_threshold,
    run_evaluation_cycle,
    upsert_threshold,
)

__all__ = [
    "AlertType",
    "EvaluationCycleResult",
    "EvaluationResult",
    "MetricAlert",
    "MetricThreshold",
    "create_alert_signals",
    "delete_threshold",
    "evaluate_thresholds",
    "get_thresholds",
    "new_threshold",
    "run_evaluation_cycle",
    "upsert_threshold",
]
