"""KPI threshold evaluation and conversion of breaches into signals.

Evaluation never mutates thresholds. Each evaluation cycle records one new
signal per breach; deduplication against earlier cycles is left to the
signal sink.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from pillarflow.interfaces.signals import Confidence, SignalLayer, SignalPayload, SignalStatus
from pillarflow.metrics.models import (
    AlertType,
    EvaluationCycleResult,
    EvaluationResult,
    MetricAlert,
    MetricThreshold,
)

if TYPE_CHECKING:
    from pillarflow.interfaces.persistence import StrategyStore
    from pillarflow.interfaces.signals import SignalRecorder

logger = logging.getLogger(__name__)

SIGNAL_SOURCE = "metric-monitor"


def upsert_threshold(store: StrategyStore, threshold: MetricThreshold) -> MetricThreshold:
    """Insert or update on (strategy_id, metric_key)."""
    return store.upsert_threshold(threshold)


def new_threshold(strategy_id: str, metric_key: str, **fields) -> MetricThreshold:
    """Build a threshold with a fresh id. The store keeps the existing id on update."""
    return MetricThreshold(
        id=str(uuid.uuid4()),
        strategy_id=strategy_id,
        metric_key=metric_key,
        metric_label=fields.pop("metric_label", metric_key),
        stage=fields.pop("stage", ""),
        **fields,
    )


def get_thresholds(store: StrategyStore, strategy_id: str) -> list[MetricThreshold]:
    """All thresholds of a strategy, ordered by stage then metric key."""
    return sorted(store.list_thresholds(strategy_id), key=lambda t: (t.stage, t.metric_key))


def delete_threshold(store: StrategyStore, threshold_id: str) -> None:
    store.delete_threshold(threshold_id)


def _alert(t: MetricThreshold, kind: AlertType) -> MetricAlert:
    return MetricAlert(
        threshold_id=t.id,
        metric_key=t.metric_key,
        metric_label=t.metric_label,
        stage=t.stage,
        current_value=t.current_value,
        target_value=t.target_value,
        alert_min=t.alert_min,
        alert_max=t.alert_max,
        type=kind,
    )


def evaluate_threshold(t: MetricThreshold) -> list[MetricAlert]:
    """Breaches for one threshold. Both bounds can fire on a misconfigured threshold."""
    alerts = []
    if t.alert_min is not None and t.current_value < t.alert_min:
        alerts.append(_alert(t, AlertType.below_min))
    if t.alert_max is not None and t.current_value > t.alert_max:
        alerts.append(_alert(t, AlertType.above_max))
    return alerts


def evaluate_thresholds(store: StrategyStore, strategy_id: str) -> EvaluationResult:
    alerts: list[MetricAlert] = []
    for t in store.list_thresholds(strategy_id):
        alerts.extend(evaluate_threshold(t))
    return EvaluationResult(alerts=alerts)


def alert_title(alert: MetricAlert) -> str:
    if alert.type is AlertType.below_min:
        return f"{alert.metric_label} below threshold ({alert.current_value:g} < {alert.alert_min:g})"
    return f"{alert.metric_label} above threshold ({alert.current_value:g} > {alert.alert_max:g})"


def alert_to_signal(alert: MetricAlert) -> SignalPayload:
    return SignalPayload(
        stage=alert.stage,
        layer=SignalLayer.metric,
        title=alert_title(alert),
        description=(
            f"Metric {alert.metric_key} in alert. Current value: {alert.current_value:g}, "
            f"target: {alert.target_value:g}."
        ),
        status=SignalStatus.active,
        source=SIGNAL_SOURCE,
        confidence=Confidence.high,
    )


def create_alert_signals(
    recorder: SignalRecorder,
    strategy_id: str,
    alerts: list[MetricAlert],
) -> list[str]:
    """Record one signal per alert. Returns the recorded signal ids."""
    return [recorder.record(strategy_id, alert_to_signal(a)) for a in alerts]


def run_evaluation_cycle(
    store: StrategyStore,
    recorder: SignalRecorder,
    strategy_id: str,
) -> EvaluationCycleResult:
    """Evaluate every threshold and record a signal for each breach."""
    alerts = evaluate_thresholds(store, strategy_id).alerts
    if not alerts:
        return EvaluationCycleResult()

    signal_ids = create_alert_signals(recorder, strategy_id, alerts)
    logger.info(
        "Metric evaluation for %s: %d alert(s), %d signal(s) recorded",
        strategy_id, len(alerts), len(signal_ids),
    )
    return EvaluationCycleResult(alerts=alerts, signal_ids=signal_ids)
