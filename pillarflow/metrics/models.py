"""Pydantic models for the metric monitor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pillarflow.pipeline.models import utcnow


class AlertType(str, Enum):
    """Direction of a threshold breach."""

    below_min = "below_min"
    above_max = "above_max"


class MetricThreshold(BaseModel):
    """A tracked KPI with optional alert bounds. Unique per (strategy_id, metric_key)."""

    id: str = Field(min_length=1)
    strategy_id: str
    stage: str
    metric_key: str = Field(min_length=1)
    metric_label: str
    current_value: float = 0.0
    target_value: float = 0.0
    alert_min: float | None = None
    alert_max: float | None = None
    unit: str = "%"
    cadence: str = "MONTHLY"
    last_updated: datetime = Field(default_factory=utcnow)

    @field_validator("metric_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("metric_key cannot be empty or whitespace")
        return v


class MetricAlert(BaseModel):
    """A single breach found during evaluation."""

    model_config = ConfigDict(frozen=True)

    threshold_id: str
    metric_key: str
    metric_label: str
    stage: str
    current_value: float
    target_value: float
    alert_min: float | None = None
    alert_max: float | None = None
    type: AlertType


class EvaluationResult(BaseModel):
    alerts: list[MetricAlert] = Field(default_factory=list)


class EvaluationCycleResult(BaseModel):
    """Alerts found plus the ids of the signals recorded for them."""

    alerts: list[MetricAlert] = Field(default_factory=list)
    signal_ids: list[str] = Field(default_factory=list)

    @property
    def signals_created(self) -> int:
        return len(self.signal_ids)
