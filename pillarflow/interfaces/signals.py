"""Signal recorder interface and payload model."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class SignalLayer(str, Enum):
    metric = "METRIC"
    strong = "STRONG"
    weak = "WEAK"


class SignalStatus(str, Enum):
    active = "active"
    resolved = "resolved"


class Confidence(str, Enum):
    low = "LOW"
    medium = "MEDIUM"
    high = "HIGH"


class SignalPayload(BaseModel):
    """A timestamp-free description of a signal; the recorder stamps it."""

    model_config = ConfigDict(frozen=True)

    stage: str
    layer: SignalLayer
    title: str = Field(min_length=1)
    description: str | None = None
    status: SignalStatus = SignalStatus.active
    source: str | None = None
    confidence: Confidence = Confidence.medium


@runtime_checkable
class SignalRecorder(Protocol):
    """Sink for signal records. Returns the id of the stored signal."""

    def record(self, strategy_id: str, payload: SignalPayload) -> str: ...
