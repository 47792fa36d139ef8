from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ThresholdProfile(BaseModel):
    """Day thresholds separating FRESH / AGING / STALE."""

    model_config = ConfigDict(frozen=True)

    fresh_days: int = Field(ge=0)
    aging_days: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "ThresholdProfile":
        if self.aging_days < self.fresh_days:
            raise ValueError("aging_days must be >= fresh_days")
        return self


DEFAULT_PROFILE_KEY = "DEFAULT"


def _default_profiles() -> dict[str, ThresholdProfile]:
    return {
        DEFAULT_PROFILE_KEY: ThresholdProfile(fresh_days=7, aging_days=14),
        "fashion": ThresholdProfile(fresh_days=5, aging_days=10),
        "fintech": ThresholdProfile(fresh_days=3, aging_days=7),
        "fmcg": ThresholdProfile(fresh_days=7, aging_days=14),
        "b2b-saas": ThresholdProfile(fresh_days=14, aging_days=30),
        "hospitality": ThresholdProfile(fresh_days=7, aging_days=21),
        "health": ThresholdProfile(fresh_days=14, aging_days=30),
        "education": ThresholdProfile(fresh_days=30, aging_days=60),
    }


class FreshnessConfig(BaseModel):
    profiles: dict[str, ThresholdProfile] = Field(default_factory=_default_profiles)

    @model_validator(mode="after")
    def _ensure_default(self) -> "FreshnessConfig":
        if DEFAULT_PROFILE_KEY not in self.profiles:
            self.profiles[DEFAULT_PROFILE_KEY] = _default_profiles()[DEFAULT_PROFILE_KEY]
        return self


class TierSpec(BaseModel):
    name: str
    min_budget: float = Field(ge=0)
    max_budget: float = Field(ge=0)
    max_channels: int = Field(default=3, gt=0)
    description: str | None = None


def _default_tiers() -> list[TierSpec]:
    return [
        TierSpec(name="MICRO", min_budget=0, max_budget=5_000, max_channels=3,
                 description="Organic and low-cost channels only"),
        TierSpec(name="STARTER", min_budget=5_000, max_budget=20_000, max_channels=4,
                 description="Adds paid social on top of owned channels"),
        TierSpec(name="IMPACT", min_budget=20_000, max_budget=75_000, max_channels=5,
                 description="Multi-channel activation with influence"),
        TierSpec(name="CAMPAIGN", min_budget=75_000, max_budget=250_000, max_channels=6,
                 description="Integrated campaigns with paid media"),
        TierSpec(name="DOMINATION", min_budget=250_000, max_budget=1_000_000, max_channels=8,
                 description="Full-funnel presence across every channel"),
    ]


class BudgetConfig(BaseModel):
    tiers: list[TierSpec] = Field(default_factory=_default_tiers)


class StorageConfig(BaseModel):
    path: str = ".pillarflow/pillarflow.db"


class PillarflowConfig(BaseModel):
    freshness: FreshnessConfig = Field(default_factory=FreshnessConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"
