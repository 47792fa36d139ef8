from .loader import configure_logging, load_config, resolve_config
from .models import (
    BudgetConfig,
    FreshnessConfig,
    PillarflowConfig,
    StorageConfig,
    ThresholdProfile,
    TierSpec,
)

__all__ = [
    "BudgetConfig",
    "FreshnessConfig",
    "PillarflowConfig",
    "StorageConfig",
    "ThresholdProfile",
    "TierSpec",
    "configure_logging",
    "load_config",
    "resolve_config",
]
