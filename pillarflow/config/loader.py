"""YAML config loading with env var expansion."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import PillarflowConfig

CONFIG_ENV_VAR = "PILLARFLOW_CONFIG"
PROJECT_CONFIG = Path("pillarflow.yaml")
USER_CONFIG = Path(".pillarflow") / "config.yaml"

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def config_candidates(cli_path: str | None = None) -> list[Path]:
    """Files consulted in priority order: --config, $PILLARFLOW_CONFIG, project, user."""
    candidates = []
    if cli_path:
        candidates.append(Path(cli_path))
    if os.environ.get(CONFIG_ENV_VAR):
        candidates.append(Path(os.environ[CONFIG_ENV_VAR]))
    candidates.append(PROJECT_CONFIG)
    candidates.append(Path.home() / USER_CONFIG)
    return candidates


def _read_mapping(path: Path) -> dict[str, Any] | None:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid config in {path}: top level must be a mapping")
    return raw


def resolve_config(cli_path: str | None = None) -> tuple[PillarflowConfig, Path | None]:
    """Load the first non-empty candidate file, returning it alongside the config.

    The path is None when no file applied and built-in defaults are used.
    """
    for path in config_candidates(cli_path):
        if not path.is_file():
            continue
        raw = _read_mapping(path)
        if raw is None:
            continue
        try:
            return PillarflowConfig.model_validate(_expand_env_vars(raw)), path
        except ValidationError as e:
            raise ValueError(f"Invalid config in {path}: {e}") from e
    return PillarflowConfig(), None


def load_config(cli_path: str | None = None) -> PillarflowConfig:
    return resolve_config(cli_path)[0]


def _expand_env_vars(obj: object) -> object:
    """Recursively expand ${VAR} and ${VAR:-fallback} in strings. Unset with no fallback is ""."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), obj)
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(config: PillarflowConfig) -> None:
    """Install a root handler honoring log_level and log_format. CLI use only."""
    handler = logging.StreamHandler()
    if config.log_format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(_LEVELS[config.log_level])


# Default YAML template for `pillarflow config init`
DEFAULT_CONFIG_TEMPLATE = """\
# pillarflow.yaml

# Freshness thresholds per vertical (days). DEFAULT is used for unknown verticals.
freshness:
  profiles:
    DEFAULT:
      fresh_days: 7
      aging_days: 14
    fintech:
      fresh_days: 3
      aging_days: 7
    b2b-saas:
      fresh_days: 14
      aging_days: 30

# Budget tiers seeded once after the implementation stage completes
# budget:
#   tiers:
#     - name: "MICRO"
#       min_budget: 0
#       max_budget: 5000
#       max_channels: 3

# Storage
storage:
  path: ".pillarflow/pillarflow.db"

# Logging
log_level: "info"              # debug | info | warn | error
log_format: "text"             # text | json
"""
