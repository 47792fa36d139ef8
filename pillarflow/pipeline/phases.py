"""Phase state machine: alias resolution and forward/backward transition checks.

``validate_forward`` and ``validate_reversion`` are pure predicates. Callers
apply a transition only after a check passes; :func:`advance_phase` and
:func:`revert_phase` do exactly that against a store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from pillarflow.pipeline.constants import (
    LEGACY_PHASE_MAP,
    PHASE_NAMES,
    SKIPPABLE_PHASES,
    TERMINAL_PHASE,
    Phase,
)
from pillarflow.pipeline.models import Strategy, StrategyStatus

if TYPE_CHECKING:
    from pillarflow.interfaces.persistence import StrategyStore

logger = logging.getLogger(__name__)

_SKIPPABLE_NAMES = frozenset(p.value for p in SKIPPABLE_PHASES)


class TransitionResult(BaseModel):
    """Outcome of a transition check. ``error`` is set iff ``valid`` is False."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    error: str | None = None


_OK = TransitionResult(valid=True)


def _reject(error: str) -> TransitionResult:
    return TransitionResult(valid=False, error=error)


def resolve_phase(raw: str | Phase) -> str:
    """Map a legacy phase name to its canonical name; anything else passes through."""
    name = raw.value if isinstance(raw, Phase) else raw
    legacy = LEGACY_PHASE_MAP.get(name)
    return legacy.value if legacy is not None else name


def phase_index(raw: str | Phase) -> int:
    """Position in the canonical order, or -1 if the name is unknown."""
    name = resolve_phase(raw)
    try:
        return PHASE_NAMES.index(name)
    except ValueError:
        return -1


def is_terminal(raw: str | Phase) -> bool:
    return resolve_phase(raw) == TERMINAL_PHASE.value


def validate_forward(current_raw: str | Phase, target: str | Phase) -> TransitionResult:
    """Check a forward move. Intervening phases may be jumped only if all are skippable."""
    current = resolve_phase(current_raw)
    target_name = resolve_phase(target)
    current_index = phase_index(current)
    target_index = phase_index(target_name)

    if current_index == -1:
        return _reject(f'Unknown current phase: "{current_raw}"')
    if target_index == -1:
        return _reject(f'Unknown target phase: "{target_name}"')
    if target_index <= current_index:
        return _reject(f'Cannot advance to phase "{target_name}" from "{current}"')

    if target_index > current_index + 1:
        skipped = PHASE_NAMES[current_index + 1:target_index]
        blocking = [p for p in skipped if p not in _SKIPPABLE_NAMES]
        if blocking:
            return _reject(
                f'Cannot jump directly to "{target_name}": '
                f'complete phase "{blocking[0]}" first'
            )

    return _OK


def validate_reversion(current_raw: str | Phase, target: str | Phase) -> TransitionResult:
    """Check a backward move to any strictly earlier phase."""
    current = resolve_phase(current_raw)
    target_name = resolve_phase(target)
    current_index = phase_index(current)
    target_index = phase_index(target_name)

    if current_index == -1:
        return _reject(f'Unknown current phase: "{current_raw}"')
    if target_index == -1:
        return _reject(f'Unknown target phase: "{target_name}"')
    if target_index >= current_index:
        return _reject(
            f'Cannot revert to "{target_name}": strategy is already at '
            f'"{current}" or earlier'
        )

    return _OK


def status_for_phase(phase: str | Phase) -> StrategyStatus:
    """Lifecycle status implied by entering a phase."""
    return StrategyStatus.complete if is_terminal(phase) else StrategyStatus.generating


def advance_phase(
    store: StrategyStore, strategy_id: str, target: str | Phase
) -> tuple[TransitionResult, Strategy]:
    """Validate and apply a forward transition. Returns the result and the current record."""
    strategy = store.get_strategy(strategy_id)
    result = validate_forward(strategy.phase, target)
    if not result.valid:
        logger.info("Rejected advance of %s: %s", strategy_id, result.error)
        return result, strategy

    target_name = resolve_phase(target)
    updated = store.update_strategy(
        strategy_id, phase=target_name, status=status_for_phase(target_name)
    )
    logger.info("Strategy %s advanced %s -> %s", strategy_id, strategy.phase, target_name)
    return result, updated


def revert_phase(
    store: StrategyStore, strategy_id: str, target: str | Phase
) -> tuple[TransitionResult, Strategy]:
    """Validate and apply a reversion. Later-phase data is kept; status returns to generating."""
    strategy = store.get_strategy(strategy_id)
    result = validate_reversion(strategy.phase, target)
    if not result.valid:
        logger.info("Rejected reversion of %s: %s", strategy_id, result.error)
        return result, strategy

    target_name = resolve_phase(target)
    updated = store.update_strategy(
        strategy_id, phase=target_name, status=StrategyStatus.generating
    )
    logger.info("Strategy %s reverted %s -> %s", strategy_id, strategy.phase, target_name)
    return result, updated
