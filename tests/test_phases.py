"""Tests for the phase state machine."""

from __future__ import annotations

import itertools

import pytest

from pillarflow.interfaces.persistence import StrategyNotFoundError
from pillarflow.pipeline.constants import PHASE_NAMES, SKIPPABLE_PHASES, Phase
from pillarflow.pipeline.models import Strategy, StrategyStatus
from pillarflow.pipeline.phases import (
    advance_phase,
    is_terminal,
    phase_index,
    resolve_phase,
    revert_phase,
    status_for_phase,
    validate_forward,
    validate_reversion,
)

_SKIPPABLE = {p.value for p in SKIPPABLE_PHASES}


# ── resolve_phase ───────────────────────────────────────────────────────


class TestResolvePhase:
    def test_legacy_audit_maps_to_audit_r(self):
        assert resolve_phase("audit") == "audit-r"

    def test_canonical_names_pass_through(self):
        for name in PHASE_NAMES:
            assert resolve_phase(name) == name

    def test_unknown_names_pass_through(self):
        assert resolve_phase("brainstorm") == "brainstorm"

    def test_accepts_enum(self):
        assert resolve_phase(Phase.market_study) == "market-study"

    @pytest.mark.parametrize("raw", [*PHASE_NAMES, "audit", "whatever"])
    def test_idempotent(self, raw):
        assert resolve_phase(resolve_phase(raw)) == resolve_phase(raw)

    def test_phase_index(self):
        assert phase_index("fiche") == 0
        assert phase_index("audit") == phase_index("audit-r")
        assert phase_index("brainstorm") == -1


# ── validate_forward ────────────────────────────────────────────────────


class TestValidateForward:
    def test_next_phase_allowed(self):
        result = validate_forward("fiche", "fiche-review")
        assert result.valid
        assert result.error is None

    def test_skip_market_study_allowed(self):
        assert validate_forward("audit-r", "audit-t").valid

    def test_legacy_current_phase_resolved(self):
        assert validate_forward("audit", "market-study").valid
        assert validate_forward("audit", "audit-t").valid

    def test_jump_over_required_phase_rejected(self):
        result = validate_forward("fiche", "audit-review")
        assert not result.valid
        assert result.error == 'Cannot jump directly to "audit-review": complete phase "fiche-review" first'

    def test_same_phase_rejected(self):
        result = validate_forward("audit-t", "audit-t")
        assert not result.valid
        assert "Cannot advance" in result.error

    def test_backward_rejected(self):
        assert not validate_forward("cockpit", "fiche").valid

    def test_unknown_current_rejected(self):
        result = validate_forward("brainstorm", "fiche-review")
        assert not result.valid
        assert result.error == 'Unknown current phase: "brainstorm"'

    def test_unknown_target_rejected(self):
        assert not validate_forward("fiche", "launch").valid

    @pytest.mark.parametrize("current, target", list(itertools.combinations(PHASE_NAMES, 2)))
    def test_skip_legality(self, current, target):
        """A forward move is legal iff every phase strictly between is skippable."""
        i, j = PHASE_NAMES.index(current), PHASE_NAMES.index(target)
        between = PHASE_NAMES[i + 1:j]
        expected = all(p in _SKIPPABLE for p in between)
        assert validate_forward(current, target).valid is expected


# ── validate_reversion ──────────────────────────────────────────────────


class TestValidateReversion:
    def test_any_earlier_phase_allowed(self):
        assert validate_reversion("cockpit", "fiche").valid
        assert validate_reversion("audit-t", "market-study").valid

    def test_same_phase_rejected(self):
        assert not validate_reversion("audit-t", "audit-t").valid

    def test_later_phase_rejected(self):
        result = validate_reversion("fiche", "cockpit")
        assert not result.valid
        assert result.error.startswith('Cannot revert to "cockpit"')

    def test_unknown_phases_rejected(self):
        assert not validate_reversion("brainstorm", "fiche").valid
        assert not validate_reversion("cockpit", "launch").valid

    @pytest.mark.parametrize("a, b", list(itertools.permutations(PHASE_NAMES, 2)))
    def test_forward_and_reversion_are_exclusive(self, a, b):
        assert not (validate_forward(a, b).valid and validate_reversion(a, b).valid)


# ── status and application ──────────────────────────────────────────────


class TestStatusForPhase:
    def test_terminal_is_complete(self):
        assert is_terminal("complete")
        assert status_for_phase("complete") is StrategyStatus.complete

    def test_non_terminal_is_generating(self):
        for name in PHASE_NAMES[:-1]:
            assert status_for_phase(name) is StrategyStatus.generating


class TestApplyTransitions:
    def test_advance_applies_phase_and_status(self, store, strategy):
        result, updated = advance_phase(store, strategy.id, "fiche-review")
        assert result.valid
        assert updated.phase == "fiche-review"
        assert updated.status is StrategyStatus.generating
        assert store.get_strategy(strategy.id).phase == "fiche-review"

    def test_advance_to_complete_sets_complete(self, store):
        store.create_strategy(Strategy(id="s", phase="cockpit"))
        _, updated = advance_phase(store, "s", "complete")
        assert updated.status is StrategyStatus.complete

    def test_rejected_advance_changes_nothing(self, store, strategy):
        result, current = advance_phase(store, strategy.id, "cockpit")
        assert not result.valid
        assert current.phase == "fiche"
        assert store.get_strategy(strategy.id).status is StrategyStatus.draft

    def test_revert_sets_generating(self, store):
        store.create_strategy(Strategy(id="s", phase="complete", status=StrategyStatus.complete))
        result, updated = revert_phase(store, "s", "audit-t")
        assert result.valid
        assert updated.phase == "audit-t"
        assert updated.status is StrategyStatus.generating

    def test_legacy_stored_phase_can_advance(self, store):
        store.create_strategy(Strategy(id="s", phase="audit"))
        result, updated = advance_phase(store, "s", "audit-t")
        assert result.valid
        assert updated.phase == "audit-t"

    def test_unknown_strategy_raises(self, store):
        with pytest.raises(StrategyNotFoundError):
            advance_phase(store, "missing", "fiche-review")
