"""Tests for model-level invariants."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pillarflow.interfaces.signals import SignalLayer, SignalPayload
from pillarflow.pipeline.constants import PHASE_NAMES, POST_GENERATION_PHASE, STAGE_TITLES, Phase, StageType
from pillarflow.pipeline.models import DerivedDocument, Stage, Strategy
from pillarflow.pipeline.phases import TransitionResult


# ── stale pairing ─────────────────────────────────────────────────────


class TestStalePairing:
    def test_reason_without_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            Stage(id="x", strategy_id="s", type=StageType.A, stale_reason="why")

    def test_timestamp_without_reason_rejected(self, now):
        with pytest.raises(ValidationError):
            DerivedDocument(id="d", strategy_id="s", stale_since=now)

    def test_both_set_is_stale(self, now):
        doc = DerivedDocument(id="d", strategy_id="s", stale_reason="why", stale_since=now)
        assert doc.is_stale

    def test_neither_set_is_fresh(self):
        assert not Stage(id="x", strategy_id="s", type=StageType.A).is_stale


# ── identifiers ───────────────────────────────────────────────────────


class TestIdentifiers:
    def test_empty_strategy_id_rejected(self):
        with pytest.raises(ValidationError):
            Strategy(id="")

    def test_empty_document_id_rejected(self):
        with pytest.raises(ValidationError):
            DerivedDocument(id="", strategy_id="s")

    def test_unknown_stage_type_rejected(self):
        with pytest.raises(ValidationError):
            Stage(id="x", strategy_id="s", type="Z")

    def test_empty_signal_title_rejected(self):
        with pytest.raises(ValidationError):
            SignalPayload(stage="E", layer=SignalLayer.metric, title="")


# ── static tables ─────────────────────────────────────────────────────


class TestTables:
    def test_phase_enum_stored_as_string(self):
        assert Strategy(id="s", phase=Phase.audit_t).phase == "audit-t"

    def test_legacy_phase_survives_load(self):
        assert Strategy(id="s", phase="audit").phase == "audit"

    def test_unknown_phase_rejected(self):
        with pytest.raises(ValidationError, match="Unknown phase"):
            Strategy(id="s", phase="banana")

    def test_non_string_phase_rejected(self):
        with pytest.raises(ValidationError):
            Strategy(id="s", phase=3)

    def test_phase_order(self):
        assert PHASE_NAMES == (
            "fiche", "fiche-review", "audit-r", "market-study", "audit-t",
            "audit-review", "implementation", "cockpit", "complete",
        )

    def test_every_stage_has_title_and_mapping(self):
        assert set(STAGE_TITLES) == set(StageType)
        assert set(POST_GENERATION_PHASE) == set(StageType)

    def test_transition_result_is_frozen(self):
        result = TransitionResult(valid=True)
        with pytest.raises(ValidationError):
            result.valid = False
