"""Tests for stage staleness markers and their cascade to documents."""

from __future__ import annotations

from datetime import timedelta

import pytest

from pillarflow.freshness.propagator import (
    clear_stage_staleness,
    invalidate_stages,
    mark_stage_stale,
    propagate_staleness,
    stale_reason_for,
)
from pillarflow.interfaces.persistence import StageNotFoundError
from pillarflow.pipeline.constants import StageType
from pillarflow.pipeline.models import DocumentStatus, Strategy

from tests.helpers import make_document, stage_id


# ── stage markers ───────────────────────────────────────────────────────


class TestStageMarkers:
    def test_mark_sets_reason_and_timestamp(self, store, strategy, now):
        sid = stage_id(store, strategy.id, "R")
        mark_stage_stale(store, sid, "competitor pivot", now=now)
        stage = store.get_stage(sid)
        assert stage.stale_reason == "competitor pivot"
        assert stage.stale_since == now
        assert stage.is_stale

    def test_clear_resets_both_fields(self, store, strategy, now):
        sid = stage_id(store, strategy.id, "R")
        mark_stage_stale(store, sid, "competitor pivot", now=now)
        clear_stage_staleness(store, sid)
        stage = store.get_stage(sid)
        assert stage.stale_reason is None
        assert stage.stale_since is None
        assert not stage.is_stale

    def test_blank_reason_rejected(self, store, strategy):
        with pytest.raises(ValueError):
            mark_stage_stale(store, stage_id(store, strategy.id, "A"), "   ")

    def test_unknown_stage_raises(self, store):
        with pytest.raises(StageNotFoundError):
            mark_stage_stale(store, "nope", "reason")


# ── propagate_staleness ─────────────────────────────────────────────────


class TestPropagate:
    def test_marks_documents_sharing_a_source(self, store, strategy, now):
        hit = store.add_document(make_document(strategy.id, {"R", "T"}))
        miss = store.add_document(make_document(strategy.id, {"A"}))

        result = propagate_staleness(store, strategy.id, {StageType.R}, now=now)

        assert result.marked_stale == 1
        doc = store.get_document(hit.id)
        assert doc.status is DocumentStatus.stale
        assert doc.stale_reason == "Source stage(s) stale: R"
        assert doc.stale_since == now
        assert store.get_document(miss.id).status is DocumentStatus.draft

    def test_reason_lists_only_overlapping_types(self, store, strategy, now):
        doc = store.add_document(make_document(strategy.id, {"R", "T", "I"}))
        propagate_staleness(store, strategy.id, {"T", "R", "A"}, now=now)
        assert store.get_document(doc.id).stale_reason == "Source stage(s) stale: R, T"

    def test_validated_documents_are_marked(self, store, strategy, now):
        doc = store.add_document(make_document(strategy.id, {"E"}, status=DocumentStatus.validated))
        assert propagate_staleness(store, strategy.id, {"E"}, now=now).marked_stale == 1
        assert store.get_document(doc.id).status is DocumentStatus.stale

    def test_archived_documents_untouched(self, store, strategy, now):
        doc = store.add_document(make_document(strategy.id, {"E"}, status=DocumentStatus.archived))
        assert propagate_staleness(store, strategy.id, {"E"}, now=now).marked_stale == 0
        assert store.get_document(doc.id).status is DocumentStatus.archived

    def test_empty_type_set_is_a_no_op(self, store, strategy, now):
        store.add_document(make_document(strategy.id, {"A"}))
        assert propagate_staleness(store, strategy.id, set(), now=now).marked_stale == 0

    def test_idempotent(self, store, strategy, now):
        store.add_document(make_document(strategy.id, {"R"}))
        store.add_document(make_document(strategy.id, {"R", "S"}))
        first = propagate_staleness(store, strategy.id, {"R"}, now=now)
        second = propagate_staleness(store, strategy.id, {"R"}, now=now)
        assert first.marked_stale == 2
        assert second.marked_stale == 0

    def test_first_cause_wins(self, store, strategy, now):
        doc = store.add_document(make_document(strategy.id, {"R", "T"}))
        propagate_staleness(store, strategy.id, {"R"}, now=now)
        propagate_staleness(store, strategy.id, {"T"}, now=now + timedelta(days=1))

        stored = store.get_document(doc.id)
        assert stored.stale_reason == "Source stage(s) stale: R"
        assert stored.stale_since == now

    def test_other_strategies_untouched(self, store, strategy, now):
        other = store.create_strategy(Strategy(id="strat-2"))
        doc = store.add_document(make_document(other.id, {"R"}))
        propagate_staleness(store, strategy.id, {"R"}, now=now)
        assert store.get_document(doc.id).status is DocumentStatus.draft


def test_stale_reason_uses_workflow_order():
    assert stale_reason_for({StageType.S, StageType.A, StageType.I}) == "Source stage(s) stale: A, I, S"


# ── invalidate_stages ───────────────────────────────────────────────────


class TestInvalidate:
    def test_marks_stages_and_cascades(self, store, strategy, now):
        store.add_document(make_document(strategy.id, {"T"}))
        store.add_document(make_document(strategy.id, {"A"}))

        result = invalidate_stages(store, strategy.id, ["T", "I"], "market shift", now=now)

        assert len(result.stages_marked) == 2
        assert result.documents_marked == 1
        flagged = {s.type for s in store.list_stages(strategy.id) if s.is_stale}
        assert flagged == {StageType.T, StageType.I}
        assert store.get_stage(stage_id(store, strategy.id, "T")).stale_reason == "market shift"
