"""Behaviour shared by every StrategyStore implementation."""

from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from pillarflow.interfaces.persistence import (
    DocumentNotFoundError,
    StageNotFoundError,
    StrategyNotFoundError,
    StrategyStore,
    ThresholdNotFoundError,
)
from pillarflow.interfaces.signals import SignalLayer, SignalPayload, SignalRecorder
from pillarflow.metrics.monitor import new_threshold
from pillarflow.pipeline.constants import StageType
from pillarflow.pipeline.models import (
    BudgetTier,
    DocumentStatus,
    MarketContext,
    StageStatus,
    Strategy,
    StrategyStatus,
)
from pillarflow.storage.memory import InMemoryStore
from pillarflow.storage.sqlite_store import SQLiteStore

from tests.helpers import make_document, stage_id


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryStore()
        return
    s = SQLiteStore(db_path=str(tmp_path / "nested" / "pf.db"))
    yield s
    s.close()


@pytest.fixture
def seeded(any_store):
    any_store.create_strategy(Strategy(id="s1", name="Acme", vertical="fintech"))
    return any_store


# ── protocol conformance ────────────────────────────────────────────


class TestProtocol:
    def test_satisfies_store_and_recorder(self, any_store):
        assert isinstance(any_store, StrategyStore)
        assert isinstance(any_store, SignalRecorder)


# ── strategies and stages ───────────────────────────────────────────


class TestStrategies:
    def test_create_seeds_eight_pending_stages(self, seeded):
        stages = seeded.list_stages("s1")
        assert [s.type for s in stages] == list(StageType)
        assert all(s.status is StageStatus.pending for s in stages)
        assert all(not s.is_stale for s in stages)

    def test_round_trip_fields(self, seeded):
        s = seeded.get_strategy("s1")
        assert (s.name, s.vertical, s.phase, s.status) == ("Acme", "fintech", "fiche", StrategyStatus.draft)

    def test_missing_strategy(self, any_store):
        with pytest.raises(StrategyNotFoundError):
            any_store.get_strategy("nope")

    def test_duplicate_id_rejected(self, seeded):
        with pytest.raises((ValueError, sqlite3.IntegrityError)):
            seeded.create_strategy(Strategy(id="s1"))
        assert len(seeded.list_stages("s1")) == 8

    def test_update_only_given_fields(self, seeded, now):
        seeded.update_strategy("s1", phase="audit-r")
        updated = seeded.update_strategy("s1", status=StrategyStatus.complete, completed_at=now)
        assert updated.phase == "audit-r"
        assert updated.status is StrategyStatus.complete
        assert updated.completed_at == now

    def test_update_rejects_unknown_phase(self, seeded):
        with pytest.raises(ValueError, match="Unknown phase"):
            seeded.update_strategy("s1", phase="also-bogus")
        assert seeded.get_strategy("s1").phase == "fiche"

    def test_update_accepts_legacy_phase(self, seeded):
        assert seeded.update_strategy("s1", phase="audit").phase == "audit"

    def test_list_strategies(self, seeded):
        seeded.create_strategy(Strategy(id="s2"))
        assert {s.id for s in seeded.list_strategies()} == {"s1", "s2"}

    def test_record_generation(self, seeded):
        sid = stage_id(seeded, "s1", "T")
        stage = seeded.record_generation(sid, {"competitive_benchmark": []})
        assert stage.status is StageStatus.complete
        assert stage.content == {"competitive_benchmark": []}
        assert stage.generated_at is not None

    def test_record_error_keeps_generated_at(self, seeded):
        sid = stage_id(seeded, "s1", "T")
        seeded.record_generation(sid, {"v": 1})
        first = seeded.get_stage(sid).generated_at
        stage = seeded.record_generation(sid, None, status=StageStatus.error)
        assert stage.status is StageStatus.error
        assert stage.generated_at == first

    def test_missing_stage(self, any_store):
        with pytest.raises(StageNotFoundError):
            any_store.get_stage("nope")

    def test_stale_pair_must_be_complete(self, seeded, now):
        sid = stage_id(seeded, "s1", "A")
        with pytest.raises(ValueError):
            seeded.set_stage_staleness(sid, "reason", None)
        with pytest.raises(ValueError):
            seeded.set_stage_staleness(sid, None, now)
        assert not seeded.get_stage(sid).is_stale


# ── documents ───────────────────────────────────────────────────────


class TestDocuments:
    def test_round_trip(self, seeded, now):
        body = {"sections": [{"blocks": [{"source_ref": {"updated_at": "2025-06-01"}}]}]}
        doc = seeded.add_document(make_document("s1", {"R", "T"}, generated_at=now, content=body))
        got = seeded.get_document(doc.id)
        assert got.source_stages == frozenset({StageType.R, StageType.T})
        assert got.generated_at == now
        assert got.content == body

    def test_content_defaults_to_none(self, seeded):
        doc = seeded.add_document(make_document("s1", {"A"}))
        assert seeded.get_document(doc.id).content is None

    def test_status_filter(self, seeded):
        seeded.add_document(make_document("s1", {"A"}))
        seeded.add_document(make_document("s1", {"A"}, status=DocumentStatus.archived))
        assert len(seeded.list_documents("s1")) == 2
        assert len(seeded.list_documents("s1", statuses=[DocumentStatus.draft])) == 1
        assert seeded.list_documents("s1", statuses=[]) == []

    def test_mark_stale_is_conditional(self, seeded, now):
        doc = seeded.add_document(make_document("s1", {"A"}))
        assert seeded.mark_document_stale(doc.id, "first", now) is True
        assert seeded.mark_document_stale(doc.id, "second", now + timedelta(hours=1)) is False
        stored = seeded.get_document(doc.id)
        assert stored.stale_reason == "first"
        assert stored.stale_since == now

    def test_mark_stale_missing_document(self, any_store, now):
        with pytest.raises(DocumentNotFoundError):
            any_store.mark_document_stale("nope", "r", now)

    def test_document_for_unknown_strategy(self, any_store):
        with pytest.raises(StrategyNotFoundError):
            any_store.add_document(make_document("ghost", {"A"}))


# ── thresholds ──────────────────────────────────────────────────────


class TestThresholds:
    def test_upsert_unique_on_key(self, seeded):
        first = seeded.upsert_threshold(new_threshold("s1", "ctr", current_value=1, alert_min=2))
        second = seeded.upsert_threshold(new_threshold("s1", "ctr", current_value=5))
        assert second.id == first.id
        (only,) = seeded.list_thresholds("s1")
        assert only.current_value == 5
        assert only.alert_min is None

    def test_same_key_other_strategy(self, seeded):
        seeded.create_strategy(Strategy(id="s2"))
        seeded.upsert_threshold(new_threshold("s1", "ctr"))
        seeded.upsert_threshold(new_threshold("s2", "ctr"))
        assert len(seeded.list_thresholds("s1")) == 1
        assert len(seeded.list_thresholds("s2")) == 1

    def test_delete_missing(self, any_store):
        with pytest.raises(ThresholdNotFoundError):
            any_store.delete_threshold("nope")


# ── side-effect targets and signals ─────────────────────────────────


class TestSideEffectTargets:
    def test_budget_tiers(self, seeded):
        assert seeded.count_budget_tiers("s1") == 0
        seeded.add_budget_tiers([
            BudgetTier(strategy_id="s1", tier="MICRO", min_budget=0, max_budget=5000,
                       channels=[{"channel": "Website", "allocation": 100.0}]),
        ])
        assert seeded.count_budget_tiers("s1") == 1
        assert seeded.list_budget_tiers("s1")[0].channels[0]["channel"] == "Website"

    def test_market_context(self, seeded, now):
        assert seeded.get_market_context("s1") is None
        seeded.save_market_context(MarketContext(strategy_id="s1", competitors=[{"name": "Rival"}], synced_at=now))
        ctx = seeded.get_market_context("s1")
        assert ctx.competitors == [{"name": "Rival"}]
        assert ctx.synced_at == now

    def test_record_signal_returns_unique_ids(self, seeded):
        payload = SignalPayload(stage="E", layer=SignalLayer.metric, title="CTR below threshold")
        assert seeded.record("s1", payload) != seeded.record("s1", payload)


def test_sqlite_signals_persist(tmp_path):
    path = str(tmp_path / "pf.db")
    first = SQLiteStore(db_path=path)
    first.create_strategy(Strategy(id="s1"))
    signal_id = first.record("s1", SignalPayload(stage="E", layer=SignalLayer.metric, title="t"))
    first.close()

    reopened = SQLiteStore(db_path=path)
    assert [sid for sid, _ in reopened.list_signals("s1")] == [signal_id]
    assert len(reopened.list_stages("s1")) == 8
    reopened.close()
