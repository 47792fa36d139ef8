"""Tests for FRESH / AGING / STALE classification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from pillarflow.config.models import ThresholdProfile
from pillarflow.freshness.classifier import (
    FreshnessStatus,
    classify,
    classify_freshness,
    days_since,
    thresholds_for,
)

WEEKLY = ThresholdProfile(fresh_days=7, aging_days=14)


# ── days_since ──────────────────────────────────────────────────────────


class TestDaysSince:
    def test_none_stays_none(self, now):
        assert days_since(None, now) is None

    def test_whole_days_are_floored(self, now):
        ts = now - timedelta(days=3, hours=23)
        assert days_since(ts, now) == 3

    def test_same_instant_is_zero(self, now):
        assert days_since(now, now) == 0

    def test_naive_timestamp_treated_as_utc(self, now):
        naive = (now - timedelta(days=2)).replace(tzinfo=None)
        assert days_since(naive, now) == 2


# ── classify ────────────────────────────────────────────────────────────


class TestClassify:
    def test_never_generated_is_stale(self, now):
        assert classify(None, WEEKLY, now=now) is FreshnessStatus.STALE

    @pytest.mark.parametrize(
        "age, expected",
        [
            (0, FreshnessStatus.FRESH),
            (7, FreshnessStatus.FRESH),
            (8, FreshnessStatus.AGING),
            (10, FreshnessStatus.AGING),
            (14, FreshnessStatus.AGING),
            (15, FreshnessStatus.STALE),
            (20, FreshnessStatus.STALE),
        ],
    )
    def test_boundaries_are_inclusive(self, now, age, expected):
        assert classify(now - timedelta(days=age), WEEKLY, now=now) is expected

    def test_classification_is_monotonic_in_age(self, now):
        order = [FreshnessStatus.FRESH, FreshnessStatus.AGING, FreshnessStatus.STALE]
        ranks = [
            order.index(classify(now - timedelta(days=d), WEEKLY, now=now))
            for d in range(0, 40)
        ]
        assert ranks == sorted(ranks)


# ── profiles ────────────────────────────────────────────────────────────


class TestProfiles:
    def test_unknown_vertical_falls_back_to_default(self):
        assert thresholds_for("underwater-basket-weaving") == WEEKLY

    def test_missing_vertical_falls_back_to_default(self):
        assert thresholds_for(None) == WEEKLY

    def test_known_vertical_uses_its_profile(self):
        profiles = {
            "DEFAULT": WEEKLY,
            "fintech": ThresholdProfile(fresh_days=3, aging_days=7),
        }
        assert thresholds_for("fintech", profiles).fresh_days == 3

    def test_classify_freshness_uses_vertical(self, now):
        ts = now - timedelta(days=5)
        profiles = {"DEFAULT": WEEKLY, "fintech": ThresholdProfile(fresh_days=3, aging_days=7)}
        assert classify_freshness(ts, "fintech", profiles, now=now) is FreshnessStatus.AGING
        assert classify_freshness(ts, "retail", profiles, now=now) is FreshnessStatus.FRESH

    def test_profile_rejects_inverted_thresholds(self):
        with pytest.raises(ValueError):
            ThresholdProfile(fresh_days=10, aging_days=5)

    def test_default_profile_values_are_seven_and_fourteen(self):
        ts = datetime(2025, 1, 1, tzinfo=UTC)
        assert classify(ts, thresholds_for(None), now=ts + timedelta(days=10)) is FreshnessStatus.AGING
        assert classify(ts, thresholds_for(None), now=ts + timedelta(days=20)) is FreshnessStatus.STALE
