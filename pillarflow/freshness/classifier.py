"""FRESH / AGING / STALE classification of timestamps against vertical thresholds."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum

from pillarflow.config.models import DEFAULT_PROFILE_KEY, FreshnessConfig, ThresholdProfile

_SECONDS_PER_DAY = 86_400


class FreshnessStatus(str, Enum):
    FRESH = "FRESH"
    AGING = "AGING"
    STALE = "STALE"


def _as_utc(ts: datetime) -> datetime:
    # naive timestamps are taken to be UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def days_since(timestamp: datetime | None, now: datetime | None = None) -> int | None:
    """Whole days elapsed since timestamp (floored), or None if never set."""
    if timestamp is None:
        return None
    now = _as_utc(now) if now is not None else datetime.now(UTC)
    elapsed = (now - _as_utc(timestamp)).total_seconds()
    return int(elapsed // _SECONDS_PER_DAY)


def thresholds_for(
    vertical: str | None,
    profiles: Mapping[str, ThresholdProfile] | None = None,
) -> ThresholdProfile:
    """Profile for a vertical, falling back to DEFAULT for unknown or missing verticals."""
    if profiles is None:
        profiles = FreshnessConfig().profiles
    if vertical and vertical in profiles:
        return profiles[vertical]
    return profiles[DEFAULT_PROFILE_KEY]


def classify_days(age_days: int | None, profile: ThresholdProfile) -> FreshnessStatus:
    if age_days is None:
        return FreshnessStatus.STALE
    if age_days <= profile.fresh_days:
        return FreshnessStatus.FRESH
    if age_days <= profile.aging_days:
        return FreshnessStatus.AGING
    return FreshnessStatus.STALE


def classify(
    timestamp: datetime | None,
    profile: ThresholdProfile,
    now: datetime | None = None,
) -> FreshnessStatus:
    """Classify a timestamp. A timestamp that was never set is always STALE."""
    return classify_days(days_since(timestamp, now), profile)


def classify_freshness(
    timestamp: datetime | None,
    vertical: str | None,
    profiles: Mapping[str, ThresholdProfile] | None = None,
    now: datetime | None = None,
) -> FreshnessStatus:
    return classify(timestamp, thresholds_for(vertical, profiles), now=now)
