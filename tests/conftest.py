"""Shared test fixtures for pillarflow."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from pillarflow.pipeline.models import Strategy
from pillarflow.storage.memory import InMemoryStore


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def strategy(store: InMemoryStore) -> Strategy:
    """A fresh strategy with its eight pending stages."""
    return store.create_strategy(Strategy(id="strat-1", name="Maison Lumière", vertical="fashion"))
