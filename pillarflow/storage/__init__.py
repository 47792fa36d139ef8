"""Built-in StrategyStore implementations."""

from pillarflow.storage.memory import InMemoryStore, new_stages
from pillarflow.storage.sqlite_store import SQLiteStore

__all__ = ["InMemoryStore", "SQLiteStore", "new_stages"]
