"""StrategyStore and SignalRecorder backed by a local SQLite database."""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Collection
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pillarflow.interfaces.persistence import (
    DocumentNotFoundError,
    StageNotFoundError,
    StrategyNotFoundError,
    ThresholdNotFoundError,
    check_phase,
    check_stale_pair,
)
from pillarflow.interfaces.signals import SignalPayload
from pillarflow.metrics.models import MetricThreshold
from pillarflow.pipeline.constants import StageType, stage_order
from pillarflow.pipeline.models import (
    STALEABLE_STATUSES,
    BudgetTier,
    DerivedDocument,
    DocumentStatus,
    MarketContext,
    Stage,
    StageStatus,
    Strategy,
    StrategyStatus,
)
from pillarflow.storage.memory import new_stages

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS strategies (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    phase TEXT NOT NULL,
    status TEXT NOT NULL,
    vertical TEXT,
    coherence_score REAL,
    risk_score REAL,
    bmf_score REAL,
    created_at TEXT NOT NULL,
    completed_at TEXT
);
CREATE TABLE IF NOT EXISTS stages (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL REFERENCES strategies(id),
    type TEXT NOT NULL,
    status TEXT NOT NULL,
    content_json TEXT,
    generated_at TEXT,
    updated_at TEXT NOT NULL,
    stale_reason TEXT,
    stale_since TEXT,
    CHECK ((stale_reason IS NULL) = (stale_since IS NULL)),
    UNIQUE (strategy_id, type)
);
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL REFERENCES strategies(id),
    kind TEXT NOT NULL,
    status TEXT NOT NULL,
    source_stages_json TEXT NOT NULL,
    generated_at TEXT,
    content_json TEXT,
    stale_reason TEXT,
    stale_since TEXT
);
CREATE INDEX IF NOT EXISTS idx_documents_strategy ON documents(strategy_id, status);
CREATE TABLE IF NOT EXISTS thresholds (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL,
    stage TEXT NOT NULL,
    metric_key TEXT NOT NULL,
    metric_label TEXT NOT NULL,
    current_value REAL NOT NULL,
    target_value REAL NOT NULL,
    alert_min REAL,
    alert_max REAL,
    unit TEXT NOT NULL,
    cadence TEXT NOT NULL,
    last_updated TEXT NOT NULL,
    UNIQUE (strategy_id, metric_key)
);
CREATE TABLE IF NOT EXISTS budget_tiers (
    strategy_id TEXT NOT NULL,
    tier TEXT NOT NULL,
    min_budget REAL NOT NULL,
    max_budget REAL NOT NULL,
    channels_json TEXT NOT NULL,
    description TEXT
);
CREATE TABLE IF NOT EXISTS market_context (
    strategy_id TEXT PRIMARY KEY,
    competitors_json TEXT NOT NULL,
    opportunities_json TEXT NOT NULL,
    synced_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS signals (
    id TEXT PRIMARY KEY,
    strategy_id TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    created_at TEXT NOT NULL
);
"""

_STRATEGY_COLS = (
    "id, name, phase, status, vertical, coherence_score, risk_score, bmf_score, "
    "created_at, completed_at"
)
_STAGE_COLS = (
    "id, strategy_id, type, status, content_json, generated_at, updated_at, "
    "stale_reason, stale_since"
)
_DOCUMENT_COLS = (
    "id, strategy_id, kind, status, source_stages_json, generated_at, content_json, "
    "stale_reason, stale_since"
)
_THRESHOLD_COLS = (
    "id, strategy_id, stage, metric_key, metric_label, current_value, target_value, "
    "alert_min, alert_max, unit, cadence, last_updated"
)


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


class SQLiteStore:
    """StrategyStore implementation using SQLite with WAL mode.

    Suitable for a single machine: the CLI and local batch jobs. Every
    conditional write (e.g. marking a document stale only while it is still
    draft/validated) is a single UPDATE ... WHERE, so concurrent writers
    cannot double-apply it.
    """

    def __init__(self, db_path: str = ".pillarflow/pillarflow.db") -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = str(path)
        # autocommit; multi-statement writes use explicit BEGIN IMMEDIATE
        self._conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=5)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    # -- helpers ---------------------------------------------------------------

    def _now_iso(self) -> str:
        return datetime.now(UTC).isoformat()

    def _row_to_strategy(self, row: tuple) -> Strategy:
        (id_, name, phase, status, vertical, coherence, risk, bmf, created_at, completed_at) = row
        return Strategy(
            id=id_,
            name=name,
            phase=phase,
            status=StrategyStatus(status),
            vertical=vertical,
            coherence_score=coherence,
            risk_score=risk,
            bmf_score=bmf,
            created_at=datetime.fromisoformat(created_at),
            completed_at=_dt(completed_at),
        )

    def _row_to_stage(self, row: tuple) -> Stage:
        (id_, strategy_id, type_, status, content_json, generated_at, updated_at,
         stale_reason, stale_since) = row
        return Stage(
            id=id_,
            strategy_id=strategy_id,
            type=StageType(type_),
            status=StageStatus(status),
            content=json.loads(content_json) if content_json is not None else None,
            generated_at=_dt(generated_at),
            updated_at=datetime.fromisoformat(updated_at),
            stale_reason=stale_reason,
            stale_since=_dt(stale_since),
        )

    def _row_to_document(self, row: tuple) -> DerivedDocument:
        (id_, strategy_id, kind, status, sources_json, generated_at, content_json, stale_reason,
         stale_since) = row
        return DerivedDocument(
            id=id_,
            strategy_id=strategy_id,
            kind=kind,
            status=DocumentStatus(status),
            source_stages=frozenset(StageType(s) for s in json.loads(sources_json)),
            generated_at=_dt(generated_at),
            content=json.loads(content_json) if content_json is not None else None,
            stale_reason=stale_reason,
            stale_since=_dt(stale_since),
        )

    def _row_to_threshold(self, row: tuple) -> MetricThreshold:
        (id_, strategy_id, stage, key, label, current, target, amin, amax, unit, cadence,
         last_updated) = row
        return MetricThreshold(
            id=id_,
            strategy_id=strategy_id,
            stage=stage,
            metric_key=key,
            metric_label=label,
            current_value=current,
            target_value=target,
            alert_min=amin,
            alert_max=amax,
            unit=unit,
            cadence=cadence,
            last_updated=datetime.fromisoformat(last_updated),
        )

    # -- strategies ------------------------------------------------------------

    def create_strategy(self, strategy: Strategy) -> Strategy:
        """Insert the strategy and its eight pending stages in one transaction."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            cursor.execute(
                f"INSERT INTO strategies ({_STRATEGY_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    strategy.id,
                    strategy.name,
                    strategy.phase,
                    strategy.status.value,
                    strategy.vertical,
                    strategy.coherence_score,
                    strategy.risk_score,
                    strategy.bmf_score,
                    strategy.created_at.isoformat(),
                    _iso(strategy.completed_at),
                ),
            )
            for stage in new_stages(strategy.id):
                cursor.execute(
                    f"INSERT INTO stages ({_STAGE_COLS}) VALUES (?, ?, ?, ?, NULL, NULL, ?, NULL, NULL)",
                    (stage.id, stage.strategy_id, stage.type.value, stage.status.value,
                     stage.updated_at.isoformat()),
                )
            cursor.execute("COMMIT")
        except Exception:
            self._conn.rollback()
            raise
        return strategy

    def get_strategy(self, strategy_id: str) -> Strategy:
        row = self._conn.execute(
            f"SELECT {_STRATEGY_COLS} FROM strategies WHERE id = ?", (strategy_id,)
        ).fetchone()
        if row is None:
            raise StrategyNotFoundError(strategy_id)
        return self._row_to_strategy(row)

    def list_strategies(self) -> list[Strategy]:
        rows = self._conn.execute(
            f"SELECT {_STRATEGY_COLS} FROM strategies ORDER BY created_at ASC"
        ).fetchall()
        return [self._row_to_strategy(r) for r in rows]

    def update_strategy(
        self,
        strategy_id: str,
        *,
        phase: str | None = None,
        status: StrategyStatus | None = None,
        completed_at: datetime | None = None,
    ) -> Strategy:
        sets: list[str] = []
        params: list[Any] = []
        if phase is not None:
            check_phase(phase)
            sets.append("phase = ?")
            params.append(phase)
        if status is not None:
            sets.append("status = ?")
            params.append(status.value)
        if completed_at is not None:
            sets.append("completed_at = ?")
            params.append(completed_at.isoformat())
        if sets:
            cur = self._conn.execute(
                f"UPDATE strategies SET {', '.join(sets)} WHERE id = ?",
                (*params, strategy_id),
            )
            if cur.rowcount == 0:
                raise StrategyNotFoundError(strategy_id)
        return self.get_strategy(strategy_id)

    # -- stages ----------------------------------------------------------------

    def get_stage(self, stage_id: str) -> Stage:
        row = self._conn.execute(
            f"SELECT {_STAGE_COLS} FROM stages WHERE id = ?", (stage_id,)
        ).fetchone()
        if row is None:
            raise StageNotFoundError(stage_id)
        return self._row_to_stage(row)

    def list_stages(self, strategy_id: str) -> list[Stage]:
        rows = self._conn.execute(
            f"SELECT {_STAGE_COLS} FROM stages WHERE strategy_id = ?", (strategy_id,)
        ).fetchall()
        return sorted((self._row_to_stage(r) for r in rows), key=lambda s: stage_order(s.type))

    def record_generation(
        self,
        stage_id: str,
        content: dict[str, Any] | None,
        status: StageStatus = StageStatus.complete,
    ) -> Stage:
        now = self._now_iso()
        content_json = json.dumps(content) if content is not None else None
        if status is StageStatus.complete:
            cur = self._conn.execute(
                "UPDATE stages SET content_json = ?, status = ?, updated_at = ?, generated_at = ? "
                "WHERE id = ?",
                (content_json, status.value, now, now, stage_id),
            )
        else:
            cur = self._conn.execute(
                "UPDATE stages SET content_json = ?, status = ?, updated_at = ? WHERE id = ?",
                (content_json, status.value, now, stage_id),
            )
        if cur.rowcount == 0:
            raise StageNotFoundError(stage_id)
        return self.get_stage(stage_id)

    def set_stage_staleness(
        self, stage_id: str, reason: str | None, since: datetime | None
    ) -> None:
        check_stale_pair(reason, since)
        cur = self._conn.execute(
            "UPDATE stages SET stale_reason = ?, stale_since = ? WHERE id = ?",
            (reason, _iso(since), stage_id),
        )
        if cur.rowcount == 0:
            raise StageNotFoundError(stage_id)

    # -- derived documents -----------------------------------------------------

    def add_document(self, document: DerivedDocument) -> DerivedDocument:
        self.get_strategy(document.strategy_id)
        sources = sorted((s.value for s in document.source_stages), key=lambda v: stage_order(StageType(v)))
        self._conn.execute(
            f"INSERT OR REPLACE INTO documents ({_DOCUMENT_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                document.id,
                document.strategy_id,
                document.kind,
                document.status.value,
                json.dumps(sources),
                _iso(document.generated_at),
                json.dumps(document.content) if document.content is not None else None,
                document.stale_reason,
                _iso(document.stale_since),
            ),
        )
        return document

    def get_document(self, document_id: str) -> DerivedDocument:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLS} FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        if row is None:
            raise DocumentNotFoundError(document_id)
        return self._row_to_document(row)

    def list_documents(
        self,
        strategy_id: str,
        statuses: Collection[DocumentStatus] | None = None,
    ) -> list[DerivedDocument]:
        query = f"SELECT {_DOCUMENT_COLS} FROM documents WHERE strategy_id = ?"
        params: list[Any] = [strategy_id]
        if statuses is not None:
            wanted = [DocumentStatus(s).value for s in statuses]
            if not wanted:
                return []
            query += f" AND status IN ({', '.join('?' for _ in wanted)})"
            params.extend(wanted)
        rows = self._conn.execute(query + " ORDER BY id", params).fetchall()
        return [self._row_to_document(r) for r in rows]

    def mark_document_stale(self, document_id: str, reason: str, since: datetime) -> bool:
        eligible = [s.value for s in STALEABLE_STATUSES]
        cur = self._conn.execute(
            "UPDATE documents SET status = ?, stale_reason = ?, stale_since = ? "
            f"WHERE id = ? AND status IN ({', '.join('?' for _ in eligible)})",
            (DocumentStatus.stale.value, reason, since.isoformat(), document_id, *eligible),
        )
        if cur.rowcount == 0:
            # distinguish "not eligible" from "missing"
            self.get_document(document_id)
            return False
        return True

    # -- metric thresholds -----------------------------------------------------

    def upsert_threshold(self, threshold: MetricThreshold) -> MetricThreshold:
        t = threshold
        self._conn.execute(
            f"INSERT INTO thresholds ({_THRESHOLD_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT (strategy_id, metric_key) DO UPDATE SET "
            "stage = excluded.stage, metric_label = excluded.metric_label, "
            "current_value = excluded.current_value, target_value = excluded.target_value, "
            "alert_min = excluded.alert_min, alert_max = excluded.alert_max, "
            "unit = excluded.unit, cadence = excluded.cadence, last_updated = ?",
            (
                t.id, t.strategy_id, t.stage, t.metric_key, t.metric_label,
                t.current_value, t.target_value, t.alert_min, t.alert_max,
                t.unit, t.cadence, t.last_updated.isoformat(), self._now_iso(),
            ),
        )
        row = self._conn.execute(
            f"SELECT {_THRESHOLD_COLS} FROM thresholds WHERE strategy_id = ? AND metric_key = ?",
            (t.strategy_id, t.metric_key),
        ).fetchone()
        return self._row_to_threshold(row)

    def list_thresholds(self, strategy_id: str) -> list[MetricThreshold]:
        rows = self._conn.execute(
            f"SELECT {_THRESHOLD_COLS} FROM thresholds WHERE strategy_id = ? ORDER BY metric_key",
            (strategy_id,),
        ).fetchall()
        return [self._row_to_threshold(r) for r in rows]

    def delete_threshold(self, threshold_id: str) -> None:
        cur = self._conn.execute("DELETE FROM thresholds WHERE id = ?", (threshold_id,))
        if cur.rowcount == 0:
            raise ThresholdNotFoundError(threshold_id)

    # -- side-effect targets ---------------------------------------------------

    def count_budget_tiers(self, strategy_id: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM budget_tiers WHERE strategy_id = ?", (strategy_id,)
        ).fetchone()
        return row[0]

    def add_budget_tiers(self, tiers: list[BudgetTier]) -> None:
        self._conn.executemany(
            "INSERT INTO budget_tiers (strategy_id, tier, min_budget, max_budget, channels_json, "
            "description) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (t.strategy_id, t.tier, t.min_budget, t.max_budget, json.dumps(t.channels), t.description)
                for t in tiers
            ],
        )

    def list_budget_tiers(self, strategy_id: str) -> list[BudgetTier]:
        rows = self._conn.execute(
            "SELECT strategy_id, tier, min_budget, max_budget, channels_json, description "
            "FROM budget_tiers WHERE strategy_id = ? ORDER BY min_budget ASC",
            (strategy_id,),
        ).fetchall()
        return [
            BudgetTier(
                strategy_id=r[0], tier=r[1], min_budget=r[2], max_budget=r[3],
                channels=json.loads(r[4]), description=r[5],
            )
            for r in rows
        ]

    def save_market_context(self, context: MarketContext) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO market_context (strategy_id, competitors_json, "
            "opportunities_json, synced_at) VALUES (?, ?, ?, ?)",
            (
                context.strategy_id,
                json.dumps(context.competitors),
                json.dumps(context.opportunities),
                context.synced_at.isoformat(),
            ),
        )

    def get_market_context(self, strategy_id: str) -> MarketContext | None:
        row = self._conn.execute(
            "SELECT strategy_id, competitors_json, opportunities_json, synced_at "
            "FROM market_context WHERE strategy_id = ?",
            (strategy_id,),
        ).fetchone()
        if row is None:
            return None
        return MarketContext(
            strategy_id=row[0],
            competitors=json.loads(row[1]),
            opportunities=json.loads(row[2]),
            synced_at=datetime.fromisoformat(row[3]),
        )

    # -- SignalRecorder --------------------------------------------------------

    def record(self, strategy_id: str, payload: SignalPayload) -> str:
        signal_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO signals (id, strategy_id, payload_json, created_at) VALUES (?, ?, ?, ?)",
            (signal_id, strategy_id, payload.model_dump_json(), self._now_iso()),
        )
        return signal_id

    def list_signals(self, strategy_id: str) -> list[tuple[str, SignalPayload]]:
        rows = self._conn.execute(
            "SELECT id, payload_json FROM signals WHERE strategy_id = ? ORDER BY created_at ASC",
            (strategy_id,),
        ).fetchall()
        return [(r[0], SignalPayload.model_validate_json(r[1])) for r in rows]
