"""Decision store: read access to agent decisions keyed by exchange order id.

DecisionStore is the interface the reconciler depends on. The SQLite
implementation uses aiosqlite with WAL mode; the production system may
back the same interface with any relational store.

Decisions are append-only from the execution side; the only update is
attaching an order id once the decision's order is accepted.
"""

import os
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Self

import aiosqlite

from arena.exceptions import ConfigurationError
from arena.logging import get_logger
from arena.models import Decision, DecisionAction

logger = get_logger(__name__)

SCHEMA_VERSION = 1

# SQLite caps bound parameters per statement; stay well under it
_IN_CLAUSE_CHUNK = 500

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS ai_decisions (
    id TEXT PRIMARY KEY,
    agent_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    action TEXT NOT NULL,
    confidence REAL NOT NULL,
    reasoning TEXT NOT NULL DEFAULT '',
    executed INTEGER NOT NULL DEFAULT 0,
    timestamp_ms INTEGER NOT NULL,
    order_id TEXT,
    trading_cycle_id TEXT,
    execution_reason TEXT
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_decisions_agent_order
    ON ai_decisions(agent_id, order_id);

CREATE INDEX IF NOT EXISTS idx_decisions_agent_ts
    ON ai_decisions(agent_id, timestamp_ms);
"""

_SELECT_COLUMNS = (
    "id, agent_id, symbol, action, confidence, reasoning, executed, "
    "timestamp_ms, order_id, trading_cycle_id, execution_reason"
)


class DecisionStore(ABC):
    """Read interface over recorded agent decisions."""

    @abstractmethod
    async def find_by_order_ids(self, agent_id: str, order_ids: Iterable[str]) -> list[Decision]:
        """All decisions of agent_id whose order id is in order_ids, oldest first."""
        ...

    @abstractmethod
    async def find_by_order_id(self, agent_id: str, order_id: str) -> list[Decision]:
        """Full decision history of one order, oldest first."""
        ...

    @abstractmethod
    async def find_recent(self, agent_id: str, limit: int = 100) -> list[Decision]:
        """Most recent decisions of agent_id, newest first."""
        ...


class DecisionDatabase:
    """aiosqlite connection to the decision table.

    The execution side writes decisions from another process, so the
    connection runs in WAL mode with a busy timeout. The schema version
    lives in ``PRAGMA user_version``; a file written by a newer schema is
    refused rather than read with the wrong column layout.

    Usage:
        async with DecisionDatabase("data/decisions.db") as database:
            store = SqliteDecisionStore(database)
    """

    def __init__(self, db_path: str = "data/decisions.db", busy_timeout_ms: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Decision database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        try:
            await connection.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            await connection.execute("PRAGMA journal_mode=WAL")
            await connection.execute("PRAGMA synchronous=NORMAL")
            await self._migrate(connection)
        except BaseException:
            await connection.close()
            raise
        self._connection = connection
        logger.info("decision_db_connected", db_path=self._db_path, schema=SCHEMA_VERSION)

    async def _migrate(self, connection: aiosqlite.Connection) -> None:
        cursor = await connection.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        found = row[0] if row else 0
        if found > SCHEMA_VERSION:
            raise ConfigurationError(
                f"Decision database {self._db_path} has schema {found}, "
                f"this build reads up to {SCHEMA_VERSION}"
            )
        await connection.executescript(_CREATE_TABLES_SQL)
        await connection.executescript(_CREATE_INDEXES_SQL)
        if found < SCHEMA_VERSION:
            await connection.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
            logger.info("decision_db_migrated", from_version=found, to_version=SCHEMA_VERSION)
        await connection.commit()

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("decision_db_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()


def _row_to_decision(row: tuple) -> Decision:
    (
        decision_id,
        agent_id,
        symbol,
        action,
        confidence,
        reasoning,
        executed,
        timestamp_ms,
        order_id,
        trading_cycle_id,
        execution_reason,
    ) = row
    return Decision(
        id=decision_id,
        agent_id=agent_id,
        symbol=symbol,
        action=DecisionAction(action),
        confidence=float(confidence),
        reasoning=reasoning,
        executed=bool(executed),
        timestamp=datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc),
        order_id=order_id,
        trading_cycle_id=trading_cycle_id,
        execution_reason=execution_reason,
    )


class SqliteDecisionStore(DecisionStore):
    """DecisionStore over a DecisionDatabase connection."""

    def __init__(self, database: DecisionDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def record_decision(
        self,
        agent_id: str,
        symbol: str,
        action: DecisionAction,
        confidence: float,
        reasoning: str,
        timestamp: datetime,
        executed: bool = False,
        order_id: str | None = None,
        trading_cycle_id: str | None = None,
        execution_reason: str | None = None,
        decision_id: str | None = None,
    ) -> Decision:
        """Insert one decision and return it as stored."""
        decision = Decision(
            id=decision_id or str(uuid.uuid4()),
            agent_id=agent_id,
            symbol=symbol,
            action=action,
            confidence=confidence,
            reasoning=reasoning,
            executed=executed,
            timestamp=timestamp,
            order_id=order_id,
            trading_cycle_id=trading_cycle_id,
            execution_reason=execution_reason,
        )
        await self._database.db.execute(
            f"INSERT INTO ai_decisions ({_SELECT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                decision.id,
                decision.agent_id,
                decision.symbol,
                decision.action.value,
                decision.confidence,
                decision.reasoning,
                int(decision.executed),
                int(decision.timestamp.timestamp() * 1000),
                decision.order_id,
                decision.trading_cycle_id,
                decision.execution_reason,
            ),
        )
        await self._database.db.commit()
        logger.debug(
            "decision_recorded",
            agent_id=agent_id,
            symbol=symbol,
            action=action.value,
            order_id=order_id,
        )
        return decision

    async def attach_order_id(self, decision_id: str, order_id: str) -> bool:
        """Mark a decision executed under order_id. Returns False if no such decision."""
        cursor = await self._database.db.execute(
            "UPDATE ai_decisions SET order_id = ?, executed = 1 WHERE id = ?",
            (order_id, decision_id),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def find_by_order_ids(self, agent_id: str, order_ids: Iterable[str]) -> list[Decision]:
        unique_ids = list(dict.fromkeys(str(o) for o in order_ids))
        if not unique_ids:
            return []

        decisions: list[Decision] = []
        for offset in range(0, len(unique_ids), _IN_CLAUSE_CHUNK):
            chunk = unique_ids[offset : offset + _IN_CLAUSE_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = await self._database.db.execute(
                f"SELECT {_SELECT_COLUMNS} FROM ai_decisions "
                f"WHERE agent_id = ? AND order_id IN ({placeholders})",
                (agent_id, *chunk),
            )
            decisions.extend(_row_to_decision(row) for row in await cursor.fetchall())

        decisions.sort(key=lambda d: (d.timestamp, d.id))
        return decisions

    async def find_by_order_id(self, agent_id: str, order_id: str) -> list[Decision]:
        cursor = await self._database.db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM ai_decisions "
            "WHERE agent_id = ? AND order_id = ? ORDER BY timestamp_ms ASC, id ASC",
            (agent_id, str(order_id)),
        )
        return [_row_to_decision(row) for row in await cursor.fetchall()]

    async def find_recent(self, agent_id: str, limit: int = 100) -> list[Decision]:
        cursor = await self._database.db.execute(
            f"SELECT {_SELECT_COLUMNS} FROM ai_decisions "
            "WHERE agent_id = ? ORDER BY timestamp_ms DESC LIMIT ?",
            (agent_id, limit),
        )
        return [_row_to_decision(row) for row in await cursor.fetchall()]
