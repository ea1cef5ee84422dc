"""Tests for the SQLite decision store (in-memory database)."""

from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest
import pytest_asyncio

from arena.exceptions import ConfigurationError
from arena.models import DecisionAction
from arena.reconcile.store import SCHEMA_VERSION, DecisionDatabase, SqliteDecisionStore

T0 = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture()
async def store():
    database = DecisionDatabase(":memory:")
    await database.connect()
    yield SqliteDecisionStore(database)
    await database.close()


async def _record(store, action, minutes: int, order_id=None, agent_id="agent-1"):
    return await store.record_decision(
        agent_id=agent_id,
        symbol="BTCUSDT",
        action=action,
        confidence=0.8,
        reasoning=f"{action.value} at +{minutes}m",
        timestamp=T0 + timedelta(minutes=minutes),
        executed=order_id is not None,
        order_id=order_id,
    )


class TestDecisionDatabase:
    def test_db_requires_connect(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            DecisionDatabase(":memory:").db

    @pytest.mark.asyncio
    async def test_user_version_set(self, store) -> None:
        cursor = await store._database.db.execute("PRAGMA user_version")
        assert (await cursor.fetchone())[0] == SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_reopen_keeps_decisions(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "decisions.db")
        async with DecisionDatabase(path) as database:
            await _record(SqliteDecisionStore(database), DecisionAction.BUY, 0, order_id="7")

        async with DecisionDatabase(path) as database:
            found = await SqliteDecisionStore(database).find_by_order_id("agent-1", "7")

        assert [d.action for d in found] == [DecisionAction.BUY]

    @pytest.mark.asyncio
    async def test_newer_schema_refused(self, tmp_path) -> None:
        path = str(tmp_path / "decisions.db")
        async with aiosqlite.connect(path) as raw:
            await raw.execute(f"PRAGMA user_version={SCHEMA_VERSION + 1}")
            await raw.commit()

        database = DecisionDatabase(path)
        with pytest.raises(ConfigurationError, match="schema"):
            await database.connect()
        with pytest.raises(RuntimeError):
            database.db


class TestRecordAndFind:
    @pytest.mark.asyncio
    async def test_round_trip_fields(self, store) -> None:
        recorded = await _record(store, DecisionAction.BUY, 0, order_id="1001")

        found = await store.find_by_order_id("agent-1", "1001")

        assert found == [recorded]
        assert found[0].timestamp == T0
        assert found[0].executed is True

    @pytest.mark.asyncio
    async def test_history_oldest_first(self, store) -> None:
        close = await _record(store, DecisionAction.CLOSE, 30, order_id="1001")
        opening = await _record(store, DecisionAction.BUY, 0, order_id="1001")
        hold = await _record(store, DecisionAction.HOLD, 10, order_id="1001")

        history = await store.find_by_order_id("agent-1", "1001")

        assert [d.id for d in history] == [opening.id, hold.id, close.id]

    @pytest.mark.asyncio
    async def test_find_by_order_ids_scoped_to_agent(self, store) -> None:
        mine = await _record(store, DecisionAction.BUY, 0, order_id="1")
        await _record(store, DecisionAction.BUY, 1, order_id="1", agent_id="agent-2")
        other = await _record(store, DecisionAction.SELL, 2, order_id="2")
        await _record(store, DecisionAction.WAIT, 3)

        found = await store.find_by_order_ids("agent-1", ["2", "1", "1", "999"])

        assert [d.id for d in found] == [mine.id, other.id]

    @pytest.mark.asyncio
    async def test_find_by_order_ids_empty(self, store) -> None:
        assert await store.find_by_order_ids("agent-1", []) == []

    @pytest.mark.asyncio
    async def test_find_by_many_order_ids(self, store) -> None:
        """More ids than fit in one IN clause are looked up in chunks."""
        await _record(store, DecisionAction.BUY, 0, order_id="1200")
        ids = [str(i) for i in range(1, 1300)]
        found = await store.find_by_order_ids("agent-1", ids)
        assert [d.order_id for d in found] == ["1200"]

    @pytest.mark.asyncio
    async def test_find_recent_newest_first(self, store) -> None:
        for minutes in (0, 5, 10):
            await _record(store, DecisionAction.HOLD, minutes)

        recent = await store.find_recent("agent-1", limit=2)

        assert [d.timestamp for d in recent] == [
            T0 + timedelta(minutes=10),
            T0 + timedelta(minutes=5),
        ]

    @pytest.mark.asyncio
    async def test_attach_order_id(self, store) -> None:
        decision = await _record(store, DecisionAction.SELL, 0)

        assert await store.attach_order_id(decision.id, "555") is True
        assert await store.attach_order_id("missing", "556") is False

        [updated] = await store.find_by_order_id("agent-1", "555")
        assert updated.executed is True
