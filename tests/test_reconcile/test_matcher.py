"""Tests for DecisionReconciler: positions and trades joined to decisions."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from arena.config import ReconcileSettings
from arena.exceptions import TransportError
from arena.models import DecisionAction, OrderSide, Position, PositionSide, Trade
from arena.reconcile.matcher import DecisionReconciler
from arena.reconcile.store import DecisionDatabase, SqliteDecisionStore

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
NOW_MS = int(NOW.timestamp() * 1000)
HOUR_MS = 3_600_000


def _position(symbol: str = "BTCUSDT", amount: str = "0.01", update_time: int | None = None):
    amt = Decimal(amount)
    return Position(
        symbol=symbol,
        side=PositionSide.LONG if amt > 0 else PositionSide.SHORT,
        position_amount=amt,
        size=abs(amt),
        entry_price=Decimal("60000"),
        mark_price=Decimal("61000"),
        unrealized_pnl=Decimal("10"),
        update_time=update_time if update_time is not None else NOW_MS - HOUR_MS,
    )


def _trade(order_id: str, side: OrderSide, time: int, symbol: str = "BTCUSDT") -> Trade:
    return Trade(
        id=int(order_id),
        symbol=symbol,
        side=side,
        quantity=Decimal("0.01"),
        price=Decimal("60000"),
        commission=Decimal("0.24"),
        order_id=order_id,
        time=time,
    )


@pytest_asyncio.fixture()
async def store():
    database = DecisionDatabase(":memory:")
    await database.connect()
    yield SqliteDecisionStore(database)
    await database.close()


@pytest.fixture()
def reconciler(store) -> DecisionReconciler:
    return DecisionReconciler(store, ReconcileSettings(), clock=lambda: NOW.timestamp())


@pytest.fixture()
def client() -> AsyncMock:
    return AsyncMock()


async def _decide(store, action, minutes_before: int, order_id: str | None, symbol="BTCUSDT"):
    return await store.record_decision(
        agent_id="agent-1",
        symbol=symbol,
        action=action,
        confidence=0.7,
        reasoning=action.value,
        timestamp=NOW - timedelta(minutes=minutes_before),
        executed=action in (DecisionAction.BUY, DecisionAction.SELL),
        order_id=order_id,
    )


# ---------------------------------------------------------------------------
# match_positions
# ---------------------------------------------------------------------------


class TestMatchPositions:
    @pytest.mark.asyncio
    async def test_full_history_oldest_first(self, reconciler, store, client) -> None:
        """One position, one BUY fill, three decisions on its order id."""
        client.get_user_trades.return_value = [_trade("1001", OrderSide.BUY, NOW_MS - 2 * HOUR_MS)]
        hold = await _decide(store, DecisionAction.HOLD, 60, "1001")
        opening = await _decide(store, DecisionAction.BUY, 121, "1001")
        wait = await _decide(store, DecisionAction.WAIT, 30, "1001")

        result = await reconciler.match_positions([_position()], "agent-1", client)

        assert list(result) == ["1001"]
        assert [d.id for d in result["1001"]] == [opening.id, hold.id, wait.id]

    @pytest.mark.asyncio
    async def test_search_window(self, reconciler, client) -> None:
        client.get_user_trades.return_value = []
        position = _position(update_time=NOW_MS - 2 * HOUR_MS)

        await reconciler.match_positions([position], "agent-1", client)

        client.get_user_trades.assert_awaited_once_with(
            "BTCUSDT",
            start_time=NOW_MS - 26 * HOUR_MS,
            end_time=NOW_MS,
            limit=100,
        )

    @pytest.mark.asyncio
    async def test_search_window_capped_at_seven_days(self, reconciler, client) -> None:
        client.get_user_trades.return_value = []
        position = _position(update_time=NOW_MS - 30 * 24 * HOUR_MS)

        await reconciler.match_positions([position], "agent-1", client)

        assert client.get_user_trades.await_args.kwargs["start_time"] == NOW_MS - 7 * 24 * HOUR_MS

    @pytest.mark.asyncio
    async def test_one_fetch_per_symbol(self, reconciler, client) -> None:
        client.get_user_trades.return_value = []
        positions = [_position("BTCUSDT"), _position("BTCUSDT", "-0.01"), _position("ETHUSDT")]

        await reconciler.match_positions(positions, "agent-1", client)

        symbols = [call.args[0] for call in client.get_user_trades.await_args_list]
        assert symbols == ["BTCUSDT", "ETHUSDT"]

    @pytest.mark.asyncio
    async def test_symbol_failure_skipped(self, reconciler, store, client) -> None:
        async def trades(symbol, **kwargs):
            if symbol == "BTCUSDT":
                raise TransportError("timeout")
            return [_trade("2002", OrderSide.SELL, NOW_MS - 2 * HOUR_MS, symbol="ETHUSDT")]

        client.get_user_trades.side_effect = trades
        await _decide(store, DecisionAction.SELL, 121, "2002", symbol="ETHUSDT")

        result = await reconciler.match_positions(
            [_position("BTCUSDT"), _position("ETHUSDT", "-1")], "agent-1", client
        )

        assert list(result) == ["2002"]

    @pytest.mark.asyncio
    async def test_no_trades(self, reconciler, client) -> None:
        client.get_user_trades.return_value = []
        assert await reconciler.match_positions([_position()], "agent-1", client) == {}

    @pytest.mark.asyncio
    async def test_empty_positions(self, reconciler, client) -> None:
        assert await reconciler.match_positions([], "agent-1", client) == {}
        client.get_user_trades.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_returns_empty(self, client) -> None:
        broken = AsyncMock()
        broken.find_by_order_ids.side_effect = RuntimeError("db locked")
        reconciler = DecisionReconciler(broken, clock=lambda: NOW.timestamp())
        client.get_user_trades.return_value = [_trade("1001", OrderSide.BUY, NOW_MS - 2 * HOUR_MS)]

        assert await reconciler.match_positions([_position()], "agent-1", client) == {}

    @pytest.mark.asyncio
    async def test_position_without_decisions_absent(self, reconciler, client) -> None:
        client.get_user_trades.return_value = [_trade("1001", OrderSide.BUY, NOW_MS - 2 * HOUR_MS)]
        assert await reconciler.match_positions([_position()], "agent-1", client) == {}


class TestFindOpeningTrade:
    def test_latest_same_side_before_update(self) -> None:
        position = _position(update_time=NOW_MS - HOUR_MS)
        trades = [
            _trade("1", OrderSide.BUY, NOW_MS - 5 * HOUR_MS),
            _trade("2", OrderSide.BUY, NOW_MS - 3 * HOUR_MS),
            _trade("3", OrderSide.SELL, NOW_MS - 2 * HOUR_MS),
            _trade("4", OrderSide.BUY, NOW_MS - HOUR_MS // 2),
        ]
        opening = DecisionReconciler.find_opening_trade(position, trades, NOW_MS)
        assert opening is not None
        assert opening.order_id == "2"

    def test_short_position_uses_sell(self) -> None:
        position = _position(amount="-0.01")
        trades = [
            _trade("1", OrderSide.BUY, NOW_MS - 3 * HOUR_MS),
            _trade("2", OrderSide.SELL, NOW_MS - 4 * HOUR_MS),
        ]
        opening = DecisionReconciler.find_opening_trade(position, trades, NOW_MS)
        assert opening.order_id == "2"  # type: ignore[union-attr]

    def test_other_symbol_ignored(self) -> None:
        trades = [_trade("1", OrderSide.BUY, NOW_MS - 3 * HOUR_MS, symbol="ETHUSDT")]
        assert DecisionReconciler.find_opening_trade(_position(), trades, NOW_MS) is None


# ---------------------------------------------------------------------------
# match_trades / decisions_for_order
# ---------------------------------------------------------------------------


class TestMatchTrades:
    @pytest.mark.asyncio
    async def test_earliest_decision_per_order(self, reconciler, store) -> None:
        opening = await _decide(store, DecisionAction.BUY, 120, "1001")
        await _decide(store, DecisionAction.CLOSE, 10, "1001")
        trades = [
            _trade("1001", OrderSide.BUY, NOW_MS - 2 * HOUR_MS),
            _trade("1002", OrderSide.SELL, NOW_MS - HOUR_MS),
        ]

        result = await reconciler.match_trades(trades, "agent-1")

        assert list(result) == ["1001"]
        assert result["1001"].id == opening.id

    @pytest.mark.asyncio
    async def test_no_trades(self, reconciler) -> None:
        assert await reconciler.match_trades([], "agent-1") == {}

    @pytest.mark.asyncio
    async def test_store_failure(self) -> None:
        broken = AsyncMock()
        broken.find_by_order_ids.side_effect = RuntimeError("db locked")
        reconciler = DecisionReconciler(broken)
        trades = [_trade("1", OrderSide.BUY, NOW_MS)]
        assert await reconciler.match_trades(trades, "agent-1") == {}


class TestDecisionsForOrder:
    @pytest.mark.asyncio
    async def test_history(self, reconciler, store) -> None:
        await _decide(store, DecisionAction.BUY, 60, "1001")
        await _decide(store, DecisionAction.HOLD, 30, "1001")
        history = await reconciler.decisions_for_order("1001", "agent-1")
        assert [d.action for d in history] == [DecisionAction.BUY, DecisionAction.HOLD]

    @pytest.mark.asyncio
    async def test_store_failure_is_empty(self) -> None:
        broken = AsyncMock()
        broken.find_by_order_id.side_effect = RuntimeError("db locked")
        assert await DecisionReconciler(broken).decisions_for_order("1", "agent-1") == []
