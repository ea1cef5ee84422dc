"""Decision reconciliation: join decisions to trades and positions.

Three independently timestamped streams (decisions, fills, open
positions) share a single join key, the exchange order id. A position
carries no order id at all, so its opening fill is inferred: the most
recent fill on the same symbol and side at or before the position's
last update. All decisions that reference that fill's order id form
the position's history (open, the holds/waits in between, close).

Known limitation: when a position is closed and reopened on the same
side inside the lookback window, the latest same-side fill is taken as
the opener even if it belongs to a different lifecycle.
"""

import time
from collections.abc import Callable, Sequence

from arena.config import ReconcileSettings
from arena.exchange.client import ExchangeClient
from arena.logging import get_logger
from arena.models import Decision, OrderSide, Position, Trade
from arena.reconcile.store import DecisionStore

logger = get_logger(__name__)

HOUR_MS = 60 * 60 * 1000


class DecisionReconciler:
    """Matches positions and trades to the decisions that produced them.

    Args:
        store: Decision lookup by order id.
        settings: Lookback padding, history cap, and per-symbol trade limit.
        clock: Time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        store: DecisionStore,
        settings: ReconcileSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings or ReconcileSettings()
        self._clock = clock

    def _search_window(self, positions: Sequence[Position], now_ms: int) -> tuple[int, int]:
        """max(oldest position update - padding, now - history cap) .. now."""
        oldest = min(p.update_time or now_ms for p in positions)
        padding_ms = self._settings.lookback_padding_hours * HOUR_MS
        history_ms = self._settings.max_history_days * 24 * HOUR_MS
        return max(oldest - padding_ms, now_ms - history_ms), now_ms

    async def match_positions(
        self,
        positions: Sequence[Position],
        agent_id: str,
        client: ExchangeClient,
    ) -> dict[str, list[Decision]]:
        """Map each position's opening order id to its full decision history.

        Positions whose opening fill or decisions cannot be found are
        simply absent from the result. Each history is oldest first.
        """
        if not positions:
            return {}

        now_ms = int(self._clock() * 1000)
        start_ms, end_ms = self._search_window(positions, now_ms)

        # Trades first: the decision lookup is keyed on their order ids
        trades: list[Trade] = []
        for symbol in dict.fromkeys(p.symbol for p in positions):
            try:
                trades.extend(
                    await client.get_user_trades(
                        symbol,
                        start_time=start_ms,
                        end_time=end_ms,
                        limit=self._settings.trade_fetch_limit,
                    )
                )
            except Exception as e:
                logger.warning(
                    "position_trades_fetch_failed",
                    agent_id=agent_id,
                    symbol=symbol,
                    error=str(e),
                )

        if not trades:
            logger.warning("no_trades_for_positions", agent_id=agent_id, positions=len(positions))
            return {}

        try:
            decisions = await self._store.find_by_order_ids(agent_id, [t.order_id for t in trades])
        except Exception as e:
            logger.error("decision_lookup_failed", agent_id=agent_id, error=str(e))
            return {}

        by_order: dict[str, list[Decision]] = {}
        for decision in sorted(decisions, key=lambda d: d.timestamp):
            if decision.order_id is not None:
                by_order.setdefault(decision.order_id, []).append(decision)

        result: dict[str, list[Decision]] = {}
        for position in positions:
            opening = self.find_opening_trade(position, trades, now_ms)
            if opening is None:
                continue
            history = by_order.get(opening.order_id)
            if history:
                result[opening.order_id] = list(history)
                logger.debug(
                    "position_matched",
                    agent_id=agent_id,
                    symbol=position.symbol,
                    order_id=opening.order_id,
                    decisions=len(history),
                )

        logger.debug(
            "positions_reconciled",
            agent_id=agent_id,
            positions=len(positions),
            trades=len(trades),
            decisions=len(decisions),
            matched=len(result),
        )
        return result

    @staticmethod
    def find_opening_trade(
        position: Position,
        trades: Sequence[Trade],
        now_ms: int,
    ) -> Trade | None:
        """Most recent same-symbol, same-side fill at or before the position's update time."""
        expected_side = OrderSide.BUY if position.position_amount > 0 else OrderSide.SELL
        update_time = position.update_time or now_ms
        candidates = [
            t
            for t in trades
            if t.symbol == position.symbol and t.side is expected_side and t.time <= update_time
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda t: t.time)

    async def match_trades(self, trades: Sequence[Trade], agent_id: str) -> dict[str, Decision]:
        """Map each trade's order id to the decision that placed it.

        When several decisions share an order id the earliest wins; later
        ones (holds, closes) reference the same order but did not place it.
        """
        if not trades:
            return {}

        try:
            decisions = await self._store.find_by_order_ids(agent_id, [t.order_id for t in trades])
        except Exception as e:
            logger.error("decision_lookup_failed", agent_id=agent_id, error=str(e))
            return {}

        result: dict[str, Decision] = {}
        for decision in sorted(decisions, key=lambda d: d.timestamp):
            if decision.order_id is not None:
                result.setdefault(decision.order_id, decision)

        logger.debug(
            "trades_reconciled",
            agent_id=agent_id,
            trades=len(trades),
            matched=len(result),
        )
        return result

    async def decisions_for_order(self, order_id: str, agent_id: str) -> list[Decision]:
        """Complete decision history for one order, oldest first. Empty on store failure."""
        try:
            return await self._store.find_by_order_id(agent_id, order_id)
        except Exception as e:
            logger.error(
                "decision_lookup_failed",
                agent_id=agent_id,
                order_id=order_id,
                error=str(e),
            )
            return []
