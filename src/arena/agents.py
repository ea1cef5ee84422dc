"""Cross-agent aggregation for the arena views.

ArenaService fans out to one ExchangeClient per tracked agent and joins
the results with the decision store. Every view is best-effort per
agent: one agent failing is logged and omitted, never fatal to the
whole response.

Component wiring (see arena.main):
  TrackedAgent(client) x N -> ArenaService <- DecisionReconciler <- DecisionStore
                                         <- SnapshotCache (agents, 300 s)
                                         <- SnapshotCache (static views, 60 s)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TypeVar

from arena.batch import BatchResult
from arena.cache.snapshot import SnapshotCache
from arena.config import ArenaSettings
from arena.exceptions import BatchFailure
from arena.exchange.client import ExchangeClient
from arena.exchange.types import MarkPrice
from arena.logging import get_logger
from arena.models import Decision, OrderSide, PnLSummary, Position, PositionSide
from arena.reconcile.matcher import DecisionReconciler
from arena.reconcile.store import DecisionStore

logger = get_logger(__name__)

T = TypeVar("T")

AGENTS_CACHE_KEY = "arena_agents"
MARKET_PRICES_CACHE_KEY = "market_prices"

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class TrackedAgent:
    """One agent in the arena roster, with its own exchange account."""

    name: str
    agent_id: str
    client: ExchangeClient
    trading_pairs: tuple[str, ...] = ()
    provider: str = "unknown"
    model: str = "unknown"


@dataclass(frozen=True)
class AgentSnapshot:
    """Balance and PnL view of one agent at refresh time.

    pnl_1d / pnl_7d are None when that window could not be fetched.
    """

    name: str
    agent_id: str
    provider: str
    model: str
    wallet_balance: Decimal
    available_balance: Decimal
    unrealized_pnl: Decimal
    pnl_percent: Decimal
    pnl_1d: PnLSummary | None = None
    pnl_7d: PnLSummary | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    name: str
    wallet_balance: Decimal
    pnl_percent: Decimal


@dataclass(frozen=True)
class PositionView:
    """An open position annotated with the decisions that produced it."""

    agent: str
    position: Position
    exposure: Decimal
    signed_exposure: Decimal
    roi_percent: Decimal
    order_id: str | None = None
    confidence: float | None = None
    reasoning: str | None = None
    decisions: list[Decision] = field(default_factory=list)


@dataclass(frozen=True)
class TradeView:
    agent: str
    trade_id: int
    symbol: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    value: Decimal
    commission: Decimal
    time: int
    order_id: str
    decision: Decision | None = None

    @property
    def action(self) -> str:
        return "bought" if self.side is OrderSide.BUY else "sold"


@dataclass(frozen=True)
class DecisionView:
    agent: str
    decision: Decision


def position_roi_percent(position: Position) -> Decimal:
    """Leverage-aware return on margin, in percent. Sign-flipped for shorts."""
    if position.entry_price == 0:
        return Decimal("0")
    leverage = position.leverage or Decimal("1")
    move = (position.mark_price - position.entry_price) / position.entry_price
    if position.side is PositionSide.SHORT:
        move = -move
    return move * leverage * Decimal("100")


class ArenaService:
    """Aggregates balances, PnL, positions, trades and decisions across agents.

    Args:
        agents: The fixed roster, built by the composition root.
        reconciler: Joins positions and trades to decisions.
        store: Decision store for the recent-decisions feed.
        snapshot_cache: Cache for the per-agent balance/PnL snapshot.
        static_cache: Short-TTL cache for slowly changing views (market prices).
        settings: History window and default limits.
        clock: Time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        agents: Sequence[TrackedAgent],
        reconciler: DecisionReconciler,
        store: DecisionStore,
        snapshot_cache: SnapshotCache,
        static_cache: SnapshotCache,
        settings: ArenaSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._agents = list(agents)
        self._reconciler = reconciler
        self._store = store
        self._snapshot_cache = snapshot_cache
        self._static_cache = static_cache
        self._settings = settings or ArenaSettings()
        self._clock = clock

    @property
    def agents(self) -> list[TrackedAgent]:
        return list(self._agents)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _trading_pairs(self, agent: TrackedAgent) -> Sequence[str]:
        return agent.trading_pairs or self._settings.default_trading_pairs

    async def _for_each_agent(
        self,
        operation: Callable[[TrackedAgent], Awaitable[T]],
    ) -> BatchResult[T]:
        """Run operation for every agent concurrently, collecting per-agent failures."""
        batch: BatchResult[T] = BatchResult()
        results = await asyncio.gather(
            *(operation(agent) for agent in self._agents),
            return_exceptions=True,
        )
        for agent, result in zip(self._agents, results):
            if isinstance(result, Exception):
                batch.record_failure(agent.name, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                batch.record_success(agent.name, result)
        return batch

    # ──────────────────────────────────────────────
    # Agent snapshots (balance + PnL)
    # ──────────────────────────────────────────────

    async def _pnl_window(self, agent: TrackedAgent, days: int) -> PnLSummary | None:
        try:
            return await agent.client.summarize_pnl_by_days(days)
        except Exception as e:
            logger.warning("agent_pnl_fetch_failed", agent=agent.name, days=days, error=str(e))
            return None

    async def _snapshot_agent(self, agent: TrackedAgent) -> AgentSnapshot:
        account = await agent.client.get_account_info()
        pnl_1d = await self._pnl_window(agent, 1)
        pnl_7d = await self._pnl_window(agent, 7)

        wallet = account.total_wallet_balance
        unrealized = account.total_unrealized_profit
        pnl_percent = unrealized / wallet * Decimal("100") if wallet > 0 else Decimal("0")

        logger.info(
            "agent_snapshot",
            agent=agent.name,
            wallet_balance=str(wallet),
            unrealized_pnl=str(unrealized),
        )
        return AgentSnapshot(
            name=agent.name,
            agent_id=agent.agent_id,
            provider=agent.provider,
            model=agent.model,
            wallet_balance=wallet,
            available_balance=account.available_balance,
            unrealized_pnl=unrealized,
            pnl_percent=pnl_percent,
            pnl_1d=pnl_1d,
            pnl_7d=pnl_7d,
        )

    async def collect_agent_snapshots(self) -> BatchResult[AgentSnapshot]:
        """Uncached fan-out: one snapshot per agent, failures collected."""
        return await self._for_each_agent(self._snapshot_agent)

    async def _refresh_agent_snapshots(self) -> list[AgentSnapshot]:
        batch = await self.collect_agent_snapshots()
        # An all-failed refresh must not be cached as an empty arena
        if batch.failures and not batch.results:
            raise BatchFailure("agent_snapshots", batch.failures)
        return batch.values()

    async def get_agent_snapshots(self) -> list[AgentSnapshot]:
        """Cached snapshot of every agent. Concurrent callers share one refresh."""
        return await self._snapshot_cache.get_or_fetch(
            AGENTS_CACHE_KEY, self._refresh_agent_snapshots
        )

    async def get_leaderboard(self) -> list[LeaderboardEntry]:
        """Agents ranked by wallet balance, from the cached snapshot."""
        snapshots = sorted(
            await self.get_agent_snapshots(),
            key=lambda s: s.wallet_balance,
            reverse=True,
        )
        return [
            LeaderboardEntry(
                rank=index + 1,
                name=snapshot.name,
                wallet_balance=snapshot.wallet_balance,
                pnl_percent=snapshot.pnl_percent,
            )
            for index, snapshot in enumerate(snapshots)
        ]

    def get_roster(self) -> list[dict]:
        return [
            {
                "name": agent.name,
                "agent_id": agent.agent_id,
                "provider": agent.provider,
                "model": agent.model,
                "trading_pairs": list(self._trading_pairs(agent)),
            }
            for agent in self._agents
        ]

    # ──────────────────────────────────────────────
    # Market prices
    # ──────────────────────────────────────────────

    async def _fetch_market_prices(self) -> list[MarkPrice]:
        if not self._agents:
            return []
        client = self._agents[0].client
        wanted = set(self._settings.default_trading_pairs)
        prices = await client.get_mark_prices()
        return [p for p in prices if p.symbol in wanted]

    async def get_market_prices(self) -> list[MarkPrice]:
        """Mark prices for the default trading pairs (static cache)."""
        return await self._static_cache.get_or_fetch(
            MARKET_PRICES_CACHE_KEY, self._fetch_market_prices
        )

    # ──────────────────────────────────────────────
    # Positions
    # ──────────────────────────────────────────────

    @staticmethod
    def _decisions_for_position(
        position: Position,
        matched: dict[str, list[Decision]],
    ) -> tuple[str | None, list[Decision]]:
        """Pick the matched history belonging to this position.

        Histories are keyed by opening order id; a position is identified
        by symbol and by the direction of its opening decision.
        """
        opening_action = "buy" if position.side is PositionSide.LONG else "sell"
        fallback: tuple[str | None, list[Decision]] = (None, [])
        for order_id, decisions in matched.items():
            if not decisions or decisions[0].symbol != position.symbol:
                continue
            opening = next((d for d in decisions if d.is_opening), None)
            if opening is not None and opening.action.value == opening_action:
                return order_id, decisions
            if fallback[0] is None:
                fallback = (order_id, decisions)
        return fallback

    async def _positions_for_agent(self, agent: TrackedAgent) -> list[PositionView]:
        positions = await agent.client.get_positions()
        matched = await self._reconciler.match_positions(positions, agent.agent_id, agent.client)

        views: list[PositionView] = []
        for position in positions:
            order_id, decisions = self._decisions_for_position(position, matched)
            opening = next((d for d in decisions if d.is_opening), None)
            exposure = position.notional
            views.append(
                PositionView(
                    agent=agent.name,
                    position=position,
                    exposure=exposure,
                    signed_exposure=exposure if position.side is PositionSide.LONG else -exposure,
                    roi_percent=position_roi_percent(position),
                    order_id=order_id,
                    confidence=opening.confidence if opening else None,
                    reasoning=opening.reasoning if opening else None,
                    decisions=sorted(decisions, key=lambda d: d.timestamp),
                )
            )
        return views

    async def get_positions(self) -> list[PositionView]:
        """Open positions of every agent with their decision histories."""
        batch = await self._for_each_agent(self._positions_for_agent)
        return [view for views in batch.values() for view in views]

    # ──────────────────────────────────────────────
    # Trades
    # ──────────────────────────────────────────────

    async def _trades_for_agent(self, agent: TrackedAgent, limit: int) -> list[TradeView]:
        now_ms = self._now_ms()
        start_ms = now_ms - self._settings.trade_history_days * DAY_MS

        trades = []
        for symbol in self._trading_pairs(agent):
            try:
                trades.extend(
                    await agent.client.get_user_trades(
                        symbol, start_time=start_ms, end_time=now_ms, limit=limit
                    )
                )
            except Exception as e:
                logger.warning(
                    "agent_trades_fetch_failed",
                    agent=agent.name,
                    symbol=symbol,
                    error=str(e),
                )

        matched = await self._reconciler.match_trades(trades, agent.agent_id)
        return [
            TradeView(
                agent=agent.name,
                trade_id=trade.id,
                symbol=trade.symbol,
                side=trade.side,
                quantity=trade.quantity,
                price=trade.price,
                value=trade.value,
                commission=trade.commission,
                time=trade.time,
                order_id=trade.order_id,
                decision=matched.get(trade.order_id),
            )
            for trade in trades
        ]

    async def get_recent_trades(self, limit: int | None = None) -> list[TradeView]:
        """Recent fills across agents and trading pairs, newest first."""
        limit = limit or self._settings.recent_trades_limit

        async def fetch(agent: TrackedAgent) -> list[TradeView]:
            return await self._trades_for_agent(agent, limit)

        batch = await self._for_each_agent(fetch)
        trades = [trade for views in batch.values() for trade in views]
        trades.sort(key=lambda t: t.time, reverse=True)
        return trades[:limit]

    # ──────────────────────────────────────────────
    # Decisions
    # ──────────────────────────────────────────────

    async def get_recent_decisions(self, limit: int | None = None) -> list[DecisionView]:
        """Latest decisions across agents, newest first."""
        limit = limit or self._settings.recent_decisions_limit

        async def fetch(agent: TrackedAgent) -> list[DecisionView]:
            decisions = await self._store.find_recent(agent.agent_id, limit)
            return [DecisionView(agent=agent.name, decision=d) for d in decisions]

        batch = await self._for_each_agent(fetch)
        views = [view for agent_views in batch.values() for view in agent_views]
        views.sort(key=lambda v: v.decision.timestamp, reverse=True)
        return views[:limit]
