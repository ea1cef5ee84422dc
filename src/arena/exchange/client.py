"""Abstract exchange client interface.

Defines the contract for all exchange implementations. Aggregation and
reconciliation code depends only on this interface, keeping
Aster-specific transport and signing in the concrete implementation.

The composed operations (precision-checked order placement, bulk close and
cancel, trade volume, PnL summaries) are implemented once here on top
of the abstract endpoints, so every implementation gets identical
semantics.
"""

import time
from abc import ABC, abstractmethod
from decimal import Decimal

from arena.batch import BatchResult
from arena.exceptions import ValidationError
from arena.exchange.precision import PrecisionCatalog
from arena.exchange.types import (
    AccountInfo,
    Balance,
    CommissionRate,
    FundingRate,
    MarkPrice,
    OrderResponse,
    ServerTime,
)
from arena.logging import get_logger
from arena.models import (
    IncomeRecord,
    OrderRequest,
    OrderSide,
    OrderType,
    PnLSummary,
    Position,
    PositionSide,
    Trade,
    TradeVolume,
)
from arena.pnl.ledger import summarize_income
from arena.pnl.periods import day_boundaries, day_label, rolling_label, rolling_window

logger = get_logger(__name__)


class ExchangeClient(ABC):
    """Abstract base class for exchange API clients.

    Args:
        catalog: Precision catalog shared by every client on the same exchange.
        clock: Time source in seconds (injectable for tests).
    """

    def __init__(self, catalog: PrecisionCatalog, clock=time.time) -> None:
        self._catalog = catalog
        self._clock = clock

    @property
    def catalog(self) -> PrecisionCatalog:
        return self._catalog

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ──────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying transport."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying transport. Must be called to avoid resource leaks."""
        ...

    async def __aenter__(self) -> "ExchangeClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ──────────────────────────────────────────────
    # Market data (unauthenticated)
    # ──────────────────────────────────────────────

    @abstractmethod
    async def ping(self) -> bool:
        ...

    @abstractmethod
    async def get_server_time(self) -> ServerTime:
        ...

    @abstractmethod
    async def get_exchange_info(self) -> dict:
        """Raw exchangeInfo payload, consumed by PrecisionCatalog.load()."""
        ...

    @abstractmethod
    async def get_mark_prices(self, symbol: str | None = None) -> list[MarkPrice]:
        ...

    @abstractmethod
    async def get_funding_rates(self, symbol: str | None = None) -> list[FundingRate]:
        ...

    # ──────────────────────────────────────────────
    # Orders (signed)
    # ──────────────────────────────────────────────

    @abstractmethod
    async def place_order(
        self,
        request: OrderRequest,
        quantity: str | None = None,
        price: str | None = None,
    ) -> OrderResponse:
        """Submit an order as-is.

        quantity/price, when given, are pre-formatted exchange strings that
        replace the request's raw Decimals. No precision checks happen here;
        use place_order_with_precision for that.
        """
        ...

    @abstractmethod
    async def cancel_order(
        self,
        symbol: str,
        order_id: str | None = None,
        client_order_id: str | None = None,
    ) -> OrderResponse:
        ...

    @abstractmethod
    async def get_order(self, symbol: str, order_id: str) -> OrderResponse:
        ...

    @abstractmethod
    async def get_open_orders(self, symbol: str | None = None) -> list[OrderResponse]:
        ...

    @abstractmethod
    async def cancel_all_open_orders(self, symbol: str) -> dict:
        ...

    # ──────────────────────────────────────────────
    # Account (signed)
    # ──────────────────────────────────────────────

    @abstractmethod
    async def get_account_info(self) -> AccountInfo:
        ...

    @abstractmethod
    async def get_positions(self) -> list[Position]:
        """Open positions only; flat rows are dropped."""
        ...

    @abstractmethod
    async def get_balances(self) -> list[Balance]:
        ...

    @abstractmethod
    async def change_leverage(self, symbol: str, leverage: int) -> dict:
        ...

    @abstractmethod
    async def get_income_history(
        self,
        symbol: str | None = None,
        income_type: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 1000,
    ) -> list[IncomeRecord]:
        ...

    @abstractmethod
    async def get_user_trades(
        self,
        symbol: str,
        start_time: int | None = None,
        end_time: int | None = None,
        limit: int = 500,
    ) -> list[Trade]:
        """Account fills for one symbol. The exchange caps the range at 7 days."""
        ...

    @abstractmethod
    async def get_commission_rate(self, symbol: str) -> CommissionRate:
        ...

    async def get_available_balance(self) -> Decimal:
        account = await self.get_account_info()
        return account.available_balance

    # ──────────────────────────────────────────────
    # Composed operations
    # ──────────────────────────────────────────────

    async def ensure_precision_data(self) -> None:
        """Reload the precision catalog if it is stale or empty."""
        if self._catalog.is_stale() or not self._catalog.symbols:
            logger.info("loading_exchange_info_for_precision")
            exchange_info = await self.get_exchange_info()
            self._catalog.load(exchange_info)

    async def place_order_with_precision(self, request: OrderRequest) -> OrderResponse:
        """Validate and format an order against the catalog, then place it.

        If validation fails and an adjusted quantity is available, the
        adjustment is applied. Otherwise the order is rejected before any
        network call.

        Raises:
            ValidationError: If the order fails and no adjustment is usable.
        """
        await self.ensure_precision_data()

        symbol = request.symbol
        validation = self._catalog.validate_order(symbol, request.quantity, request.price)

        if validation.valid:
            quantity = self._catalog.format_quantity(request.quantity, symbol)
        elif validation.adjusted_quantity is not None:
            logger.warning(
                "order_quantity_adjusted",
                symbol=symbol,
                requested=str(request.quantity),
                adjusted=str(validation.adjusted_quantity),
                errors=validation.errors,
            )
            quantity = self._catalog.format_quantity(validation.adjusted_quantity, symbol)
        else:
            logger.warning("order_validation_failed", symbol=symbol, errors=validation.errors)
            raise ValidationError(symbol, validation.errors)

        price = (
            self._catalog.format_price(request.price, symbol)
            if request.price is not None
            else None
        )
        return await self.place_order(request, quantity=quantity, price=price)

    async def close_all_positions(self) -> BatchResult[OrderResponse]:
        """Close every open position with an opposite-side reduce-only MARKET order.

        Each position is closed independently; one failure does not stop
        the rest. Results are keyed by symbol.
        """
        positions = await self.get_positions()
        batch: BatchResult[OrderResponse] = BatchResult()

        if not positions:
            logger.info("no_positions_to_close")
            return batch

        logger.info("closing_all_positions", count=len(positions))
        for position in positions:
            close_side = OrderSide.SELL if position.side is PositionSide.LONG else OrderSide.BUY
            request = OrderRequest(
                symbol=position.symbol,
                side=close_side,
                order_type=OrderType.MARKET,
                quantity=position.size,
                reduce_only=True,
            )
            try:
                response = await self.place_order(request)
            except Exception as e:
                batch.record_failure(position.symbol, e)
                continue
            logger.info(
                "position_closed",
                symbol=position.symbol,
                side=close_side.value,
                quantity=str(position.size),
                order_id=response.order_id,
            )
            batch.record_success(position.symbol, response)

        return batch

    async def cancel_all_orders_across_symbols(self) -> BatchResult[dict]:
        """Cancel every open order on the account, one request per symbol.

        Symbols are taken from the account-wide open-order list; a failing
        symbol is recorded and the rest are still cancelled.
        """
        orders = await self.get_open_orders()
        batch: BatchResult[dict] = BatchResult()
        symbols = list(dict.fromkeys(order.symbol for order in orders))

        if not symbols:
            logger.info("no_open_orders_to_cancel")
            return batch

        logger.info("cancelling_all_orders", symbols=symbols, orders=len(orders))
        for symbol in symbols:
            try:
                batch.record_success(symbol, await self.cancel_all_open_orders(symbol))
            except Exception as e:
                batch.record_failure(symbol, e)

        logger.info(
            "orders_cancelled",
            cancelled_symbols=len(batch.results),
            failed_symbols=len(batch.failures),
        )
        return batch

    async def get_account_trade_volume(
        self,
        symbols: list[str],
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> TradeVolume:
        """Sum fill quantity and quote volume over symbols in a window.

        The window defaults to the last 24 hours. The exchange rejects
        trade queries spanning more than 7 days, so callers pass shorter
        windows.
        """
        end_ms = end_time if end_time is not None else self._now_ms()
        start_ms = start_time if start_time is not None else end_ms - 24 * 3_600_000

        quantity = Decimal("0")
        quote_volume = Decimal("0")
        count = 0
        failed: list[str] = []
        for symbol in symbols:
            try:
                trades = await self.get_user_trades(symbol, start_ms, end_ms, limit=1000)
            except Exception as e:
                logger.warning("trade_volume_symbol_failed", symbol=symbol, error=str(e))
                failed.append(symbol)
                continue
            for trade in trades:
                count += 1
                quantity += trade.quantity
                quote_volume += trade.quote_quantity or trade.value

        return TradeVolume(
            quantity=quantity,
            quote_volume=quote_volume,
            trade_count=count,
            start_time=start_ms,
            end_time=end_ms,
            failed_symbols=tuple(failed),
        )

    async def _unrealized_pnl(self) -> Decimal:
        """Sum of open-position unrealized PnL; zero (with a warning) on failure."""
        try:
            positions = await self.get_positions()
        except Exception as e:
            logger.warning("unrealized_pnl_fetch_failed", error=str(e))
            return Decimal("0")
        return sum((p.unrealized_pnl for p in positions), Decimal("0"))

    async def summarize_pnl(
        self,
        period_hours: float | None = None,
        symbol: str | None = None,
        include_unrealized: bool = False,
    ) -> PnLSummary:
        """PnL over a rolling window of period_hours ending now.

        With no period the exchange's default range (7 days) applies.
        start_time/end_time report the observed record times.
        """
        window = rolling_window(period_hours, self._now_ms()) if period_hours else None
        start_time, end_time = window if window else (None, None)

        records = await self.get_income_history(
            symbol=symbol, start_time=start_time, end_time=end_time
        )
        unrealized = await self._unrealized_pnl() if include_unrealized else Decimal("0")

        summary = summarize_income(
            records,
            unrealized_pnl=unrealized,
            period=rolling_label(period_hours),
            window=window,
        )
        logger.info(
            "pnl_summary",
            period=summary.period,
            trading_pnl=str(summary.trading_pnl),
            realized=str(summary.realized_pnl),
            funding=str(summary.funding_fees),
            commissions=str(summary.commissions),
            rebates=str(summary.rebates),
            unrealized=str(summary.unrealized_pnl),
            net_transfers=str(summary.net_transfers),
            net_pnl=str(summary.net_pnl),
            records=summary.record_count,
        )
        return summary

    async def summarize_pnl_by_days(
        self,
        days: int,
        symbol: str | None = None,
        include_unrealized: bool = False,
    ) -> PnLSummary:
        """PnL over whole UTC days ending 23:59:59.999 yesterday.

        start_time/end_time are the query boundaries, not record times.
        """
        start_time, end_time = day_boundaries(days, self._now_ms())
        logger.info(
            "pnl_by_days",
            days=days,
            start_time=start_time,
            end_time=end_time,
        )

        records = await self.get_income_history(
            symbol=symbol, start_time=start_time, end_time=end_time
        )
        unrealized = await self._unrealized_pnl() if include_unrealized else Decimal("0")

        return summarize_income(
            records,
            unrealized_pnl=unrealized,
            period=day_label(days),
            window=(start_time, end_time),
            use_observed_range=False,
        )
