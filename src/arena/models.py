"""Shared data models for the arena engine.

CRITICAL: All monetary values use Decimal. Never use float for prices, quantities, or fees.
Exchange snapshots (Position, Trade, IncomeRecord) are frozen: the engine
annotates them with joined decision data but never mutates them.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class OrderSide(str, Enum):
    """Order / trade direction as the exchange spells it."""

    BUY = "BUY"
    SELL = "SELL"

    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class PositionSide(str, Enum):
    """Position direction."""

    LONG = "LONG"
    SHORT = "SHORT"


class OrderType(str, Enum):
    """Order type."""

    LIMIT = "LIMIT"
    MARKET = "MARKET"
    STOP = "STOP"
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_MARKET = "STOP_MARKET"
    TAKE_PROFIT_MARKET = "TAKE_PROFIT_MARKET"


class TimeInForce(str, Enum):
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class IncomeType(str, Enum):
    """Income ledger entry types reported by the /income endpoint."""

    REALIZED_PNL = "REALIZED_PNL"
    FUNDING_FEE = "FUNDING_FEE"
    COMMISSION = "COMMISSION"
    AUTO_EXCHANGE = "AUTO_EXCHANGE"
    REBATE = "REBATE"
    APOLLOX_DEX_REBATE = "APOLLOX_DEX_REBATE"
    REFERRAL_REBATE = "REFERRAL_REBATE"
    COMMISSION_REBATE = "COMMISSION_REBATE"
    TRANSFER = "TRANSFER"
    TRANSFER_SPOT_TO_FUTURE = "TRANSFER_SPOT_TO_FUTURE"
    TRANSFER_FUTURE_TO_SPOT = "TRANSFER_FUTURE_TO_SPOT"
    INSURANCE_CLEAR = "INSURANCE_CLEAR"
    WELCOME_BONUS = "WELCOME_BONUS"


class DecisionAction(str, Enum):
    """Action chosen by an agent in one trading cycle."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    WAIT = "wait"
    CLOSE = "close"


@dataclass
class OrderRequest:
    """Request to place an order.

    quantity and price are kept as Decimal until the precision catalog
    formats them into exchange strings.
    """

    symbol: str
    side: OrderSide
    order_type: OrderType
    quantity: Decimal
    price: Decimal | None = None
    stop_price: Decimal | None = None
    time_in_force: TimeInForce | None = None
    position_side: str | None = None  # BOTH | LONG | SHORT (hedge mode)
    reduce_only: bool | None = None
    working_type: str | None = None  # MARK_PRICE | CONTRACT_PRICE
    price_protect: bool | None = None

    def to_params(
        self,
        quantity: str | None = None,
        price: str | None = None,
    ) -> dict:
        """Render as exchange request parameters.

        Pre-formatted quantity/price strings take precedence over the
        raw Decimals; None-valued fields are omitted.
        """
        params: dict = {
            "symbol": self.symbol,
            "side": self.side.value,
            "type": self.order_type.value,
            "quantity": quantity if quantity is not None else self.quantity,
        }
        if price is not None:
            params["price"] = price
        elif self.price is not None:
            params["price"] = self.price
        if self.stop_price is not None:
            params["stopPrice"] = self.stop_price
        if self.time_in_force is not None:
            params["timeInForce"] = self.time_in_force.value
        if self.position_side is not None:
            params["positionSide"] = self.position_side
        if self.reduce_only is not None:
            params["reduceOnly"] = self.reduce_only
        if self.working_type is not None:
            params["workingType"] = self.working_type
        if self.price_protect is not None:
            params["priceProtect"] = self.price_protect
        return params


@dataclass(frozen=True)
class Position:
    """An open futures position as reported by /positionRisk."""

    symbol: str
    side: PositionSide
    position_amount: Decimal  # signed: positive long, negative short
    size: Decimal
    entry_price: Decimal
    mark_price: Decimal
    unrealized_pnl: Decimal
    leverage: Decimal | None = None
    isolated_margin: Decimal | None = None
    liquidation_price: Decimal | None = None
    update_time: int | None = None  # Unix milliseconds

    @property
    def notional(self) -> Decimal:
        """Face value at mark price, independent of leverage."""
        return self.size * self.mark_price


@dataclass(frozen=True)
class Trade:
    """A single account fill from /userTrades."""

    id: int
    symbol: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    commission: Decimal
    order_id: str
    time: int  # Unix milliseconds
    quote_quantity: Decimal = Decimal("0")
    commission_asset: str = ""
    realized_pnl: Decimal = Decimal("0")
    buyer: bool = False
    maker: bool = False

    @property
    def value(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True)
class IncomeRecord:
    """A single income ledger entry.

    income_type is an IncomeType when recognised, otherwise the raw
    string the exchange sent.
    """

    symbol: str
    income_type: IncomeType | str
    income: Decimal
    asset: str
    time: int  # Unix milliseconds
    tran_id: str
    info: str = ""
    trade_id: str | None = None


@dataclass(frozen=True)
class PnLSummary:
    """Profit and loss derived from the income ledger. Never persisted.

    trading_pnl = realized + funding + commissions + auto_exchange + rebates
    total_pnl = trading_pnl + unrealized
    net_transfers = deposits + withdrawals
    net_pnl = total_pnl + net_transfers
    """

    realized_pnl: Decimal
    funding_fees: Decimal
    commissions: Decimal
    auto_exchange: Decimal
    rebates: Decimal
    unrealized_pnl: Decimal
    trading_pnl: Decimal
    total_pnl: Decimal
    deposits: Decimal
    withdrawals: Decimal
    net_transfers: Decimal
    net_pnl: Decimal
    record_count: int
    start_time: int | None
    end_time: int | None
    period: str


@dataclass(frozen=True)
class TradeVolume:
    """Fill volume of one account over a time window, summed across symbols.

    quote_volume uses the fill's quote quantity, or quantity * price when the
    exchange omits it. Symbols whose trade fetch failed are listed in
    failed_symbols and contribute nothing.
    """

    quantity: Decimal
    quote_volume: Decimal
    trade_count: int
    start_time: int
    end_time: int
    failed_symbols: tuple[str, ...] = ()


@dataclass(frozen=True)
class Decision:
    """An AI trading decision recorded by the agent runtime.

    order_id is only populated on decisions that executed; it is the
    join key to trades and positions.
    """

    id: str
    agent_id: str
    symbol: str
    action: DecisionAction
    confidence: float
    reasoning: str
    executed: bool
    timestamp: datetime
    order_id: str | None = None
    trading_cycle_id: str | None = None
    execution_reason: str | None = None

    @property
    def is_opening(self) -> bool:
        return self.action in (DecisionAction.BUY, DecisionAction.SELL)
