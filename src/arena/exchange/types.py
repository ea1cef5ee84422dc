"""Typed exchange response records.

Every payload the engine consumes is parsed into a frozen record here so
that malformed exchange data fails loudly at the boundary with
ResponseSchemaError instead of deep inside PnL or reconciliation code.
Numeric strings go straight to Decimal; floats only via str().
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Self

from arena.exceptions import ResponseSchemaError
from arena.models import IncomeRecord, IncomeType, OrderSide, Position, PositionSide, Trade


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Parse an exchange numeric field into Decimal.

    Raises:
        ResponseSchemaError: If the value is missing or not numeric.
    """
    if value is None or isinstance(value, bool):
        raise ResponseSchemaError(f"Missing numeric field '{field_name}'")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ResponseSchemaError(f"Field '{field_name}' is not numeric: {value!r}") from exc
    if not result.is_finite():
        raise ResponseSchemaError(f"Field '{field_name}' is not finite: {value!r}")
    return result


def _optional_decimal(value: Any, field_name: str) -> Decimal | None:
    if value in (None, ""):
        return None
    return to_decimal(value, field_name)


def _require(data: Any, key: str, record: str) -> Any:
    if not isinstance(data, dict):
        raise ResponseSchemaError(f"{record} payload must be an object, got {type(data).__name__}")
    if key not in data or data[key] is None:
        raise ResponseSchemaError(f"{record} payload missing '{key}'")
    return data[key]


def _to_int(value: Any, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ResponseSchemaError(f"Field '{field_name}' is not an integer: {value!r}") from exc


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


# ---------------------------------------------------------------------------
# Domain snapshots
# ---------------------------------------------------------------------------


def parse_position(data: dict) -> Position | None:
    """Parse one /positionRisk row. Returns None for a flat (zero-amount) row."""
    amount = to_decimal(_require(data, "positionAmt", "Position"), "positionAmt")
    if amount == 0:
        return None

    update_time = data.get("updateTime")
    return Position(
        symbol=_require(data, "symbol", "Position"),
        side=PositionSide.LONG if amount > 0 else PositionSide.SHORT,
        position_amount=amount,
        size=abs(amount),
        entry_price=to_decimal(data.get("entryPrice"), "entryPrice"),
        mark_price=to_decimal(data.get("markPrice"), "markPrice"),
        unrealized_pnl=to_decimal(data.get("unRealizedProfit", "0"), "unRealizedProfit"),
        leverage=_optional_decimal(data.get("leverage"), "leverage"),
        isolated_margin=_optional_decimal(data.get("isolatedMargin"), "isolatedMargin"),
        liquidation_price=_optional_decimal(data.get("liquidationPrice"), "liquidationPrice"),
        update_time=_to_int(update_time, "updateTime") if update_time else None,
    )


def parse_trade(data: dict) -> Trade:
    """Parse one /userTrades row. order_id is normalised to str for joins."""
    side_raw = _require(data, "side", "Trade")
    try:
        side = OrderSide(side_raw)
    except ValueError as exc:
        raise ResponseSchemaError(f"Unknown trade side: {side_raw!r}") from exc

    return Trade(
        id=_to_int(_require(data, "id", "Trade"), "id"),
        symbol=_require(data, "symbol", "Trade"),
        side=side,
        quantity=to_decimal(data.get("qty"), "qty"),
        price=to_decimal(data.get("price"), "price"),
        commission=to_decimal(data.get("commission", "0"), "commission"),
        order_id=str(_require(data, "orderId", "Trade")),
        time=_to_int(_require(data, "time", "Trade"), "time"),
        quote_quantity=to_decimal(data.get("quoteQty", "0"), "quoteQty"),
        commission_asset=data.get("commissionAsset") or "",
        realized_pnl=to_decimal(data.get("realizedPnl", "0"), "realizedPnl"),
        buyer=_to_bool(data.get("buyer", False)),
        maker=_to_bool(data.get("maker", False)),
    )


def parse_income_record(data: dict) -> IncomeRecord:
    """Parse one /income row. Unknown incomeType strings are kept verbatim."""
    raw_type = _require(data, "incomeType", "IncomeRecord")
    try:
        income_type: IncomeType | str = IncomeType(raw_type)
    except ValueError:
        income_type = raw_type

    trade_id = data.get("tradeId")
    return IncomeRecord(
        symbol=data.get("symbol") or "",
        income_type=income_type,
        income=to_decimal(data.get("income"), "income"),
        asset=data.get("asset") or "",
        time=_to_int(_require(data, "time", "IncomeRecord"), "time"),
        tran_id=str(data.get("tranId", "")),
        info=data.get("info") or "",
        trade_id=str(trade_id) if trade_id not in (None, "") else None,
    )


def parse_list(data: Any, parser: Any, record: str) -> list:
    """Apply parser to every row of a list payload, dropping None results."""
    if not isinstance(data, list):
        raise ResponseSchemaError(f"{record} payload must be a list, got {type(data).__name__}")
    return [item for item in (parser(row) for row in data) if item is not None]


# ---------------------------------------------------------------------------
# Response records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerTime:
    server_time: int  # Unix milliseconds

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(server_time=_to_int(_require(data, "serverTime", "ServerTime"), "serverTime"))


@dataclass(frozen=True)
class AccountInfo:
    """Subset of /account the engine relies on."""

    total_wallet_balance: Decimal
    available_balance: Decimal
    total_unrealized_profit: Decimal
    total_margin_balance: Decimal
    max_withdraw_amount: Decimal
    can_trade: bool
    update_time: int
    assets: list[dict]
    positions: list[dict]

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(
            total_wallet_balance=to_decimal(
                _require(data, "totalWalletBalance", "AccountInfo"), "totalWalletBalance"
            ),
            available_balance=to_decimal(data.get("availableBalance", "0"), "availableBalance"),
            total_unrealized_profit=to_decimal(
                data.get("totalUnrealizedProfit", "0"), "totalUnrealizedProfit"
            ),
            total_margin_balance=to_decimal(
                data.get("totalMarginBalance", "0"), "totalMarginBalance"
            ),
            max_withdraw_amount=to_decimal(data.get("maxWithdrawAmount", "0"), "maxWithdrawAmount"),
            can_trade=_to_bool(data.get("canTrade", True)),
            update_time=_to_int(data.get("updateTime", 0), "updateTime"),
            assets=list(data.get("assets") or []),
            positions=list(data.get("positions") or []),
        )


@dataclass(frozen=True)
class Balance:
    """One asset row of /balance."""

    asset: str
    balance: Decimal
    available_balance: Decimal
    cross_wallet_balance: Decimal
    cross_unrealized_pnl: Decimal
    max_withdraw_amount: Decimal
    account_alias: str = ""
    margin_available: bool = True
    update_time: int = 0

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(
            asset=_require(data, "asset", "Balance"),
            balance=to_decimal(data.get("balance"), "balance"),
            available_balance=to_decimal(data.get("availableBalance", "0"), "availableBalance"),
            cross_wallet_balance=to_decimal(
                data.get("crossWalletBalance", "0"), "crossWalletBalance"
            ),
            cross_unrealized_pnl=to_decimal(data.get("crossUnPnl", "0"), "crossUnPnl"),
            max_withdraw_amount=to_decimal(data.get("maxWithdrawAmount", "0"), "maxWithdrawAmount"),
            account_alias=data.get("accountAlias") or "",
            margin_available=_to_bool(data.get("marginAvailable", True)),
            update_time=_to_int(data.get("updateTime", 0), "updateTime"),
        )


@dataclass(frozen=True)
class MarkPrice:
    """One /premiumIndex row."""

    symbol: str
    mark_price: Decimal
    index_price: Decimal | None
    last_funding_rate: Decimal | None
    next_funding_time: int | None
    time: int

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        next_funding = data.get("nextFundingTime")
        return cls(
            symbol=_require(data, "symbol", "MarkPrice"),
            mark_price=to_decimal(data.get("markPrice"), "markPrice"),
            index_price=_optional_decimal(data.get("indexPrice"), "indexPrice"),
            last_funding_rate=_optional_decimal(data.get("lastFundingRate"), "lastFundingRate"),
            next_funding_time=_to_int(next_funding, "nextFundingTime") if next_funding else None,
            time=_to_int(data.get("time", 0), "time"),
        )


@dataclass(frozen=True)
class FundingRate:
    """One /fundingRate history row."""

    symbol: str
    funding_rate: Decimal
    funding_time: int
    mark_price: Decimal | None = None

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(
            symbol=_require(data, "symbol", "FundingRate"),
            funding_rate=to_decimal(data.get("fundingRate"), "fundingRate"),
            funding_time=_to_int(_require(data, "fundingTime", "FundingRate"), "fundingTime"),
            mark_price=_optional_decimal(data.get("markPrice"), "markPrice"),
        )


@dataclass(frozen=True)
class OrderResponse:
    """Order state returned by place / query / cancel."""

    order_id: str
    symbol: str
    status: str
    side: str
    order_type: str
    client_order_id: str = ""
    price: Decimal = Decimal("0")
    avg_price: Decimal = Decimal("0")
    orig_qty: Decimal = Decimal("0")
    executed_qty: Decimal = Decimal("0")
    cum_quote: Decimal = Decimal("0")
    time_in_force: str = ""
    reduce_only: bool = False
    update_time: int = 0

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(
            order_id=str(_require(data, "orderId", "OrderResponse")),
            symbol=_require(data, "symbol", "OrderResponse"),
            status=data.get("status") or "",
            side=data.get("side") or "",
            order_type=data.get("type") or "",
            client_order_id=data.get("clientOrderId") or "",
            price=to_decimal(data.get("price") or "0", "price"),
            avg_price=to_decimal(data.get("avgPrice") or "0", "avgPrice"),
            orig_qty=to_decimal(data.get("origQty") or "0", "origQty"),
            executed_qty=to_decimal(data.get("executedQty") or "0", "executedQty"),
            cum_quote=to_decimal(data.get("cumQuote") or "0", "cumQuote"),
            time_in_force=data.get("timeInForce") or "",
            reduce_only=_to_bool(data.get("reduceOnly", False)),
            update_time=_to_int(data.get("updateTime", 0), "updateTime"),
        )


@dataclass(frozen=True)
class CommissionRate:
    symbol: str
    maker_rate: Decimal
    taker_rate: Decimal

    @classmethod
    def from_payload(cls, data: dict) -> Self:
        return cls(
            symbol=_require(data, "symbol", "CommissionRate"),
            maker_rate=to_decimal(data.get("makerCommissionRate"), "makerCommissionRate"),
            taker_rate=to_decimal(data.get("takerCommissionRate"), "takerCommissionRate"),
        )
