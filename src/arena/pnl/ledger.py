"""Income ledger aggregation.

Folds raw /income records into a PnLSummary. Pure: no I/O, no clock.
All calculations use Decimal arithmetic exclusively.

Bucket rules:
  - REALIZED_PNL, FUNDING_FEE, COMMISSION, AUTO_EXCHANGE each sum into their own bucket
  - every rebate flavour sums into rebates
  - transfers split by sign: positive -> deposits, negative -> withdrawals
  - anything else is counted in record_count but contributes to no bucket
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from arena.models import IncomeRecord, IncomeType, PnLSummary


class Bucket(str, Enum):
    REALIZED = "realized"
    FUNDING = "funding"
    COMMISSION = "commission"
    AUTO_EXCHANGE = "auto_exchange"
    REBATE = "rebate"
    TRANSFER = "transfer"
    IGNORED = "ignored"


_BUCKETS: dict[IncomeType, Bucket] = {
    IncomeType.REALIZED_PNL: Bucket.REALIZED,
    IncomeType.FUNDING_FEE: Bucket.FUNDING,
    IncomeType.COMMISSION: Bucket.COMMISSION,
    IncomeType.AUTO_EXCHANGE: Bucket.AUTO_EXCHANGE,
    IncomeType.APOLLOX_DEX_REBATE: Bucket.REBATE,
    IncomeType.REBATE: Bucket.REBATE,
    IncomeType.REFERRAL_REBATE: Bucket.REBATE,
    IncomeType.COMMISSION_REBATE: Bucket.REBATE,
    IncomeType.TRANSFER: Bucket.TRANSFER,
    IncomeType.TRANSFER_SPOT_TO_FUTURE: Bucket.TRANSFER,
    IncomeType.TRANSFER_FUTURE_TO_SPOT: Bucket.TRANSFER,
}


def classify(income_type: IncomeType | str) -> Bucket:
    """Map an income type to its bucket. Unknown raw strings are ignored."""
    if isinstance(income_type, IncomeType):
        return _BUCKETS.get(income_type, Bucket.IGNORED)
    try:
        return _BUCKETS.get(IncomeType(income_type), Bucket.IGNORED)
    except ValueError:
        return Bucket.IGNORED


@dataclass
class _Totals:
    realized: Decimal = Decimal("0")
    funding: Decimal = Decimal("0")
    commission: Decimal = Decimal("0")
    auto_exchange: Decimal = Decimal("0")
    rebate: Decimal = Decimal("0")
    deposits: Decimal = Decimal("0")
    withdrawals: Decimal = Decimal("0")
    count: int = 0
    times: list[int] = field(default_factory=list)

    def add(self, record: IncomeRecord) -> None:
        self.count += 1
        self.times.append(record.time)

        bucket = classify(record.income_type)
        if bucket is Bucket.REALIZED:
            self.realized += record.income
        elif bucket is Bucket.FUNDING:
            self.funding += record.income
        elif bucket is Bucket.COMMISSION:
            self.commission += record.income
        elif bucket is Bucket.AUTO_EXCHANGE:
            self.auto_exchange += record.income
        elif bucket is Bucket.REBATE:
            self.rebate += record.income
        elif bucket is Bucket.TRANSFER:
            if record.income > 0:
                self.deposits += record.income
            else:
                self.withdrawals += record.income


def summarize_income(
    records: Iterable[IncomeRecord],
    unrealized_pnl: Decimal = Decimal("0"),
    period: str = "7D",
    window: tuple[int, int] | None = None,
    use_observed_range: bool = True,
) -> PnLSummary:
    """Fold income records into a PnLSummary.

    Args:
        records: Income ledger entries, any order.
        unrealized_pnl: Sum of open-position unrealized PnL (0 if not requested).
        period: Label to attach to the summary.
        window: The (start_ms, end_ms) query window, if one was used.
        use_observed_range: When True, start/end are the earliest and latest
            record times (falling back to window when there are no records).
            When False, start/end are the window boundaries.

    Returns:
        PnLSummary satisfying
        trading = realized + funding + commissions + auto_exchange + rebates,
        total = trading + unrealized, net_transfers = deposits + withdrawals,
        net = total + net_transfers.
    """
    totals = _Totals()
    for record in records:
        totals.add(record)

    if use_observed_range and totals.times:
        start_time: int | None = min(totals.times)
        end_time: int | None = max(totals.times)
    elif window is not None:
        start_time, end_time = window
    else:
        start_time = end_time = None

    trading_pnl = (
        totals.realized + totals.funding + totals.commission + totals.auto_exchange + totals.rebate
    )
    total_pnl = trading_pnl + unrealized_pnl
    net_transfers = totals.deposits + totals.withdrawals

    return PnLSummary(
        realized_pnl=totals.realized,
        funding_fees=totals.funding,
        commissions=totals.commission,
        auto_exchange=totals.auto_exchange,
        rebates=totals.rebate,
        unrealized_pnl=unrealized_pnl,
        trading_pnl=trading_pnl,
        total_pnl=total_pnl,
        deposits=totals.deposits,
        withdrawals=totals.withdrawals,
        net_transfers=net_transfers,
        net_pnl=total_pnl + net_transfers,
        record_count=totals.count,
        start_time=start_time,
        end_time=end_time,
        period=period,
    )
