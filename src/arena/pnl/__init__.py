"""Income-ledger PnL: bucketing and query windows."""

from arena.pnl.ledger import Bucket, classify, summarize_income
from arena.pnl.periods import day_boundaries, day_label, rolling_label, rolling_window

__all__ = [
    "Bucket",
    "classify",
    "day_boundaries",
    "day_label",
    "rolling_label",
    "rolling_window",
    "summarize_income",
]
