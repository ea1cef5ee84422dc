"""Query windows for PnL summaries.

Two flavours: a rolling window of N hours ending now, and whole UTC
calendar days ending at the last millisecond of yesterday. Both are
pure functions of the supplied `now` (Unix milliseconds).
"""

from datetime import datetime, timedelta, timezone

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

DEFAULT_PERIOD_LABEL = "7D"  # exchange's default range when no window is sent


def rolling_window(hours: float, now_ms: int) -> tuple[int, int]:
    """(now - hours, now) in milliseconds."""
    return now_ms - int(hours * HOUR_MS), now_ms


def rolling_label(hours: float | None) -> str:
    """24 -> "24H", whole days -> "<n>D", otherwise "<n>H"; None -> "7D"."""
    if not hours:
        return DEFAULT_PERIOD_LABEL
    if hours == 24:
        return "24H"
    if hours % 24 == 0:
        return f"{int(hours // 24)}D"
    return f"{hours:g}H"


def day_boundaries(days: int, now_ms: int) -> tuple[int, int]:
    """UTC calendar-day window covering the `days` days before today.

    end is 23:59:59.999 UTC yesterday; start is 00:00:00.000 UTC of the
    day `days` days before today. The end boundary is therefore the same
    for every `days`, and today's partial day is never included.
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")

    now = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = today_start - timedelta(days=days)

    start_ms = int(start.timestamp() * 1000)
    end_ms = int(today_start.timestamp() * 1000) - 1
    return start_ms, end_ms


def day_label(days: int) -> str:
    return f"D_{days}"
