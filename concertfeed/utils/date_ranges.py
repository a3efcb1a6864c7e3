"""Retention window and monthly batch computation for feed syncs."""

from dataclasses import dataclass
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta


@dataclass(frozen=True)
class DateBatch:
    """One inclusive calendar-day range fetched as a unit."""

    start_date: date
    end_date: date

    @property
    def start_param(self) -> str:
        """Provider start bound (beginning of the first day, UTC)."""
        return f"{self.start_date.isoformat()}T00:00:00Z"

    @property
    def end_param(self) -> str:
        """Provider end bound (end of the last day, UTC)."""
        return f"{self.end_date.isoformat()}T23:59:59Z"


def retention_window(
    today: date,
    past_days: int,
    future_months: int,
) -> tuple[date, date]:
    """Return the (oldest, newest) start dates the catalog keeps."""
    return today - timedelta(days=past_days), today + relativedelta(months=future_months)


def monthly_batches(
    today: date,
    past_days: int,
    future_months: int,
) -> list[DateBatch]:
    """Split the retention window into month-long, non-overlapping batches.

    Each batch starts the day after the previous one ends. The last batch is
    clipped to the end of the window.

    Args:
        today: Reference day
        past_days: Days of history to keep
        future_months: Months ahead to keep

    Returns:
        Batches in chronological order
    """
    window_start, window_end = retention_window(today, past_days, future_months)

    batches: list[DateBatch] = []
    current = window_start
    while current <= window_end:
        batch_end = min(current + relativedelta(months=1), window_end)
        batches.append(DateBatch(start_date=current, end_date=batch_end))
        current = batch_end + timedelta(days=1)

    return batches
