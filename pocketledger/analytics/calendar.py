"""
Calendar bucketing for upcoming payments.

A month is laid out as full weeks: leading days from the previous month
up to the first weekday, trailing days from the next month to finish the
last week. Payments are matched to cells by their due date's
(year, month, day), never by formatted strings, so time zones and
string formats cannot shift a payment to a neighbouring cell.
"""

import datetime as dt
from enum import IntEnum
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from pocketledger.analytics.aggregations import month_bounds, shift_month
from pocketledger.models.ledger import UpcomingPayment


__all__ = [
    "Weekday",
    "CalendarDay",
    "month_grid",
    "bucket_payments",
    "payments_on",
    "is_overdue",
    "overdue_payments",
    "shift_month",
]


class Weekday(IntEnum):
    """Same numbering as date.weekday()."""
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class CalendarDay(BaseModel):
    """One cell of the month grid."""
    model_config = ConfigDict(frozen=True)

    date: dt.date
    in_month: bool
    payments: list[UpcomingPayment] = Field(default_factory=list)

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.date.year, self.date.month, self.date.day)


def month_grid(
    year: int,
    month: int,
    first_weekday: Weekday = Weekday.SUNDAY,
) -> list[CalendarDay]:
    """Cells for the weeks covering a month. len() is always a multiple of 7."""
    first, last = month_bounds(year, month)
    leading = (first.weekday() - first_weekday) % 7
    week_end = (first_weekday + 6) % 7
    trailing = (week_end - last.weekday()) % 7

    start = first - dt.timedelta(days=leading)
    count = leading + last.day + trailing
    cells = []
    for offset in range(count):
        day = start + dt.timedelta(days=offset)
        cells.append(CalendarDay(date=day, in_month=(day.month == month)))
    return cells


def bucket_payments(
    grid: Sequence[CalendarDay],
    payments: Sequence[UpcomingPayment],
) -> list[CalendarDay]:
    """Attach each payment to the cell for its due date. Input order is kept per cell."""
    buckets: dict[tuple[int, int, int], list[UpcomingPayment]] = {}
    for payment in payments:
        due = payment.due_date
        buckets.setdefault((due.year, due.month, due.day), []).append(payment)
    return [
        cell.model_copy(update={"payments": buckets.get(cell.key, [])})
        for cell in grid
    ]


def payments_on(payments: Sequence[UpcomingPayment], day: dt.date) -> list[UpcomingPayment]:
    return [
        payment for payment in payments
        if (payment.due_date.year, payment.due_date.month, payment.due_date.day)
        == (day.year, day.month, day.day)
    ]


def is_overdue(payment: UpcomingPayment, today: Optional[dt.date] = None) -> bool:
    # Recomputed per call; "today" moves while a view stays open
    return payment.is_overdue(today)


def overdue_payments(
    payments: Sequence[UpcomingPayment],
    today: Optional[dt.date] = None,
) -> list[UpcomingPayment]:
    return [payment for payment in payments if is_overdue(payment, today)]
