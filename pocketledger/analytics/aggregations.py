"""
Aggregation View-Models

Pure functions from record lists to the numbers the dashboard and the
analytics views show.

DESIGN DECISION: Everything here is DETERMINISTIC.
No function reads the clock unless `today` is omitted, and no function
talks to the backend. Feeding the same snapshot twice yields identical
results, so refetches that return unchanged data never move a chart.

Amounts stay Decimal end to end. Percentages are floats because they are
only ever displayed.
"""

import datetime as dt
from collections import OrderedDict
from decimal import Decimal
from operator import attrgetter
from typing import Callable, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

from pocketledger.models.ledger import (
    UNCATEGORIZED,
    DatedRecord,
    UserSettings,
)


RecordT = TypeVar("RecordT", bound=DatedRecord)

ZERO = Decimal("0")


def record_date(record: DatedRecord) -> dt.date:
    return record.record_date


DateOf = Callable[[DatedRecord], dt.date]


# =============================================================================
# DATE WINDOWS
# =============================================================================

def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta months, crossing year boundaries."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> tuple[dt.date, dt.date]:
    """First and last calendar day of a month."""
    next_year, next_month = shift_month(year, month, 1)
    return dt.date(year, month, 1), dt.date(next_year, next_month, 1) - dt.timedelta(days=1)


class DateWindow(BaseModel):
    """Inclusive date range [start, end]."""
    model_config = ConfigDict(frozen=True)

    start: dt.date
    end: dt.date

    @model_validator(mode='after')
    def check_order(self) -> "DateWindow":
        if self.end < self.start:
            raise ValueError("Window end must not be before its start")
        return self

    def contains(self, day: dt.date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    @classmethod
    def last_n_days(cls, n: int, today: Optional[dt.date] = None) -> "DateWindow":
        """The n days ending today, today included."""
        today = today or dt.date.today()
        return cls(start=today - dt.timedelta(days=n - 1), end=today)

    @classmethod
    def last_7_days(cls, today: Optional[dt.date] = None) -> "DateWindow":
        return cls.last_n_days(7, today)

    @classmethod
    def last_30_days(cls, today: Optional[dt.date] = None) -> "DateWindow":
        return cls.last_n_days(30, today)

    @classmethod
    def last_year(cls, today: Optional[dt.date] = None) -> "DateWindow":
        return cls.last_n_days(365, today)

    @classmethod
    def current_month(cls, today: Optional[dt.date] = None) -> "DateWindow":
        today = today or dt.date.today()
        start, end = month_bounds(today.year, today.month)
        return cls(start=start, end=end)

    @classmethod
    def month(cls, year: int, month: int) -> "DateWindow":
        start, end = month_bounds(year, month)
        return cls(start=start, end=end)

    @classmethod
    def custom(cls, start: dt.date, end: dt.date) -> "DateWindow":
        return cls(start=start, end=end)


# =============================================================================
# TOTALS
# =============================================================================

def total(records: Sequence[DatedRecord]) -> Decimal:
    return sum((record.amount for record in records), ZERO)


def filter_in_range(
    records: Sequence[RecordT],
    window: DateWindow,
    date_of: DateOf = record_date,
) -> list[RecordT]:
    return [record for record in records if window.contains(date_of(record))]


def total_in_range(
    records: Sequence[DatedRecord],
    window: DateWindow,
    date_of: DateOf = record_date,
) -> Decimal:
    """Sum of amounts whose date falls inside the window."""
    return total(filter_in_range(records, window, date_of))


def month_total(
    records: Sequence[DatedRecord],
    year: int,
    month: int,
    date_of: DateOf = record_date,
) -> Decimal:
    return total_in_range(records, DateWindow.month(year, month), date_of)


def average_daily_spending(amount: Decimal, days: int) -> Decimal:
    if days <= 0:
        return ZERO
    return (amount / days).quantize(Decimal("0.01"))


def budget_used_percentage(spent: Decimal, budget: Decimal) -> float:
    """Share of the budget spent, capped at 100. Zero for a non-positive budget."""
    if budget <= 0:
        return 0.0
    return min(float(spent / budget * 100), 100.0)


# =============================================================================
# CATEGORY BREAKDOWN
# =============================================================================

class CategoryShare(BaseModel):
    """One slice of a category breakdown."""
    model_config = ConfigDict(frozen=True)

    name: str
    color: str
    amount: Decimal
    percentage: float


class CategoryTotal(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    amount: Decimal
    color: Optional[str] = None


NO_TOP_CATEGORY = CategoryTotal(name="None", amount=ZERO)


def category_breakdown(
    records: Sequence[DatedRecord],
    top_n: Optional[int] = None,
) -> list[CategoryShare]:
    """
    Group amounts by category name, largest first.

    Percentages are relative to the full total, so a truncated list
    (top_n) sums to less than 100. When the total is zero every
    percentage is 0.0.
    """
    groups: OrderedDict[str, list] = OrderedDict()
    for record in records:
        category = record.category or UNCATEGORIZED
        if category.name not in groups:
            groups[category.name] = [category.color, ZERO]
        groups[category.name][1] += record.amount

    grand_total = sum((amount for _, amount in groups.values()), ZERO)
    shares = [
        CategoryShare(
            name=name,
            color=color,
            amount=amount,
            percentage=float(amount / grand_total * 100) if grand_total > 0 else 0.0,
        )
        for name, (color, amount) in groups.items()
    ]
    # Stable sort: equal amounts keep first-seen order
    shares.sort(key=attrgetter("amount"), reverse=True)
    if top_n is not None:
        shares = shares[:top_n]
    return shares


def format_percentage(percentage: float) -> str:
    return f"{percentage:.0f}%"


def top_category(records: Sequence[DatedRecord]) -> CategoryTotal:
    """Largest category, or name 'None' with amount 0 when there is nothing."""
    breakdown = category_breakdown(records, top_n=1)
    if not breakdown:
        return NO_TOP_CATEGORY
    top = breakdown[0]
    return CategoryTotal(name=top.name, amount=top.amount, color=top.color)


# =============================================================================
# MONTH OVER MONTH
# =============================================================================

class MonthOverMonth(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: Decimal
    previous: Decimal
    delta_percent: float

    @property
    def increased(self) -> bool:
        return self.delta_percent > 0


def month_totals(
    records: Sequence[DatedRecord],
    today: Optional[dt.date] = None,
    date_of: DateOf = record_date,
) -> tuple[Decimal, Decimal]:
    """(current month total, previous month total)."""
    today = today or dt.date.today()
    prev_year, prev_month = shift_month(today.year, today.month, -1)
    return (
        month_total(records, today.year, today.month, date_of),
        month_total(records, prev_year, prev_month, date_of),
    )


def month_over_month(
    records: Sequence[DatedRecord],
    today: Optional[dt.date] = None,
    date_of: DateOf = record_date,
) -> MonthOverMonth:
    """
    Percentage change from last month to this month.

    With nothing spent last month the change is reported as 0, never
    as infinity or NaN.
    """
    current, previous = month_totals(records, today, date_of)
    if previous > 0:
        delta = float((current - previous) / previous * 100)
    else:
        delta = 0.0
    return MonthOverMonth(current=current, previous=previous, delta_percent=delta)


# =============================================================================
# SERIES
# =============================================================================

class DailyPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: dt.date
    amount: Decimal

    @property
    def label(self) -> str:
        return self.day.strftime("%b %d")


class MonthlyPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    amount: Decimal

    @property
    def label(self) -> str:
        return dt.date(self.year, self.month, 1).strftime("%b %Y")


def daily_spending(
    records: Sequence[DatedRecord],
    days: int = 7,
    today: Optional[dt.date] = None,
    date_of: DateOf = record_date,
) -> list[DailyPoint]:
    """One point per day for the last `days` days, oldest first, zero-filled."""
    window = DateWindow.last_n_days(days, today)
    sums: dict[dt.date, Decimal] = {}
    for record in filter_in_range(records, window, date_of):
        day = date_of(record)
        sums[day] = sums.get(day, ZERO) + record.amount
    return [
        DailyPoint(day=day, amount=sums.get(day, ZERO))
        for day in (window.start + dt.timedelta(days=i) for i in range(window.days))
    ]


def monthly_spending(
    records: Sequence[DatedRecord],
    months: int = 12,
    today: Optional[dt.date] = None,
    date_of: DateOf = record_date,
) -> list[MonthlyPoint]:
    """One point per calendar month, ending with the current month."""
    today = today or dt.date.today()
    points = []
    for offset in range(months - 1, -1, -1):
        year, month = shift_month(today.year, today.month, -offset)
        points.append(MonthlyPoint(
            year=year,
            month=month,
            amount=month_total(records, year, month, date_of),
        ))
    return points


def recent_activity(
    records: Sequence[RecordT],
    today: Optional[dt.date] = None,
    limit: int = 5,
    days: int = 7,
    date_of: DateOf = record_date,
) -> list[RecordT]:
    """Newest records from the last `days` days."""
    window = DateWindow.last_n_days(days, today)
    recent = sorted(filter_in_range(records, window, date_of), key=date_of, reverse=True)
    return recent[:limit]


def group_by_date(
    records: Sequence[RecordT],
    date_of: DateOf = record_date,
    descending: bool = True,
) -> OrderedDict[dt.date, list[RecordT]]:
    grouped: dict[dt.date, list[RecordT]] = {}
    for record in records:
        grouped.setdefault(date_of(record), []).append(record)
    return OrderedDict(
        (day, grouped[day]) for day in sorted(grouped, reverse=descending)
    )


# =============================================================================
# DASHBOARD SUMMARY
# =============================================================================

class BudgetSummary(BaseModel):
    """Dashboard numbers for the current calendar month."""
    model_config = ConfigDict(frozen=True)

    total: Decimal
    monthly_budget: Decimal
    budget_remaining: Decimal
    budget_used_percentage: float
    month_over_month: MonthOverMonth
    top_category: CategoryTotal
    top_categories: list[CategoryShare]


def budget_summary(
    expenses: Sequence[DatedRecord],
    settings: UserSettings,
    today: Optional[dt.date] = None,
    top_n: int = 6,
) -> BudgetSummary:
    """
    Summarise this month's spending against the monthly budget.

    budget_remaining goes negative when the budget is exceeded.
    """
    today = today or dt.date.today()
    this_month = filter_in_range(expenses, DateWindow.current_month(today))
    spent = total(this_month)
    return BudgetSummary(
        total=spent,
        monthly_budget=settings.monthly_budget,
        budget_remaining=settings.monthly_budget - spent,
        budget_used_percentage=budget_used_percentage(spent, settings.monthly_budget),
        month_over_month=month_over_month(expenses, today),
        top_category=top_category(this_month),
        top_categories=category_breakdown(this_month, top_n=top_n),
    )
