"""Pure aggregations, calendar bucketing and export over record snapshots."""

from pocketledger.analytics.aggregations import (
    BudgetSummary,
    CategoryShare,
    CategoryTotal,
    DailyPoint,
    DateWindow,
    MonthlyPoint,
    MonthOverMonth,
    NO_TOP_CATEGORY,
    average_daily_spending,
    budget_summary,
    budget_used_percentage,
    category_breakdown,
    daily_spending,
    filter_in_range,
    format_percentage,
    group_by_date,
    month_bounds,
    month_over_month,
    month_total,
    month_totals,
    monthly_spending,
    recent_activity,
    shift_month,
    top_category,
    total,
    total_in_range,
)
from pocketledger.analytics.calendar import (
    CalendarDay,
    Weekday,
    bucket_payments,
    is_overdue,
    month_grid,
    overdue_payments,
    payments_on,
)
from pocketledger.analytics.export import (
    CSV_HEADER,
    expenses_to_csv,
    export_filename,
)

__all__ = [
    "BudgetSummary",
    "CategoryShare",
    "CategoryTotal",
    "DailyPoint",
    "DateWindow",
    "MonthlyPoint",
    "MonthOverMonth",
    "NO_TOP_CATEGORY",
    "average_daily_spending",
    "budget_summary",
    "budget_used_percentage",
    "category_breakdown",
    "daily_spending",
    "filter_in_range",
    "format_percentage",
    "group_by_date",
    "month_bounds",
    "month_over_month",
    "month_total",
    "month_totals",
    "monthly_spending",
    "recent_activity",
    "shift_month",
    "top_category",
    "total",
    "total_in_range",
    "CalendarDay",
    "Weekday",
    "bucket_payments",
    "is_overdue",
    "month_grid",
    "overdue_payments",
    "payments_on",
    "CSV_HEADER",
    "expenses_to_csv",
    "export_filename",
]
