"""CSV export of expenses."""

import csv
import datetime as dt
import io
from typing import Optional, Sequence

from pocketledger.models.ledger import Expense


CSV_HEADER = ("Date", "Description", "Category", "Amount")


def expenses_to_csv(expenses: Sequence[Expense]) -> str:
    """Render expenses as CSV text, one row per expense in the given order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for expense in expenses:
        writer.writerow((
            expense.date.isoformat(),
            expense.description,
            expense.category.name,
            f"{expense.amount:.2f}",
        ))
    return buffer.getvalue()


def export_filename(today: Optional[dt.date] = None) -> str:
    today = today or dt.date.today()
    return f"expenses-export-{today.isoformat()}.csv"
