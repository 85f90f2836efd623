"""
Data Models Package

This package contains all Pydantic models used in Pocket Ledger.
Every row read from the backend is parsed into one of these.
"""

from pocketledger.models.ledger import (
    DEFAULT_CATEGORY_COLOR,
    UNCATEGORIZED,
    UNCATEGORIZED_COLOR,
    UNCATEGORIZED_NAME,
    Category,
    CategoryDraft,
    CategoryPatch,
    DatedRecord,
    Expense,
    ExpenseDraft,
    ExpensePatch,
    LedgerRecord,
    PaymentDraft,
    PaymentPatch,
    Table,
    Theme,
    UpcomingPayment,
    UserSettings,
)
from pocketledger.models.events import (
    ChangeEvent,
    ChangeType,
    MutationResult,
)

__all__ = [
    # Ledger models
    "DEFAULT_CATEGORY_COLOR",
    "UNCATEGORIZED",
    "UNCATEGORIZED_COLOR",
    "UNCATEGORIZED_NAME",
    "Category",
    "CategoryDraft",
    "CategoryPatch",
    "DatedRecord",
    "Expense",
    "ExpenseDraft",
    "ExpensePatch",
    "LedgerRecord",
    "PaymentDraft",
    "PaymentPatch",
    "Table",
    "Theme",
    "UpcomingPayment",
    "UserSettings",
    # Events
    "ChangeEvent",
    "ChangeType",
    "MutationResult",
]
