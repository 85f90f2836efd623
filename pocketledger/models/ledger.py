"""
Core Data Models for Pocket Ledger

These models define the schemas for every row that crosses the backend
boundary. They are designed to:
1. Parse backend rows (dicts) into typed, immutable records
2. Guarantee every record has a displayable category
3. Keep wire names (camelCase settings JSON) out of Python attribute names

DESIGN DECISION: Records are frozen. Local state never patches a record
in place; it is replaced wholesale by what the server returned.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_COLOR = "#cccccc"
DEFAULT_CATEGORY_COLOR = "#3B82F6"


# =============================================================================
# ENUMS
# =============================================================================

class Theme(str, Enum):
    """Display theme. Device-local, never stored in the backend."""
    LIGHT = "light"
    DARK = "dark"

    def toggled(self) -> "Theme":
        return Theme.DARK if self is Theme.LIGHT else Theme.LIGHT


class Table(str, Enum):
    """Backend tables the ledger reads and writes."""
    EXPENSES = "expenses"
    UPCOMING_PAYMENTS = "upcoming_payments"
    CATEGORIES = "categories"
    USER_SETTINGS = "user_settings"


# =============================================================================
# CATEGORY
# =============================================================================

class Category(BaseModel):
    """
    Spending category.

    The synthetic UNCATEGORIZED sentinel is the only category with
    id None; it stands in for a missing or deleted join.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore",
    )

    id: Optional[str] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category name shown in breakdowns"
    )
    color: str = Field(
        default=DEFAULT_CATEGORY_COLOR,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color used in charts"
    )
    user_id: Optional[str] = None

    @property
    def is_uncategorized(self) -> bool:
        return self.id is None


UNCATEGORIZED = Category(id=None, name=UNCATEGORIZED_NAME, color=UNCATEGORIZED_COLOR)


def _category_or_sentinel(value: Any) -> Any:
    """A null (or empty) joined category becomes UNCATEGORIZED."""
    if value is None:
        return UNCATEGORIZED
    if isinstance(value, dict) and not value.get("name"):
        return UNCATEGORIZED
    return value


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class LedgerRecord(BaseModel):
    """
    Fields shared by every owned, amount-carrying record.

    Read models accept whatever the table accepts, so a row the server
    stored is never dropped over a rule the table does not enforce.
    Client input is checked by the draft models below instead.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore",
    )

    id: str
    user_id: str
    amount: Decimal = Field(
        ...,
        description="Amount in the account's currency"
    )
    category_id: Optional[str] = None
    category: Category = UNCATEGORIZED
    created_at: Optional[dt.datetime] = None

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v: Any) -> Any:
        return _category_or_sentinel(v)


class Expense(LedgerRecord):
    """A single spending entry."""

    description: str
    date: dt.date = Field(
        ...,
        description="Calendar date of the expense (no time component)"
    )

    @property
    def record_date(self) -> dt.date:
        """The calendar date aggregations bucket this record by."""
        return self.date


class UpcomingPayment(LedgerRecord):
    """
    A scheduled payment.

    Overdue is derived, never stored: it depends on "today", which moves
    while a view is open.
    """

    title: str
    due_date: dt.date
    is_paid: bool = False
    is_recurring: bool = False
    updated_at: Optional[dt.datetime] = None

    @property
    def record_date(self) -> dt.date:
        return self.due_date

    def is_overdue(self, today: Optional[dt.date] = None) -> bool:
        today = today or dt.date.today()
        return self.due_date < today and not self.is_paid


DatedRecord = Union[Expense, UpcomingPayment]


# =============================================================================
# CLIENT INPUT
# =============================================================================

Amount = Annotated[Decimal, Field(gt=0, decimal_places=2)]
Description = Annotated[str, Field(min_length=1, max_length=500)]
Title = Annotated[str, Field(min_length=1, max_length=200)]
CategoryName = Annotated[str, Field(min_length=1, max_length=100)]
Color = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]


class Draft(BaseModel):
    """
    Values a user submits for a new record.

    Validated before anything is sent, so a rejected draft never reaches
    the server. Unknown keys (owner, join aliases) are ignored.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore",
    )


class Patch(Draft):
    """
    A partial update. Every field is optional, but columns listed in
    NOT_NULL cannot be cleared.
    """
    NOT_NULL: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode='after')
    def no_cleared_columns(self) -> "Patch":
        cleared = [
            name for name in self.NOT_NULL
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be empty")
        return self


class ExpenseDraft(Draft):
    amount: Amount
    description: Description
    date: dt.date
    category_id: Optional[str] = None


class ExpensePatch(Patch):
    NOT_NULL: ClassVar[tuple[str, ...]] = ("amount", "description", "date")

    amount: Optional[Amount] = None
    description: Optional[Description] = None
    date: Optional[dt.date] = None
    category_id: Optional[str] = None


class PaymentDraft(Draft):
    amount: Amount
    title: Title
    due_date: dt.date
    category_id: Optional[str] = None
    is_paid: bool = False
    is_recurring: bool = False


class PaymentPatch(Patch):
    NOT_NULL: ClassVar[tuple[str, ...]] = (
        "amount", "title", "due_date", "is_paid", "is_recurring",
    )

    amount: Optional[Amount] = None
    title: Optional[Title] = None
    due_date: Optional[dt.date] = None
    category_id: Optional[str] = None
    is_paid: Optional[bool] = None
    is_recurring: Optional[bool] = None
    updated_at: Optional[dt.datetime] = None


class CategoryDraft(Draft):
    name: CategoryName
    color: Color = DEFAULT_CATEGORY_COLOR


class CategoryPatch(Patch):
    NOT_NULL: ClassVar[tuple[str, ...]] = ("name", "color")

    name: Optional[CategoryName] = None
    color: Optional[Color] = None



# =============================================================================
# SETTINGS
# =============================================================================

class UserSettings(BaseModel):
    """
    Per-account settings persisted in the backend.

    Stored as JSON under user_settings.settings with camelCase keys.
    Theme is deliberately absent: older rows that still carry it are
    accepted and the key ignored.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    monthly_budget: Decimal = Field(
        default=Decimal("2000"),
        ge=0,
        alias="monthlyBudget",
    )
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
    )

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    def to_row(self) -> dict[str, Any]:
        """Settings JSON as the backend stores it."""
        return {
            "monthlyBudget": float(self.monthly_budget),
            "currency": self.currency,
        }
