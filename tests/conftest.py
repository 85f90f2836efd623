"""
Shared fixtures.

No test talks to the network: the ledger runs against InMemoryBackend
and AI calls go to FakeModel.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from pocketledger.models import Category, Expense, UpcomingPayment
from pocketledger.services.backend import InMemoryBackend


OWNER = "user-1"
OTHER = "user-2"


def make_expense(
    amount="10.00",
    on=date(2024, 3, 15),
    category=None,
    description="Coffee",
    expense_id=None,
    user_id=OWNER,
) -> Expense:
    return Expense(
        id=expense_id or f"exp-{description}-{on.isoformat()}-{amount}",
        user_id=user_id,
        amount=Decimal(amount),
        description=description,
        date=on,
        category=category,
    )


def make_payment(
    due=date(2024, 3, 15),
    amount="50.00",
    title="Rent",
    is_paid=False,
    payment_id=None,
) -> UpcomingPayment:
    return UpcomingPayment(
        id=payment_id or f"pay-{title}-{due.isoformat()}",
        user_id=OWNER,
        amount=Decimal(amount),
        title=title,
        due_date=due,
        is_paid=is_paid,
    )


FOOD = Category(id="cat-food", name="Food", color="#FF0000", user_id=OWNER)
TRAVEL = Category(id="cat-travel", name="Travel", color="#00FF00", user_id=OWNER)


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text="1. Spend less on coffee", error=None):
        self.text = text
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture
def backend():
    return InMemoryBackend(user_id=OWNER)


@pytest.fixture
def seeded_backend(backend):
    backend.seed("categories", [
        {"id": "cat-food", "user_id": OWNER, "name": "Food", "color": "#FF0000"},
        {"id": "cat-travel", "user_id": OWNER, "name": "Travel", "color": "#00FF00"},
        {"id": "cat-theirs", "user_id": OTHER, "name": "Theirs", "color": "#0000FF"},
    ])
    backend.seed("expenses", [
        {"id": "e1", "user_id": OWNER, "amount": 12.5, "description": "Lunch",
         "date": "2024-03-10", "category_id": "cat-food"},
        {"id": "e2", "user_id": OWNER, "amount": 40.0, "description": "Train",
         "date": "2024-03-12", "category_id": "cat-travel"},
        {"id": "e3", "user_id": OWNER, "amount": 7.25, "description": "Snack",
         "date": "2024-03-01", "category_id": None},
        {"id": "e4", "user_id": OTHER, "amount": 99.0, "description": "Not mine",
         "date": "2024-03-11", "category_id": "cat-theirs"},
    ])
    backend.seed("upcoming_payments", [
        {"id": "p1", "user_id": OWNER, "amount": 800.0, "title": "Rent",
         "due_date": "2024-04-01", "is_paid": False, "is_recurring": True,
         "category_id": None, "updated_at": "2024-01-01T00:00:00+00:00"},
    ])
    return backend


@pytest.fixture
def fake_model():
    return FakeModel()
