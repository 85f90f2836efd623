"""
Collection factories.

One generic SynchronizedCollection serves every table; these builders
only fill in table name, record model, ordering and joins.
"""

from datetime import datetime, timezone

from pocketledger.models.events import MutationResult
from pocketledger.models.ledger import (
    Category,
    CategoryDraft,
    CategoryPatch,
    Expense,
    ExpenseDraft,
    ExpensePatch,
    PaymentDraft,
    PaymentPatch,
    Table,
    UpcomingPayment,
)
from pocketledger.services.backend import CATEGORY_JOIN, BackendInterface
from pocketledger.sync.collection import SynchronizedCollection
from pocketledger.sync.remote import RemoteCollection


class PaymentCollection(SynchronizedCollection[UpcomingPayment]):
    """Upcoming payments, plus the paid/unpaid toggle."""

    async def toggle_paid(self, payment_id: str) -> MutationResult[UpcomingPayment]:
        """Flip is_paid based on the current snapshot and stamp updated_at."""
        payment = self.get(payment_id)
        if payment is None:
            return MutationResult.failed(f"Payment {payment_id} not found")
        return await self.update(
            payment_id,
            {
                "is_paid": not payment.is_paid,
                "updated_at": datetime.now(timezone.utc),
            },
        )


def expense_remote(backend: BackendInterface) -> RemoteCollection[Expense]:
    return RemoteCollection(
        backend,
        Table.EXPENSES.value,
        Expense,
        order_by="date",
        descending=True,
        joins=(CATEGORY_JOIN,),
        draft=ExpenseDraft,
        patch=ExpensePatch,
    )


def payment_remote(backend: BackendInterface) -> RemoteCollection[UpcomingPayment]:
    return RemoteCollection(
        backend,
        Table.UPCOMING_PAYMENTS.value,
        UpcomingPayment,
        order_by="due_date",
        joins=(CATEGORY_JOIN,),
        draft=PaymentDraft,
        patch=PaymentPatch,
    )


def category_remote(backend: BackendInterface) -> RemoteCollection[Category]:
    return RemoteCollection(
        backend,
        Table.CATEGORIES.value,
        Category,
        order_by="name",
        draft=CategoryDraft,
        patch=CategoryPatch,
    )


def create_expense_collection(backend: BackendInterface) -> SynchronizedCollection[Expense]:
    return SynchronizedCollection(expense_remote(backend))


def create_payment_collection(backend: BackendInterface) -> PaymentCollection:
    return PaymentCollection(payment_remote(backend))


def create_category_collection(
    backend: BackendInterface,
    subscribe: bool = False,
) -> SynchronizedCollection[Category]:
    # Categories change only through CategoryManager, which refetches itself
    return SynchronizedCollection(category_remote(backend), subscribe=subscribe)
