"""
Synchronization package.

Remote collection client, change feed subscriber and the generic
synchronized collection built from them.
"""

from pocketledger.sync.collection import SynchronizedCollection
from pocketledger.sync.factories import (
    PaymentCollection,
    category_remote,
    create_category_collection,
    create_expense_collection,
    create_payment_collection,
    expense_remote,
    payment_remote,
)
from pocketledger.sync.feed import ChangeFeedSubscriber, FeedState
from pocketledger.sync.remote import RemoteCollection, to_wire

__all__ = [
    "ChangeFeedSubscriber",
    "FeedState",
    "PaymentCollection",
    "RemoteCollection",
    "SynchronizedCollection",
    "category_remote",
    "create_category_collection",
    "create_expense_collection",
    "create_payment_collection",
    "expense_remote",
    "payment_remote",
    "to_wire",
]
