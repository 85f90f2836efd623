"""Tests for the change feed subscriber state machine."""

import pytest

from pocketledger.models import ChangeType
from pocketledger.services.backend import (
    InMemoryBackend,
    SubscriptionError,
    SubscriptionStatus,
)
from pocketledger.sync import ChangeFeedSubscriber, FeedState

from conftest import OTHER, OWNER


class BroadcastBackend(InMemoryBackend):
    """Ignores channel filters, like a misconfigured server would."""

    def _notify(self, event):
        for channel in list(self._channels.values()):
            if channel.handle.table == event.table:
                channel.on_change(event)


class StickyBackend(InMemoryBackend):
    """Keeps delivering to channels after they were closed."""

    async def unsubscribe(self, handle):
        self.calls.append(("unsubscribe", handle.table))


def expense_row(row_id, user_id=OWNER):
    return {"id": row_id, "user_id": user_id, "amount": 1, "description": "x", "date": "2024-01-01"}


@pytest.fixture
def events():
    return []


class TestLifecycle:

    async def test_open_subscribes_with_owner_filter(self, backend, events):
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        assert await feed.open(OWNER)
        assert feed.state is FeedState.SUBSCRIBED
        assert feed.transitions == [FeedState.SUBSCRIBING, FeedState.SUBSCRIBED]
        assert backend.active_subscriptions("expenses") == 1
        channel = next(iter(backend._channels.values()))
        assert channel.handle.filters == {"user_id": OWNER}

    async def test_reopen_keeps_one_channel(self, backend, events):
        """Test that opening again tears the previous channel down first."""
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        await feed.open(OTHER)
        await feed.open(OWNER)
        assert backend.active_subscriptions() == 1
        assert feed.owner_id == OWNER

    async def test_close_is_idempotent(self, backend, events):
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        await feed.close()
        await feed.close()
        assert feed.state is FeedState.UNSUBSCRIBED
        assert not feed.is_live
        assert backend.active_subscriptions() == 0

    async def test_subscribe_failure_ends_unsubscribed(self, backend, events):
        backend.fail_next("subscribe", SubscriptionError("realtime disabled"))
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        assert not await feed.open(OWNER)
        assert feed.state is FeedState.UNSUBSCRIBED
        assert feed.transitions == [
            FeedState.SUBSCRIBING,
            FeedState.ERROR,
            FeedState.UNSUBSCRIBED,
        ]
        assert "realtime disabled" in feed.last_error

    async def test_transport_failure_is_not_retried(self, backend, events):
        """Test SUBSCRIBED -> ERROR -> UNSUBSCRIBED on a channel error."""
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        backend.emit_status("expenses", SubscriptionStatus.CHANNEL_ERROR, RuntimeError("socket closed"))
        assert feed.state is FeedState.ERROR
        await feed.settle()
        assert feed.state is FeedState.UNSUBSCRIBED
        assert feed.last_error == "socket closed"
        assert backend.active_subscriptions() == 0
        assert backend.calls.count(("subscribe", "expenses")) == 1


class TestEvents:

    async def test_owner_events_are_forwarded(self, backend, events):
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        backend.apply_remote("expenses", ChangeType.INSERT, expense_row("e1"))
        backend.apply_remote("expenses", ChangeType.DELETE, {"id": "e1"})
        assert [e.event_type for e in events] == [ChangeType.INSERT, ChangeType.DELETE]
        assert feed.events_received == 2

    async def test_foreign_events_are_dropped(self, events):
        """Test the client-side owner check when the server ignores the filter."""
        backend = BroadcastBackend(user_id=OWNER, enforce_row_security=False)
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        backend.apply_remote("expenses", ChangeType.INSERT, expense_row("theirs", OTHER))
        backend.apply_remote("expenses", ChangeType.INSERT, expense_row("mine"))
        assert [e.record["id"] for e in events] == ["mine"]

    async def test_other_tables_are_ignored(self, backend, events):
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        backend.apply_remote("categories", ChangeType.INSERT, {"id": "c", "user_id": OWNER, "name": "x"})
        assert events == []

    async def test_closed_channel_events_are_ignored(self, events):
        """Test that a channel the transport keeps alive after close is muted."""
        backend = StickyBackend(user_id=OWNER)
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        await feed.open(OWNER)
        backend.apply_remote("expenses", ChangeType.INSERT, expense_row("e1"))
        assert len(events) == 1

    async def test_no_events_after_close(self, backend, events):
        feed = ChangeFeedSubscriber(backend, "expenses", events.append)
        await feed.open(OWNER)
        await feed.close()
        backend.apply_remote("expenses", ChangeType.INSERT, expense_row("e1"))
        assert events == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
