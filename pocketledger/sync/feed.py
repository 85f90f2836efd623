"""
Change Feed Subscriber

Keeps exactly one owner-filtered change channel open for one table and
forwards every accepted event to a callback.

State machine:

    UNSUBSCRIBED -> SUBSCRIBING -> SUBSCRIBED -> UNSUBSCRIBED   (close)
    SUBSCRIBING | SUBSCRIBED -> ERROR -> UNSUBSCRIBED           (transport failure)

Failures are logged and not retried. The owning collection keeps working
in manual-refresh mode until it is remounted.

INVARIANT: no channel outlives its subscriber. open() closes the previous
channel before opening a new one, and callbacks from a closed channel are
ignored even if the transport still delivers them.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

import structlog

from pocketledger.models.events import ChangeEvent
from pocketledger.services.backend import (
    BackendError,
    BackendInterface,
    SubscriptionHandle,
    SubscriptionStatus,
)


logger = structlog.get_logger(__name__)

OWNER_COLUMN = "user_id"


class FeedState(str, Enum):
    """Lifecycle of a change-feed subscription."""
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


class ChangeFeedSubscriber:
    """
    One live change channel per (subscriber, table).

    Every table is filtered by owner, deletes included. Events that name
    a different owner are dropped as well, in case the backend ignores
    the filter.
    """

    def __init__(
        self,
        backend: BackendInterface,
        table: str,
        on_change: Callable[[ChangeEvent], None],
    ):
        self._backend = backend
        self._table = table
        self._on_change = on_change
        self._state = FeedState.UNSUBSCRIBED
        self._handle: Optional[SubscriptionHandle] = None
        self._owner_id: Optional[str] = None
        # Identifies the current channel; callbacks carrying another token are stale
        self._token: Optional[object] = None
        self._lock = asyncio.Lock()
        self._teardown: Optional[asyncio.Task] = None
        self.transitions: list[FeedState] = []
        self.last_error: Optional[str] = None
        self.events_received = 0

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def is_live(self) -> bool:
        return self._handle is not None

    def _transition(self, state: FeedState) -> None:
        if state is self._state:
            return
        logger.debug(
            "feed_state_changed",
            table=self._table,
            previous=self._state.value,
            current=state.value,
        )
        self._state = state
        self.transitions.append(state)

    async def open(self, owner_id: str) -> bool:
        """
        (Re)subscribe for owner_id.

        Returns True if the channel was opened. On failure the subscriber
        ends UNSUBSCRIBED with last_error set.
        """
        async with self._lock:
            await self._close_locked()

            token = object()
            self._token = token
            self._owner_id = owner_id
            self.last_error = None
            self._transition(FeedState.SUBSCRIBING)

            try:
                handle = await self._backend.subscribe(
                    self._table,
                    filters={OWNER_COLUMN: owner_id},
                    on_change=lambda event: self._handle_event(token, event),
                    on_status=lambda status, error: self._handle_status(token, status, error),
                )
            except BackendError as e:
                logger.error(
                    "subscription_failed",
                    table=self._table,
                    owner_id=owner_id,
                    error=str(e),
                )
                self.last_error = str(e)
                self._token = None
                self._transition(FeedState.ERROR)
                self._transition(FeedState.UNSUBSCRIBED)
                return False

            if self._state is FeedState.ERROR:
                # The transport failed while the channel was being opened
                self._handle = handle
                await self._close_locked()
                return False

            self._handle = handle
            logger.info("feed_opened", table=self._table, owner_id=owner_id)
            return True

    async def close(self) -> None:
        """Tear the channel down. Safe to call repeatedly."""
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        handle = self._handle
        self._handle = None
        self._token = None
        if handle is not None:
            try:
                await self._backend.unsubscribe(handle)
            except BackendError as e:
                logger.error(
                    "unsubscribe_failed",
                    table=self._table,
                    channel=handle.channel_name,
                    error=str(e),
                )
            else:
                logger.info("feed_closed", table=self._table, channel=handle.channel_name)
        self._transition(FeedState.UNSUBSCRIBED)

    async def settle(self) -> None:
        """Wait for a teardown triggered by a transport failure."""
        if self._teardown is not None:
            await self._teardown
            self._teardown = None

    def _handle_status(
        self,
        token: object,
        status: SubscriptionStatus,
        error: Optional[Exception],
    ) -> None:
        if token is not self._token:
            return

        if status is SubscriptionStatus.SUBSCRIBED:
            if self._state is FeedState.SUBSCRIBING:
                self._transition(FeedState.SUBSCRIBED)
            return

        # TIMED_OUT, CHANNEL_ERROR, or a CLOSED we did not ask for
        self.last_error = str(error) if error else f"Channel {status.value.lower()}"
        logger.error(
            "subscription_lost",
            table=self._table,
            owner_id=self._owner_id,
            status=status.value,
            error=self.last_error,
        )
        self._transition(FeedState.ERROR)
        self._token = None
        if self._handle is not None:
            self._teardown = asyncio.get_running_loop().create_task(self.close())

    def _handle_event(self, token: object, event: ChangeEvent) -> None:
        if token is not self._token:
            logger.debug("stale_channel_event_ignored", table=self._table)
            return

        owners = event.owner_ids()
        if owners and owners != {self._owner_id}:
            logger.warning(
                "foreign_event_dropped",
                table=self._table,
                event_type=event.event_type.value,
            )
            return

        self.events_received += 1
        logger.debug("change_received", owner_id=self._owner_id, **event.to_log_dict())
        self._on_change(event)
