"""
Synchronized Collection

A view-model over one backend table for one owner. It combines:
1. An in-memory snapshot of the owner's records (a cache, never the truth)
2. A change feed whose events enqueue a full refetch
3. Optimistic merging of confirmed mutations ahead of that refetch

Refetches are generation-tagged. Every refetch reserves the next
generation number when it is issued, and its result is applied only if
that number is still the latest issued when the response arrives. A
slow, older response therefore never overwrites a newer one, and a
splice from a mutation is never overwritten by a read that started
before it.

Mutations touch local state only with the record the server returned.
A rejected mutation leaves `items` as the very same list object.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Generic, Optional

import structlog

from pocketledger.models.events import ChangeEvent, MutationResult
from pocketledger.services.backend import BackendError
from pocketledger.sync.feed import ChangeFeedSubscriber, FeedState
from pocketledger.sync.remote import ModelT, RemoteCollection


logger = structlog.get_logger(__name__)

NOT_SIGNED_IN = "You must be signed in to make changes"


class SynchronizedCollection(Generic[ModelT]):
    """
    Fetch / subscribe / merge for one table.

    Lifecycle: mount(owner) ... unmount(). Mounting for a different owner
    unmounts first, so at most one change channel is ever live.
    """

    def __init__(
        self,
        remote: RemoteCollection[ModelT],
        *,
        subscribe: bool = True,
    ):
        self._remote = remote
        self._feed = (
            ChangeFeedSubscriber(remote.backend, remote.table, self._on_change)
            if subscribe
            else None
        )
        self._items: list[ModelT] = []
        self._owner_id: Optional[str] = None
        self._mounted = False
        self._issued = 0
        self._in_flight = 0
        self._pending: set[asyncio.Task] = set()
        self.error: Optional[str] = None
        self.last_refresh_time: Optional[datetime] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def table(self) -> str:
        return self._remote.table

    @property
    def items(self) -> list[ModelT]:
        """Current snapshot. Replaced, never mutated in place."""
        return self._items

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    @property
    def feed(self) -> Optional[ChangeFeedSubscriber]:
        return self._feed

    @property
    def feed_state(self) -> FeedState:
        return self._feed.state if self._feed else FeedState.UNSUBSCRIBED

    def get(self, record_id: str) -> Optional[ModelT]:
        for item in self._items:
            if item.id == record_id:
                return item
        return None

    def dismiss_error(self) -> None:
        self.error = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def mount(self, owner_id: str) -> None:
        """Bind to owner_id: open the change feed, then load the snapshot."""
        if self._mounted and owner_id == self._owner_id:
            return
        if self._mounted:
            await self.unmount()
        if owner_id != self._owner_id:
            self._items = []
            self.error = None

        self._owner_id = owner_id
        self._mounted = True
        logger.info("collection_mounted", table=self.table, owner_id=owner_id)

        # Subscribing first means a write landing during the initial read
        # still triggers a refetch
        if self._feed is not None:
            await self._feed.open(owner_id)
        await self.refetch()

    async def unmount(self) -> None:
        """Close the feed, cancel queued refetches, drop in-flight results."""
        if not self._mounted:
            return
        self._mounted = False
        self._issued += 1

        if self._feed is not None:
            await self._feed.close()

        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()
        logger.info("collection_unmounted", table=self.table, owner_id=self._owner_id)

    async def wait_idle(self) -> None:
        """Wait until every queued refetch has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Refetch
    # -------------------------------------------------------------------------

    def _reserve_generation(self) -> int:
        self._issued += 1
        return self._issued

    def _is_current(self, generation: int, owner_id: Optional[str]) -> bool:
        return self._mounted and generation == self._issued and owner_id == self._owner_id

    async def refetch(self) -> bool:
        """
        Replace the snapshot with the server's current rows.

        Returns True if this call's result was applied. On failure the
        previous snapshot stays and `error` describes the problem.
        """
        if not self._mounted or self._owner_id is None:
            return False
        return await self._run_refetch(self._reserve_generation())

    async def _run_refetch(self, generation: int) -> bool:
        owner_id = self._owner_id
        self._in_flight += 1
        try:
            records = await self._remote.fetch_all(owner_id)
        except BackendError as e:
            if self._is_current(generation, owner_id):
                self.error = str(e) or f"Failed to fetch {self.table}"
                logger.error(
                    "refetch_failed",
                    table=self.table,
                    owner_id=owner_id,
                    error=self.error,
                    kept=len(self._items),
                )
            return False
        finally:
            self._in_flight -= 1

        if not self._is_current(generation, owner_id):
            logger.debug(
                "stale_refetch_dropped",
                table=self.table,
                generation=generation,
                latest=self._issued,
            )
            return False

        self._items = records
        self.error = None
        self.last_refresh_time = datetime.now(timezone.utc)
        logger.info(
            "collection_refetched",
            table=self.table,
            count=len(records),
            generation=generation,
        )
        return True

    def _enqueue_refetch(self) -> None:
        # The generation is reserved now, not when the task first runs
        generation = self._reserve_generation()
        task = asyncio.get_running_loop().create_task(self._run_refetch(generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _on_change(self, event: ChangeEvent) -> None:
        if not self._mounted:
            return
        self._enqueue_refetch()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _accepts(self, owner_id: str) -> bool:
        return self._mounted and owner_id == self._owner_id

    async def insert(self, values: dict[str, Any]) -> MutationResult[ModelT]:
        """Insert, splice the server's row in, then refetch."""
        owner_id = self._owner_id
        if owner_id is None:
            return MutationResult.failed(NOT_SIGNED_IN)

        result = await self._remote.insert(owner_id, values)
        if result.success and self._accepts(owner_id):
            # A refetch may already have brought the new row in
            others = [item for item in self._items if item.id != result.data.id]
            self._items = self._remote.sort([result.data, *others])
            self._enqueue_refetch()
        return result

    async def update(self, record_id: str, patch: dict[str, Any]) -> MutationResult[ModelT]:
        """Update, replace the whole local record with the server's, then refetch."""
        owner_id = self._owner_id
        if owner_id is None:
            return MutationResult.failed(NOT_SIGNED_IN)

        result = await self._remote.update(owner_id, record_id, patch)
        if result.success and self._accepts(owner_id):
            others = [item for item in self._items if item.id != record_id]
            self._items = self._remote.sort([result.data, *others])
            self._enqueue_refetch()
        return result

    async def delete(self, record_id: str) -> MutationResult[None]:
        """Delete, drop the local record, then refetch."""
        owner_id = self._owner_id
        if owner_id is None:
            return MutationResult.failed(NOT_SIGNED_IN)

        result = await self._remote.delete(owner_id, record_id)
        if result.success and self._accepts(owner_id):
            self._items = [item for item in self._items if item.id != record_id]
            self._enqueue_refetch()
        return result
