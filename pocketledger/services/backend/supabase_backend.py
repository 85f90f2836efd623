"""
Supabase Backend Implementation

DESIGN DECISION: Supabase is the production backend because it bundles
the three things the ledger needs behind one client:
1. PostgREST table CRUD with embedded foreign-key joins
2. Realtime postgres_changes channels filtered per account
3. Auth sessions, with row-level security enforced server-side

TRADEOFFS:
- PostgREST cannot embed joins in an insert/update response, so a
  mutation that needs the joined category re-selects the row by id
- Realtime accepts a single filter per channel; owner scoping uses it
- Delete payloads carry only the primary key unless the table's
  replica identity is FULL

The implementation follows the abstract interface, so the sync layer
never imports the supabase client directly.
"""

from typing import Any, Optional, Sequence
from uuid import uuid4

import structlog
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocketledger.config import SupabaseSettings, get_settings
from pocketledger.models.events import ChangeEvent, ChangeType
from pocketledger.services.backend.interface import (
    BackendError,
    BackendInterface,
    ChangeCallback,
    ConnectionError,
    Join,
    StatusCallback,
    SubscriptionError,
    SubscriptionHandle,
    SubscriptionStatus,
    classify_error,
)


logger = structlog.get_logger(__name__)


def select_columns(joins: Sequence[Join]) -> str:
    """PostgREST select string: all columns plus each embedded join."""
    return ", ".join(["*", *(join.select_clause() for join in joins)])


def payload_to_event(table: str, payload: dict[str, Any]) -> ChangeEvent:
    """
    Normalise a realtime postgres_changes payload.

    The realtime client nests the change under "data" with keys
    type/record/old_record; older servers send eventType/new/old at
    the top level. Both shapes are accepted.
    """
    data = payload.get("data", payload)
    event_type = data.get("type") or data.get("eventType")
    if event_type is None:
        raise ValueError(f"Change payload has no event type: {sorted(data)}")

    return ChangeEvent(
        event_type=ChangeType(str(event_type).upper()),
        table=data.get("table", table),
        record=data.get("record") or data.get("new") or {},
        old_record=data.get("old_record") or data.get("old") or {},
    )


class SupabaseBackend(BackendInterface):
    """
    Supabase implementation of the backend interface.

    One AsyncClient per backend instance, created lazily on first use.
    """

    def __init__(
        self,
        client: Optional[AsyncClient] = None,
        settings: Optional[SupabaseSettings] = None,
    ):
        self._client = client
        self._settings = settings

    @property
    def settings(self) -> SupabaseSettings:
        if self._settings is None:
            self._settings = get_settings().supabase
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ConnectionError),
        reraise=True,
    )
    async def connect(self) -> AsyncClient:
        """Create the Supabase client on first use."""
        if self._client is None:
            try:
                self._client = await acreate_client(
                    self.settings.url,
                    self.settings.key,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client

    async def current_user_id(self) -> Optional[str]:
        client = await self.connect()
        try:
            response = await client.auth.get_user()
        except Exception as e:
            raise BackendError(f"Failed to read the current session: {e}")
        if response is None or response.user is None:
            return None
        return str(response.user.id)

    async def _execute(self, table: str, query: Any) -> list[dict[str, Any]]:
        try:
            response = await query.execute()
        except APIError as e:
            raise classify_error(e.message or str(e), table) from e
        except BackendError:
            raise
        except Exception as e:
            raise BackendError(f"Request to {table} failed: {e}") from e
        return list(response.data or [])

    async def select(
        self,
        table: str,
        *,
        filters: Optional[dict[str, Any]] = None,
        joins: Sequence[Join] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        client = await self.connect()
        query = client.table(table).select(select_columns(joins))
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute(table, query)

    async def _reselect(
        self,
        table: str,
        rows: list[dict[str, Any]],
        joins: Sequence[Join],
    ) -> list[dict[str, Any]]:
        """Fetch mutated rows again so they carry their joins."""
        if not joins or not rows:
            return rows
        refreshed = []
        for row in rows:
            refreshed.extend(
                await self.select(table, filters={"id": row["id"]}, joins=joins)
            )
        return refreshed

    async def insert(
        self,
        table: str,
        values: dict[str, Any],
        *,
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        client = await self.connect()
        rows = await self._execute(table, client.table(table).insert(values))
        return await self._reselect(table, rows, joins)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: dict[str, Any],
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        client = await self.connect()
        query = client.table(table).update(values)
        for column, value in filters.items():
            query = query.eq(column, value)
        rows = await self._execute(table, query)
        return await self._reselect(table, rows, joins)

    async def delete(
        self,
        table: str,
        *,
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        client = await self.connect()
        query = client.table(table).delete()
        for column, value in filters.items():
            query = query.eq(column, value)
        return await self._execute(table, query)

    async def subscribe(
        self,
        table: str,
        *,
        filters: dict[str, Any],
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> SubscriptionHandle:
        if len(filters) != 1:
            raise SubscriptionError(
                f"Realtime channels take exactly one filter, got {sorted(filters)}"
            )
        column, value = next(iter(filters.items()))

        client = await self.connect()
        channel_name = f"{table}-{value}-{uuid4().hex[:8]}"
        channel = client.channel(channel_name)

        def handle_payload(payload: dict[str, Any]) -> None:
            try:
                event = payload_to_event(table, payload)
            except ValueError as e:
                logger.warning(
                    "change_payload_unreadable",
                    table=table,
                    channel=channel_name,
                    error=str(e),
                )
                return
            on_change(event)

        def handle_status(state: Any, error: Optional[Exception] = None) -> None:
            raw = str(getattr(state, "value", state)).upper()
            try:
                status = SubscriptionStatus(raw)
            except ValueError:
                status = SubscriptionStatus.CHANNEL_ERROR
            on_status(status, error)

        channel.on_postgres_changes(
            "*",
            schema=self.settings.db_schema,
            table=table,
            filter=f"{column}=eq.{value}",
            callback=handle_payload,
        )

        try:
            await channel.subscribe(handle_status)
        except Exception as e:
            raise SubscriptionError(f"Failed to subscribe to {table}: {e}") from e

        logger.info("channel_opened", table=table, channel=channel_name)
        return SubscriptionHandle(table, filters, channel_name, channel)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        client = await self.connect()
        try:
            await client.remove_channel(handle.channel)
        except Exception as e:
            raise SubscriptionError(
                f"Failed to remove channel {handle.channel_name}: {e}"
            ) from e
        logger.info("channel_removed", table=handle.table, channel=handle.channel_name)
