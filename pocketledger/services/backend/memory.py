"""
In-Memory Backend

A process-local implementation of the backend interface. It behaves
like the hosted backend where the ledger depends on it:
- server-side defaults (id, created_at, updated_at) on insert
- embedded foreign-key joins on read and on mutation responses
- row-level security for the signed-in account
- change notifications delivered to matching channels after each write

It also exposes hooks for driving failure and ordering scenarios:
fail_next(), select_gate, emit_status() and apply_remote().
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence
from uuid import uuid4

from pocketledger.models.events import ChangeEvent, ChangeType
from pocketledger.services.backend.interface import (
    BackendError,
    BackendInterface,
    ChangeCallback,
    Join,
    PermissionDeniedError,
    StatusCallback,
    SubscriptionError,
    SubscriptionHandle,
    SubscriptionStatus,
    TableMissingError,
    PERMISSION_DENIED_MESSAGE,
)


def _matches(row: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    return all(str(row.get(col)) == str(val) for col, val in (filters or {}).items())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class _Channel:
    def __init__(
        self,
        handle: SubscriptionHandle,
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ):
        self.handle = handle
        self.on_change = on_change
        self.on_status = on_status


class InMemoryBackend(BackendInterface):
    """
    Dict-backed backend.

    Tables are created on first write. A table listed in missing_tables
    behaves as if it had never been created.
    """

    TIMESTAMPED_TABLES = {"upcoming_payments", "user_settings"}

    def __init__(
        self,
        user_id: Optional[str] = None,
        enforce_row_security: bool = True,
    ):
        self._user_id = user_id
        self._enforce_row_security = enforce_row_security
        self._tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._channels: dict[str, _Channel] = {}
        self._failures: dict[str, list[BackendError]] = defaultdict(list)
        self.missing_tables: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        # Awaited by select() after the snapshot is taken and before it is
        # returned; lets a caller hold one read back while another completes.
        self.select_gate: Optional[Callable[[str], Awaitable[None]]] = None

    # -------------------------------------------------------------------------
    # Test and demo controls
    # -------------------------------------------------------------------------

    def sign_in(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    def seed(self, table: str, rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert rows directly, with defaults but without notifications."""
        stored = []
        for row in rows:
            stored.append(self._store(table, dict(row)))
        return [dict(row) for row in stored]

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [dict(row) for row in self._tables[table].values()]

    def fail_next(self, operation: str, error: BackendError) -> None:
        """Make the next call of `operation` ("select", "insert", ...) raise."""
        self._failures[operation].append(error)

    def active_subscriptions(self, table: Optional[str] = None) -> int:
        return sum(
            1 for channel in self._channels.values()
            if table is None or channel.handle.table == table
        )

    def emit_status(
        self,
        table: str,
        status: SubscriptionStatus,
        error: Optional[Exception] = None,
    ) -> None:
        """Report a channel state change (e.g. a transport failure)."""
        for channel in list(self._channels.values()):
            if channel.handle.table == table:
                channel.on_status(status, error)

    def apply_remote(
        self,
        table: str,
        change: ChangeType,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a write made elsewhere (another device) and notify channels."""
        if change is ChangeType.DELETE:
            old = self._tables[table].pop(str(row["id"]))
            self._notify(ChangeEvent(event_type=change, table=table, old_record=dict(old)))
            return old
        if change is ChangeType.INSERT:
            stored = self._store(table, dict(row))
            self._notify(ChangeEvent(event_type=change, table=table, record=dict(stored)))
            return stored
        old = dict(self._tables[table][str(row["id"])])
        self._tables[table][str(row["id"])].update(row)
        new = dict(self._tables[table][str(row["id"])])
        self._notify(ChangeEvent(event_type=change, table=table, record=new, old_record=old))
        return new

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if self._failures[operation]:
            raise self._failures[operation].pop(0)
        if table in self.missing_tables:
            raise TableMissingError(
                f"The {table} table does not exist in the database. "
                "Please create it first."
            )

    def _visible(self, row: dict[str, Any]) -> bool:
        if not self._enforce_row_security or "user_id" not in row:
            return True
        return self._user_id is not None and str(row["user_id"]) == str(self._user_id)

    def _guard_write(self, table: str, row: dict[str, Any]) -> None:
        if self._enforce_row_security and "user_id" in row and not self._visible(row):
            raise PermissionDeniedError(
                f"new row violates row-level security policy for table \"{table}\": "
                f"{PERMISSION_DENIED_MESSAGE}"
            )

    def _store(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        row.setdefault("id", str(uuid4()))
        row["id"] = str(row["id"])
        row.setdefault("created_at", _now())
        if table in self.TIMESTAMPED_TABLES:
            row.setdefault("updated_at", row["created_at"])
        self._tables[table][row["id"]] = row
        return row

    def _with_joins(self, row: dict[str, Any], joins: Sequence[Join]) -> dict[str, Any]:
        result = dict(row)
        for join in joins:
            target = self._tables[join.table].get(str(row.get(join.foreign_key)))
            result[join.alias] = (
                {column: target.get(column) for column in join.columns}
                if target is not None
                else None
            )
        return result

    def _notify(self, event: ChangeEvent) -> None:
        for channel in list(self._channels.values()):
            handle = channel.handle
            if handle.table != event.table:
                continue
            if _matches(event.record, handle.filters) or _matches(event.old_record, handle.filters):
                channel.on_change(event)

    # -------------------------------------------------------------------------
    # BackendInterface
    # -------------------------------------------------------------------------

    async def current_user_id(self) -> Optional[str]:
        return self._user_id

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
        self._check("select", table)
        rows = [
            self._with_joins(row, joins)
            for row in self._tables[table].values()
            if self._visible(row) and _matches(row, filters)
        ]
        if order_by:
            rows.sort(key=lambda row: str(row.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]

        if self.select_gate is not None:
            await self.select_gate(table)
        else:
            await asyncio.sleep(0)
        return rows

    async def insert(
        self,
        table: str,
        values: dict[str, Any],
        *,
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        self._check("insert", table)
        self._guard_write(table, values)
        stored = self._store(table, dict(values))
        self._notify(ChangeEvent(event_type=ChangeType.INSERT, table=table, record=dict(stored)))
        return [self._with_joins(stored, joins)]

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: dict[str, Any],
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        self._check("update", table)
        updated = []
        for row in self._tables[table].values():
            if not (self._visible(row) and _matches(row, filters)):
                continue
            candidate = {**row, **values}
            self._guard_write(table, candidate)
            old = dict(row)
            row.update(values)
            if table in self.TIMESTAMPED_TABLES and "updated_at" not in values:
                row["updated_at"] = _now()
            updated.append(row)
            self._notify(ChangeEvent(
                event_type=ChangeType.UPDATE, table=table, record=dict(row), old_record=old,
            ))
        return [self._with_joins(row, joins) for row in updated]

    async def delete(
        self,
        table: str,
        *,
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        self._check("delete", table)
        doomed = [
            row_id for row_id, row in self._tables[table].items()
            if self._visible(row) and _matches(row, filters)
        ]
        deleted = []
        for row_id in doomed:
            old = self._tables[table].pop(row_id)
            deleted.append(dict(old))
            self._notify(ChangeEvent(event_type=ChangeType.DELETE, table=table, old_record=dict(old)))
        return deleted

    async def subscribe(
        self,
        table: str,
        *,
        filters: dict[str, Any],
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> SubscriptionHandle:
        try:
            self._check("subscribe", table)
        except BackendError as e:
            raise SubscriptionError(str(e)) from e
        handle = SubscriptionHandle(table, filters, f"{table}-{uuid4().hex[:8]}")
        self._channels[handle.channel_name] = _Channel(handle, on_change, on_status)
        on_status(SubscriptionStatus.SUBSCRIBED, None)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.calls.append(("unsubscribe", handle.table))
        self._channels.pop(handle.channel_name, None)
