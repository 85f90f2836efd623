"""
Abstract Backend Interface

DESIGN DECISION: Everything the ledger needs from the hosted
backend-as-a-service goes through this interface:
1. Table CRUD with equality filters and an optional foreign-key join
2. A subscribe/unsubscribe pair for row-level change notifications
3. The signed-in account's identifier

This allows us to:
1. Run against Supabase in production
2. Use an in-memory backend for tests and offline demos
3. Keep the sync and analytics layers free of any client library

Row-level security stays the backend's job. Callers still scope every
query by owner; the backend's policies are the safety net.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from pocketledger.models.events import ChangeEvent


class Join(BaseModel):
    """A to-one foreign-key join embedded under `alias` in each row."""

    model_config = ConfigDict(frozen=True)

    alias: str
    table: str
    foreign_key: str
    columns: tuple[str, ...] = ("id", "name", "color")

    def select_clause(self) -> str:
        return f"{self.alias}:{self.table}({', '.join(self.columns)})"


CATEGORY_JOIN = Join(alias="category", table="categories", foreign_key="category_id")


class SubscriptionStatus(str, Enum):
    """Channel states reported by the backend's realtime transport."""
    SUBSCRIBED = "SUBSCRIBED"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"
    CHANNEL_ERROR = "CHANNEL_ERROR"

    @property
    def is_failure(self) -> bool:
        return self in (SubscriptionStatus.TIMED_OUT, SubscriptionStatus.CHANNEL_ERROR)


ChangeCallback = Callable[[ChangeEvent], None]
StatusCallback = Callable[[SubscriptionStatus, Optional[Exception]], None]


class SubscriptionHandle:
    """Opaque token for one live change-feed channel."""

    def __init__(
        self,
        table: str,
        filters: dict[str, Any],
        channel_name: str,
        channel: Any = None,
    ):
        self.table = table
        self.filters = dict(filters)
        self.channel_name = channel_name
        self.channel = channel

    def __repr__(self) -> str:
        return f"SubscriptionHandle({self.channel_name!r})"


class BackendInterface(ABC):
    """
    Abstract interface for the hosted backend.

    Every method is a coroutine. Failures raise BackendError subclasses;
    converting them into tagged results is the caller's job.
    """

    @abstractmethod
    async def current_user_id(self) -> Optional[str]:
        """
        Identifier of the signed-in account.

        Returns:
            The user id, or None if there is no session
        """
        pass

    @abstractmethod
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
        """
        Read rows matching every equality filter.

        Args:
            table: Table name
            filters: {column: value} equality predicates
            joins: Foreign-key joins to embed in each row
            order_by: Column to sort by
            descending: Sort direction
            limit: Maximum number of rows

        Returns:
            Matching rows as dicts

        Raises:
            BackendError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(
        self,
        table: str,
        values: dict[str, Any],
        *,
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        """
        Insert one row.

        Returns:
            The inserted row(s) as stored, with server defaults and joins

        Raises:
            BackendError: If the insert is rejected
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: dict[str, Any],
        joins: Sequence[Join] = (),
    ) -> list[dict[str, Any]]:
        """
        Update rows matching every filter.

        Returns:
            The updated rows (empty if nothing matched)

        Raises:
            BackendError: If the update is rejected
        """
        pass

    @abstractmethod
    async def delete(
        self,
        table: str,
        *,
        filters: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """
        Delete rows matching every filter.

        Returns:
            The deleted rows (empty if nothing matched)

        Raises:
            BackendError: If the delete is rejected
        """
        pass

    @abstractmethod
    async def subscribe(
        self,
        table: str,
        *,
        filters: dict[str, Any],
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> SubscriptionHandle:
        """
        Open a change-notification channel for rows matching `filters`.

        on_change is called (synchronously, on the event loop) for each
        INSERT/UPDATE/DELETE. on_status reports channel state changes,
        including transport failures.

        Raises:
            SubscriptionError: If the channel cannot be opened
        """
        pass

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """
        Close a channel opened by subscribe().

        Raises:
            SubscriptionError: If the backend refuses to close it
        """
        pass


class BackendError(Exception):
    """Base exception for backend operations."""
    pass


class NotFoundError(BackendError):
    """Row not found (or not visible to this account)."""
    pass


class PermissionDeniedError(BackendError):
    """Rejected by row-level security."""
    pass


class TableMissingError(BackendError):
    """The table does not exist in the backend schema."""
    pass


class ConnectionError(BackendError):
    """Could not connect to the backend."""
    pass


class SubscriptionError(BackendError):
    """The realtime channel could not be opened or closed."""
    pass


PERMISSION_DENIED_MESSAGE = (
    "Permission denied: You may not have access to modify this data "
    "due to security settings."
)


def classify_error(message: str, table: str) -> BackendError:
    """
    Map a raw backend error message onto the exception taxonomy.

    The backend reports policy violations and schema problems only as
    message text, so this is pattern matching on that text.
    """
    lowered = message.lower()
    if "row-level security" in lowered or "permission denied" in lowered:
        return PermissionDeniedError(PERMISSION_DENIED_MESSAGE)
    if "does not exist" in lowered and ("relation" in lowered or table in lowered):
        return TableMissingError(
            f"The {table} table does not exist in the database. "
            "Please create it first."
        )
    return BackendError(message)
