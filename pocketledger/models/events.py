"""
Change-feed events and mutation results.

ChangeEvent normalises whatever push payload the backend delivers into
one shape. MutationResult is the tagged result every mutation returns
instead of raising.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field


RecordT = TypeVar("RecordT")


class ChangeType(str, Enum):
    """Row-level change kinds the backend pushes."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """One row-level change notification."""

    event_type: ChangeType
    table: str
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def owner_ids(self) -> set[str]:
        """
        Owners named by the event.

        Empty when the backend omits user_id, which happens for deletes
        unless the table's replica identity is FULL.
        """
        owners = set()
        for row in (self.record, self.old_record):
            owner = row.get("user_id")
            if owner is not None:
                owners.add(str(owner))
        return owners

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "table": self.table,
            "record_id": self.record.get("id") or self.old_record.get("id"),
        }


class MutationResult(BaseModel, Generic[RecordT]):
    """
    Tagged result of an insert/update/delete.

    success=False always carries a user-facing error message;
    the caller's local state is unchanged in that case.
    """

    success: bool
    data: Optional[RecordT] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Optional[RecordT] = None) -> "MutationResult[RecordT]":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: str) -> "MutationResult[RecordT]":
        return cls(success=False, error=error)
