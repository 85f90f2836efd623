"""
Remote Collection Client

Thin, owner-scoped wrapper over one backend table.

Reads raise (the view-model keeps its stale snapshot and shows an error);
mutations never raise, they return a MutationResult. Every row is parsed
into its record model on the way in, which is where a missing category
join becomes UNCATEGORIZED. Client values are checked against the
table's draft or patch model before the backend is called, so invalid
input is refused locally and never half-written.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from operator import attrgetter
from typing import Any, Generic, Optional, Sequence, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from pocketledger.models.events import MutationResult
from pocketledger.services.backend import (
    BackendError,
    BackendInterface,
    Join,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

OWNER_COLUMN = "user_id"


def to_wire(values: dict[str, Any]) -> dict[str, Any]:
    """Convert Python values into the JSON types the backend accepts."""
    wire = {}
    for key, value in values.items():
        if isinstance(value, Decimal):
            wire[key] = float(value)
        elif isinstance(value, (dt.date, dt.datetime)):
            wire[key] = value.isoformat()
        elif isinstance(value, Enum):
            wire[key] = value.value
        else:
            wire[key] = value
    return wire


class RemoteCollection(Generic[ModelT]):
    """
    Owner-scoped CRUD for one table.

    Every call takes the owner explicitly. Rows belonging to anyone else
    are dropped on read and refused on write, on top of whatever the
    backend's row-level security does.
    """

    def __init__(
        self,
        backend: BackendInterface,
        table: str,
        model: type[ModelT],
        *,
        order_by: str,
        descending: bool = False,
        joins: Sequence[Join] = (),
        draft: Optional[type[BaseModel]] = None,
        patch: Optional[type[BaseModel]] = None,
    ):
        self._backend = backend
        self._table = table
        self._model = model
        self._order_by = order_by
        self._descending = descending
        self._joins = tuple(joins)
        self._draft = draft
        self._patch = patch

    @property
    def table(self) -> str:
        return self._table

    @property
    def backend(self) -> BackendInterface:
        return self._backend

    def sort(self, records: Sequence[ModelT]) -> list[ModelT]:
        """Order records the way fetch_all() returns them."""
        return sorted(records, key=attrgetter(self._order_by), reverse=self._descending)

    def parse(self, row: dict[str, Any]) -> ModelT:
        return self._model.model_validate(row)

    def _prepare(
        self,
        values: dict[str, Any],
        schema: Optional[type[BaseModel]],
    ) -> dict[str, Any]:
        """
        Check client values and convert them for the wire.

        Only keys the caller supplied are sent, so server defaults still
        apply to the rest.

        Raises:
            ValidationError: If the values fail the input model
        """
        if schema is not None:
            values = schema.model_validate(values).model_dump(exclude_unset=True)
        # Joined objects are read-only views; only the foreign key is written
        aliases = {join.alias for join in self._joins}
        return to_wire({k: v for k, v in values.items() if k not in aliases})

    def _refuse(self, action: str, error: ValidationError) -> MutationResult:
        first = error.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "record"
        logger.warning("invalid_input_refused", table=self._table, action=action, field=field)
        return MutationResult.failed(f"Invalid {field}: {first['msg']}")

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def fetch_all(self, owner_id: str) -> list[ModelT]:
        """
        Fetch every record owned by owner_id.

        Raises:
            BackendError: If the backend read fails
        """
        rows = await self._backend.select(
            self._table,
            filters={OWNER_COLUMN: owner_id},
            joins=self._joins,
            order_by=self._order_by,
            descending=self._descending,
        )

        records = []
        for row in rows:
            if str(row.get(OWNER_COLUMN)) != owner_id:
                logger.warning(
                    "foreign_row_dropped",
                    table=self._table,
                    row_id=row.get("id"),
                )
                continue
            try:
                records.append(self.parse(row))
            except ValidationError as e:
                logger.warning(
                    "malformed_row_skipped",
                    table=self._table,
                    row_id=row.get("id"),
                    error=str(e),
                )
        return records

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _single(self, rows: list[dict[str, Any]], action: str) -> MutationResult[ModelT]:
        if not rows:
            return MutationResult.failed(f"{self._table} {action} returned no rows")
        try:
            return MutationResult.ok(self.parse(rows[0]))
        except ValidationError as e:
            logger.error("mutation_response_invalid", table=self._table, action=action, error=str(e))
            return MutationResult.failed(f"Invalid {self._table} record returned by the server")

    async def insert(self, owner_id: str, values: dict[str, Any]) -> MutationResult[ModelT]:
        """Insert a record owned by owner_id."""
        claimed = values.get(OWNER_COLUMN)
        if claimed is not None and str(claimed) != owner_id:
            logger.warning("foreign_insert_refused", table=self._table)
            return MutationResult.failed("Cannot create a record for another account")

        try:
            payload = {**self._prepare(values, self._draft), OWNER_COLUMN: owner_id}
        except ValidationError as e:
            return self._refuse("insert", e)

        try:
            rows = await self._backend.insert(self._table, payload, joins=self._joins)
        except BackendError as e:
            logger.error("insert_failed", table=self._table, error=str(e))
            return MutationResult.failed(str(e))
        return self._single(rows, "insert")

    async def update(
        self,
        owner_id: str,
        record_id: str,
        patch: dict[str, Any],
    ) -> MutationResult[ModelT]:
        """Update one of owner_id's records; the full new record is returned."""
        if OWNER_COLUMN in patch and str(patch[OWNER_COLUMN]) != owner_id:
            logger.warning("owner_change_refused", table=self._table, row_id=record_id)
            return MutationResult.failed("Cannot move a record to another account")
        if "id" in patch and str(patch["id"]) != record_id:
            return MutationResult.failed("Cannot change a record's id")

        try:
            changes = self._prepare(patch, self._patch)
        except ValidationError as e:
            return self._refuse("update", e)

        try:
            rows = await self._backend.update(
                self._table,
                changes,
                filters={"id": record_id, OWNER_COLUMN: owner_id},
                joins=self._joins,
            )
        except BackendError as e:
            logger.error("update_failed", table=self._table, row_id=record_id, error=str(e))
            return MutationResult.failed(str(e))

        if not rows:
            return MutationResult.failed(f"{self._table} record {record_id} not found")
        return self._single(rows, "update")

    async def delete(self, owner_id: str, record_id: str) -> MutationResult[None]:
        """Delete one of owner_id's records."""
        try:
            rows = await self._backend.delete(
                self._table,
                filters={"id": record_id, OWNER_COLUMN: owner_id},
            )
        except BackendError as e:
            logger.error("delete_failed", table=self._table, row_id=record_id, error=str(e))
            return MutationResult.failed(str(e))

        if not rows:
            # Already gone on the server; dropping it locally is still right
            logger.info("delete_matched_nothing", table=self._table, row_id=record_id)
        return MutationResult.ok()

    async def exists_where(self, owner_id: str, column: str, value: Any) -> bool:
        """
        Whether any of owner_id's rows has column == value.

        Raises:
            BackendError: If the backend read fails
        """
        rows = await self._backend.select(
            self._table,
            filters={OWNER_COLUMN: owner_id, column: value},
            limit=1,
        )
        return len(rows) > 0
