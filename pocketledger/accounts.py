"""
Account-level services: category management and user settings.

Both surface failures as MutationResult (or, for settings reads, a
fallback value) and log the underlying backend error.
"""

from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from pocketledger.models.events import MutationResult
from pocketledger.models.ledger import (
    DEFAULT_CATEGORY_COLOR,
    Category,
    Table,
    UserSettings,
)
from pocketledger.services.backend import BackendError, BackendInterface
from pocketledger.sync.collection import SynchronizedCollection
from pocketledger.sync.remote import RemoteCollection


logger = structlog.get_logger(__name__)


class CategoryManager:
    """
    Adds and deletes categories.

    A category still referenced by any expense or upcoming payment cannot
    be deleted.
    """

    def __init__(
        self,
        categories: SynchronizedCollection[Category],
        referencing: Sequence[RemoteCollection],
    ):
        """
        Args:
            categories: The mounted category collection
            referencing: Collections whose rows point at categories
                         through category_id
        """
        self._categories = categories
        self._referencing = list(referencing)

    @property
    def categories(self) -> list[Category]:
        return self._categories.items

    async def add(
        self,
        name: str,
        color: str = DEFAULT_CATEGORY_COLOR,
    ) -> MutationResult[Category]:
        name = name.strip()
        if not name:
            return MutationResult.failed("Category name is required")
        return await self._categories.insert({"name": name, "color": color})

    async def delete(self, category_id: str) -> MutationResult[None]:
        owner_id = self._categories.owner_id
        if owner_id is None:
            return MutationResult.failed("You must be signed in to make changes")

        for remote in self._referencing:
            try:
                in_use = await remote.exists_where(owner_id, "category_id", category_id)
            except BackendError as e:
                logger.error(
                    "category_usage_check_failed",
                    table=remote.table,
                    category_id=category_id,
                    error=str(e),
                )
                return MutationResult.failed(str(e))
            if in_use:
                noun = "expenses" if remote.table == Table.EXPENSES.value else "payments"
                logger.info("category_delete_refused", category_id=category_id, table=remote.table)
                return MutationResult.failed(
                    f"Cannot delete category that is being used by {noun}"
                )

        return await self._categories.delete(category_id)


class SettingsService:
    """
    One settings row per account, created lazily with defaults.

    Rows look like {user_id, settings: {monthlyBudget, currency}}.
    """

    def __init__(
        self,
        backend: BackendInterface,
        defaults: Optional[UserSettings] = None,
    ):
        self._backend = backend
        self._defaults = defaults or UserSettings()
        self._owner_id: Optional[str] = None
        self._current: Optional[UserSettings] = None

    @property
    def current(self) -> UserSettings:
        return self._current or self._defaults

    def _switch_owner(self, owner_id: str) -> None:
        # Another account's settings must never leak into this one
        if owner_id != self._owner_id:
            self._owner_id = owner_id
            self._current = None

    def _parse(self, row: dict) -> UserSettings:
        try:
            return UserSettings.model_validate(row.get("settings") or {})
        except ValidationError as e:
            logger.warning("settings_row_invalid", error=str(e))
            return self._defaults

    async def load(self, owner_id: str) -> UserSettings:
        """
        Read the account's settings, creating the default row if missing.

        A failed read keeps what was last loaded for this same account,
        or the defaults for an account not loaded before.
        """
        self._switch_owner(owner_id)
        table = Table.USER_SETTINGS.value
        try:
            rows = await self._backend.select(
                table,
                filters={"user_id": owner_id},
                limit=1,
            )
        except BackendError as e:
            logger.error("settings_fetch_failed", owner_id=owner_id, error=str(e))
            return self.current

        if rows:
            self._current = self._parse(rows[0])
            return self._current

        logger.info("settings_default_created", owner_id=owner_id)
        try:
            await self._backend.insert(
                table,
                {"user_id": owner_id, "settings": self._defaults.to_row()},
            )
        except BackendError as e:
            logger.error("settings_create_failed", owner_id=owner_id, error=str(e))
        self._current = self._defaults
        return self._current

    async def save(
        self,
        owner_id: str,
        settings: UserSettings,
    ) -> MutationResult[UserSettings]:
        """Update the account's row, inserting it if it does not exist yet."""
        self._switch_owner(owner_id)
        table = Table.USER_SETTINGS.value
        try:
            rows = await self._backend.update(
                table,
                {"settings": settings.to_row()},
                filters={"user_id": owner_id},
            )
            if not rows:
                await self._backend.insert(
                    table,
                    {"user_id": owner_id, "settings": settings.to_row()},
                )
        except BackendError as e:
            logger.error("settings_save_failed", owner_id=owner_id, error=str(e))
            return MutationResult.failed(str(e))

        self._current = settings
        logger.info("settings_saved", owner_id=owner_id, currency=settings.currency)
        return MutationResult.ok(settings)
