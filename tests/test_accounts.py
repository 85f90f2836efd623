"""Tests for category management and user settings."""

from decimal import Decimal

import pytest

from pocketledger.accounts import CategoryManager, SettingsService
from pocketledger.models import UserSettings
from pocketledger.services.backend import BackendError
from pocketledger.sync import (
    create_category_collection,
    expense_remote,
    payment_remote,
)

from conftest import OTHER, OWNER


@pytest.fixture
async def manager(seeded_backend):
    categories = create_category_collection(seeded_backend)
    await categories.mount(OWNER)
    return CategoryManager(
        categories,
        referencing=[expense_remote(seeded_backend), payment_remote(seeded_backend)],
    )


class TestCategoryManager:

    async def test_add_category(self, manager):
        result = await manager.add("  Health ", "#123456")
        assert result.success
        assert result.data.name == "Health"
        assert "Health" in [c.name for c in manager.categories]

    async def test_add_requires_name(self, manager):
        result = await manager.add("   ")
        assert not result.success
        assert result.error == "Category name is required"

    async def test_delete_in_use_by_expenses_is_refused(self, manager, seeded_backend):
        before = manager.categories
        result = await manager.delete("cat-food")
        assert not result.success
        assert result.error == "Cannot delete category that is being used by expenses"
        assert manager.categories is before
        assert any(r["id"] == "cat-food" for r in seeded_backend.rows("categories"))

    async def test_delete_in_use_by_payments_is_refused(self, manager, seeded_backend):
        seeded_backend.seed("categories", [
            {"id": "cat-bills", "user_id": OWNER, "name": "Bills", "color": "#AAAAAA"},
        ])
        seeded_backend.seed("upcoming_payments", [
            {"id": "p2", "user_id": OWNER, "amount": 30, "title": "Power",
             "due_date": "2024-04-05", "category_id": "cat-bills"},
        ])
        result = await manager.delete("cat-bills")
        assert not result.success
        assert result.error == "Cannot delete category that is being used by payments"

    async def test_delete_unused_category(self, manager):
        added = await manager.add("Spare")
        result = await manager.delete(added.data.id)
        assert result.success
        assert "Spare" not in [c.name for c in manager.categories]

    async def test_usage_check_failure_blocks_delete(self, manager, seeded_backend):
        seeded_backend.fail_next("select", BackendError("timeout"))
        result = await manager.delete("cat-travel")
        assert not result.success
        assert result.error == "timeout"


class TestSettingsService:

    async def test_first_load_creates_default_row(self, backend):
        service = SettingsService(backend)
        settings = await service.load(OWNER)
        assert settings == UserSettings()
        rows = backend.rows("user_settings")
        assert rows[0]["settings"] == {"monthlyBudget": 2000.0, "currency": "USD"}

    async def test_load_existing_row(self, backend):
        backend.seed("user_settings", [
            {"user_id": OWNER, "settings": {"monthlyBudget": 750, "currency": "EUR", "theme": "dark"}},
        ])
        settings = await SettingsService(backend).load(OWNER)
        assert settings.monthly_budget == Decimal("750")
        assert settings.currency == "EUR"

    async def test_fetch_failure_falls_back_to_defaults(self, backend):
        backend.fail_next("select", BackendError("down"))
        service = SettingsService(backend, defaults=UserSettings(currency="GBP"))
        settings = await service.load(OWNER)
        assert settings.currency == "GBP"
        assert backend.rows("user_settings") == []

    async def test_failed_read_never_returns_another_accounts_settings(self, backend):
        """Test that a second account falls back to defaults, not the first account's row."""
        backend.seed("user_settings", [
            {"user_id": OWNER, "settings": {"monthlyBudget": 9999, "currency": "EUR"}},
        ])
        service = SettingsService(backend)
        assert (await service.load(OWNER)).currency == "EUR"

        backend.fail_next("select", BackendError("down"))
        settings = await service.load(OTHER)
        assert settings == UserSettings()
        assert service.current == UserSettings()

    async def test_failed_read_keeps_same_accounts_settings(self, backend):
        backend.seed("user_settings", [
            {"user_id": OWNER, "settings": {"monthlyBudget": 9999, "currency": "EUR"}},
        ])
        service = SettingsService(backend)
        await service.load(OWNER)
        backend.fail_next("select", BackendError("down"))
        assert (await service.load(OWNER)).monthly_budget == Decimal("9999")

    async def test_save_updates_existing_row(self, backend):
        service = SettingsService(backend)
        await service.load(OWNER)
        result = await service.save(OWNER, UserSettings(monthly_budget=Decimal("900"), currency="CAD"))
        assert result.success
        rows = backend.rows("user_settings")
        assert len(rows) == 1
        assert rows[0]["settings"] == {"monthlyBudget": 900.0, "currency": "CAD"}
        assert service.current.currency == "CAD"

    async def test_save_inserts_when_missing(self, backend):
        result = await SettingsService(backend).save(OWNER, UserSettings(currency="AUD"))
        assert result.success
        assert backend.rows("user_settings")[0]["user_id"] == OWNER

    async def test_save_failure_keeps_current(self, backend):
        service = SettingsService(backend)
        await service.load(OWNER)
        backend.fail_next("update", BackendError("denied"))
        result = await service.save(OWNER, UserSettings(currency="JPY"))
        assert not result.success
        assert service.current.currency == "USD"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
