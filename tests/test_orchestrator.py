"""Integration tests: a whole session against the in-memory backend."""

from datetime import date
from decimal import Decimal

import pytest

from pocketledger.agents import FinancialAdvisor
from pocketledger.config import AppSettings, get_settings
from pocketledger.context import PreferencesContext, ThemeStore
from pocketledger.models import ChangeType, Theme, UserSettings
from pocketledger.orchestrator import LedgerSession, NotSignedInError, create_app_components
from pocketledger.services.backend import InMemoryBackend

from conftest import OWNER, FakeModel


@pytest.fixture
def session(seeded_backend, fake_model, tmp_path):
    return LedgerSession(
        seeded_backend,
        advisor=FinancialAdvisor(model=fake_model),
        preferences=PreferencesContext(store=ThemeStore(tmp_path / "prefs.json")),
        app_settings=AppSettings(top_categories_count=1),
    )


class TestSessionLifecycle:

    async def test_start_mounts_everything(self, session, seeded_backend):
        owner = await session.start()
        assert owner == OWNER
        assert len(session.expenses.items) == 3
        assert len(session.payments.items) == 1
        assert len(session.categories.items) == 2
        # Expenses and payments subscribe, categories do not
        assert seeded_backend.active_subscriptions() == 2
        assert session.preferences.currency == "USD"

    async def test_close_tears_down_all_channels(self, session, seeded_backend):
        await session.start()
        await session.close()
        assert seeded_backend.active_subscriptions() == 0
        assert session.owner_id is None

    async def test_start_requires_sign_in(self, fake_model):
        session = LedgerSession(InMemoryBackend(), advisor=FinancialAdvisor(model=fake_model))
        with pytest.raises(NotSignedInError):
            await session.start()

    async def test_stored_currency_reaches_preferences(self, session, seeded_backend):
        seeded_backend.seed("user_settings", [
            {"user_id": OWNER, "settings": {"monthlyBudget": 300, "currency": "EUR"}},
        ])
        await session.start()
        assert session.preferences.currency == "EUR"
        assert session.preferences.format_currency(Decimal("5")) == "€5.00"

    async def test_save_settings_updates_preferences(self, session):
        await session.start()
        result = await session.save_settings(UserSettings(monthly_budget=Decimal("100"), currency="GBP"))
        assert result.success
        assert session.preferences.currency_symbol == "£"
        assert session.dashboard(date(2024, 3, 20)).monthly_budget == Decimal("100")


class TestDerivedViews:

    async def test_dashboard(self, session):
        await session.start()
        summary = session.dashboard(date(2024, 3, 20))
        assert summary.total == Decimal("59.75")
        assert summary.budget_remaining == Decimal("1940.25")
        assert summary.top_category.name == "Travel"
        assert len(summary.top_categories) == 1

    async def test_dashboard_follows_remote_changes(self, session, seeded_backend):
        await session.start()
        seeded_backend.apply_remote("expenses", ChangeType.DELETE, {"id": "e2"})
        await session.expenses.wait_idle()
        assert session.dashboard(date(2024, 3, 20)).total == Decimal("19.75")

    async def test_payment_calendar(self, session):
        await session.start()
        grid = session.payment_calendar(2024, 4)
        rent_day = next(cell for cell in grid if cell.date == date(2024, 4, 1))
        assert [p.title for p in rent_day.payments] == ["Rent"]

    async def test_export_csv(self, session):
        await session.start()
        filename, text = session.export_csv(date(2024, 3, 20))
        assert filename == "expenses-export-2024-03-20.csv"
        assert text.splitlines()[1] == "2024-03-12,Train,Travel,40.00"

    async def test_recent_activity(self, session):
        await session.start()
        recent = session.recent_activity(date(2024, 3, 13))
        assert [e.id for e in recent] == ["e2", "e1"]


class TestAdvice:

    async def test_personalized_tips(self, session, fake_model):
        await session.start()
        tips = await session.personalized_tips(date(2024, 3, 20))
        assert tips == fake_model.text
        assert "Top spending categories: Travel" in fake_model.prompts[0]

    async def test_insights_and_money_tips(self, session, fake_model):
        await session.start()
        assert await session.insights("Where did my money go?") == fake_model.text
        assert await session.money_tips() == fake_model.text
        assert len(fake_model.prompts) == 2


class TestFactory:

    def test_create_app_components_wires_preferences(self, monkeypatch, tmp_path):
        prefs_path = tmp_path / "preferences.json"
        ThemeStore(prefs_path).save(Theme.DARK)
        monkeypatch.setenv("PREFERENCES_PATH", str(prefs_path))
        monkeypatch.setenv("DEFAULT_CURRENCY", "inr")
        monkeypatch.setenv("LOG_JSON", "false")
        get_settings.cache_clear()

        session = create_app_components(
            backend=InMemoryBackend(user_id=OWNER),
            advisor=FinancialAdvisor(model=FakeModel()),
        )
        assert session.preferences.theme is Theme.DARK
        assert session.preferences.currency == "INR"
        get_settings.cache_clear()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
