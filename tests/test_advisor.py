"""
Tests for the financial advisor.

The Gemini model is replaced by FakeModel; no request leaves the process.
"""

from datetime import date
from decimal import Decimal

import pytest

from pocketledger.agents import (
    INSIGHTS_FALLBACK,
    MONEY_TIPS_FALLBACK,
    NO_EXPENSES_MESSAGE,
    PERSONAL_TIPS_FALLBACK,
    FinancialAdvisor,
)
from pocketledger.analytics import budget_summary
from pocketledger.context import PreferencesContext
from pocketledger.models import UserSettings

from conftest import FOOD, FakeModel, make_expense


TODAY = date(2024, 3, 20)


@pytest.fixture
def expenses():
    return [
        make_expense("100.00", date(2024, 3, 10), category=FOOD, description="Groceries"),
        make_expense("20.00", date(2024, 3, 12), description="Parking"),
    ]


class TestInsights:

    async def test_insights_include_expense_data(self, fake_model, expenses):
        advisor = FinancialAdvisor(model=fake_model)
        answer = await advisor.get_financial_insights(expenses)
        assert answer == "1. Spend less on coffee"
        prompt = fake_model.prompts[0]
        assert "Groceries" in prompt
        assert "where I've spent the most money" in prompt

    async def test_custom_prompt_replaces_default_request(self, fake_model, expenses):
        advisor = FinancialAdvisor(model=fake_model)
        await advisor.get_financial_insights(expenses, "How much on food?")
        assert fake_model.prompts[0].endswith("How much on food?")

    async def test_model_error_gives_fallback(self, expenses):
        advisor = FinancialAdvisor(model=FakeModel(error=RuntimeError("quota exceeded")))
        assert await advisor.get_financial_insights(expenses) == INSIGHTS_FALLBACK

    async def test_empty_response_gives_fallback(self, expenses):
        advisor = FinancialAdvisor(model=FakeModel(text="   "))
        assert await advisor.get_financial_insights(expenses) == INSIGHTS_FALLBACK


class TestTips:

    async def test_money_tips(self, fake_model):
        advisor = FinancialAdvisor(model=fake_model)
        assert await advisor.get_smart_money_tips() == "1. Spend less on coffee"
        assert "5 practical money-saving tips" in fake_model.prompts[0]

    async def test_money_tips_fallback(self):
        advisor = FinancialAdvisor(model=FakeModel(error=ValueError("blocked")))
        assert await advisor.get_smart_money_tips() == MONEY_TIPS_FALLBACK

    async def test_personalized_tips_use_summary(self, fake_model, expenses):
        advisor = FinancialAdvisor(model=fake_model)
        summary = budget_summary(expenses, UserSettings(monthly_budget=Decimal("500")), today=TODAY)
        prefs = PreferencesContext(currency="EUR")

        await advisor.get_personalized_tips(expenses, summary, prefs)
        prompt = fake_model.prompts[0]
        assert "Total spent this month: €120.00" in prompt
        assert "Monthly budget: €500.00" in prompt
        assert "Budget remaining: €380.00" in prompt
        assert "Top spending categories: Food, Uncategorized" in prompt

    async def test_no_expenses_skips_the_model(self, fake_model):
        """Test that an empty ledger gets the fixed prompt to start tracking."""
        advisor = FinancialAdvisor(model=fake_model)
        summary = budget_summary([], UserSettings(), today=TODAY)
        tips = await advisor.get_personalized_tips([], summary, PreferencesContext())
        assert tips == NO_EXPENSES_MESSAGE
        assert fake_model.prompts == []

    async def test_personalized_tips_fallback(self, expenses):
        advisor = FinancialAdvisor(model=FakeModel(error=RuntimeError("offline")))
        summary = budget_summary(expenses, UserSettings(), today=TODAY)
        tips = await advisor.get_personalized_tips(expenses, summary, PreferencesContext())
        assert tips == PERSONAL_TIPS_FALLBACK


class TestConfiguration:

    async def test_missing_api_key_gives_fallback(self, monkeypatch):
        """Test that an unconfigured advisor still answers with the fallback."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.chdir("/")
        advisor = FinancialAdvisor()
        assert await advisor.get_smart_money_tips() == MONEY_TIPS_FALLBACK


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
