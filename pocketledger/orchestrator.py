"""
Main Orchestrator for Pocket Ledger

This module ties the components together for one signed-in account:
1. Collections (expenses, upcoming payments, categories) bound to the owner
2. Settings (monthly budget, currency) loaded into the preferences context
3. Derived views (dashboard summary, payment calendar, CSV export)
4. AI advice built from those derived views

DESIGN DECISION: The session owns every subscription it opens.
close() unmounts all collections, so no change channel outlives the
session and no late refetch result lands after it is gone.
"""

import asyncio
import datetime as dt
from typing import Optional

import structlog

from pocketledger.accounts import CategoryManager, SettingsService
from pocketledger.agents import FinancialAdvisor
from pocketledger.analytics import (
    BudgetSummary,
    CalendarDay,
    budget_summary,
    bucket_payments,
    expenses_to_csv,
    export_filename,
    month_grid,
    recent_activity,
)
from pocketledger.config import AppSettings, get_settings
from pocketledger.context import PreferencesContext, ThemeStore
from pocketledger.logs import configure_logging, is_configured
from pocketledger.models import Expense, MutationResult, UserSettings
from pocketledger.services.backend import BackendInterface, SupabaseBackend
from pocketledger.sync import (
    create_category_collection,
    create_expense_collection,
    create_payment_collection,
    expense_remote,
    payment_remote,
)


logger = structlog.get_logger(__name__)


class NotSignedInError(Exception):
    """No account is signed in on the backend session."""
    pass


class LedgerSession:
    """
    Everything one signed-in account sees.

    Usage:
        session = LedgerSession(backend, advisor, preferences)
        await session.start()
        summary = session.dashboard()
        await session.close()
    """

    def __init__(
        self,
        backend: BackendInterface,
        advisor: Optional[FinancialAdvisor] = None,
        preferences: Optional[PreferencesContext] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._backend = backend
        self._advisor = advisor or FinancialAdvisor()
        self._preferences = preferences or PreferencesContext()
        self._app = app_settings or AppSettings()
        self._owner_id: Optional[str] = None

        self.expenses = create_expense_collection(backend)
        self.payments = create_payment_collection(backend)
        self.categories = create_category_collection(backend)
        self.category_manager = CategoryManager(
            self.categories,
            referencing=[expense_remote(backend), payment_remote(backend)],
        )
        self.settings = SettingsService(
            backend,
            defaults=UserSettings(
                monthly_budget=self._app.default_monthly_budget,
                currency=self._app.default_currency,
            ),
        )

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    @property
    def preferences(self) -> PreferencesContext:
        return self._preferences

    async def start(self, owner_id: Optional[str] = None) -> str:
        """
        Bind every collection to the signed-in account and load its settings.

        Raises:
            NotSignedInError: If the backend session has no user
        """
        owner_id = owner_id or await self._backend.current_user_id()
        if owner_id is None:
            raise NotSignedInError("Sign in before opening the ledger")

        if self._owner_id is not None and owner_id != self._owner_id:
            await self.close()
        self._owner_id = owner_id

        await asyncio.gather(
            self.expenses.mount(owner_id),
            self.payments.mount(owner_id),
            self.categories.mount(owner_id),
        )
        user_settings = await self.settings.load(owner_id)
        self._preferences.apply_settings(user_settings)

        logger.info(
            "session_started",
            owner_id=owner_id,
            expenses=len(self.expenses.items),
            payments=len(self.payments.items),
            categories=len(self.categories.items),
        )
        return owner_id

    async def close(self) -> None:
        await asyncio.gather(
            self.expenses.unmount(),
            self.payments.unmount(),
            self.categories.unmount(),
        )
        logger.info("session_closed", owner_id=self._owner_id)
        self._owner_id = None

    async def save_settings(self, user_settings: UserSettings) -> MutationResult[UserSettings]:
        if self._owner_id is None:
            return MutationResult.failed("You must be signed in to make changes")
        result = await self.settings.save(self._owner_id, user_settings)
        if result.success:
            self._preferences.apply_settings(user_settings)
        return result

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    def dashboard(self, today: Optional[dt.date] = None) -> BudgetSummary:
        return budget_summary(
            self.expenses.items,
            self.settings.current,
            today=today,
            top_n=self._app.top_categories_count,
        )

    def recent_activity(self, today: Optional[dt.date] = None) -> list[Expense]:
        return recent_activity(
            self.expenses.items,
            today=today,
            limit=self._app.recent_activity_limit,
        )

    def payment_calendar(self, year: int, month: int) -> list[CalendarDay]:
        return bucket_payments(month_grid(year, month), self.payments.items)

    def export_csv(self, today: Optional[dt.date] = None) -> tuple[str, str]:
        """(filename, CSV text) for the current expense snapshot."""
        return export_filename(today), expenses_to_csv(self.expenses.items)

    # -------------------------------------------------------------------------
    # AI
    # -------------------------------------------------------------------------

    async def insights(self, custom_prompt: Optional[str] = None) -> str:
        return await self._advisor.get_financial_insights(self.expenses.items, custom_prompt)

    async def money_tips(self) -> str:
        return await self._advisor.get_smart_money_tips()

    async def personalized_tips(self, today: Optional[dt.date] = None) -> str:
        return await self._advisor.get_personalized_tips(
            self.expenses.items,
            self.dashboard(today),
            self._preferences,
        )


def create_app_components(
    backend: Optional[BackendInterface] = None,
    advisor: Optional[FinancialAdvisor] = None,
) -> LedgerSession:
    """
    Factory function to create a ready-to-start session.

    Args:
        backend: Backend to use. Defaults to Supabase configured from
                 SUPABASE_* environment variables.
        advisor: Advisor to use. Defaults to Gemini configured from
                 GEMINI_* environment variables (on first request).

    Returns:
        A LedgerSession; call start() to bind it to the signed-in account.
    """
    app_settings = get_settings().app
    if not is_configured():
        configure_logging(app_settings.log_level, json=app_settings.log_json)

    preferences = PreferencesContext.from_store(
        ThemeStore(app_settings.preferences_path),
        currency=app_settings.default_currency,
    )
    return LedgerSession(
        backend or SupabaseBackend(),
        advisor=advisor or FinancialAdvisor(),
        preferences=preferences,
        app_settings=app_settings,
    )
