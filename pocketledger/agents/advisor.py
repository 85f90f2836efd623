"""
Financial Advisor Agent

Turns expense data into conversational advice through Gemini.

CRITICAL BOUNDARIES:
- The model only ever sees data the caller passes in. It never reads
  the backend itself.
- The advisor never raises. Any failure (missing API key, network,
  quota, empty response) is logged and replaced by a fixed fallback
  message the UI can show as-is.
"""

import json
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog

from pocketledger.analytics.aggregations import BudgetSummary
from pocketledger.config import GeminiSettings, get_settings
from pocketledger.context import PreferencesContext
from pocketledger.models.ledger import Expense


logger = structlog.get_logger(__name__)

INSIGHTS_FALLBACK = (
    "I'm having trouble analyzing your expenses right now. Please try again later."
)
MONEY_TIPS_FALLBACK = (
    "Unable to generate money-saving tips at this time. Please try again later."
)
PERSONAL_TIPS_FALLBACK = (
    "Unable to generate personalized tips at this time. Please try again later."
)
NO_EXPENSES_MESSAGE = (
    "Start tracking your expenses to receive personalized financial tips!"
)

ADVISOR_INSTRUCTIONS = """You are a friendly, knowledgeable and professional financial advisor.
Use the expense data below as context, but answer in a natural, conversational way.
When listing recommendations or steps, use numbered points (1., 2., 3.) with a blank line after each."""

DEFAULT_INSIGHTS_REQUEST = """Analyze these expenses and tell me where I've spent the most money.
If there is enough data, point out spending habits that formed in the last week or month."""

MONEY_TIPS_PROMPT = """You are a friendly, knowledgeable financial advisor.
Give 5 practical money-saving tips for everyday life.
Format each tip as a numbered point with a short bold title followed by a brief explanation.
Keep the tips specific and actionable."""


class FinancialAdvisor:
    """
    Gemini-backed advice.

    A model can be injected (anything with an async
    generate_content_async(prompt) returning an object with .text);
    otherwise one is built from GeminiSettings on first use.
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        settings: Optional[GeminiSettings] = None,
    ):
        self._model = model
        self._settings = settings

    def _configure_genai(self) -> Any:
        """Configure Google Generative AI."""
        settings = self._settings or get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            },
        )

    async def _generate(self, prompt: str, fallback: str, purpose: str) -> str:
        try:
            if self._model is None:
                self._model = self._configure_genai()
            response = await self._model.generate_content_async(prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("advisor_request_failed", purpose=purpose, error=str(e))
            return fallback

        if not text:
            logger.warning("advisor_empty_response", purpose=purpose)
            return fallback
        logger.info("advisor_response", purpose=purpose, length=len(text))
        return text

    async def get_financial_insights(
        self,
        expenses: Sequence[Expense],
        custom_prompt: Optional[str] = None,
    ) -> str:
        """Answer a question (or give a default analysis) about the expenses."""
        rows = [
            {
                "date": expense.date.isoformat(),
                "description": expense.description,
                "category": expense.category.name,
                "amount": float(expense.amount),
            }
            for expense in expenses
        ]
        prompt = (
            f"{ADVISOR_INSTRUCTIONS}\n\n"
            f"User Expense Data:\n{json.dumps(rows, indent=2)}\n\n"
            f"{custom_prompt or DEFAULT_INSIGHTS_REQUEST}"
        )
        return await self._generate(prompt, INSIGHTS_FALLBACK, "insights")

    async def get_smart_money_tips(self) -> str:
        return await self._generate(MONEY_TIPS_PROMPT, MONEY_TIPS_FALLBACK, "money_tips")

    async def get_personalized_tips(
        self,
        expenses: Sequence[Expense],
        summary: BudgetSummary,
        preferences: PreferencesContext,
    ) -> str:
        """
        3-4 tips built from the dashboard summary.

        With no expenses the model is not called at all.
        """
        if not expenses:
            return NO_EXPENSES_MESSAGE

        money = preferences.format_currency
        top_names = ", ".join(share.name for share in summary.top_categories[:3]) or "None"
        prompt = (
            "I need 3-4 money-saving tips based on this financial data:\n"
            f"Total spent this month: {money(summary.total)}\n"
            f"Monthly budget: {money(summary.monthly_budget)}\n"
            f"Budget remaining: {money(summary.budget_remaining)}\n"
            f"Top spending categories: {top_names}\n\n"
            "Format as simple bullet points for easy reading."
        )
        return await self._generate(prompt, PERSONAL_TIPS_FALLBACK, "personalized_tips")
