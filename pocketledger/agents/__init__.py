"""AI advice for Pocket Ledger."""

from pocketledger.agents.advisor import (
    INSIGHTS_FALLBACK,
    MONEY_TIPS_FALLBACK,
    NO_EXPENSES_MESSAGE,
    PERSONAL_TIPS_FALLBACK,
    FinancialAdvisor,
)

__all__ = [
    "FinancialAdvisor",
    "INSIGHTS_FALLBACK",
    "MONEY_TIPS_FALLBACK",
    "NO_EXPENSES_MESSAGE",
    "PERSONAL_TIPS_FALLBACK",
]
