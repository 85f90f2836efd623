"""
Pocket Ledger - Source Package

Personal finance tracking on top of a hosted backend: expenses,
categories, budgets, upcoming payments, analytics and AI tips.

DESIGN PRINCIPLES:
1. The backend is the source of truth, local state is a cache
2. Mutations reach local state only from the server's response
3. Every subscription is torn down by the view that opened it
4. Aggregates are pure functions over a snapshot
5. Backend is swappable (Supabase in production, in-memory for tests)
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
