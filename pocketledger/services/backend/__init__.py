"""
Backend Services Package

Provides the abstract backend interface and its implementations.
Supabase is the production backend; the in-memory backend serves tests
and offline use.
"""

from pocketledger.services.backend.interface import (
    CATEGORY_JOIN,
    PERMISSION_DENIED_MESSAGE,
    BackendError,
    BackendInterface,
    ChangeCallback,
    ConnectionError,
    Join,
    NotFoundError,
    PermissionDeniedError,
    StatusCallback,
    SubscriptionError,
    SubscriptionHandle,
    SubscriptionStatus,
    TableMissingError,
    classify_error,
)
from pocketledger.services.backend.memory import InMemoryBackend
from pocketledger.services.backend.supabase_backend import SupabaseBackend

__all__ = [
    # Interface
    "CATEGORY_JOIN",
    "BackendInterface",
    "ChangeCallback",
    "Join",
    "StatusCallback",
    "SubscriptionHandle",
    "SubscriptionStatus",
    "classify_error",
    "PERMISSION_DENIED_MESSAGE",
    # Exceptions
    "BackendError",
    "ConnectionError",
    "NotFoundError",
    "PermissionDeniedError",
    "SubscriptionError",
    "TableMissingError",
    # Implementations
    "InMemoryBackend",
    "SupabaseBackend",
]
