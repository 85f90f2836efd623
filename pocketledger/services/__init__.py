"""Services package."""

from pocketledger.services.backend import (
    BackendError,
    BackendInterface,
    ConnectionError,
    InMemoryBackend,
    NotFoundError,
    PermissionDeniedError,
    SubscriptionError,
    SupabaseBackend,
    TableMissingError,
)

__all__ = [
    # Backends
    "BackendInterface",
    "InMemoryBackend",
    "SupabaseBackend",
    # Exceptions
    "BackendError",
    "ConnectionError",
    "NotFoundError",
    "PermissionDeniedError",
    "SubscriptionError",
    "TableMissingError",
]
