"""
Storage Services Package

Provides the generic row store interface, its implementations and the
typed repository the jobs use. Supabase is the production backend; the
in-memory store backs tests and local runs.
"""

from prospera.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    FilterOp,
    NotFoundError,
    Order,
    RowStoreInterface,
    StorageError,
)
from prospera.services.storage.memory import InMemoryRowStore
from prospera.services.storage.repository import FinanceRepository
from prospera.services.storage.supabase_store import (
    SupabaseClient,
    SupabaseRowStore,
)

__all__ = [
    # Interface
    "Filter",
    "FilterOp",
    "Order",
    "RowStoreInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryRowStore",
    "SupabaseClient",
    "SupabaseRowStore",
    # Typed access
    "FinanceRepository",
]
