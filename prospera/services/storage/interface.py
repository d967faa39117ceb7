"""
Abstract Row Store Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run against Supabase (managed Postgres) in production
2. Use in-memory storage for testing and local runs
3. Keep the batch jobs decoupled from the storage client

The interface is intentionally generic - it is the same small surface the
product's frontend uses against the store: select with filter and order,
insert, update, delete by id and named remote procedures.
Typed access lives in FinanceRepository on top of this.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, field_validator


class FilterOp(str, Enum):
    """Supported filter operators (PostgREST names)."""
    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    IN = "in"
    IS = "is"


def to_json_value(value: Any) -> Any:
    """Normalize a python value to what the store speaks (JSON scalars)."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return to_json_row(value)
    if isinstance(value, (list, tuple, set)):
        return [to_json_value(v) for v in value]
    return value


def to_json_row(row: dict) -> dict:
    """Normalize every value of a row or parameter dict."""
    return {key: to_json_value(value) for key, value in row.items()}


class Filter(BaseModel):
    """A single column predicate."""

    column: str
    op: FilterOp = FilterOp.EQ
    value: Any = None

    @field_validator('value', mode='before')
    @classmethod
    def normalize_value(cls, v: Any) -> Any:
        return to_json_value(v)

    @classmethod
    def eq(cls, column: str, value: Any) -> 'Filter':
        return cls(column=column, op=FilterOp.EQ, value=value)

    @classmethod
    def lt(cls, column: str, value: Any) -> 'Filter':
        return cls(column=column, op=FilterOp.LT, value=value)

    @classmethod
    def lte(cls, column: str, value: Any) -> 'Filter':
        return cls(column=column, op=FilterOp.LTE, value=value)

    @classmethod
    def gte(cls, column: str, value: Any) -> 'Filter':
        return cls(column=column, op=FilterOp.GTE, value=value)

    @classmethod
    def is_in(cls, column: str, values: list) -> 'Filter':
        return cls(column=column, op=FilterOp.IN, value=list(values))


class Order(BaseModel):
    """Sort key for a select."""

    column: str
    descending: bool = False


class RowStoreInterface(ABC):
    """
    Abstract interface for the row-oriented store.

    Any storage implementation (Supabase, in-memory, etc.)
    must implement these methods. Rows travel as JSON-safe dicts.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        order: Optional[list[Order]] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Select rows matching all filters.

        Args:
            table: Table name
            filters: Predicates combined with AND
            order: Sort keys, applied in sequence
            limit: Maximum number of rows

        Returns:
            Matching rows

        Raises:
            StorageError: If the query fails
        """
        pass

    @abstractmethod
    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        """
        Insert rows.

        Returns:
            The inserted rows as stored

        Raises:
            DuplicateError: If a unique constraint is violated
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict,
        filters: list[Filter],
    ) -> list[dict]:
        """
        Update every row matching the filters.

        Returns:
            The updated rows

        Raises:
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete(self, table: str, row_id: UUID) -> bool:
        """
        Delete a row by ID.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def rpc(self, name: str, params: dict) -> Any:
        """
        Invoke a named remote procedure.

        Raises:
            StorageError: If the procedure fails or does not exist
        """
        pass

    @abstractmethod
    async def resolve_user_id(self, access_token: str) -> Optional[UUID]:
        """
        Resolve an access token to the authenticated user's ID.

        Returns:
            The user ID, or None if the token is invalid
        """
        pass

    @abstractmethod
    async def get_user_email(self, user_id: UUID) -> Optional[str]:
        """
        Look up the account email of a user.

        Returns:
            The email, or None if the user does not exist
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
