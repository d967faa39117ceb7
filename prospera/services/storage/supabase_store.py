"""
Supabase Storage Implementation

DESIGN DECISION: The product's data lives in Supabase (managed Postgres
behind PostgREST). The batch jobs talk to it with the service role key,
so every query MUST carry an explicit user_id filter - row-level security
does not scope a service-role client.

The async client is used so PostgREST calls yield to the event loop and
concurrent reads (the insight snapshot) really overlap.

TRADEOFFS:
- PostgREST has no multi-statement transactions (each call stands alone)
- Storage calls are never retried; only establishing the client is
"""

from typing import Any, Optional
from uuid import UUID

from supabase import AsyncClient, acreate_client
from tenacity import retry, stop_after_attempt, wait_exponential

from prospera.config import get_settings
from prospera.services.storage.interface import (
    ConnectionError,
    DuplicateError,
    Filter,
    FilterOp,
    Order,
    RowStoreInterface,
    StorageError,
    to_json_row,
)


# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[AsyncClient] = None
        self._settings = get_settings().supabase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def connect(self) -> AsyncClient:
        """Create the service-role client (once)."""
        if self._client is None:
            try:
                self._client = await acreate_client(
                    self._settings.url,
                    self._settings.service_role_key,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")

        return self._client


def _apply_filter(query: Any, flt: Filter) -> Any:
    """Translate one Filter to the PostgREST builder call."""
    if flt.op == FilterOp.IN:
        return query.in_(flt.column, flt.value or [])
    if flt.op == FilterOp.IS:
        return query.is_(flt.column, "null" if flt.value is None else flt.value)
    return getattr(query, flt.op.value)(flt.column, flt.value)


def _wrap_error(action: str, table: str, error: Exception) -> StorageError:
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return DuplicateError(f"Duplicate row in {table}: {error}")
    return StorageError(f"Failed to {action} {table}: {error}")


class SupabaseRowStore(RowStoreInterface):
    """
    Supabase implementation of the row store.

    Each method maps one-to-one onto a PostgREST request.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        order: Optional[list[Order]] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        try:
            client = await self._client.connect()
            query = client.table(table).select("*")
            for flt in filters or []:
                query = _apply_filter(query, flt)
            for key in order or []:
                query = query.order(key.column, desc=key.descending)
            if limit is not None:
                query = query.limit(limit)
            response = await query.execute()
            return response.data or []
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("select", table, e)

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        if not rows:
            return []
        try:
            client = await self._client.connect()
            response = await (
                client.table(table).insert([to_json_row(row) for row in rows]).execute()
            )
            return response.data or []
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("insert into", table, e)

    async def update(
        self,
        table: str,
        values: dict,
        filters: list[Filter],
    ) -> list[dict]:
        if not filters:
            # PostgREST refuses unfiltered updates; so do we
            raise StorageError(f"Refusing unfiltered update on {table}")
        try:
            client = await self._client.connect()
            query = client.table(table).update(to_json_row(values))
            for flt in filters:
                query = _apply_filter(query, flt)
            response = await query.execute()
            return response.data or []
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("update", table, e)

    async def delete(self, table: str, row_id: UUID) -> bool:
        try:
            client = await self._client.connect()
            response = await (
                client.table(table)
                .delete()
                .eq("id", str(row_id))
                .execute()
            )
            return bool(response.data)
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("delete from", table, e)

    async def rpc(self, name: str, params: dict) -> Any:
        try:
            client = await self._client.connect()
            response = await client.rpc(name, to_json_row(params)).execute()
            return response.data
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("call", name, e)

    async def resolve_user_id(self, access_token: str) -> Optional[UUID]:
        try:
            client = await self._client.connect()
            response = await client.auth.get_user(access_token)
        except ConnectionError:
            raise
        except Exception:
            # Invalid/expired tokens surface as auth errors
            return None
        if response is None or response.user is None:
            return None
        return UUID(str(response.user.id))

    async def get_user_email(self, user_id: UUID) -> Optional[str]:
        try:
            client = await self._client.connect()
            response = await client.auth.admin.get_user_by_id(str(user_id))
        except StorageError:
            raise
        except Exception as e:
            raise _wrap_error("read", "auth.users", e)
        if response is None or response.user is None:
            return None
        return response.user.email
