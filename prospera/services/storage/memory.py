"""
In-Memory Row Store

Implements RowStoreInterface over plain dicts. Used by the test suite
and for local runs (APP_STORAGE_BACKEND=memory).

It reproduces the store behaviours the jobs rely on:
- unique constraints (renewal_markers is unique on user_id + period)
- ISO date/datetime comparisons in filters and ordering
- the two bill payment procedures
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from prospera.services.storage.interface import (
    DuplicateError,
    Filter,
    FilterOp,
    NotFoundError,
    Order,
    RowStoreInterface,
    StorageError,
    to_json_row,
)


DEFAULT_UNIQUE_KEYS = {
    "renewal_markers": ("user_id", "period"),
    "alert_notification_settings": ("user_id",),
}

RpcHandler = Callable[['InMemoryRowStore', dict], Any]


def _coerce(value: Any) -> Any:
    """Make ISO strings comparable as datetimes (UTC when naive)."""
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return value
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return value


def _matches(row: dict, flt: Filter) -> bool:
    current = row.get(flt.column)
    expected = flt.value

    if flt.op == FilterOp.IS:
        return current is None if expected in (None, "null") else current == expected
    if flt.op == FilterOp.EQ:
        return current == expected
    if flt.op == FilterOp.NEQ:
        return current != expected
    if flt.op == FilterOp.IN:
        return current in (expected or [])

    # Ordering comparisons never match NULL, like SQL
    if current is None or expected is None:
        return False
    left, right = _coerce(current), _coerce(expected)
    if flt.op == FilterOp.LT:
        return left < right
    if flt.op == FilterOp.LTE:
        return left <= right
    if flt.op == FilterOp.GT:
        return left > right
    return left >= right


class InMemoryRowStore(RowStoreInterface):
    """
    Dict-backed row store.

    Failures can be injected per (operation, table) to exercise the
    jobs' error isolation.
    """

    def __init__(
        self,
        unique_keys: Optional[dict[str, tuple[str, ...]]] = None,
    ):
        self._tables: dict[str, list[dict]] = {}
        self._unique_keys = dict(DEFAULT_UNIQUE_KEYS if unique_keys is None else unique_keys)
        self._users: dict[str, str] = {}
        self._tokens: dict[str, str] = {}
        self._failures: dict[tuple[str, str], Exception] = {}
        self._rpc_handlers: dict[str, RpcHandler] = {
            "mark_bill_as_paid": _mark_bill_as_paid,
            "mark_multiple_bills_as_paid": _mark_multiple_bills_as_paid,
        }

    # -------------------------------------------------------------------------
    # Test/local helpers
    # -------------------------------------------------------------------------

    def register_user(
        self,
        user_id: UUID,
        email: str,
        access_token: Optional[str] = None,
    ) -> None:
        """Create an auth user, optionally with a valid access token."""
        self._users[str(user_id)] = email
        if access_token:
            self._tokens[access_token] = str(user_id)

    def inject_failure(
        self,
        operation: str,
        table: str,
        error: Optional[Exception] = None,
    ) -> None:
        """Make every `operation` on `table` raise until cleared."""
        self._failures[(operation, table)] = error or StorageError(
            f"Injected {operation} failure on {table}"
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def rows(self, table: str) -> list[dict]:
        """Direct (copied) view of a table."""
        return copy.deepcopy(self._tables.get(table, []))

    def _check_failure(self, operation: str, table: str) -> None:
        error = self._failures.get((operation, table))
        if error is not None:
            raise error

    # -------------------------------------------------------------------------
    # RowStoreInterface
    # -------------------------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: Optional[list[Filter]] = None,
        order: Optional[list[Order]] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        self._check_failure("select", table)

        rows = [
            row for row in self._tables.get(table, [])
            if all(_matches(row, flt) for flt in (filters or []))
        ]

        # Stable sorts applied from the last key to the first
        for key in reversed(order or []):
            present = [r for r in rows if r.get(key.column) is not None]
            missing = [r for r in rows if r.get(key.column) is None]
            present.sort(key=lambda r: _coerce(r[key.column]), reverse=key.descending)
            # NULLS LAST for ascending, NULLS FIRST for descending (Postgres default)
            rows = missing + present if key.descending else present + missing

        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        self._check_failure("insert", table)

        existing = self._tables.setdefault(table, [])
        unique = self._unique_keys.get(table)
        prepared = []
        for row in rows:
            stored = to_json_row(row)
            stored.setdefault("id", str(uuid4()))
            if any(r["id"] == stored["id"] for r in existing + prepared):
                raise DuplicateError(f"Duplicate id in {table}: {stored['id']}")
            if unique:
                key = tuple(stored.get(col) for col in unique)
                if any(tuple(r.get(col) for col in unique) == key for r in existing + prepared):
                    raise DuplicateError(f"Duplicate key {unique}={key} in {table}")
            prepared.append(stored)

        existing.extend(prepared)
        return copy.deepcopy(prepared)

    async def update(
        self,
        table: str,
        values: dict,
        filters: list[Filter],
    ) -> list[dict]:
        self._check_failure("update", table)

        normalized = to_json_row(values)
        updated = []
        for row in self._tables.get(table, []):
            if all(_matches(row, flt) for flt in filters):
                row.update(normalized)
                updated.append(row)
        return copy.deepcopy(updated)

    async def delete(self, table: str, row_id: UUID) -> bool:
        self._check_failure("delete", table)

        rows = self._tables.get(table, [])
        for idx, row in enumerate(rows):
            if row.get("id") == str(row_id):
                del rows[idx]
                return True
        return False

    async def rpc(self, name: str, params: dict) -> Any:
        self._check_failure("rpc", name)

        handler = self._rpc_handlers.get(name)
        if handler is None:
            raise StorageError(f"Unknown procedure: {name}")
        return handler(self, to_json_row(params))

    async def resolve_user_id(self, access_token: str) -> Optional[UUID]:
        user_id = self._tokens.get(access_token)
        return UUID(user_id) if user_id else None

    async def get_user_email(self, user_id: UUID) -> Optional[str]:
        self._check_failure("get_user", "auth.users")
        return self._users.get(str(user_id))


# =============================================================================
# Stored procedures
# =============================================================================

def _find_bill(store: InMemoryRowStore, bill_id: str) -> dict:
    for row in store._tables.get("bills", []):
        if row.get("id") == bill_id:
            return row
    raise NotFoundError(f"Bill not found: {bill_id}")


def _pay(bill: dict, payment_date: str, amount: Optional[float], method: Optional[str]) -> None:
    paid_amount = bill.get("amount", 0) if amount is None else amount
    bill["payment_status"] = "paid" if paid_amount >= bill.get("amount", 0) else "partial"
    bill["payment_date"] = payment_date
    bill["payment_amount"] = paid_amount
    bill["payment_method"] = method
    bill["last_paid"] = payment_date
    bill["updated_at"] = datetime.now(timezone.utc).isoformat()


def _mark_bill_as_paid(store: InMemoryRowStore, params: dict) -> dict:
    bill = _find_bill(store, params["bill_id"])
    _pay(
        bill,
        params.get("payment_date_val") or datetime.now(timezone.utc).date().isoformat(),
        params.get("payment_amount_val"),
        params.get("payment_method_val"),
    )
    return copy.deepcopy(bill)


def _mark_multiple_bills_as_paid(store: InMemoryRowStore, params: dict) -> int:
    payment_date = params.get("payment_date_val") or datetime.now(timezone.utc).date().isoformat()
    bills = [_find_bill(store, bill_id) for bill_id in params.get("bill_ids") or []]
    for bill in bills:
        _pay(bill, payment_date, None, params.get("payment_method_val"))
    return len(bills)
