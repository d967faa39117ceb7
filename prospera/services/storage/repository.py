"""
Typed Finance Repository

FinanceRepository turns generic row store calls into typed model reads
and writes. The jobs only ever talk to this class, never to the raw
store, so table names and column filters live in one place.

Every read is scoped by user_id: the production store runs with the
service role key, which bypasses row-level security.
"""

import asyncio
from datetime import date, datetime
from typing import Optional, Type, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from prospera.models import (
    Alert,
    AlertNotificationSettings,
    BankAccount,
    Bill,
    EmailStatus,
    ExoticAsset,
    FinancialGoal,
    IncomeSource,
    Investment,
    Loan,
    NotificationFrequency,
    RealEstate,
    Recommendation,
    RetirementPlan,
    ScheduledEmailNotification,
    Transaction,
    TransactionType,
    UserSnapshot,
    Vehicle,
    utc_now,
)
from prospera.services.storage.interface import (
    DuplicateError,
    Filter,
    Order,
    RowStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# Table names
INCOME_SOURCES = "income_sources"
TRANSACTIONS = "transactions"
BILLS = "bills"
LOANS = "loans"
BANK_ACCOUNTS = "bank_accounts"
INVESTMENTS = "investments"
REAL_ESTATE = "real_estate"
VEHICLES = "vehicles"
EXOTIC_ASSETS = "exotic_assets"
RETIREMENT_PLANS = "retirement_plans"
FINANCIAL_GOALS = "financial_goals"
ALERTS = "alerts"
NOTIFICATION_SETTINGS = "alert_notification_settings"
SCHEDULED_EMAILS = "scheduled_email_notifications"
GOAL_RECOMMENDATIONS = "goal_recommendations"
RENEWAL_MARKERS = "renewal_markers"
AUDIT_EVENTS = "audit_events"

# Snapshot attribute -> (table, model)
SNAPSHOT_TABLES: dict[str, tuple[str, Type[BaseModel]]] = {
    "income_sources": (INCOME_SOURCES, IncomeSource),
    "transactions": (TRANSACTIONS, Transaction),
    "bills": (BILLS, Bill),
    "loans": (LOANS, Loan),
    "bank_accounts": (BANK_ACCOUNTS, BankAccount),
    "investments": (INVESTMENTS, Investment),
    "real_estate": (REAL_ESTATE, RealEstate),
    "vehicles": (VEHICLES, Vehicle),
    "exotic_assets": (EXOTIC_ASSETS, ExoticAsset),
    "retirement_plans": (RETIREMENT_PLANS, RetirementPlan),
    "goals": (FINANCIAL_GOALS, FinancialGoal),
}


def _parse_rows(table: str, model: Type[ModelT], rows: list[dict]) -> list[ModelT]:
    """Parse rows into models, skipping (and logging) malformed ones."""
    parsed = []
    for row in rows:
        try:
            parsed.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "row_skipped",
                table=table,
                row_id=row.get("id"),
                errors=[
                    ".".join(str(loc) for loc in err["loc"]) for err in e.errors()
                ],
            )
    return parsed


class FinanceRepository:
    """
    Typed access to the user-owned tables.

    Raises StorageError (or a subclass) whenever the underlying store
    fails; callers decide whether that skips a step or a row.
    """

    def __init__(self, store: RowStoreInterface):
        self._store = store

    @property
    def store(self) -> RowStoreInterface:
        return self._store

    async def _list(
        self,
        table: str,
        model: Type[ModelT],
        user_id: UUID,
        filters: Optional[list[Filter]] = None,
        order: Optional[list[Order]] = None,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        rows = await self._store.select(
            table,
            filters=[Filter.eq("user_id", user_id)] + (filters or []),
            order=order,
            limit=limit,
        )
        return _parse_rows(table, model, rows)

    # =========================================================================
    # Income & ledger
    # =========================================================================

    async def list_income_sources(
        self,
        user_id: UUID,
        active_only: bool = False,
    ) -> list[IncomeSource]:
        filters = [Filter.eq("is_active", True)] if active_only else []
        return await self._list(INCOME_SOURCES, IncomeSource, user_id, filters)

    async def list_transactions(
        self,
        user_id: UUID,
        type: Optional[TransactionType] = None,
        recurring_only: bool = False,
    ) -> list[Transaction]:
        filters = []
        if type is not None:
            filters.append(Filter.eq("type", type))
        if recurring_only:
            filters.append(Filter.eq("is_recurring", True))
        return await self._list(
            TRANSACTIONS,
            Transaction,
            user_id,
            filters,
            order=[Order(column="date", descending=True)],
        )

    async def insert_transactions(self, transactions: list[Transaction]) -> int:
        """Insert transactions in a single call. Returns the count stored."""
        if not transactions:
            return 0
        stored = await self._store.insert(
            TRANSACTIONS,
            [t.to_row() for t in transactions],
        )
        return len(stored)

    # =========================================================================
    # Bills
    # =========================================================================

    async def list_bills(
        self,
        user_id: UUID,
        active_only: bool = False,
        recurring_only: bool = False,
    ) -> list[Bill]:
        filters = []
        if active_only:
            filters.append(Filter.eq("is_active", True))
        if recurring_only:
            filters.append(Filter.eq("is_recurring", True))
        return await self._list(
            BILLS,
            Bill,
            user_id,
            filters,
            order=[Order(column="due_day")],
        )

    async def get_bill(self, bill_id: UUID) -> Optional[Bill]:
        rows = await self._store.select(BILLS, filters=[Filter.eq("id", bill_id)], limit=1)
        parsed = _parse_rows(BILLS, Bill, rows)
        return parsed[0] if parsed else None

    async def update_bill_next_due(
        self,
        user_id: UUID,
        bill_id: UUID,
        next_due: date,
    ) -> bool:
        updated = await self._store.update(
            BILLS,
            {"next_due": next_due, "updated_at": utc_now()},
            [Filter.eq("id", bill_id), Filter.eq("user_id", user_id)],
        )
        return bool(updated)

    async def mark_bill_as_paid(
        self,
        bill_id: UUID,
        payment_date: date,
        payment_amount: Optional[float] = None,
        payment_method: Optional[str] = None,
    ) -> None:
        await self._store.rpc(
            "mark_bill_as_paid",
            {
                "bill_id": bill_id,
                "payment_date_val": payment_date,
                "payment_amount_val": payment_amount,
                "payment_method_val": payment_method,
            },
        )

    async def mark_bills_as_paid(
        self,
        bill_ids: list[UUID],
        payment_date: date,
        payment_method: Optional[str] = None,
    ) -> None:
        await self._store.rpc(
            "mark_multiple_bills_as_paid",
            {
                "bill_ids": bill_ids,
                "payment_date_val": payment_date,
                "payment_method_val": payment_method,
            },
        )

    # =========================================================================
    # Investments and recommendations
    # =========================================================================

    async def list_investments(self, user_id: UUID) -> list[Investment]:
        return await self._list(INVESTMENTS, Investment, user_id)

    async def list_recommendations(self, user_id: UUID) -> list[Recommendation]:
        return await self._list(
            GOAL_RECOMMENDATIONS,
            Recommendation,
            user_id,
            order=[Order(column="created_at", descending=True)],
        )

    async def load_snapshot(self, user_id: UUID) -> UserSnapshot:
        """
        Read every user-owned table concurrently.

        A table that cannot be read contributes an empty list and is
        named in snapshot.unavailable, so one broken table never hides
        the rest of the user's data.
        """
        names = list(SNAPSHOT_TABLES)
        results = await asyncio.gather(
            *(
                self._list(table, model, user_id)
                for table, model in SNAPSHOT_TABLES.values()
            ),
            return_exceptions=True,
        )

        data: dict = {"user_id": user_id, "unavailable": []}
        for name, result in zip(names, results):
            if isinstance(result, StorageError):
                data[name] = []
                data["unavailable"].append(SNAPSHOT_TABLES[name][0])
            elif isinstance(result, BaseException):
                raise result
            else:
                data[name] = result
        return UserSnapshot(**data)

    # =========================================================================
    # Renewal markers
    # =========================================================================

    async def claim_renewal_period(
        self,
        user_id: UUID,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Claim (user_id, period) for the renewal job.

        Returns False if another run already claimed it. The unique key
        on the marker table makes the claim atomic.
        """
        now = utc_now()
        try:
            await self._store.insert(
                RENEWAL_MARKERS,
                [{
                    "user_id": user_id,
                    "period": period,
                    "status": "running",
                    "failed_steps": [],
                    "correlation_id": correlation_id,
                    "created_at": now,
                    "updated_at": now,
                }],
            )
        except DuplicateError:
            return False
        return True

    async def finish_renewal_period(
        self,
        user_id: UUID,
        period: str,
        failed_steps: list[str],
    ) -> None:
        await self._store.update(
            RENEWAL_MARKERS,
            {
                "status": "partial" if failed_steps else "completed",
                "failed_steps": failed_steps,
                "updated_at": utc_now(),
            },
            [Filter.eq("user_id", user_id), Filter.eq("period", period)],
        )

    # =========================================================================
    # Alerts
    # =========================================================================

    async def list_alerts(self, user_id: UUID, limit: int = 10) -> list[Alert]:
        """Newest alerts first."""
        return await self._list(
            ALERTS,
            Alert,
            user_id,
            order=[Order(column="created_at", descending=True)],
            limit=limit,
        )

    async def list_unsent_alerts(self, user_id: UUID, since: datetime) -> list[Alert]:
        """Alerts not yet emailed, created at or after `since`."""
        return await self._list(
            ALERTS,
            Alert,
            user_id,
            filters=[
                Filter.eq("email_sent", False),
                Filter.gte("created_at", since),
            ],
        )

    async def list_alerts_related_to(
        self,
        user_id: UUID,
        related_ids: list[str],
    ) -> list[Alert]:
        if not related_ids:
            return []
        return await self._list(
            ALERTS,
            Alert,
            user_id,
            filters=[Filter.is_in("related_id", related_ids)],
        )

    async def insert_alerts(self, alerts: list[Alert]) -> list[Alert]:
        if not alerts:
            return []
        stored = await self._store.insert(ALERTS, [a.to_row() for a in alerts])
        return _parse_rows(ALERTS, Alert, stored)

    async def mark_alerts_emailed(self, alert_ids: list[UUID], sent_at: datetime) -> int:
        if not alert_ids:
            return 0
        updated = await self._store.update(
            ALERTS,
            {"email_sent": True, "email_sent_at": sent_at},
            [Filter.is_in("id", alert_ids)],
        )
        return len(updated)

    # =========================================================================
    # Notification settings
    # =========================================================================

    async def get_notification_settings(
        self,
        user_id: UUID,
    ) -> Optional[AlertNotificationSettings]:
        settings = await self._list(
            NOTIFICATION_SETTINGS,
            AlertNotificationSettings,
            user_id,
            limit=1,
        )
        return settings[0] if settings else None

    async def list_notification_settings(
        self,
        frequency: NotificationFrequency,
    ) -> list[AlertNotificationSettings]:
        """Email-enabled settings rows of every user with this frequency."""
        rows = await self._store.select(
            NOTIFICATION_SETTINGS,
            filters=[
                Filter.eq("notification_frequency", frequency),
                Filter.eq("email_notifications_enabled", True),
            ],
        )
        return _parse_rows(NOTIFICATION_SETTINGS, AlertNotificationSettings, rows)

    async def touch_last_notification_sent(self, user_id: UUID, sent_at: datetime) -> None:
        await self._store.update(
            NOTIFICATION_SETTINGS,
            {"last_notification_sent": sent_at, "updated_at": sent_at},
            [Filter.eq("user_id", user_id)],
        )

    async def get_user_email(self, user_id: UUID) -> Optional[str]:
        return await self._store.get_user_email(user_id)

    # =========================================================================
    # Email queue
    # =========================================================================

    async def enqueue_email(
        self,
        notification: ScheduledEmailNotification,
    ) -> ScheduledEmailNotification:
        stored = await self._store.insert(SCHEDULED_EMAILS, [notification.to_row()])
        parsed = _parse_rows(SCHEDULED_EMAILS, ScheduledEmailNotification, stored)
        return parsed[0] if parsed else notification

    async def list_pending_emails(self, limit: int) -> list[ScheduledEmailNotification]:
        rows = await self._store.select(
            SCHEDULED_EMAILS,
            filters=[Filter.eq("status", EmailStatus.PENDING)],
            order=[Order(column="created_at")],
            limit=limit,
        )
        return _parse_rows(SCHEDULED_EMAILS, ScheduledEmailNotification, rows)

    async def mark_email_sent(self, notification_id: UUID, sent_at: datetime) -> None:
        await self._store.update(
            SCHEDULED_EMAILS,
            {"status": EmailStatus.SENT, "sent_at": sent_at, "updated_at": sent_at},
            [Filter.eq("id", notification_id)],
        )

    async def mark_email_failed(self, notification_id: UUID, error_message: str) -> None:
        await self._store.update(
            SCHEDULED_EMAILS,
            {
                "status": EmailStatus.FAILED,
                "error_message": error_message[:1000],
                "updated_at": utc_now(),
            },
            [Filter.eq("id", notification_id)],
        )

    # =========================================================================
    # Audit
    # =========================================================================

    async def append_audit_row(self, row: dict) -> bool:
        stored = await self._store.insert(AUDIT_EVENTS, [row])
        return bool(stored)
