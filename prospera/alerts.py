"""
Due-Date Alerts

Calendar-driven alerts for one user:
- bills due within the next 7 days (or already past due)
- the income-tax filing deadline (April 30), during March and April

Alerts are sorted by priority (high first), then by date. Persisting
them is optional; already-stored alerts for the same item and date
are not stored twice.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID

from prospera.audit import AuditLogger, create_correlation_id
from prospera.insights.generator import AlertNotifier
from prospera.models import (
    Alert,
    AlertPriority,
    AlertType,
    AuditEventBuilder,
    Bill,
    utc_now,
)
from prospera.notifications.digest import format_brl, order_alerts
from prospera.services.storage import FinanceRepository, StorageError


BILL_WINDOW_DAYS = 7
TAX_FILING_MONTH, TAX_FILING_DAY = 4, 30
TAX_ALERT_WINDOW_DAYS = 30


def _midnight_utc(day: date) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=timezone.utc)


def bill_priority(days_until_due: int) -> AlertPriority:
    """High within 2 days (or overdue), medium within 5, low otherwise."""
    if days_until_due <= 2:
        return AlertPriority.HIGH
    if days_until_due <= 5:
        return AlertPriority.MEDIUM
    return AlertPriority.LOW


def bill_alert(user_id: UUID, bill: Bill, today: date) -> Alert:
    days = (bill.next_due - today).days
    unit = "dia" if days == 1 else "dias"
    return Alert(
        user_id=user_id,
        type=AlertType.BILL,
        title=f"Conta a vencer: {bill.name}",
        description=(
            f"{bill.company} - R$ {format_brl(bill.amount)} - Vence em {days} {unit}"
        ),
        date=_midnight_utc(bill.next_due),
        priority=bill_priority(days),
        related_id=str(bill.id),
        related_entity="bills",
        action_path="/bills",
        action_label="Ver Contas",
    )


def tax_filing_alert(user_id: UUID, today: date) -> Optional[Alert]:
    """Alert for the filing deadline, only in March/April and within 30 days."""
    deadline = date(today.year, TAX_FILING_MONTH, TAX_FILING_DAY)
    if today.month < 3 or today > deadline:
        return None

    days = (deadline - today).days
    if days > TAX_ALERT_WINDOW_DAYS:
        return None

    return Alert(
        user_id=user_id,
        type=AlertType.TAX,
        title="Prazo para declaração de IR",
        description=(
            f"Faltam {days} dias para o prazo final de entrega da declaração "
            "de Imposto de Renda."
        ),
        date=_midnight_utc(deadline),
        priority=AlertPriority.HIGH if days <= 7 else AlertPriority.MEDIUM,
        related_id=f"tax-filing-{today.year}",
        related_entity="tax_filing",
        action_path="/documents",
        action_label="Ver Documentos",
    )


class DueDateAlertGenerator:
    """
    Builds (and optionally stores) calendar alerts for one user.

    Usage:
        generator = DueDateAlertGenerator(repository)
        alerts = await generator.generate(user_id, persist=True)
    """

    def __init__(
        self,
        repository: FinanceRepository,
        audit_logger: Optional[AuditLogger] = None,
        notifier: Optional[AlertNotifier] = None,
    ):
        self._repository = repository
        self._audit = audit_logger or AuditLogger()
        self._notifier = notifier

    async def generate(
        self,
        user_id: UUID,
        now: Optional[datetime] = None,
        persist: bool = False,
    ) -> list[Alert]:
        """
        Raises:
            StorageError: If the user's bills cannot be read
        """
        now = now or utc_now()
        today = now.date()
        correlation_id = create_correlation_id()

        horizon = today + timedelta(days=BILL_WINDOW_DAYS)
        bills = await self._repository.list_bills(user_id, active_only=True)
        alerts = [
            bill_alert(user_id, bill, today)
            for bill in bills
            if bill.next_due is not None and bill.next_due <= horizon
        ]

        tax_alert = tax_filing_alert(user_id, today)
        if tax_alert is not None:
            alerts.append(tax_alert)

        alerts = order_alerts(alerts)

        if persist:
            alerts = await self._store_new(user_id, alerts, correlation_id)

        await self._audit.log(
            AuditEventBuilder.alerts_generated(user_id, len(alerts), persist, correlation_id)
        )
        return alerts

    async def _store_new(
        self,
        user_id: UUID,
        alerts: list[Alert],
        correlation_id: UUID,
    ) -> list[Alert]:
        """Store alerts not stored before; returns the full list for display."""
        try:
            existing = await self._repository.list_alerts_related_to(
                user_id, [a.related_id for a in alerts if a.related_id]
            )
            seen = {(a.related_id, a.date) for a in existing}
            new = [a for a in alerts if (a.related_id, a.date) not in seen]
            stored = await self._repository.insert_alerts(new)
        except StorageError as e:
            await self._audit.log_storage_error(
                "store due-date alerts", str(e), user_id, correlation_id
            )
            return alerts

        if self._notifier is not None and stored:
            await self._notifier.enqueue_immediate(user_id, stored)
        return alerts
