"""
Bill Payments and Due Dates

Payments go through the two stored procedures (mark_bill_as_paid,
mark_multiple_bills_as_paid) so the status, amount and last_paid
columns change in one statement.

The displayed status of a bill is derived, not stored: a pending bill
whose next_due has passed shows as overdue.
"""

import calendar
from datetime import date
from typing import Optional
from uuid import UUID

from prospera.audit import AuditLogger, create_correlation_id
from prospera.models import AuditEventBuilder, Bill, BillPaymentStatus, utc_now
from prospera.services.storage import FinanceRepository, NotFoundError


def next_due_date(today: date, due_day: int) -> date:
    """
    Due date of a monthly bill in the month after `today`.

    December rolls into January of the next year. A due_day past the
    end of the target month is clamped to its last day.
    """
    year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(due_day, last_day))


def effective_status(bill: Bill, today: date) -> BillPaymentStatus:
    """Status shown to the user: stored paid/partial wins, then the due date."""
    if bill.payment_status in (BillPaymentStatus.PAID, BillPaymentStatus.PARTIAL):
        return bill.payment_status
    if bill.payment_status == BillPaymentStatus.OVERDUE:
        return BillPaymentStatus.OVERDUE
    if bill.next_due is not None and bill.next_due < today:
        return BillPaymentStatus.OVERDUE
    return BillPaymentStatus.PENDING


def is_unpaid_past_due(bill: Bill, today: date) -> bool:
    """Active bill, not settled, whose due date has passed."""
    return (
        bill.is_active
        and bill.payment_status != BillPaymentStatus.PAID
        and bill.next_due is not None
        and bill.next_due < today
    )


class BillPaymentService:
    """Marks bills as paid on behalf of their owner."""

    def __init__(
        self,
        repository: FinanceRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._audit = audit_logger or AuditLogger()

    async def _owned_bill(self, user_id: UUID, bill_id: UUID) -> Bill:
        bill = await self._repository.get_bill(bill_id)
        if bill is None or bill.user_id != user_id:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return bill

    async def pay(
        self,
        user_id: UUID,
        bill_id: UUID,
        amount: Optional[float] = None,
        payment_method: Optional[str] = None,
        payment_date: Optional[date] = None,
    ) -> Bill:
        """
        Pay one bill.

        A payment below the bill amount leaves it partial. Returns the
        bill as stored after the payment.
        """
        await self._owned_bill(user_id, bill_id)
        await self._repository.mark_bill_as_paid(
            bill_id,
            payment_date or utc_now().date(),
            amount,
            payment_method,
        )
        await self._audit.log(
            AuditEventBuilder.bill_paid(user_id, [bill_id], create_correlation_id())
        )
        return await self._owned_bill(user_id, bill_id)

    async def pay_many(
        self,
        user_id: UUID,
        bill_ids: list[UUID],
        payment_method: Optional[str] = None,
        payment_date: Optional[date] = None,
    ) -> int:
        """Pay several bills in full. Returns how many were paid."""
        if not bill_ids:
            return 0
        for bill_id in bill_ids:
            await self._owned_bill(user_id, bill_id)

        await self._repository.mark_bills_as_paid(
            bill_ids,
            payment_date or utc_now().date(),
            payment_method,
        )
        await self._audit.log(
            AuditEventBuilder.bill_paid(user_id, bill_ids, create_correlation_id())
        )
        return len(bill_ids)

    async def pay_all_due(
        self,
        user_id: UUID,
        today: date,
        payment_method: Optional[str] = None,
    ) -> int:
        """Pay every active bill due on or before today."""
        bills = await self._repository.list_bills(user_id, active_only=True)
        due = [
            b.id for b in bills
            if b.next_due is not None
            and b.next_due <= today
            and b.payment_status != BillPaymentStatus.PAID
        ]
        return await self.pay_many(user_id, due, payment_method, today)
