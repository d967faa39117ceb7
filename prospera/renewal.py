"""
Recurrence Renewal Job

Once per user and calendar month, materializes the month's recurring
items:
1. Income transactions for monthly sources (and yearly sources paying
   this month)
2. Replays of recurring expense transactions
3. next_due of every active recurring bill moved to next month

DESIGN DECISION: "Once per month" is enforced by a durable marker row
keyed by (user_id, period) with a unique constraint. The marker is
claimed BEFORE any row is written, so a second device, a retried
request or a crashed-and-restarted run sees the claim and skips.
A crash after the claim leaves the month partially renewed and the
marker in status "running"; it is never silently re-run.

Steps are isolated: a storage failure in one step is logged, recorded
in the report and the next step still runs.
"""

from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from prospera.audit import AuditLogger, create_correlation_id
from prospera.bills import next_due_date
from prospera.models import (
    AUTOMATIC_SUFFIX,
    AuditEventBuilder,
    IncomeFrequency,
    IncomeSource,
    Transaction,
    TransactionType,
    utc_now,
)
from prospera.services.storage import FinanceRepository, StorageError


logger = structlog.get_logger(__name__)


STEP_INCOME = "income"
STEP_EXPENSES = "expenses"
STEP_BILLS = "bills"


def period_key(day: date) -> str:
    """Renewal period of a date: 'YYYY-MM'."""
    return f"{day.year:04d}-{day.month:02d}"


def automatic_description(text: str) -> str:
    """Tag a description as generated, without tagging it twice."""
    text = text.strip()
    if text.endswith(AUTOMATIC_SUFFIX):
        return text
    return f"{text} {AUTOMATIC_SUFFIX}" if text else AUTOMATIC_SUFFIX


def pays_this_month(source: IncomeSource, today: date) -> bool:
    """
    Whether an income source produces a transaction in today's month.

    Yearly sources compare only the month of next_payment, so a source
    whose next_payment year is stale still pays in its month.
    """
    if not source.is_active:
        return False
    if source.frequency == IncomeFrequency.MONTHLY:
        return True
    if source.frequency == IncomeFrequency.YEARLY:
        return source.next_payment is not None and source.next_payment.month == today.month
    return False


class RenewalReport(BaseModel):
    """What one renewal run did for one user."""

    user_id: UUID
    period: str
    skipped: bool = False
    income_created: int = 0
    expenses_created: int = 0
    bills_advanced: int = 0
    failed_steps: list[str] = Field(default_factory=list)

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "partial" if self.failed_steps else "completed"


class RecurrenceRenewalJob:
    """
    Monthly materialization of recurring items for one user.

    Usage:
        job = RecurrenceRenewalJob(repository, audit_logger)
        report = await job.run(user_id)
    """

    def __init__(
        self,
        repository: FinanceRepository,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._audit = audit_logger or AuditLogger()

    async def run(self, user_id: UUID, today: Optional[date] = None) -> RenewalReport:
        """
        Renew the user's recurring items for today's month.

        Raises:
            StorageError: If the period cannot be claimed (nothing is written)
        """
        today = today or utc_now().date()
        period = period_key(today)
        correlation_id = create_correlation_id()
        report = RenewalReport(user_id=user_id, period=period)

        try:
            claimed = await self._repository.claim_renewal_period(
                user_id, period, correlation_id
            )
        except StorageError as e:
            await self._audit.log_storage_error(
                "claim_renewal_period", str(e), user_id, correlation_id
            )
            raise

        if not claimed:
            report.skipped = True
            await self._audit.log(
                AuditEventBuilder.renewal_skipped(user_id, period, correlation_id)
            )
            return report

        await self._audit.log(
            AuditEventBuilder.renewal_started(user_id, period, correlation_id)
        )

        steps = (
            (STEP_INCOME, self._renew_income, "income_created"),
            (STEP_EXPENSES, self._renew_expenses, "expenses_created"),
            (STEP_BILLS, self._advance_bills, "bills_advanced"),
        )
        for step, handler, counter in steps:
            try:
                count = await handler(user_id, today)
            except StorageError as e:
                report.failed_steps.append(step)
                await self._audit.log(
                    AuditEventBuilder.renewal_step_failed(
                        user_id, step, str(e), correlation_id
                    )
                )
                continue

            setattr(report, counter, count)
            await self._audit.log(
                AuditEventBuilder.renewal_step_completed(
                    user_id, step, count, correlation_id
                )
            )

        try:
            await self._repository.finish_renewal_period(
                user_id, period, report.failed_steps
            )
        except StorageError as e:
            # The claim stands; only the status column is stale
            await self._audit.log_storage_error(
                "finish_renewal_period", str(e), user_id, correlation_id
            )

        await self._audit.log(
            AuditEventBuilder.renewal_completed(
                user_id, period, report.failed_steps, correlation_id
            )
        )
        return report

    async def _renew_income(self, user_id: UUID, today: date) -> int:
        sources = await self._repository.list_income_sources(user_id, active_only=True)
        transactions = [
            Transaction(
                user_id=user_id,
                type=TransactionType.INCOME,
                amount=source.amount,
                category=source.category,
                description=automatic_description(source.name),
                date=today,
                is_recurring=False,
            )
            for source in sources
            if pays_this_month(source, today)
        ]
        return await self._repository.insert_transactions(transactions)

    async def _renew_expenses(self, user_id: UUID, today: date) -> int:
        recurring = await self._repository.list_transactions(
            user_id,
            type=TransactionType.EXPENSE,
            recurring_only=True,
        )
        # Replays are not recurring themselves, so they never replay again
        transactions = [
            Transaction(
                user_id=user_id,
                type=TransactionType.EXPENSE,
                amount=expense.amount,
                category=expense.category,
                description=automatic_description(expense.description),
                date=today,
                is_recurring=False,
            )
            for expense in recurring
        ]
        return await self._repository.insert_transactions(transactions)

    async def _advance_bills(self, user_id: UUID, today: date) -> int:
        """
        Move next_due of every active recurring bill to next month.

        payment_status is left untouched, so an unpaid bill's due date
        advances too. Each bill is updated on its own; the step fails
        if any update failed, after trying all of them.
        """
        bills = await self._repository.list_bills(
            user_id, active_only=True, recurring_only=True
        )

        advanced = 0
        errors = []
        for bill in bills:
            try:
                if await self._repository.update_bill_next_due(
                    user_id, bill.id, next_due_date(today, bill.due_day)
                ):
                    advanced += 1
            except StorageError as e:
                logger.warning("bill_advance_failed", bill_id=str(bill.id), error=str(e))
                errors.append(str(e))

        if errors:
            raise StorageError(
                f"{len(errors)} of {len(bills)} bills not advanced: {errors[0]}"
            )
        return advanced
