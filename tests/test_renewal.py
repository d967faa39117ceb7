"""
Tests for the monthly recurrence renewal job.
"""

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from conftest import seed
from prospera.bills import next_due_date
from prospera.models import (
    AUTOMATIC_SUFFIX,
    Bill,
    BillPaymentStatus,
    IncomeFrequency,
    IncomeSource,
    Transaction,
    TransactionType,
)
from prospera.renewal import (
    RecurrenceRenewalJob,
    automatic_description,
    pays_this_month,
    period_key,
)
from prospera.services.storage import StorageError
from prospera.services.storage.repository import (
    BILLS,
    INCOME_SOURCES,
    RENEWAL_MARKERS,
    TRANSACTIONS,
)


TODAY = date(2026, 10, 19)


@pytest.fixture
def job(repository, audit_logger):
    return RecurrenceRenewalJob(repository, audit_logger)


def income_rows(store):
    return [r for r in store.rows(TRANSACTIONS) if r["type"] == "income"]


class TestHelpers:
    """Tests for the pure helpers."""

    def test_period_key(self):
        assert period_key(date(2026, 1, 31)) == "2026-01"

    def test_automatic_description_tags_once(self):
        """Test the suffix is never appended twice."""
        tagged = automatic_description("Salário")
        assert tagged == f"Salário {AUTOMATIC_SUFFIX}"
        assert automatic_description(tagged) == tagged
        assert automatic_description("") == AUTOMATIC_SUFFIX

    def test_yearly_source_pays_in_its_month(self):
        """Test yearly income compares only the month of next_payment."""
        source = IncomeSource(
            user_id=uuid4(), name="13º", amount=5000,
            frequency=IncomeFrequency.YEARLY, next_payment=date(2024, 10, 20),
        )
        assert pays_this_month(source, TODAY) is True
        assert pays_this_month(source, date(2026, 11, 1)) is False

    def test_yearly_without_next_payment(self):
        source = IncomeSource(
            user_id=uuid4(), name="Bônus", amount=1,
            frequency=IncomeFrequency.YEARLY,
        )
        assert pays_this_month(source, TODAY) is False

    @pytest.mark.parametrize("frequency", [IncomeFrequency.WEEKLY, IncomeFrequency.ONE_TIME])
    def test_other_frequencies_never_pay(self, frequency):
        source = IncomeSource(user_id=uuid4(), name="X", amount=1, frequency=frequency)
        assert pays_this_month(source, TODAY) is False

    def test_inactive_source_never_pays(self):
        source = IncomeSource(user_id=uuid4(), name="X", amount=1, is_active=False)
        assert pays_this_month(source, TODAY) is False


class TestNextDueDate:
    """Tests for the next-month due date."""

    def test_following_month(self):
        assert next_due_date(TODAY, 10) == date(2026, 11, 10)

    def test_december_rolls_over(self):
        """Test December advances into January of the next year."""
        assert next_due_date(date(2026, 12, 15), 5) == date(2027, 1, 5)

    def test_clamped_to_month_end(self):
        """Test a due day past the end of the month is clamped."""
        assert next_due_date(date(2026, 1, 31), 31) == date(2026, 2, 28)
        assert next_due_date(date(2028, 1, 31), 30) == date(2028, 2, 29)
        assert next_due_date(date(2026, 3, 1), 31) == date(2026, 4, 30)


class TestRecurrenceRenewalJob:
    """Tests for a full renewal run against the in-memory store."""

    def test_monthly_income_once(self, job, store, user_id):
        """Test one income transaction per active monthly source."""
        seed(
            store, INCOME_SOURCES,
            IncomeSource(user_id=user_id, name="Salário", amount=5000, category="salario"),
            IncomeSource(user_id=user_id, name="Freela", amount=800,
                         frequency=IncomeFrequency.WEEKLY),
            IncomeSource(user_id=user_id, name="Antiga", amount=100, is_active=False),
        )

        report = asyncio.run(job.run(user_id, TODAY))

        rows = income_rows(store)
        assert report.status == "completed"
        assert report.income_created == 1
        assert len(rows) == 1
        assert rows[0]["amount"] == 5000
        assert rows[0]["category"] == "salario"
        assert rows[0]["description"] == f"Salário {AUTOMATIC_SUFFIX}"
        assert rows[0]["date"] == "2026-10-19"
        assert rows[0]["is_recurring"] is False

    def test_second_run_same_month_skipped(self, job, store, user_id):
        """Test a second run in the same month writes nothing."""
        seed(store, INCOME_SOURCES, IncomeSource(user_id=user_id, name="Salário", amount=5000))
        seed(store, BILLS, Bill(user_id=user_id, name="Luz", amount=200, due_day=10))

        first = asyncio.run(job.run(user_id, TODAY))
        second = asyncio.run(job.run(user_id, date(2026, 10, 28)))

        assert first.skipped is False
        assert second.skipped is True
        assert second.status == "skipped"
        assert len(income_rows(store)) == 1
        assert len(store.rows(RENEWAL_MARKERS)) == 1

    def test_next_month_runs_again(self, job, store, user_id):
        seed(store, INCOME_SOURCES, IncomeSource(user_id=user_id, name="Salário", amount=5000))

        asyncio.run(job.run(user_id, TODAY))
        report = asyncio.run(job.run(user_id, date(2026, 11, 1)))

        assert report.income_created == 1
        assert len(income_rows(store)) == 2

    def test_yearly_income_in_matching_month(self, job, store, user_id):
        seed(
            store, INCOME_SOURCES,
            IncomeSource(user_id=user_id, name="13º", amount=5000,
                         frequency=IncomeFrequency.YEARLY, next_payment=date(2026, 10, 20)),
            IncomeSource(user_id=user_id, name="Bônus", amount=9000,
                         frequency=IncomeFrequency.YEARLY, next_payment=date(2026, 3, 1)),
        )

        report = asyncio.run(job.run(user_id, TODAY))

        assert report.income_created == 1
        assert income_rows(store)[0]["amount"] == 5000

    def test_recurring_expenses_replayed(self, job, store, user_id):
        """Test recurring expenses are replayed as non-recurring copies."""
        seed(
            store, TRANSACTIONS,
            Transaction(user_id=user_id, type=TransactionType.EXPENSE, amount=1500,
                        category="moradia", description="Aluguel",
                        date=date(2026, 9, 5), is_recurring=True),
            Transaction(user_id=user_id, type=TransactionType.EXPENSE, amount=80,
                        category="lazer", description="Cinema", date=date(2026, 9, 6)),
        )

        report = asyncio.run(job.run(user_id, TODAY))

        generated = [r for r in store.rows(TRANSACTIONS) if r["date"] == "2026-10-19"]
        assert report.expenses_created == 1
        assert len(generated) == 1
        assert generated[0]["description"] == f"Aluguel {AUTOMATIC_SUFFIX}"
        assert generated[0]["is_recurring"] is False

        # The replay is not recurring, so next month replays only the original
        asyncio.run(job.run(user_id, date(2026, 11, 1)))
        november = [r for r in store.rows(TRANSACTIONS) if r["date"] == "2026-11-01"]
        assert len(november) == 1

    def test_bills_advance_regardless_of_payment(self, job, store, user_id):
        """Test next_due moves to due_day of next month for paid and unpaid bills."""
        paid = Bill(user_id=user_id, name="Luz", amount=200, due_day=10,
                    payment_status=BillPaymentStatus.PAID, next_due=date(2026, 10, 10))
        unpaid = Bill(user_id=user_id, name="Água", amount=90, due_day=25,
                      next_due=date(2026, 10, 25))
        inactive = Bill(user_id=user_id, name="Velha", amount=10, due_day=1,
                        is_active=False, next_due=date(2026, 1, 1))
        seed(store, BILLS, paid, unpaid, inactive)

        report = asyncio.run(job.run(user_id, TODAY))

        rows = {r["name"]: r for r in store.rows(BILLS)}
        assert report.bills_advanced == 2
        assert rows["Luz"]["next_due"] == "2026-11-10"
        assert rows["Luz"]["payment_status"] == "paid"
        assert rows["Água"]["next_due"] == "2026-11-25"
        assert rows["Água"]["payment_status"] == "pending"
        assert rows["Velha"]["next_due"] == "2026-01-01"

    def test_null_optional_columns_still_renewed(self, job, store, user_id):
        """Test rows with NULL text columns are renewed with field defaults."""
        asyncio.run(store.insert(BILLS, [{
            "user_id": str(user_id), "name": "Internet", "company": None,
            "amount": 120, "due_day": 10, "category": None,
            "is_recurring": True, "is_active": True, "next_due": "2026-10-10",
        }]))
        asyncio.run(store.insert(TRANSACTIONS, [{
            "user_id": str(user_id), "type": "expense", "amount": 300,
            "category": None, "description": None,
            "date": "2026-09-05", "is_recurring": True,
        }]))

        report = asyncio.run(job.run(user_id, TODAY))

        generated = [r for r in store.rows(TRANSACTIONS) if r["date"] == "2026-10-19"]
        assert report.bills_advanced == 1
        assert report.expenses_created == 1
        assert store.rows(BILLS)[0]["next_due"] == "2026-11-10"
        assert generated[0]["description"] == AUTOMATIC_SUFFIX
        assert generated[0]["category"] == "outros"

    def test_other_users_untouched(self, job, store, user_id):
        other = uuid4()
        seed(store, INCOME_SOURCES, IncomeSource(user_id=other, name="Salário", amount=1))
        seed(store, BILLS, Bill(user_id=other, name="Luz", amount=1, due_day=10))

        asyncio.run(job.run(user_id, TODAY))

        assert store.rows(TRANSACTIONS) == []
        assert store.rows(BILLS)[0]["next_due"] is None

    def test_failed_step_does_not_stop_others(self, job, store, user_id):
        """Test a failing income insert still advances bills."""
        seed(store, INCOME_SOURCES, IncomeSource(user_id=user_id, name="Salário", amount=5000))
        seed(store, BILLS, Bill(user_id=user_id, name="Luz", amount=200, due_day=10))
        store.inject_failure("insert", TRANSACTIONS)

        report = asyncio.run(job.run(user_id, TODAY))

        assert report.status == "partial"
        assert report.failed_steps == ["income"]
        assert report.bills_advanced == 1
        marker = store.rows(RENEWAL_MARKERS)[0]
        assert marker["status"] == "partial"
        assert marker["failed_steps"] == ["income"]

    def test_bill_step_failure_recorded(self, job, store, user_id):
        seed(store, BILLS, Bill(user_id=user_id, name="Luz", amount=200, due_day=10))
        store.inject_failure("update", BILLS)

        report = asyncio.run(job.run(user_id, TODAY))

        assert report.failed_steps == ["bills"]
        assert report.bills_advanced == 0

    def test_claim_failure_raises(self, job, store, user_id):
        """Test nothing is written when the period cannot be claimed."""
        seed(store, INCOME_SOURCES, IncomeSource(user_id=user_id, name="Salário", amount=5000))
        store.inject_failure("insert", RENEWAL_MARKERS)

        with pytest.raises(StorageError):
            asyncio.run(job.run(user_id, TODAY))
        assert store.rows(TRANSACTIONS) == []

    def test_crashed_run_is_not_repeated(self, job, store, repository, user_id):
        """Test a claimed period left 'running' is skipped by later runs."""
        asyncio.run(repository.claim_renewal_period(user_id, "2026-10", uuid4()))
        seed(store, INCOME_SOURCES, IncomeSource(user_id=user_id, name="Salário", amount=5000))

        report = asyncio.run(job.run(user_id, TODAY))

        assert report.skipped is True
        assert store.rows(TRANSACTIONS) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
