"""
Financial Summary

Dashboard aggregates are pure functions of the user's current rows:
nothing here is stored, everything is recomputed from a UserSnapshot
through prospera.valuation.
"""

from datetime import date

from pydantic import BaseModel, Field

from prospera import valuation
from prospera.models import TransactionType, UserSnapshot


class FinancialSummary(BaseModel):
    """Net worth, monthly cash flow and asset allocation of one user."""

    # Assets
    total_investments: float = 0.0
    total_real_estate: float = 0.0
    total_retirement: float = 0.0
    total_bank_balance: float = 0.0
    total_vehicles: float = 0.0
    total_exotic_assets: float = 0.0
    total_assets: float = 0.0

    # Debt
    total_debt: float = 0.0
    net_worth: float = 0.0

    # Monthly cash flow
    monthly_income: float = 0.0
    monthly_investment_income: float = 0.0
    monthly_rental_income: float = 0.0
    monthly_expenses: float = 0.0
    monthly_loan_payments: float = 0.0
    monthly_bills: float = 0.0
    monthly_taxes: float = 0.0
    net_monthly_income: float = 0.0

    # Percent of total assets per class
    allocation: dict[str, float] = Field(default_factory=dict)


def _share(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def summarize(snapshot: UserSnapshot, today: date) -> FinancialSummary:
    """Build the dashboard summary for one snapshot."""
    investments = sum(valuation.investment_value(i) for i in snapshot.investments)
    real_estate = sum(valuation.real_estate_value(p) for p in snapshot.real_estate)
    retirement = sum(valuation.retirement_value(p) for p in snapshot.retirement_plans)
    bank = sum(a.balance for a in snapshot.bank_accounts)
    vehicles = sum(valuation.vehicle_value(v, today) for v in snapshot.vehicles)
    exotic = sum(valuation.exotic_asset_value(a) for a in snapshot.exotic_assets)
    total_assets = investments + real_estate + retirement + bank + vehicles + exotic

    total_debt = sum(loan.remaining_amount for loan in snapshot.loans)

    active_sources = [s for s in snapshot.income_sources if s.is_active]
    base_income = sum(valuation.monthly_income_equivalent(s) for s in active_sources)
    investment_income = sum(
        valuation.investment_monthly_income(i) for i in snapshot.investments
    )
    rental_income = sum(valuation.rental_income(p) for p in snapshot.real_estate)
    monthly_income = base_income + investment_income + rental_income

    # Only recurring expenses describe a typical month
    monthly_expenses = sum(
        t.amount for t in snapshot.transactions
        if t.type == TransactionType.EXPENSE and t.is_recurring
    )

    monthly_taxes = (
        sum(valuation.income_monthly_tax(s) for s in active_sources)
        + sum(valuation.investment_monthly_tax(i) for i in snapshot.investments)
        + sum(valuation.rental_monthly_tax(p) for p in snapshot.real_estate)
    )

    return FinancialSummary(
        total_investments=investments,
        total_real_estate=real_estate,
        total_retirement=retirement,
        total_bank_balance=bank,
        total_vehicles=vehicles,
        total_exotic_assets=exotic,
        total_assets=total_assets,
        total_debt=total_debt,
        net_worth=total_assets - total_debt,
        monthly_income=monthly_income,
        monthly_investment_income=investment_income,
        monthly_rental_income=rental_income,
        monthly_expenses=monthly_expenses,
        monthly_loan_payments=sum(loan.monthly_payment for loan in snapshot.loans),
        monthly_bills=sum(b.amount for b in snapshot.bills if b.is_active),
        monthly_taxes=monthly_taxes,
        net_monthly_income=monthly_income - monthly_expenses,
        allocation={
            "investments": _share(investments, total_assets),
            "real_estate": _share(real_estate, total_assets),
            "retirement": _share(retirement, total_assets),
            "bank_accounts": _share(bank, total_assets),
            "vehicles": _share(vehicles, total_assets),
            "exotic_assets": _share(exotic, total_assets),
        },
    )
