"""
Financial Data Models for Prospera

These models mirror the user-owned tables in the managed store:
income, transactions, bills, loans and every asset class.

DESIGN DECISION: Derived values (current value of an asset, yields,
taxes) are NOT fields here. They are computed on read by
prospera.valuation so that every consumer agrees on them.
Only a user-supplied override (current_value / current_price) is stored.
"""

from datetime import date
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from prospera.models.base import UserOwnedRow


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class IncomeFrequency(str, Enum):
    """How often an income source pays."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    YEARLY = "yearly"
    ONE_TIME = "one-time"


class TransactionType(str, Enum):
    """Ledger direction."""
    INCOME = "income"
    EXPENSE = "expense"


class BillPaymentStatus(str, Enum):
    """Payment status stored on a bill row."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    PARTIAL = "partial"


class InvestmentType(str, Enum):
    """
    Investment types known to the product.

    The column itself is free text; these are the values the
    valuation formulas branch on.
    """
    FIXED_INCOME = "renda-fixa"
    STOCKS = "acoes"
    REAL_ESTATE_FUNDS = "fundos-imobiliarios"
    TREASURY = "tesouro-direto"
    CRYPTO = "criptomoedas"
    OTHER = "outros"


class GoalStatus(str, Enum):
    """Financial goal lifecycle."""
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


# Suffix appended to rows materialized by the renewal job
AUTOMATIC_SUFFIX = "(Automático)"


# =============================================================================
# INCOME & LEDGER
# =============================================================================

class IncomeSource(UserOwnedRow):
    """A recurring or one-off source of income."""

    name: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0, description="Amount per period")
    frequency: IncomeFrequency = IncomeFrequency.MONTHLY
    category: str = Field(default="outros", max_length=100)
    next_payment: Optional[date] = None
    is_active: bool = True
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)


class Transaction(UserOwnedRow):
    """
    A concrete ledger entry.

    Created by the user or by the renewal job (description tagged
    with AUTOMATIC_SUFFIX).
    """

    type: TransactionType
    amount: float = Field(..., ge=0)
    category: str = Field(default="outros", max_length=100)
    description: str = Field(default="", max_length=500)
    date: date
    is_recurring: bool = False

    @property
    def is_automatic(self) -> bool:
        return self.description.endswith(AUTOMATIC_SUFFIX)


class Bill(UserOwnedRow):
    """
    A bill that is due every month on due_day.

    payment_status and next_due are independent: the renewal job moves
    next_due forward without touching payment_status.
    """

    name: str = Field(..., min_length=1, max_length=200)
    company: str = Field(default="", max_length=200)
    amount: float = Field(..., ge=0)
    due_day: int = Field(..., ge=1, le=31)
    category: Optional[str] = None

    payment_status: BillPaymentStatus = BillPaymentStatus.PENDING
    payment_date: Optional[date] = None
    payment_amount: Optional[float] = Field(default=None, ge=0)
    payment_method: Optional[str] = None
    last_paid: Optional[date] = None

    is_recurring: bool = True
    is_active: bool = True
    next_due: Optional[date] = None

    # Optional associations
    property_id: Optional[UUID] = None
    vehicle_id: Optional[UUID] = None
    employee_id: Optional[UUID] = None
    loan_id: Optional[UUID] = None

    # Reminders and goal contributions
    email_reminder: bool = False
    reminder_days_before: Optional[int] = Field(default=None, ge=0, le=30)
    is_goal_contribution: bool = False
    goal_id: Optional[UUID] = None


class Loan(UserOwnedRow):
    """Debt edited only by the user (no automatic amortization)."""

    name: str = Field(default="", max_length=200)
    amount: float = Field(..., ge=0, description="Principal")
    remaining_amount: float = Field(..., ge=0)
    interest_rate: float = Field(default=0.0, ge=0)
    monthly_payment: float = Field(default=0.0, ge=0)
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode='after')
    def validate_dates(self) -> 'Loan':
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("Loan end date cannot be before start date")
        return self


class BankAccount(UserOwnedRow):
    """Cash held at a bank."""

    bank_name: str = Field(default="", max_length=200)
    balance: float = 0.0


# =============================================================================
# ASSETS
# =============================================================================

class Investment(UserOwnedRow):
    """
    A position in an investment product.

    Equities (acoes, fundos-imobiliarios) are valued as
    quantity x current_price; everything else by amount.
    """

    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., min_length=1, max_length=50)
    broker: Optional[str] = None
    amount: float = Field(default=0.0, ge=0)
    monthly_income: Optional[float] = Field(default=None, ge=0)
    purchase_price: Optional[float] = Field(default=None, ge=0)
    current_price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[float] = Field(default=None, ge=0)
    dividend_yield: Optional[float] = Field(default=None, ge=0)
    interest_rate: Optional[float] = Field(default=None, ge=0)
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)


class RealEstate(UserOwnedRow):
    """A property, optionally rented out."""

    name: str = Field(default="", max_length=200)
    address: Optional[str] = None
    purchase_price: float = Field(..., ge=0)
    purchase_date: Optional[date] = None
    current_value: Optional[float] = Field(default=None, ge=0)
    is_rented: bool = False
    monthly_rent: Optional[float] = Field(default=None, ge=0)
    expenses: Optional[float] = Field(default=None, ge=0, description="Monthly expenses")
    tax_rate: Optional[float] = Field(default=None, ge=0, le=100)


class Vehicle(UserOwnedRow):
    """A vehicle losing value at depreciation_rate percent per year."""

    name: str = Field(default="", max_length=200)
    brand: Optional[str] = None
    model: Optional[str] = None
    purchase_price: float = Field(..., ge=0)
    purchase_date: date
    current_value: Optional[float] = Field(default=None, ge=0)
    depreciation_rate: Optional[float] = Field(default=None, ge=0, le=100)
    monthly_expenses: Optional[float] = Field(default=None, ge=0)


class ExoticAsset(UserOwnedRow):
    """Art, collectibles, jewellery and other illiquid assets."""

    name: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = None
    purchase_price: float = Field(..., ge=0)
    purchase_date: Optional[date] = None
    current_value: Optional[float] = Field(default=None, ge=0)


class RetirementPlan(UserOwnedRow):
    """A private pension / retirement savings plan."""

    name: str = Field(default="", max_length=200)
    type: Optional[str] = None
    monthly_contribution: float = Field(default=0.0, ge=0)
    total_contributed: float = Field(default=0.0, ge=0)
    expected_return: Optional[float] = Field(
        default=None,
        ge=0,
        description="Expected monthly income at retirement"
    )
    start_date: Optional[date] = None
    retirement_age: Optional[int] = Field(default=None, ge=0, le=120)


class FinancialGoal(UserOwnedRow):
    """A savings target with a deadline."""

    name: str = Field(..., min_length=1, max_length=200)
    target_amount: float = Field(..., ge=0)
    current_amount: float = Field(default=0.0, ge=0)
    target_date: date
    status: GoalStatus = GoalStatus.ACTIVE
    category: Optional[str] = None

    @property
    def progress_percentage(self) -> Optional[float]:
        """Progress in percent, None when the target is zero."""
        if not self.target_amount:
            return None
        return self.current_amount / self.target_amount * 100


# =============================================================================
# SNAPSHOT
# =============================================================================

class UserSnapshot(BaseModel):
    """
    Everything one user owns, read at one moment.

    Insight rules and the financial summary are pure functions of this.
    unavailable lists the tables that could not be read.
    """

    user_id: UUID
    income_sources: list[IncomeSource] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    bills: list[Bill] = Field(default_factory=list)
    loans: list[Loan] = Field(default_factory=list)
    bank_accounts: list[BankAccount] = Field(default_factory=list)
    investments: list[Investment] = Field(default_factory=list)
    real_estate: list[RealEstate] = Field(default_factory=list)
    vehicles: list[Vehicle] = Field(default_factory=list)
    exotic_assets: list[ExoticAsset] = Field(default_factory=list)
    retirement_plans: list[RetirementPlan] = Field(default_factory=list)
    goals: list[FinancialGoal] = Field(default_factory=list)
    unavailable: list[str] = Field(default_factory=list)
