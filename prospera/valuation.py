"""
Asset Valuation

DESIGN DECISION: Every derived number (current value of an asset, the
monthly income it produces, the tax on that income) is computed HERE
and only here. The dashboard summary, the insight rules and the API
all call these functions, so two views can never disagree about what
a vehicle is worth today.

All functions are pure. They never raise on missing optional fields:
an absent rate or price contributes zero.
"""

from datetime import date
from typing import Optional

from prospera.models import (
    ExoticAsset,
    IncomeFrequency,
    IncomeSource,
    Investment,
    InvestmentType,
    RealEstate,
    RetirementPlan,
    Vehicle,
)


# Applied when a vehicle has no depreciation rate of its own (% per year)
DEFAULT_DEPRECIATION_RATE = 10.0

# A vehicle is never worth less than this share of its purchase price
DEPRECIATION_FLOOR = 0.10

# Average number of weeks in a month
WEEKS_PER_MONTH = 4.33

# Investment types valued by market price instead of invested amount
EQUITY_TYPES = {InvestmentType.STOCKS.value, InvestmentType.REAL_ESTATE_FUNDS.value}


def years_between(start: date, end: date) -> float:
    """Elapsed years as days / 365, never negative."""
    return max((end - start).days, 0) / 365


def depreciated_value(
    purchase_price: float,
    rate: float,
    years_owned: float,
) -> float:
    """
    Compound depreciation with a floor.

    value = purchase_price * (1 - rate/100) ** years_owned,
    but never below DEPRECIATION_FLOOR of the purchase price.
    """
    value = purchase_price * (1 - rate / 100) ** years_owned
    return max(value, purchase_price * DEPRECIATION_FLOOR)


# =============================================================================
# Vehicles
# =============================================================================

def vehicle_value(vehicle: Vehicle, today: date) -> float:
    """A user override wins; otherwise depreciate from the purchase price."""
    if vehicle.current_value is not None:
        return vehicle.current_value

    rate = vehicle.depreciation_rate
    if rate is None:
        rate = DEFAULT_DEPRECIATION_RATE

    return depreciated_value(
        vehicle.purchase_price,
        rate,
        years_between(vehicle.purchase_date, today),
    )


def vehicle_depreciation(vehicle: Vehicle, today: date) -> float:
    return vehicle.purchase_price - vehicle_value(vehicle, today)


# =============================================================================
# Investments
# =============================================================================

def _is_priced_equity(investment: Investment) -> bool:
    return (
        investment.type in EQUITY_TYPES
        and bool(investment.quantity)
        and bool(investment.current_price)
    )


def investment_value(investment: Investment) -> float:
    """
    Market value for priced equities (quantity x current_price),
    the invested amount for everything else.
    """
    if _is_priced_equity(investment):
        return investment.quantity * investment.current_price
    return investment.amount


def investment_monthly_income(investment: Investment) -> float:
    """
    Expected monthly income of a position.

    - Equities: dividend yield on market value, else declared monthly income
    - Interest-bearing: amount x rate / 12
    - Anything else: declared monthly income
    """
    if investment.type in EQUITY_TYPES:
        if _is_priced_equity(investment) and investment.dividend_yield:
            return investment_value(investment) * investment.dividend_yield / 100 / 12
        return investment.monthly_income or 0.0

    if investment.interest_rate and investment.amount:
        return investment.amount * investment.interest_rate / 100 / 12

    return investment.monthly_income or 0.0


def investment_monthly_tax(investment: Investment) -> float:
    if not investment.tax_rate:
        return 0.0
    return investment_monthly_income(investment) * investment.tax_rate / 100


# =============================================================================
# Real estate
# =============================================================================

def real_estate_value(prop: RealEstate) -> float:
    """Current value when known, otherwise what was paid."""
    return prop.current_value or prop.purchase_price


def rental_income(prop: RealEstate) -> float:
    if prop.is_rented and prop.monthly_rent:
        return prop.monthly_rent
    return 0.0


def rental_annual_yield(prop: RealEstate) -> Optional[float]:
    """
    Annualized gross rental yield in percent.

    None when the property is not rented, has no rent, or has no value.
    """
    rent = rental_income(prop)
    value = real_estate_value(prop)
    if not rent or not value:
        return None
    return rent * 12 / value * 100


def rental_monthly_tax(prop: RealEstate) -> float:
    if not prop.tax_rate:
        return 0.0
    return rental_income(prop) * prop.tax_rate / 100


# =============================================================================
# Other assets
# =============================================================================

def exotic_asset_value(asset: ExoticAsset) -> float:
    return asset.current_value or asset.purchase_price


def exotic_asset_appreciation(asset: ExoticAsset) -> float:
    return exotic_asset_value(asset) - asset.purchase_price


def retirement_value(plan: RetirementPlan) -> float:
    """Plans are carried at what has been contributed so far."""
    return plan.total_contributed


# =============================================================================
# Income
# =============================================================================

def monthly_income_equivalent(source: IncomeSource) -> float:
    """Monthly equivalent of an income source. One-time income counts as zero."""
    if source.frequency == IncomeFrequency.MONTHLY:
        return source.amount
    if source.frequency == IncomeFrequency.WEEKLY:
        return source.amount * WEEKS_PER_MONTH
    if source.frequency == IncomeFrequency.YEARLY:
        return source.amount / 12
    return 0.0


def income_monthly_tax(source: IncomeSource) -> float:
    if not source.tax_rate:
        return 0.0
    return monthly_income_equivalent(source) * source.tax_rate / 100
