"""
Insights Package

Rule-based financial insights: the rule registry and the generator
that runs it for one user and scores the result.
"""

from prospera.insights.generator import (
    InsightGenerator,
    alert_to_insight,
    calculate_score,
    insights_to_alerts,
)
from prospera.insights.rules import (
    FeatureAnnouncementRule,
    FinancialGoalProgressRule,
    HighestExpenseCategoryRule,
    InsightRule,
    InsightRuleRegistry,
    InvestmentDiversificationRule,
    LowYieldInvestmentRule,
    OverdueBillsRule,
    RealEstateRentalRule,
    RuleFailure,
    VehicleDepreciationRule,
    default_registry,
)

__all__ = [
    # Generator
    "InsightGenerator",
    "alert_to_insight",
    "calculate_score",
    "insights_to_alerts",
    # Rules
    "FeatureAnnouncementRule",
    "FinancialGoalProgressRule",
    "HighestExpenseCategoryRule",
    "InsightRule",
    "InsightRuleRegistry",
    "InvestmentDiversificationRule",
    "LowYieldInvestmentRule",
    "OverdueBillsRule",
    "RealEstateRentalRule",
    "RuleFailure",
    "VehicleDepreciationRule",
    "default_registry",
]
