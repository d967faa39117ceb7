"""
Data Models Package

This package contains all Pydantic models used by Prospera.
Rows read from the store are parsed into these models before any
computation happens.
"""

from prospera.models.base import UserOwnedRow, utc_now
from prospera.models.finance import (
    AUTOMATIC_SUFFIX,
    BankAccount,
    Bill,
    BillPaymentStatus,
    ExoticAsset,
    FinancialGoal,
    GoalStatus,
    IncomeFrequency,
    IncomeSource,
    Investment,
    InvestmentType,
    Loan,
    RealEstate,
    RetirementPlan,
    Transaction,
    TransactionType,
    UserSnapshot,
    Vehicle,
)
from prospera.models.alerts import (
    Alert,
    AlertNotificationSettings,
    AlertPriority,
    AlertType,
    DigestResult,
    EmailQueueReport,
    EmailStatus,
    ImmediateResult,
    Insight,
    InsightReport,
    InsightType,
    NotificationFrequency,
    Recommendation,
    ScheduledEmailNotification,
    new_insight_id,
)
from prospera.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Base
    "UserOwnedRow",
    "utc_now",
    # Finance models
    "AUTOMATIC_SUFFIX",
    "BankAccount",
    "Bill",
    "BillPaymentStatus",
    "ExoticAsset",
    "FinancialGoal",
    "GoalStatus",
    "IncomeFrequency",
    "IncomeSource",
    "Investment",
    "InvestmentType",
    "Loan",
    "RealEstate",
    "RetirementPlan",
    "Transaction",
    "TransactionType",
    "UserSnapshot",
    "Vehicle",
    # Alert models
    "Alert",
    "AlertNotificationSettings",
    "AlertPriority",
    "AlertType",
    "DigestResult",
    "EmailQueueReport",
    "EmailStatus",
    "ImmediateResult",
    "Insight",
    "InsightReport",
    "InsightType",
    "NotificationFrequency",
    "Recommendation",
    "ScheduledEmailNotification",
    "new_insight_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
