"""
Alert, Insight and Email Queue Models

Alerts are persisted advisory rows; insights are what the generator
returns (and optionally persists as alerts). Scheduled email
notifications are the outbound queue the dispatcher drains.
"""

from datetime import datetime, time
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from prospera.models.base import UserOwnedRow, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class AlertType(str, Enum):
    """
    Alert categories.

    Each category has a matching <type>_alerts_enabled toggle in the
    user's notification settings.
    """
    BILL = "bill"
    EMPLOYEE = "employee"
    EXPENSE = "expense"
    ACHIEVEMENT = "achievement"
    TAX = "tax"
    ASSET = "asset"
    INVESTMENT = "investment"


class AlertPriority(str, Enum):
    """Priority / impact level."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher is more urgent."""
        return {"high": 3, "medium": 2, "low": 1}[self.value]

    @property
    def label(self) -> str:
        """Portuguese label used in emails."""
        return {"high": "Alta", "medium": "Média", "low": "Baixa"}[self.value]


class InsightType(str, Enum):
    """What kind of advice an insight carries."""
    WARNING = "warning"
    ACHIEVEMENT = "achievement"
    SUGGESTION = "suggestion"
    FEATURE = "feature"


class NotificationFrequency(str, Enum):
    """How alert emails are batched for a user."""
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


class EmailStatus(str, Enum):
    """Scheduled email lifecycle."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


# =============================================================================
# ALERTS & INSIGHTS
# =============================================================================

class Alert(UserOwnedRow):
    """A persisted advisory message for one user."""

    type: AlertType
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(default="", max_length=2000)
    date: datetime = Field(default_factory=utc_now)
    priority: AlertPriority = AlertPriority.MEDIUM
    is_read: bool = False
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None

    # Where the UI should send the user
    related_id: Optional[str] = None
    related_entity: Optional[str] = None
    action_path: Optional[str] = None
    action_label: Optional[str] = None


class Insight(BaseModel):
    """
    A generated piece of advice.

    alert_type is the category used when the insight is persisted as an
    Alert; feature announcements have none and are never persisted.
    """

    id: str
    type: InsightType
    title: str
    description: str
    impact: AlertPriority
    date: datetime = Field(default_factory=utc_now)
    potential_savings: Optional[float] = Field(
        default=None,
        serialization_alias="potentialSavings"
    )
    difficulty: Optional[str] = Field(
        default=None,
        pattern="^(easy|medium|hard)$"
    )
    alert_type: Optional[AlertType] = Field(default=None, exclude=True)
    # Same value on every run for the same finding; stored as the alert's related_id
    key: Optional[str] = Field(default=None, exclude=True)


class Recommendation(BaseModel):
    """A goal recommendation row; schema owned by the product UI."""
    model_config = ConfigDict(extra="allow")

    id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    title: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class InsightReport(BaseModel):
    """Response of the insight endpoint."""

    insights: list[Insight] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    score: int = Field(..., ge=0, le=100)


# =============================================================================
# NOTIFICATION SETTINGS & EMAIL QUEUE
# =============================================================================

class AlertNotificationSettings(UserOwnedRow):
    """One row per user controlling alert emails."""

    email_notifications_enabled: bool = True
    bill_alerts_enabled: bool = True
    employee_alerts_enabled: bool = True
    expense_alerts_enabled: bool = True
    achievement_alerts_enabled: bool = True
    tax_alerts_enabled: bool = True
    asset_alerts_enabled: bool = True
    investment_alerts_enabled: bool = True
    notification_frequency: NotificationFrequency = NotificationFrequency.IMMEDIATE
    notification_time: Optional[str] = Field(
        default="08:00:00",
        pattern=r"^\d{2}:\d{2}(:\d{2})?$"
    )
    notification_email: Optional[str] = None
    last_notification_sent: Optional[datetime] = None

    def is_category_enabled(self, alert_type: AlertType) -> bool:
        """Check the <type>_alerts_enabled toggle."""
        return bool(getattr(self, f"{alert_type.value}_alerts_enabled", False))

    def preferred_time(self, default: str = "08:00:00") -> time:
        """Preferred send time (UTC)."""
        return time.fromisoformat(self.notification_time or default)


class ScheduledEmailNotification(UserOwnedRow):
    """An outbound email waiting in the queue."""

    alert_ids: list[UUID] = Field(default_factory=list)
    email_to: str = Field(..., min_length=3)
    email_subject: str = Field(..., min_length=1, max_length=300)
    email_body: str
    status: EmailStatus = EmailStatus.PENDING
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None


# =============================================================================
# EMAIL QUEUE RUN REPORTS
# =============================================================================

class ImmediateResult(BaseModel):
    """Tally for the pending-queue delivery pass."""

    processed: int = 0
    success: int = 0
    failed: int = 0


class DigestResult(BaseModel):
    """Tally for one digest tier (daily or weekly)."""

    users_processed: int = Field(default=0, serialization_alias="usersProcessed")
    digests_sent: int = Field(default=0, serialization_alias="digestsSent")
    errors: int = 0


class EmailQueueReport(BaseModel):
    """Result of one email queue run."""

    immediate: ImmediateResult = Field(default_factory=ImmediateResult)
    daily: DigestResult = Field(default_factory=DigestResult)
    weekly: DigestResult = Field(default_factory=DigestResult)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)


def new_insight_id(prefix: str, suffix: Optional[object] = None) -> str:
    """Insight ids are '<prefix>-<suffix>'; suffix defaults to a random token."""
    return f"{prefix}-{suffix if suffix is not None else uuid4().hex[:12]}"
