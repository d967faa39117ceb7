"""
Audit Models for Prospera

Every batch step (renewal, insight generation, email processing) emits
an audit event. This provides:
1. Traceability of what each job run did for each user
2. Debugging information when a step is skipped
3. A record of rejected requests

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from prospera.models.base import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Recurrence renewal
    RENEWAL_STARTED = "renewal_started"
    RENEWAL_SKIPPED = "renewal_skipped"
    RENEWAL_STEP_COMPLETED = "renewal_step_completed"
    RENEWAL_STEP_FAILED = "renewal_step_failed"
    RENEWAL_COMPLETED = "renewal_completed"

    # Insights and alerts
    INSIGHTS_GENERATED = "insights_generated"
    RULE_FAILED = "rule_failed"
    ALERTS_GENERATED = "alerts_generated"

    # Email queue
    EMAIL_ENQUEUED = "email_enqueued"
    DIGEST_ENQUEUED = "digest_enqueued"
    EMAIL_SENT = "email_sent"
    EMAIL_FAILED = "email_failed"
    EMAIL_QUEUE_PROCESSED = "email_queue_processed"

    # Bills
    BILL_PAID = "bill_paid"

    # Access
    AUTHORIZATION_REJECTED = "authorization_rejected"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which user and which row is this about?
    user_id: Optional[UUID] = Field(
        default=None,
        description="User the job was running for"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Table of the affected row (e.g., 'bills', 'alerts')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the row this event relates to"
    )

    # Correlation - all events of one job run share this
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events of one job run"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": str(self.user_id) if self.user_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_row(self) -> dict:
        """Convert to a row for the audit_events table."""
        row = self.model_dump(mode="json")
        row["id"] = row.pop("event_id")
        return row


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.renewal_skipped(user_id, "2026-10", correlation_id)
        event = AuditEventBuilder.email_failed(notification_id, error, correlation_id)
    """

    @staticmethod
    def renewal_started(
        user_id: UUID,
        period: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENEWAL_STARTED,
            user_id=user_id,
            entity_type="renewal_markers",
            correlation_id=correlation_id,
            description=f"Monthly renewal started for {period}",
            details={"period": period},
        )

    @staticmethod
    def renewal_skipped(
        user_id: UUID,
        period: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENEWAL_SKIPPED,
            user_id=user_id,
            entity_type="renewal_markers",
            correlation_id=correlation_id,
            description=f"Monthly renewal already claimed for {period}",
            details={"period": period},
        )

    @staticmethod
    def renewal_step_completed(
        user_id: UUID,
        step: str,
        count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENEWAL_STEP_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Renewal step '{step}' touched {count} rows",
            details={"step": step, "count": count},
        )

    @staticmethod
    def renewal_step_failed(
        user_id: UUID,
        step: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENEWAL_STEP_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Renewal step '{step}' failed",
            details={"step": step},
            error_message=error_message,
        )

    @staticmethod
    def renewal_completed(
        user_id: UUID,
        period: str,
        failed_steps: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RENEWAL_COMPLETED,
            severity=AuditSeverity.WARNING if failed_steps else AuditSeverity.INFO,
            user_id=user_id,
            entity_type="renewal_markers",
            correlation_id=correlation_id,
            description=f"Monthly renewal finished for {period}",
            details={"period": period, "failed_steps": failed_steps},
        )

    @staticmethod
    def insights_generated(
        user_id: UUID,
        insight_count: int,
        score: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHTS_GENERATED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Generated {insight_count} insights (score {score})",
            details={"insight_count": insight_count, "score": score},
        )

    @staticmethod
    def rule_failed(
        user_id: UUID,
        rule_name: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RULE_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Insight rule '{rule_name}' raised",
            details={"rule": rule_name},
            error_message=error_message,
        )

    @staticmethod
    def alerts_generated(
        user_id: UUID,
        alert_count: int,
        persisted: bool,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALERTS_GENERATED,
            user_id=user_id,
            entity_type="alerts",
            correlation_id=correlation_id,
            description=f"Generated {alert_count} alerts",
            details={"alert_count": alert_count, "persisted": persisted},
        )

    @staticmethod
    def email_enqueued(
        user_id: UUID,
        notification_id: UUID,
        alert_count: int,
        digest: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.DIGEST_ENQUEUED if digest else AuditEventType.EMAIL_ENQUEUED
            ),
            user_id=user_id,
            entity_type="scheduled_email_notifications",
            entity_id=notification_id,
            correlation_id=correlation_id,
            description=(
                f"{digest.capitalize()} digest enqueued with {alert_count} alerts"
                if digest else "Immediate alert email enqueued"
            ),
            details={"alert_count": alert_count, "digest": digest},
        )

    @staticmethod
    def email_sent(
        notification_id: UUID,
        email_to: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_SENT,
            entity_type="scheduled_email_notifications",
            entity_id=notification_id,
            correlation_id=correlation_id,
            description="Scheduled email delivered",
            details={"email_to": email_to},
        )

    @staticmethod
    def email_failed(
        notification_id: UUID,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="scheduled_email_notifications",
            entity_id=notification_id,
            correlation_id=correlation_id,
            description="Scheduled email delivery failed",
            error_message=error_message,
        )

    @staticmethod
    def email_queue_processed(
        summary: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_QUEUE_PROCESSED,
            correlation_id=correlation_id,
            description="Email queue run finished",
            details=summary,
        )

    @staticmethod
    def bill_paid(
        user_id: Optional[UUID],
        bill_ids: list[UUID],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            user_id=user_id,
            entity_type="bills",
            entity_id=bill_ids[0] if len(bill_ids) == 1 else None,
            correlation_id=correlation_id,
            description=f"{len(bill_ids)} bill(s) marked as paid",
            details={"bill_ids": [str(b) for b in bill_ids]},
        )

    @staticmethod
    def authorization_rejected(
        endpoint: str,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHORIZATION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Request to {endpoint} rejected",
            details={"endpoint": endpoint, "reason": reason},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Storage call failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
