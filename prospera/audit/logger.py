"""
Audit Logger

DESIGN DECISION: Every batch step is logged as a typed audit event.
This provides:
1. Traceability of each job run per user
2. Debugging capability when a step is skipped
3. A record of rejected requests

The audit logger:
- Is async so it fits between storage awaits
- Gracefully handles failures (a failing audit write never breaks a job)
- Supports correlation IDs to trace the events of one run
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from prospera.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from prospera.services.storage import FinanceRepository


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Module-level structured logger."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (the operational console)
    2. The audit_events table, when a repository is given
    """

    def __init__(
        self,
        repository: Optional[FinanceRepository] = None,
    ):
        """
        Initialize audit logger.

        Args:
            repository: Where to persist events.
                        If None, only logs locally.
        """
        self._repository = repository
        self._logger = structlog.get_logger("prospera.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._repository:
            try:
                return await self._repository.append_audit_row(event.to_row())
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed storage call that was skipped."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_rule_failed(
        self,
        user_id: UUID,
        rule_name: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log an insight rule that raised."""
        event = AuditEventBuilder.rule_failed(
            user_id=user_id,
            rule_name=rule_name,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_authorization_rejected(
        self,
        endpoint: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a request rejected before any processing."""
        event = AuditEventBuilder.authorization_rejected(
            endpoint=endpoint,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an unexpected error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a job run or request.
    Pass it through all subsequent operations.
    """
    return uuid4()
