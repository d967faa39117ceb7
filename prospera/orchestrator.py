"""
Component Wiring for Prospera

Ties the storage backend, the audit logger and the three batch
routines together:
1. Recurrence renewal (monthly, per user)
2. Insight generation (on demand, per user)
3. Email queue processing (hourly, all users)

DESIGN DECISION: Everything is built from one row store. The HTTP app,
scripts and tests all call create_app_components(), so the jobs always
share the same repository and audit trail.
"""

from typing import NamedTuple, Optional

import structlog

from prospera.alerts import DueDateAlertGenerator
from prospera.audit import AuditLogger
from prospera.bills import BillPaymentService
from prospera.config import get_settings
from prospera.insights import InsightGenerator
from prospera.notifications import EmailDigestDispatcher
from prospera.renewal import RecurrenceRenewalJob
from prospera.services.email import EmailSenderInterface
from prospera.services.storage import (
    FinanceRepository,
    InMemoryRowStore,
    RowStoreInterface,
    SupabaseRowStore,
)


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    store: RowStoreInterface
    repository: FinanceRepository
    audit_logger: AuditLogger
    renewal_job: RecurrenceRenewalJob
    insight_generator: InsightGenerator
    alert_generator: DueDateAlertGenerator
    dispatcher: EmailDigestDispatcher
    bill_payments: BillPaymentService


def _create_store() -> RowStoreInterface:
    app_settings = get_settings().app
    if app_settings.storage_backend == "memory":
        return InMemoryRowStore()

    try:
        return SupabaseRowStore()
    except Exception as e:
        if app_settings.environment == "production":
            raise
        # Storage not configured - continue with local rows
        logger.warning("storage_not_configured", error=str(e), fallback="memory")
        return InMemoryRowStore()


def create_app_components(
    store: Optional[RowStoreInterface] = None,
    sender: Optional[EmailSenderInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Row store to use. Defaults to the configured backend
               (APP_STORAGE_BACKEND).
        sender: Email sender. Defaults to the logging sender.
    """
    settings = get_settings()
    store = store or _create_store()
    repository = FinanceRepository(store)

    audit_logger = AuditLogger(
        repository if settings.app.persist_audit_events else None
    )

    dispatcher = EmailDigestDispatcher(
        repository,
        sender=sender,
        audit_logger=audit_logger,
        settings=settings.email,
    )

    return AppComponents(
        store=store,
        repository=repository,
        audit_logger=audit_logger,
        renewal_job=RecurrenceRenewalJob(repository, audit_logger),
        insight_generator=InsightGenerator(
            repository,
            audit_logger=audit_logger,
            notifier=dispatcher,
            settings=settings.insights,
        ),
        alert_generator=DueDateAlertGenerator(
            repository,
            audit_logger=audit_logger,
            notifier=dispatcher,
        ),
        dispatcher=dispatcher,
        bill_payments=BillPaymentService(repository, audit_logger),
    )
