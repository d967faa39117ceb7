"""
Email Digest Dispatcher

Three independent passes, meant to be triggered hourly by a scheduler:

1. Immediate: deliver pending scheduled emails (capped per run)
2. Daily: enqueue one digest per eligible user at their preferred hour
3. Weekly: same as daily, Mondays only, with a 7-day window

Every pass is idempotent at row level through status transitions
(pending -> sent | failed) and the last_notification_sent timestamp.
A failure for one email or one user is counted and logged; it never
stops the rest of the batch.

All clock comparisons (hour, weekday, start of day) are in UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

import structlog

from prospera.audit import AuditLogger, create_correlation_id
from prospera.config import get_settings
from prospera.config.settings import EmailSettings
from prospera.models import (
    Alert,
    AlertNotificationSettings,
    AuditEventBuilder,
    DigestResult,
    EmailQueueReport,
    ImmediateResult,
    NotificationFrequency,
    ScheduledEmailNotification,
    utc_now,
)
from prospera.notifications.digest import compose_alert_email, compose_digest
from prospera.services.email import (
    EmailDeliveryError,
    EmailSenderInterface,
    LoggingEmailSender,
)
from prospera.services.storage import FinanceRepository, StorageError


logger = structlog.get_logger(__name__)


DAILY_LOOKBACK = timedelta(hours=24)
WEEKLY_LOOKBACK = timedelta(days=7)
WEEKLY_MIN_GAP = timedelta(days=6)
MONDAY = 0


class RecipientNotFound(Exception):
    """Neither the settings nor the account carry an email address."""
    pass


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    return _as_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def daily_due(settings: AlertNotificationSettings, now: datetime) -> bool:
    """No digest yet today."""
    last = settings.last_notification_sent
    return last is None or _as_utc(last) < start_of_day(now)


def weekly_due(settings: AlertNotificationSettings, now: datetime) -> bool:
    """No digest in the last six days."""
    last = settings.last_notification_sent
    return last is None or _as_utc(last) < _as_utc(now) - WEEKLY_MIN_GAP


class EmailDigestDispatcher:
    """
    Processes the alert email queue.

    Usage:
        dispatcher = EmailDigestDispatcher(repository, sender)
        report = await dispatcher.process_all()
    """

    def __init__(
        self,
        repository: FinanceRepository,
        sender: Optional[EmailSenderInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EmailSettings] = None,
    ):
        self._repository = repository
        self._sender = sender or LoggingEmailSender()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().email

    async def process_all(self, now: Optional[datetime] = None) -> EmailQueueReport:
        """Run the three passes in order: immediate, daily, weekly."""
        now = _as_utc(now or utc_now())
        correlation_id = create_correlation_id()

        report = EmailQueueReport(
            immediate=await self.process_immediate(now, correlation_id),
            daily=await self.process_daily(now, correlation_id),
            weekly=await self.process_weekly(now, correlation_id),
        )
        await self._audit.log(
            AuditEventBuilder.email_queue_processed(report.to_response(), correlation_id)
        )
        return report

    # =========================================================================
    # Immediate
    # =========================================================================

    async def process_immediate(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImmediateResult:
        """Deliver up to immediate_batch_limit pending emails."""
        now = _as_utc(now or utc_now())
        correlation_id = correlation_id or create_correlation_id()
        result = ImmediateResult()

        try:
            pending = await self._repository.list_pending_emails(
                self._settings.immediate_batch_limit
            )
        except StorageError as e:
            await self._audit.log_storage_error(
                "select pending emails", str(e), correlation_id=correlation_id
            )
            return result

        result.processed = len(pending)
        for notification in pending:
            if await self._deliver(notification, now, correlation_id):
                result.success += 1
            else:
                result.failed += 1
        return result

    async def _deliver(
        self,
        notification: ScheduledEmailNotification,
        now: datetime,
        correlation_id: UUID,
    ) -> bool:
        try:
            await self._sender.send(
                notification.email_to,
                notification.email_subject,
                notification.email_body,
            )
        except EmailDeliveryError as e:
            await self._audit.log(
                AuditEventBuilder.email_failed(notification.id, str(e), correlation_id)
            )
            try:
                await self._repository.mark_email_failed(
                    notification.id, str(e) or "Unknown error"
                )
            except StorageError as mark_error:
                logger.error(
                    "email_status_update_failed",
                    notification_id=str(notification.id),
                    error=str(mark_error),
                )
            return False

        # The message went out; a bookkeeping failure does not make it failed
        try:
            await self._repository.mark_email_sent(notification.id, now)
            await self._repository.mark_alerts_emailed(notification.alert_ids, now)
        except StorageError as e:
            logger.error(
                "email_status_update_failed",
                notification_id=str(notification.id),
                error=str(e),
            )

        await self._audit.log(
            AuditEventBuilder.email_sent(notification.id, notification.email_to, correlation_id)
        )
        return True

    async def enqueue_immediate(self, user_id: UUID, alerts: list[Alert]) -> int:
        """
        Queue one email per new alert for users on immediate frequency.

        Alerts whose category is switched off in the user's settings
        are not queued. Returns how many emails were queued.
        """
        if not alerts:
            return 0
        correlation_id = create_correlation_id()

        try:
            settings = await self._repository.get_notification_settings(user_id)
            if (
                settings is None
                or not settings.email_notifications_enabled
                or settings.notification_frequency != NotificationFrequency.IMMEDIATE
            ):
                return 0
            recipient = await self._recipient(settings)
        except (StorageError, RecipientNotFound) as e:
            await self._audit.log_storage_error(
                "resolve immediate email recipient", str(e), user_id, correlation_id
            )
            return 0

        queued = 0
        for alert in alerts:
            if not settings.is_category_enabled(alert.type):
                continue
            subject, body = compose_alert_email(
                alert, self._settings.brand_name, self._settings.platform_url
            )
            try:
                stored = await self._repository.enqueue_email(
                    ScheduledEmailNotification(
                        user_id=user_id,
                        alert_ids=[alert.id],
                        email_to=recipient,
                        email_subject=subject,
                        email_body=body,
                    )
                )
            except StorageError as e:
                await self._audit.log_storage_error(
                    "enqueue immediate email", str(e), user_id, correlation_id
                )
                continue

            queued += 1
            await self._audit.log(
                AuditEventBuilder.email_enqueued(user_id, stored.id, 1, None, correlation_id)
            )
        return queued

    # =========================================================================
    # Digests
    # =========================================================================

    async def process_daily(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DigestResult:
        """Enqueue daily digests for users whose hour is now."""
        now = _as_utc(now or utc_now())
        return await self._process_digests(
            NotificationFrequency.DAILY,
            now,
            daily_due,
            DAILY_LOOKBACK,
            correlation_id or create_correlation_id(),
        )

    async def process_weekly(
        self,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DigestResult:
        """Enqueue weekly digests; does nothing unless today is Monday."""
        now = _as_utc(now or utc_now())
        if now.weekday() != MONDAY:
            return DigestResult()
        return await self._process_digests(
            NotificationFrequency.WEEKLY,
            now,
            weekly_due,
            WEEKLY_LOOKBACK,
            correlation_id or create_correlation_id(),
        )

    async def _process_digests(
        self,
        frequency: NotificationFrequency,
        now: datetime,
        is_due: Callable[[AlertNotificationSettings, datetime], bool],
        lookback: timedelta,
        correlation_id: UUID,
    ) -> DigestResult:
        result = DigestResult()

        try:
            candidates = await self._repository.list_notification_settings(frequency)
        except StorageError as e:
            await self._audit.log_storage_error(
                f"select {frequency.value} settings", str(e), correlation_id=correlation_id
            )
            result.errors += 1
            return result

        eligible = [s for s in candidates if is_due(s, now)]
        result.users_processed = len(eligible)

        for settings in eligible:
            try:
                preferred = settings.preferred_time(self._settings.default_notification_time)
                if preferred.hour != now.hour:
                    continue
                if await self._enqueue_digest(settings, frequency, now, lookback, correlation_id):
                    result.digests_sent += 1
            except (StorageError, RecipientNotFound, ValueError) as e:
                logger.error(
                    "digest_failed",
                    frequency=frequency.value,
                    user_id=str(settings.user_id),
                    error=str(e),
                )
                await self._audit.log_storage_error(
                    f"{frequency.value} digest", str(e), settings.user_id, correlation_id
                )
                result.errors += 1

        return result

    async def _enqueue_digest(
        self,
        settings: AlertNotificationSettings,
        frequency: NotificationFrequency,
        now: datetime,
        lookback: timedelta,
        correlation_id: UUID,
    ) -> bool:
        """Queue one digest. Returns False when the user has nothing new."""
        recipient = await self._recipient(settings)

        alerts = await self._repository.list_unsent_alerts(settings.user_id, now - lookback)
        if not alerts:
            return False

        subject, body = compose_digest(
            alerts, frequency, self._settings.brand_name, self._settings.platform_url
        )
        stored = await self._repository.enqueue_email(
            ScheduledEmailNotification(
                user_id=settings.user_id,
                alert_ids=[a.id for a in alerts],
                email_to=recipient,
                email_subject=subject,
                email_body=body,
            )
        )
        await self._repository.touch_last_notification_sent(settings.user_id, now)

        await self._audit.log(
            AuditEventBuilder.email_enqueued(
                settings.user_id, stored.id, len(alerts), frequency.value, correlation_id
            )
        )
        return True

    async def _recipient(self, settings: AlertNotificationSettings) -> str:
        if settings.notification_email:
            return settings.notification_email
        email = await self._repository.get_user_email(settings.user_id)
        if not email:
            raise RecipientNotFound(f"No email for user {settings.user_id}")
        return email
