"""
Insight Generator

Reads one user's data, runs the rule registry over it and scores the
result. The only writes are optional: generated insights can be
persisted as alerts and handed to the immediate email path.
"""

from datetime import date, datetime, timezone
from typing import Optional, Protocol
from uuid import UUID

from prospera.audit import AuditLogger, create_correlation_id
from prospera.config import get_settings
from prospera.config.settings import InsightSettings
from prospera.insights.rules import InsightRuleRegistry, default_registry
from prospera.models import (
    Alert,
    AlertType,
    AuditEventBuilder,
    Insight,
    InsightReport,
    InsightType,
    Recommendation,
    utc_now,
)
from prospera.services.storage import FinanceRepository, StorageError


BASE_SCORE = 70
ACHIEVEMENT_POINTS = 3
WARNING_PENALTY = 2
MAX_RECOMMENDATION_POINTS = 5

# Stored alert category -> insight type, for INSIGHTS_REUSE_STORED_ALERTS
STORED_ALERT_INSIGHT_TYPES = {
    AlertType.BILL: InsightType.WARNING,
    AlertType.EXPENSE: InsightType.WARNING,
    AlertType.TAX: InsightType.WARNING,
    AlertType.ACHIEVEMENT: InsightType.ACHIEVEMENT,
    AlertType.INVESTMENT: InsightType.SUGGESTION,
    AlertType.ASSET: InsightType.SUGGESTION,
}


class AlertNotifier(Protocol):
    """Receives freshly persisted alerts (the immediate email path)."""

    async def enqueue_immediate(self, user_id: UUID, alerts: list[Alert]) -> int:
        ...


def calculate_score(insights: list[Insight], recommendations: list) -> int:
    """
    Financial health score in [0, 100].

    70, plus 3 per achievement, minus 2 per warning, plus one per
    recommendation up to 5.
    """
    achievements = sum(1 for i in insights if i.type == InsightType.ACHIEVEMENT)
    warnings = sum(1 for i in insights if i.type == InsightType.WARNING)
    score = (
        BASE_SCORE
        + achievements * ACHIEVEMENT_POINTS
        - warnings * WARNING_PENALTY
        + min(len(recommendations), MAX_RECOMMENDATION_POINTS)
    )
    return max(0, min(100, score))


def alert_to_insight(alert: Alert) -> Insight:
    """Present a stored alert as an insight."""
    return Insight(
        id=str(alert.id),
        type=STORED_ALERT_INSIGHT_TYPES.get(alert.type, InsightType.FEATURE),
        title=alert.title,
        description=alert.description,
        impact=alert.priority,
        date=alert.date,
        alert_type=alert.type,
    )


def _utc_day(moment: datetime) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).date()


def insights_to_alerts(user_id: UUID, insights: list[Insight]) -> list[Alert]:
    """Alerts for every insight that has an alert category."""
    return [
        Alert(
            user_id=user_id,
            type=insight.alert_type,
            title=insight.title,
            description=insight.description,
            date=insight.date,
            priority=insight.impact,
            related_entity="insight",
            related_id=insight.key or insight.id,
        )
        for insight in insights
        if insight.alert_type is not None
    ]


class InsightGenerator:
    """
    Produces the insight report for one user.

    Usage:
        generator = InsightGenerator(repository)
        report = await generator.generate(user_id)
    """

    def __init__(
        self,
        repository: FinanceRepository,
        registry: Optional[InsightRuleRegistry] = None,
        audit_logger: Optional[AuditLogger] = None,
        notifier: Optional[AlertNotifier] = None,
        settings: Optional[InsightSettings] = None,
    ):
        self._repository = repository
        self._registry = registry or default_registry()
        self._audit = audit_logger or AuditLogger()
        self._notifier = notifier
        self._settings = settings or get_settings().insights

    @property
    def registry(self) -> InsightRuleRegistry:
        return self._registry

    async def generate(
        self,
        user_id: UUID,
        now: Optional[datetime] = None,
    ) -> InsightReport:
        """
        Build the insight report.

        Raises:
            StorageError: If the user's data cannot be read at all
        """
        now = now or utc_now()
        correlation_id = create_correlation_id()

        insights = None
        if self._settings.reuse_stored_alerts:
            insights = await self._stored_insights(user_id)
        if not insights:
            insights = await self._evaluate_rules(user_id, now, correlation_id)
            if self._settings.persist_generated:
                await self.persist(user_id, insights, correlation_id)

        recommendations = await self._recommendations(user_id, correlation_id)
        score = calculate_score(insights, recommendations)

        await self._audit.log(
            AuditEventBuilder.insights_generated(
                user_id, len(insights), score, correlation_id
            )
        )
        return InsightReport(
            insights=insights,
            recommendations=recommendations,
            score=score,
        )

    async def _stored_insights(self, user_id: UUID) -> list[Insight]:
        alerts = await self._repository.list_alerts(
            user_id, limit=self._settings.stored_alert_limit
        )
        return [alert_to_insight(a) for a in alerts]

    async def _evaluate_rules(
        self,
        user_id: UUID,
        now: datetime,
        correlation_id: UUID,
    ) -> list[Insight]:
        snapshot = await self._repository.load_snapshot(user_id)
        for table in snapshot.unavailable:
            await self._audit.log_storage_error(
                f"select {table}", "table unavailable", user_id, correlation_id
            )

        insights, failures = self._registry.evaluate(snapshot, now)
        for failure in failures:
            await self._audit.log_rule_failed(
                user_id, failure.rule_name, str(failure.error), correlation_id
            )
        return insights

    async def _recommendations(
        self,
        user_id: UUID,
        correlation_id: UUID,
    ) -> list[Recommendation]:
        try:
            return await self._repository.list_recommendations(user_id)
        except StorageError as e:
            await self._audit.log_storage_error(
                "select goal_recommendations", str(e), user_id, correlation_id
            )
            return []

    async def persist(
        self,
        user_id: UUID,
        insights: list[Insight],
        correlation_id: Optional[UUID] = None,
    ) -> list[Alert]:
        """
        Store insights as alerts and notify the immediate email path.

        A finding already stored for the same UTC day is not stored or
        notified again.

        Storage failures are logged; the report is returned regardless.
        """
        correlation_id = correlation_id or create_correlation_id()
        alerts = insights_to_alerts(user_id, insights)
        if not alerts:
            return []

        # One alert per finding per UTC day, however often the report is built
        try:
            existing = await self._repository.list_alerts_related_to(
                user_id, [a.related_id for a in alerts]
            )
            seen = {(a.related_id, _utc_day(a.date)) for a in existing}
            new = [a for a in alerts if (a.related_id, _utc_day(a.date)) not in seen]
            stored = await self._repository.insert_alerts(new)
        except StorageError as e:
            await self._audit.log_storage_error(
                "insert alerts", str(e), user_id, correlation_id
            )
            return []

        await self._audit.log(
            AuditEventBuilder.alerts_generated(user_id, len(stored), True, correlation_id)
        )
        if self._notifier is not None and stored:
            await self._notifier.enqueue_immediate(user_id, stored)
        return stored
