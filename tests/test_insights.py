"""
Tests for the insight rules, the rule registry and the generator.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conftest import seed
from prospera.config.settings import InsightSettings
from prospera.insights import (
    FeatureAnnouncementRule,
    FinancialGoalProgressRule,
    HighestExpenseCategoryRule,
    InsightGenerator,
    InsightRule,
    InsightRuleRegistry,
    InvestmentDiversificationRule,
    LowYieldInvestmentRule,
    OverdueBillsRule,
    RealEstateRentalRule,
    VehicleDepreciationRule,
    alert_to_insight,
    calculate_score,
    default_registry,
    insights_to_alerts,
)
from prospera.models import (
    Alert,
    AlertPriority,
    AlertType,
    Bill,
    BillPaymentStatus,
    FinancialGoal,
    GoalStatus,
    Insight,
    InsightType,
    Investment,
    RealEstate,
    Transaction,
    TransactionType,
    UserSnapshot,
    Vehicle,
)
from prospera.services.storage.repository import (
    ALERTS,
    BILLS,
    GOAL_RECOMMENDATIONS,
    INVESTMENTS,
    TRANSACTIONS,
)


NOW = datetime(2026, 10, 19, 12, tzinfo=timezone.utc)


def make_insight(type: InsightType) -> Insight:
    return Insight(
        id=f"{type.value}-{uuid4().hex[:6]}",
        type=type,
        title="t",
        description="d",
        impact=AlertPriority.LOW,
    )


def expense(user_id, category, amount) -> Transaction:
    return Transaction(
        user_id=user_id,
        type=TransactionType.EXPENSE,
        amount=amount,
        category=category,
        date=NOW.date(),
    )


def goal(user_id, current, target_date=date(2027, 6, 1), **overrides) -> FinancialGoal:
    fields = {
        "user_id": user_id,
        "name": "Reserva",
        "target_amount": 1000,
        "current_amount": current,
        "target_date": target_date,
    }
    fields.update(overrides)
    return FinancialGoal(**fields)


class TestScore:
    """Tests for the financial health score."""

    def test_score_formula(self):
        """Test 3 achievements, 2 warnings and 4 recommendations score 79."""
        insights = (
            [make_insight(InsightType.ACHIEVEMENT)] * 3
            + [make_insight(InsightType.WARNING)] * 2
            + [make_insight(InsightType.SUGGESTION)]
        )
        assert calculate_score(insights, [{}] * 4) == 79

    def test_recommendations_capped(self):
        assert calculate_score([], [{}] * 50) == 75

    def test_score_clamped(self):
        """Test the score stays within 0..100."""
        assert calculate_score([make_insight(InsightType.WARNING)] * 40, []) == 0
        assert calculate_score([make_insight(InsightType.ACHIEVEMENT)] * 20, []) == 100

    def test_empty(self):
        assert calculate_score([], []) == 70


class TestRules:
    """Tests for each rule in isolation."""

    def test_highest_expense_category(self, user_id):
        """Test the category with the largest sum is reported."""
        snapshot = UserSnapshot(user_id=user_id, transactions=[
            expense(user_id, "moradia", 1500),
            expense(user_id, "Lazer", 800),
            expense(user_id, "Lazer", 900),
        ])

        [insight] = HighestExpenseCategoryRule().evaluate(snapshot, NOW)

        assert insight.type == InsightType.WARNING
        assert insight.title == "Gastos elevados em Lazer"
        assert "lazer" in insight.description
        assert insight.potential_savings == 340
        assert insight.impact == AlertPriority.HIGH
        assert insight.alert_type == AlertType.EXPENSE

    def test_highest_expense_ignores_income(self, user_id):
        income = expense(user_id, "salario", 5000).model_copy(
            update={"type": TransactionType.INCOME}
        )
        snapshot = UserSnapshot(user_id=user_id, transactions=[income])
        assert HighestExpenseCategoryRule().evaluate(snapshot, NOW) == []

    def test_diversification_single_type(self, user_id):
        """Test a portfolio of one type gets a diversification suggestion."""
        snapshot = UserSnapshot(user_id=user_id, investments=[
            Investment(user_id=user_id, name="CDB", type="renda-fixa", amount=1000),
        ])
        [insight] = InvestmentDiversificationRule().evaluate(snapshot, NOW)
        assert insight.title == "Diversifique seus investimentos"
        assert insight.difficulty == "medium"

    def test_diversification_three_types(self, user_id):
        """Test three distinct types need no suggestion."""
        snapshot = UserSnapshot(user_id=user_id, investments=[
            Investment(user_id=user_id, name="CDB", type="renda-fixa", amount=1),
            Investment(user_id=user_id, name="PETR4", type="acoes", amount=1),
            Investment(user_id=user_id, name="BTC", type="criptomoedas", amount=1),
        ])
        assert InvestmentDiversificationRule().evaluate(snapshot, NOW) == []

    def test_diversification_no_investments(self, user_id):
        assert InvestmentDiversificationRule().evaluate(UserSnapshot(user_id=user_id), NOW) == []

    def test_low_yield(self, user_id):
        snapshot = UserSnapshot(user_id=user_id, investments=[
            Investment(user_id=user_id, name="Poupança", type="renda-fixa",
                       amount=1000, interest_rate=4.5),
        ])
        [insight] = LowYieldInvestmentRule().evaluate(snapshot, NOW)
        assert insight.impact == AlertPriority.HIGH

    def test_low_yield_not_triggered(self, user_id):
        snapshot = UserSnapshot(user_id=user_id, investments=[
            Investment(user_id=user_id, name="CDB", type="renda-fixa",
                       amount=1000, interest_rate=12),
            Investment(user_id=user_id, name="FII", type="fundos-imobiliarios",
                       amount=1000, dividend_yield=8),
        ])
        assert LowYieldInvestmentRule().evaluate(snapshot, NOW) == []

    def test_overdue_bills(self, user_id):
        """Test unpaid bills due before today are counted."""
        snapshot = UserSnapshot(user_id=user_id, bills=[
            Bill(user_id=user_id, name="Luz", amount=1, due_day=1, next_due=date(2026, 10, 1)),
            Bill(user_id=user_id, name="Água", amount=1, due_day=5, next_due=date(2026, 10, 5)),
            Bill(user_id=user_id, name="Gás", amount=1, due_day=5, next_due=date(2026, 10, 5),
                 payment_status=BillPaymentStatus.PAID),
            Bill(user_id=user_id, name="Net", amount=1, due_day=19, next_due=NOW.date()),
        ])
        [insight] = OverdueBillsRule().evaluate(snapshot, NOW)
        assert insight.title == "2 contas em atraso"
        assert insight.alert_type == AlertType.BILL

    def test_goal_progress(self, user_id):
        """Test one insight per active goal, first matching case wins."""
        complete = goal(user_id, 1000, name="Viagem")
        milestone = goal(user_id, 800, name="Carro")
        late = goal(user_id, 100, target_date=date(2026, 1, 1), name="Curso")
        late_but_close = goal(user_id, 900, target_date=date(2026, 1, 1), name="Reforma")
        paused = goal(user_id, 1000, status=GoalStatus.PAUSED)
        zero_target = goal(user_id, 0, target_amount=0)
        snapshot = UserSnapshot(
            user_id=user_id,
            goals=[complete, milestone, late, late_but_close, paused, zero_target],
        )

        insights = FinancialGoalProgressRule().evaluate(snapshot, NOW)

        assert [i.id for i in insights] == [
            f"goal-complete-{complete.id}",
            f"goal-progress-{milestone.id}",
            f"goal-overdue-{late.id}",
            f"goal-progress-{late_but_close.id}",
        ]
        assert insights[0].title == "Meta atingida: Viagem"
        assert "80%" in insights[1].description
        assert insights[2].type == InsightType.WARNING
        assert insights[2].alert_type == AlertType.EXPENSE
        assert insights[0].alert_type == AlertType.ACHIEVEMENT

    def test_real_estate(self, user_id):
        """Test idle properties and low rental yield."""
        snapshot = UserSnapshot(user_id=user_id, real_estate=[
            RealEstate(user_id=user_id, purchase_price=300000),
            RealEstate(user_id=user_id, purchase_price=400000,
                       is_rented=True, monthly_rent=1000),
            RealEstate(user_id=user_id, purchase_price=200000, current_value=100000,
                       is_rented=True, monthly_rent=1000),
        ])

        insights = RealEstateRentalRule().evaluate(snapshot, NOW)

        assert [i.title for i in insights] == [
            "Potencial de renda com imóveis",
            "Imóveis com baixo rendimento",
        ]
        assert "1 imóvel(is) não alugado(s)" in insights[0].description
        assert "1 imóvel(is) com rendimento" in insights[1].description

    def test_vehicle_depreciation(self, user_id):
        snapshot = UserSnapshot(user_id=user_id, vehicles=[
            Vehicle(user_id=user_id, purchase_price=1, purchase_date=date(2024, 1, 1),
                    depreciation_rate=20),
            Vehicle(user_id=user_id, purchase_price=1, purchase_date=date(2024, 1, 1),
                    depreciation_rate=15),
            Vehicle(user_id=user_id, purchase_price=1, purchase_date=date(2024, 1, 1)),
        ])
        [insight] = VehicleDepreciationRule().evaluate(snapshot, NOW)
        assert "1 veículo(s)" in insight.description

    def test_feature_announcements_always_present(self, user_id):
        insights = FeatureAnnouncementRule().evaluate(UserSnapshot(user_id=user_id), NOW)
        assert len(insights) == 2
        assert all(i.type == InsightType.FEATURE for i in insights)
        assert all(i.alert_type is None for i in insights)


class BrokenRule(InsightRule):
    name = "broken"

    def evaluate(self, snapshot, now):
        raise RuntimeError("boom")


class TestRegistry:
    """Tests for rule ordering and failure isolation."""

    def test_default_order(self):
        assert default_registry().names == [
            "highest_expense_category",
            "investment_diversification",
            "low_yield_investments",
            "overdue_bills",
            "financial_goal_progress",
            "real_estate_rental",
            "vehicle_depreciation",
            "feature_announcements",
        ]

    def test_failing_rule_isolated(self, user_id):
        """Test a raising rule does not stop the rules after it."""
        registry = InsightRuleRegistry([BrokenRule(), FeatureAnnouncementRule()])

        insights, failures = registry.evaluate(UserSnapshot(user_id=user_id), NOW)

        assert len(insights) == 2
        assert [f.rule_name for f in failures] == ["broken"]
        assert isinstance(failures[0].error, RuntimeError)

    def test_register_position_and_duplicates(self):
        registry = InsightRuleRegistry([FeatureAnnouncementRule()])
        registry.register(BrokenRule(), position=0)
        assert registry.names == ["broken", "feature_announcements"]

        with pytest.raises(ValueError):
            registry.register(BrokenRule())

        registry.unregister("broken")
        assert registry.names == ["feature_announcements"]

    def test_output_follows_registration_order(self, user_id):
        snapshot = UserSnapshot(user_id=user_id, investments=[
            Investment(user_id=user_id, name="CDB", type="renda-fixa", amount=1),
        ])
        registry = InsightRuleRegistry([
            FeatureAnnouncementRule(),
            InvestmentDiversificationRule(),
        ])
        insights, _ = registry.evaluate(snapshot, NOW)
        assert [i.type for i in insights] == [
            InsightType.FEATURE, InsightType.FEATURE, InsightType.SUGGESTION,
        ]


class TestConversions:
    """Tests for mapping between insights and alerts."""

    def test_insights_to_alerts_skips_features(self, user_id):
        insights = FeatureAnnouncementRule().evaluate(UserSnapshot(user_id=user_id), NOW)
        overdue = make_insight(InsightType.WARNING).model_copy(update={"alert_type": AlertType.BILL})

        alerts = insights_to_alerts(user_id, insights + [overdue])

        assert len(alerts) == 1
        assert alerts[0].type == AlertType.BILL
        assert alerts[0].related_id == overdue.id
        assert alerts[0].related_entity == "insight"

    def test_alert_to_insight(self, user_id):
        alert = Alert(user_id=user_id, type=AlertType.ACHIEVEMENT, title="Meta",
                      priority=AlertPriority.HIGH)
        insight = alert_to_insight(alert)
        assert insight.id == str(alert.id)
        assert insight.type == InsightType.ACHIEVEMENT
        assert insight.impact == AlertPriority.HIGH


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    async def enqueue_immediate(self, user_id, alerts):
        self.calls.append((user_id, alerts))
        return len(alerts)


class TestInsightGenerator:
    """Tests for the generator against the in-memory store."""

    def _seed(self, store, user_id):
        seed(
            store, TRANSACTIONS,
            expense(user_id, "moradia", 1500),
            expense(user_id, "lazer", 300),
        )
        seed(
            store, INVESTMENTS,
            Investment(user_id=user_id, name="CDB", type="renda-fixa", amount=1000),
        )
        seed(
            store, BILLS,
            Bill(user_id=user_id, name="Luz", amount=100, due_day=1, next_due=date(2026, 10, 1)),
        )

    def test_generate(self, store, repository, audit_logger, user_id):
        """Test a report with rule insights, recommendations and score."""
        self._seed(store, user_id)
        asyncio.run(store.insert(GOAL_RECOMMENDATIONS, [
            {"user_id": str(user_id), "title": "Aumente sua reserva"},
        ]))
        generator = InsightGenerator(repository, audit_logger=audit_logger,
                                     settings=InsightSettings())

        report = asyncio.run(generator.generate(user_id, NOW))

        types = [i.type for i in report.insights]
        assert types.count(InsightType.WARNING) == 2
        assert types.count(InsightType.FEATURE) == 2
        assert len(report.recommendations) == 1
        assert report.score == 70 - 4 + 1
        assert store.rows(ALERTS) == []

    def test_generate_no_data(self, repository, user_id):
        """Test a user with no rows still gets the announcements."""
        generator = InsightGenerator(repository, settings=InsightSettings())
        report = asyncio.run(generator.generate(user_id, NOW))
        assert [i.type for i in report.insights] == [InsightType.FEATURE] * 2
        assert report.score == 70

    def test_unavailable_table_does_not_fail(self, store, repository, user_id):
        self._seed(store, user_id)
        store.inject_failure("select", INVESTMENTS)
        store.inject_failure("select", GOAL_RECOMMENDATIONS)
        generator = InsightGenerator(repository, settings=InsightSettings())

        report = asyncio.run(generator.generate(user_id, NOW))

        assert all(i.title != "Diversifique seus investimentos" for i in report.insights)
        assert report.recommendations == []

    def test_persist_and_notify(self, store, repository, user_id):
        """Test persisted insights become alerts and reach the notifier."""
        self._seed(store, user_id)
        notifier = RecordingNotifier()
        generator = InsightGenerator(
            repository,
            notifier=notifier,
            settings=InsightSettings(persist_generated=True),
        )

        report = asyncio.run(generator.generate(user_id, NOW))

        rows = store.rows(ALERTS)
        persistable = [i for i in report.insights if i.type != InsightType.FEATURE]
        assert len(rows) == len(persistable) == 3
        assert {r["type"] for r in rows} == {"expense", "investment", "bill"}
        assert len(notifier.calls) == 1
        assert len(notifier.calls[0][1]) == 3

    def test_persist_once_per_day(self, store, repository, user_id):
        """Test rebuilding the report the same day stores and notifies nothing new."""
        self._seed(store, user_id)
        notifier = RecordingNotifier()
        generator = InsightGenerator(
            repository,
            notifier=notifier,
            settings=InsightSettings(persist_generated=True),
        )

        asyncio.run(generator.generate(user_id, NOW))
        asyncio.run(generator.generate(user_id, NOW + timedelta(hours=2)))

        rows = store.rows(ALERTS)
        assert len(rows) == 3
        assert "expense" in {r["related_id"] for r in rows}
        assert len(notifier.calls) == 1

        asyncio.run(generator.generate(user_id, NOW + timedelta(days=1)))
        assert len(store.rows(ALERTS)) == 6
        assert len(notifier.calls) == 2

    def test_reuse_stored_alerts(self, store, repository, user_id):
        """Test stored alerts are returned instead of running the rules."""
        stored = [
            Alert(user_id=user_id, type=AlertType.BILL, title=f"Conta {i}",
                  created_at=NOW - timedelta(minutes=i))
            for i in range(3)
        ]
        seed(store, ALERTS, *stored)
        generator = InsightGenerator(
            repository,
            settings=InsightSettings(reuse_stored_alerts=True, stored_alert_limit=2),
        )

        report = asyncio.run(generator.generate(user_id, NOW))

        assert [i.title for i in report.insights] == ["Conta 0", "Conta 1"]
        assert report.score == 70 - 4

    def test_reuse_falls_back_to_rules(self, repository, user_id):
        generator = InsightGenerator(
            repository,
            settings=InsightSettings(reuse_stored_alerts=True),
        )
        report = asyncio.run(generator.generate(user_id, NOW))
        assert len(report.insights) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
