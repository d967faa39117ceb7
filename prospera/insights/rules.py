"""
Insight Rules

DESIGN DECISION: Each insight is produced by an independent rule
object. A rule is a pure function of a UserSnapshot and the current
time: no storage access, no shared state. The registry decides the
order in which rules run, and the output keeps that order.

Adding a rule means writing one class and registering it; no other
rule changes.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

import structlog

from prospera import valuation
from prospera.bills import is_unpaid_past_due
from prospera.models import (
    AlertPriority,
    AlertType,
    GoalStatus,
    Insight,
    InsightType,
    TransactionType,
    UserSnapshot,
    new_insight_id,
)


logger = structlog.get_logger(__name__)


# Thresholds
SAVINGS_SHARE = 0.2              # share of the top category we suggest cutting
MIN_INVESTMENT_TYPES = 3
LOW_INTEREST_RATE = 5.0          # % per year
LOW_DIVIDEND_YIELD = 3.0         # % per year
GOAL_PROGRESS_MILESTONE = 75.0   # % of target
LOW_RENTAL_YIELD = 4.0           # % per year
HIGH_DEPRECIATION_RATE = 15.0    # % per year


class InsightRule(ABC):
    """
    One independent insight rule.

    alert_type is the category used when the rule's insights are
    persisted as alerts; None means they are never persisted.
    """

    name: str = "rule"
    alert_type: Optional[AlertType] = None

    @abstractmethod
    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        """Return zero or more insights for this snapshot."""
        pass

    def _insight(self, prefix: str, suffix: Optional[object] = None, **fields) -> Insight:
        fields.setdefault("alert_type", self.alert_type)
        return Insight(
            id=new_insight_id(prefix, suffix),
            key=prefix if suffix is None else f"{prefix}-{suffix}",
            **fields,
        )


# =============================================================================
# Rules
# =============================================================================

class HighestExpenseCategoryRule(InsightRule):
    """Warn about the category with the largest summed expenses."""

    name = "highest_expense_category"
    alert_type = AlertType.EXPENSE

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        totals: dict[str, float] = defaultdict(float)
        for transaction in snapshot.transactions:
            if transaction.type == TransactionType.EXPENSE:
                totals[transaction.category] += transaction.amount

        # First category reaching the maximum wins ties
        top_category, top_amount = "", 0.0
        for category, amount in totals.items():
            if amount > top_amount:
                top_category, top_amount = category, amount

        if not top_category:
            return []

        return [self._insight(
            "expense",
            type=InsightType.WARNING,
            title=f"Gastos elevados em {top_category}",
            description=(
                f"Seus gastos com {top_category.lower()} representam uma parte "
                "significativa do seu orçamento."
            ),
            impact=AlertPriority.HIGH,
            date=now,
            potential_savings=round(top_amount * SAVINGS_SHARE),
        )]


class InvestmentDiversificationRule(InsightRule):
    """Suggest diversifying when the portfolio spans too few types."""

    name = "investment_diversification"
    alert_type = AlertType.INVESTMENT

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        if not snapshot.investments:
            return []
        if len({i.type for i in snapshot.investments}) >= MIN_INVESTMENT_TYPES:
            return []

        return [self._insight(
            "investment",
            type=InsightType.SUGGESTION,
            title="Diversifique seus investimentos",
            description=(
                "Sua carteira está concentrada em poucos tipos de investimentos. "
                "Considere diversificar para reduzir riscos."
            ),
            impact=AlertPriority.MEDIUM,
            date=now,
            difficulty="medium",
        )]


class LowYieldInvestmentRule(InsightRule):
    """Suggest reallocating positions that yield below the market."""

    name = "low_yield_investments"
    alert_type = AlertType.INVESTMENT

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        low_yield = [
            i for i in snapshot.investments
            if (i.interest_rate and i.interest_rate < LOW_INTEREST_RATE)
            or (i.dividend_yield and i.dividend_yield < LOW_DIVIDEND_YIELD)
        ]
        if not low_yield:
            return []

        return [self._insight(
            "low-yield",
            type=InsightType.SUGGESTION,
            title="Otimize investimentos de baixo rendimento",
            description=(
                "Você tem investimentos com rendimento abaixo da média do mercado. "
                "Considere realocá-los para opções mais rentáveis."
            ),
            impact=AlertPriority.HIGH,
            date=now,
            difficulty="medium",
        )]


class OverdueBillsRule(InsightRule):
    """Warn about active bills past their due date and not paid."""

    name = "overdue_bills"
    alert_type = AlertType.BILL

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        overdue = [b for b in snapshot.bills if is_unpaid_past_due(b, now.date())]
        if not overdue:
            return []

        count = len(overdue)
        return [self._insight(
            "overdue-bills",
            type=InsightType.WARNING,
            title=f"{count} contas em atraso",
            description=f"Você tem {count} contas vencidas que precisam de atenção imediata.",
            impact=AlertPriority.HIGH,
            date=now,
        )]


class FinancialGoalProgressRule(InsightRule):
    """
    One insight per active goal, first match wins:
    complete, past the progress milestone, or past its target date.
    """

    name = "financial_goal_progress"
    alert_type = AlertType.ACHIEVEMENT

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        insights = []
        for goal in snapshot.goals:
            if goal.status != GoalStatus.ACTIVE:
                continue
            progress = goal.progress_percentage
            if progress is None:
                continue

            if progress >= 100:
                insights.append(self._insight(
                    "goal-complete", goal.id,
                    type=InsightType.ACHIEVEMENT,
                    title=f"Meta atingida: {goal.name}",
                    description=(
                        f"Parabéns! Você atingiu sua meta financeira de {goal.name}."
                    ),
                    impact=AlertPriority.HIGH,
                    date=now,
                ))
            elif progress >= GOAL_PROGRESS_MILESTONE:
                insights.append(self._insight(
                    "goal-progress", goal.id,
                    type=InsightType.ACHIEVEMENT,
                    title=f"Progresso significativo: {goal.name}",
                    description=(
                        f"Você já atingiu {round(progress)}% da sua meta de {goal.name}."
                    ),
                    impact=AlertPriority.MEDIUM,
                    date=now,
                ))
            elif goal.target_date < now.date():
                insights.append(self._insight(
                    "goal-overdue", goal.id,
                    type=InsightType.WARNING,
                    title=f"Meta atrasada: {goal.name}",
                    description=(
                        f"Sua meta de {goal.name} está atrasada. Considere revisar "
                        "o prazo ou aumentar as contribuições."
                    ),
                    impact=AlertPriority.HIGH,
                    date=now,
                    alert_type=AlertType.EXPENSE,
                ))
        return insights


class RealEstateRentalRule(InsightRule):
    """Suggest renting idle properties and reviewing low rents."""

    name = "real_estate_rental"
    alert_type = AlertType.ASSET

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        insights = []

        unrented = [p for p in snapshot.real_estate if not p.is_rented]
        if unrented:
            insights.append(self._insight(
                "property-rent",
                type=InsightType.SUGGESTION,
                title="Potencial de renda com imóveis",
                description=(
                    f"Você tem {len(unrented)} imóvel(is) não alugado(s). "
                    "Considere alugar para gerar renda passiva."
                ),
                impact=AlertPriority.MEDIUM,
                date=now,
                difficulty="medium",
            ))

        low_yield = []
        for prop in snapshot.real_estate:
            annual_yield = valuation.rental_annual_yield(prop)
            if annual_yield is not None and annual_yield < LOW_RENTAL_YIELD:
                low_yield.append(prop)
        if low_yield:
            insights.append(self._insight(
                "property-yield",
                type=InsightType.SUGGESTION,
                title="Imóveis com baixo rendimento",
                description=(
                    f"Você tem {len(low_yield)} imóvel(is) com rendimento abaixo da "
                    "média do mercado. Considere revisar o valor do aluguel."
                ),
                impact=AlertPriority.MEDIUM,
                date=now,
                difficulty="hard",
            ))

        return insights


class VehicleDepreciationRule(InsightRule):
    """Warn about vehicles losing value faster than average."""

    name = "vehicle_depreciation"
    alert_type = AlertType.ASSET

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        fast = [
            v for v in snapshot.vehicles
            if v.depreciation_rate is not None
            and v.depreciation_rate > HIGH_DEPRECIATION_RATE
        ]
        if not fast:
            return []

        return [self._insight(
            "vehicle-depreciation",
            type=InsightType.WARNING,
            title="Veículos com alta depreciação",
            description=(
                f"Você tem {len(fast)} veículo(s) com taxa de depreciação acima da "
                "média. Considere vender antes de maior desvalorização."
            ),
            impact=AlertPriority.MEDIUM,
            date=now,
        )]


class FeatureAnnouncementRule(InsightRule):
    """Product announcements, appended for every user."""

    name = "feature_announcements"
    alert_type = None

    def evaluate(self, snapshot: UserSnapshot, now: datetime) -> list[Insight]:
        return [
            self._insight(
                "feature-access",
                type=InsightType.FEATURE,
                title="Novo recurso: Gerenciamento de Acessos",
                description=(
                    "O plano Family agora permite compartilhar acesso à sua conta "
                    "com familiares e colaboradores."
                ),
                impact=AlertPriority.HIGH,
                date=now,
            ),
            self._insight(
                "feature-sharing",
                type=InsightType.FEATURE,
                title="Novo recurso: Compartilhamento Familiar",
                description=(
                    "Agora você pode compartilhar o acesso à sua conta com até 5 "
                    "membros da família no plano Family."
                ),
                impact=AlertPriority.HIGH,
                date=now,
            ),
        ]


# =============================================================================
# Registry
# =============================================================================

class RuleFailure(Exception):
    """A rule raised while evaluating; carries the rule name."""

    def __init__(self, rule_name: str, error: Exception):
        super().__init__(f"{rule_name}: {error}")
        self.rule_name = rule_name
        self.error = error


class InsightRuleRegistry:
    """
    Ordered collection of insight rules.

    Rules run in registration order; every rule runs, and one raising
    does not stop the others.
    """

    def __init__(self, rules: Optional[Iterable[InsightRule]] = None):
        self._rules: list[InsightRule] = []
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: InsightRule, position: Optional[int] = None) -> None:
        if any(r.name == rule.name for r in self._rules):
            raise ValueError(f"Rule already registered: {rule.name}")
        if position is None:
            self._rules.append(rule)
        else:
            self._rules.insert(position, rule)

    def unregister(self, name: str) -> None:
        self._rules = [r for r in self._rules if r.name != name]

    @property
    def rules(self) -> list[InsightRule]:
        return list(self._rules)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self._rules]

    def evaluate(
        self,
        snapshot: UserSnapshot,
        now: datetime,
    ) -> tuple[list[Insight], list[RuleFailure]]:
        """Run every rule. Returns the insights in rule order and the failures."""
        insights: list[Insight] = []
        failures: list[RuleFailure] = []
        for rule in self._rules:
            try:
                insights.extend(rule.evaluate(snapshot, now))
            except Exception as e:
                logger.error("insight_rule_failed", rule=rule.name, error=str(e))
                failures.append(RuleFailure(rule.name, e))
        return insights, failures


def default_registry() -> InsightRuleRegistry:
    """The product's rules in their display order."""
    return InsightRuleRegistry([
        HighestExpenseCategoryRule(),
        InvestmentDiversificationRule(),
        LowYieldInvestmentRule(),
        OverdueBillsRule(),
        FinancialGoalProgressRule(),
        RealEstateRentalRule(),
        VehicleDepreciationRule(),
        FeatureAnnouncementRule(),
    ])
