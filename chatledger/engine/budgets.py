"""
Budget Engine

Per (user, category) there is at most one budget. Its life cycle:

    NoBudget -> Active <-> (Info | Danger | Exceeded) -> deleted

The tier is never stored. Spend is recomputed from the ledger over the
budget window on every check, and the tier is a pure function of
(spent, amount):

    < 60%        silent
    [60%, 80%)   info
    [80%, 100%)  danger
    >= 100%      exceeded

Windows are calendar periods in the user's timezone (monthly: first of
month to first of next month; weekly: Monday to Monday). When a stored
window has elapsed, checks evaluate the period containing now without
writing anything back.

After an expense, the engine either checks the category's budget (if
one exists) or recommends one from the spending pattern. Never both.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from chatledger.analytics.patterns import SpendingPatternAnalyzer
from chatledger.engine.categories import CategoryRegistry
from chatledger.errors import BudgetNotFound, ValidationError
from chatledger.models.ledger import Budget, BudgetPeriod, Category, TransactionKind, utc_now
from chatledger.models.results import (
    AlertTier,
    BudgetAlert,
    BudgetOverview,
    BudgetRecommendation,
    BudgetStatus,
    RiskLevel,
    Trend,
)
from chatledger.parsing.dates import month_window, to_utc, week_window
from chatledger.services.storage import LedgerRepository


CENTS = Decimal("0.01")

RECOMMENDATION_MULTIPLIERS = {
    Trend.STABLE: Decimal("1.10"),
    Trend.INCREASING: Decimal("1.15"),
    Trend.DECREASING: Decimal("0.95"),
}


def alert_tier(
    spent: Decimal,
    amount: Decimal,
    info_percent: float = 60.0,
    danger_percent: float = 80.0,
    exceeded_percent: float = 100.0,
) -> AlertTier:
    """Tier for a spend level. Pure and idempotent."""
    percentage = usage_percent(spent, amount)
    if percentage >= exceeded_percent:
        return AlertTier.EXCEEDED
    if percentage >= danger_percent:
        return AlertTier.DANGER
    if percentage >= info_percent:
        return AlertTier.INFO
    return AlertTier.SILENT


def usage_percent(spent: Decimal, amount: Decimal) -> float:
    if amount <= 0:
        raise ValidationError("Budget amount must be positive")
    return float(Decimal(spent) / Decimal(amount) * 100)


def budget_window(period: BudgetPeriod, now: datetime, tz: str) -> tuple[datetime, datetime]:
    if period == BudgetPeriod.WEEKLY:
        return week_window(now, tz)
    return month_window(now, tz)


def risk_level(trend: Trend, volatility: float) -> RiskLevel:
    if volatility > 0.5 or (trend == Trend.INCREASING and volatility > 0.3):
        return RiskLevel.HIGH
    if volatility > 0.25 or trend == Trend.INCREASING:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommendation_score(volatility: float) -> int:
    return int(max(60, min(95, round(100 - volatility * 100))))


class BudgetEngine:
    """Create/update/delete/check/list budgets, alerts and recommendations."""

    def __init__(
        self,
        repository: LedgerRepository,
        categories: CategoryRegistry,
        analyzer: SpendingPatternAnalyzer,
        info_percent: float = 60.0,
        danger_percent: float = 80.0,
        exceeded_percent: float = 100.0,
        lookback_months: int = 6,
    ):
        self._repository = repository
        self._categories = categories
        self._analyzer = analyzer
        self._info_percent = info_percent
        self._danger_percent = danger_percent
        self._exceeded_percent = exceeded_percent
        self._lookback_months = lookback_months

    def tier_for(self, spent: Decimal, amount: Decimal) -> AlertTier:
        return alert_tier(
            spent,
            amount,
            info_percent=self._info_percent,
            danger_percent=self._danger_percent,
            exceeded_percent=self._exceeded_percent,
        )

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def upsert(
        self,
        user_id: str,
        category_name: str,
        amount: Decimal,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> tuple[Budget, Category, bool]:
        """
        Create or replace the budget for a category.

        Returns:
            (budget, category, created)

        Raises:
            ValidationError: Non-positive amount
            CategoryNotFound: Unknown category (with suggestions)
        """
        if amount is None or amount <= 0:
            raise ValidationError("Budget amount must be greater than zero")

        category = await self._categories.get(user_id, category_name)
        start_at, end_at = budget_window(period, to_utc(now or utc_now()), tz)

        budget = await self._repository.get_budget_for_category(user_id, category.id)
        created = budget is None
        if created:
            budget = Budget(
                user_id=user_id,
                category_id=category.id,
                amount=amount,
                period=period,
                start_at=start_at,
                end_at=end_at,
            )
        else:
            # Revalidate as a whole so the window pair is checked together
            budget = Budget.model_validate({
                **budget.model_dump(),
                "amount": amount,
                "period": period,
                "start_at": start_at,
                "end_at": end_at,
                "updated_at": utc_now(),
            })

        return await self._repository.save_budget(budget), category, created

    async def delete(self, user_id: str, category_name: str) -> tuple[Budget, Category]:
        category = await self._categories.get(user_id, category_name)
        budget = await self._repository.get_budget_for_category(user_id, category.id)
        if budget is None:
            raise BudgetNotFound(f"No budget for {category.name}", suggestions=[category.name])
        await self._repository.delete_budget(user_id, budget.id)
        return budget, category

    async def check(
        self,
        user_id: str,
        category_name: Optional[str] = None,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> Union[BudgetStatus, BudgetOverview]:
        """
        One category's budget status, or every budget with totals.

        Raises:
            BudgetNotFound: A category was named but has no budget
        """
        if category_name is None:
            return await self.overview(user_id, tz=tz, now=now)

        category = await self._categories.get(user_id, category_name)
        budget = await self._repository.get_budget_for_category(user_id, category.id)
        if budget is None:
            budgeted = await self._budgeted_category_names(user_id)
            raise BudgetNotFound(f"No budget for {category.name}", suggestions=budgeted)
        return await self.status(budget, category.name, tz=tz, now=now)

    async def overview(
        self,
        user_id: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> BudgetOverview:
        names = {c.id: c.name for c in await self._categories.list_all(user_id)}
        statuses = [
            await self.status(budget, names.get(budget.category_id, "Unknown"), tz=tz, now=now)
            for budget in await self._repository.list_budgets(user_id)
        ]
        statuses.sort(key=lambda s: s.category_name.casefold())
        return BudgetOverview(statuses=statuses)

    async def _budgeted_category_names(self, user_id: str) -> list[str]:
        names = {c.id: c.name for c in await self._categories.list_all(user_id)}
        return sorted(
            (names[b.category_id] for b in await self._repository.list_budgets(user_id)
             if b.category_id in names),
            key=str.casefold,
        )

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    async def status(
        self,
        budget: Budget,
        category_name: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> BudgetStatus:
        now = to_utc(now or utc_now())
        start_at, end_at = budget.start_at, budget.end_at
        if now >= end_at or now < start_at:
            # Elapsed (or not yet started): evaluate the current period, read-only
            start_at, end_at = budget_window(budget.period, now, tz)

        transactions = await self._repository.list_transactions(
            budget.user_id,
            start=start_at,
            end=end_at,
            category_id=budget.category_id,
            kind=TransactionKind.EXPENSE,
        )
        spent = sum((t.amount for t in transactions), Decimal("0"))

        return BudgetStatus(
            budget_id=budget.id,
            category_id=budget.category_id,
            category_name=category_name,
            amount=budget.amount,
            spent=spent,
            period=budget.period,
            window_start=start_at,
            window_end=end_at,
            percentage=usage_percent(spent, budget.amount),
            tier=self.tier_for(spent, budget.amount),
        )

    async def recommend(
        self,
        user_id: str,
        category: Category,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> Optional[BudgetRecommendation]:
        """Recommendation from the trailing spending pattern, None without history."""
        patterns = await self._analyzer.analyze(
            user_id,
            months=self._lookback_months,
            tz=tz,
            category_id=category.id,
            now=now,
        )
        if not patterns:
            return None

        pattern = patterns[0]
        multiplier = RECOMMENDATION_MULTIPLIERS[pattern.trend]
        return BudgetRecommendation(
            category_id=category.id,
            category_name=category.name,
            recommended_amount=(pattern.monthly_average * multiplier).quantize(CENTS, ROUND_HALF_UP),
            monthly_average=pattern.monthly_average,
            trend=pattern.trend,
            volatility=pattern.volatility,
            score=recommendation_score(pattern.volatility),
            risk_level=risk_level(pattern.trend, pattern.volatility),
            months_analyzed=len(pattern.months),
        )

    async def after_expense(
        self,
        user_id: str,
        category: Category,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> tuple[Optional[BudgetAlert], Optional[BudgetRecommendation]]:
        """
        Follow-up for a freshly written expense.

        Returns (alert, None) when a budget exists and is past the info
        tier, (None, None) when it exists but is silent, and
        (None, recommendation) when the category has no budget.
        """
        budget = await self._repository.get_budget_for_category(user_id, category.id)
        if budget is not None:
            status = await self.status(budget, category.name, tz=tz, now=now)
            if status.tier == AlertTier.SILENT:
                return None, None
            return BudgetAlert(status=status), None

        return None, await self.recommend(user_id, category, tz=tz, now=now)
