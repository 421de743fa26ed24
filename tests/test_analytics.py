"""Tests for spending patterns, the financial score and cash-flow projection."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from chatledger.analytics import (
    FinancialAnalytics,
    SpendingPatternAnalyzer,
    classify_trend,
    score_finances,
    volatility,
)
from chatledger.models.ledger import Transaction, TransactionKind
from chatledger.models.results import Trend


USER_ID = "user-1"
NOW = datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


async def record(repository, category, amount, kind, occurred_at):
    await repository.add_transaction(Transaction(
        user_id=USER_ID,
        category_id=category.id,
        amount=Decimal(str(amount)),
        kind=kind,
        occurred_at=occurred_at,
    ))


class TestTrendAndVolatility:
    """Pure helpers."""

    def test_trend_halves(self):
        """Test the first half is compared with the last half."""
        assert classify_trend([Decimal("100"), Decimal("100"), Decimal("200"), Decimal("200")]) == Trend.INCREASING
        assert classify_trend([Decimal("200"), Decimal("200"), Decimal("100"), Decimal("100")]) == Trend.DECREASING
        assert classify_trend([Decimal("100"), Decimal("110")]) == Trend.STABLE

    def test_trend_needs_two_months(self):
        """Test a single month is stable."""
        assert classify_trend([Decimal("100")]) == Trend.STABLE
        assert classify_trend([]) == Trend.STABLE

    def test_volatility(self):
        """Test stdev over mean, zero for flat or empty input."""
        assert volatility([Decimal("100"), Decimal("100")]) == 0.0
        assert volatility([]) == 0.0
        assert volatility([Decimal("100"), Decimal("300")]) == pytest.approx(0.5)


class TestSpendingPatternAnalyzer:
    """Per-category monthly aggregation."""

    async def test_groups_by_category_and_month(self, repository, categories, seeded):
        """Test expenses are grouped; income and old months are ignored."""
        shopping = await categories.get(USER_ID, "Shopping")
        salary = await categories.get(USER_ID, "Salary")
        await record(repository, shopping, 100, TransactionKind.EXPENSE, datetime(2024, 6, 5, tzinfo=timezone.utc))
        await record(repository, shopping, 50, TransactionKind.EXPENSE, datetime(2024, 6, 25, tzinfo=timezone.utc))
        await record(repository, shopping, 200, TransactionKind.EXPENSE, NOW)
        await record(repository, shopping, 999, TransactionKind.EXPENSE, datetime(2023, 1, 1, tzinfo=timezone.utc))
        await record(repository, salary, 5000, TransactionKind.INCOME, NOW)

        patterns = await SpendingPatternAnalyzer(repository).analyze(USER_ID, months=6, now=NOW)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.category_name == "Shopping"
        assert pattern.months == ["2024-06", "2024-07"]
        assert pattern.monthly_amounts == [Decimal("150"), Decimal("200")]
        assert pattern.monthly_average == Decimal("175.00")

    async def test_sorted_by_average(self, repository, categories, seeded):
        """Test the biggest spender comes first."""
        await record(repository, await categories.get(USER_ID, "Shopping"), 100, TransactionKind.EXPENSE, NOW)
        await record(repository, await categories.get(USER_ID, "Healthcare"), 300, TransactionKind.EXPENSE, NOW)

        patterns = await SpendingPatternAnalyzer(repository).analyze(USER_ID, now=NOW)
        assert [p.category_name for p in patterns] == ["Healthcare", "Shopping"]


class TestFinancialScore:
    """The score always lands in [0, 100]."""

    @pytest.mark.parametrize("income,expense,balance,active", [
        ("0", "0", "0", False),
        ("0", "5000", "-5000", True),
        ("1000", "5000", "-100000", True),
        ("100000", "0", "10000000", True),
        ("1", "1000000000", "-1000000000", False),
        ("1000000000", "1", "1000000000", True),
    ])
    def test_bounds(self, income, expense, balance, active):
        """Test extreme inputs stay within bounds."""
        result = score_finances(Decimal(income), Decimal(expense), Decimal(balance), active)
        assert 0 <= result.score <= 100

    def test_no_data(self):
        """Test an empty ledger scores a neutral-low value."""
        result = score_finances(Decimal("0"), Decimal("0"), Decimal("0"), False)
        assert result.components["savings_rate"] == 5
        assert result.components["income"] == 0
        assert result.components["expense_ratio"] == 2
        assert result.score == 50 + sum(result.components.values())

    def test_healthy_month_caps_at_100(self):
        """Test a very strong month is clamped to 100."""
        result = score_finances(Decimal("10000"), Decimal("2000"), Decimal("100000"), True)
        assert result.score == 100

    def test_deficit_month(self):
        """Test negative cash flow costs points."""
        result = score_finances(Decimal("1000"), Decimal("2000"), Decimal("-500"), True)
        assert result.components["savings_rate"] == -10
        assert result.components["cash_flow"] == -15
        assert result.components["emergency_fund"] == -10
        assert result.score < 50


class TestFinancialAnalytics:
    """Ledger-backed summary and projection."""

    @pytest.fixture
    def analytics(self, repository):
        return FinancialAnalytics(repository)

    async def test_empty_ledger(self, analytics, seeded):
        """Test no data gives zeros and an indefinite burn rate."""
        summary = await analytics.monthly_summary(USER_ID, now=NOW)
        projection = await analytics.cash_flow(USER_ID, now=NOW)
        score = await analytics.financial_score(USER_ID, now=NOW)

        assert summary.balance == Decimal("0")
        assert summary.transaction_count == 0
        assert not summary.has_recent_activity
        assert projection.burn_rate_days is None
        assert len(projection.weekly_trend) == 5
        assert 0 <= score.score <= 100

    async def test_summary(self, analytics, repository, categories, seeded):
        """Test month totals, lifetime balance and the three newest entries."""
        salary = await categories.get(USER_ID, "Salary")
        shopping = await categories.get(USER_ID, "Shopping")
        await record(repository, salary, 1000, TransactionKind.INCOME, datetime(2024, 6, 1, tzinfo=timezone.utc))
        await record(repository, salary, 3000, TransactionKind.INCOME, datetime(2024, 7, 1, tzinfo=timezone.utc))
        for day in (5, 10, 15):
            await record(repository, shopping, 100, TransactionKind.EXPENSE, datetime(2024, 7, day, tzinfo=timezone.utc))

        summary = await analytics.monthly_summary(USER_ID, now=NOW)

        assert summary.income == Decimal("3000")
        assert summary.expense == Decimal("300")
        assert summary.balance == Decimal("3700")
        assert summary.transaction_count == 4
        assert summary.has_recent_activity
        assert [t.occurred_at.day for t in summary.recent] == [15, 10, 5]

    async def test_burn_rate(self, analytics, repository, categories, seeded):
        """Test days of runway when spending outpaces income."""
        salary = await categories.get(USER_ID, "Salary")
        shopping = await categories.get(USER_ID, "Shopping")
        await record(repository, salary, 6000, TransactionKind.INCOME, datetime(2024, 1, 1, tzinfo=timezone.utc))
        await record(repository, shopping, 3000, TransactionKind.EXPENSE, NOW - timedelta(days=2))

        projection = await analytics.cash_flow(USER_ID, now=NOW)

        assert projection.daily_expense == Decimal("100.00")
        assert projection.weekly_expense == Decimal("700.00")
        assert projection.current_balance == Decimal("3000")
        assert projection.burn_rate_days == 30
        assert projection.monthly_cash_flow == Decimal("-3000")
        assert projection.projected_balance == Decimal("-6000")

    async def test_burn_rate_zero_when_already_broke(self, analytics, repository, categories, seeded):
        """Test a non-positive balance with outflow has zero days left."""
        await record(repository, await categories.get(USER_ID, "Shopping"), 500, TransactionKind.EXPENSE, NOW)
        projection = await analytics.cash_flow(USER_ID, now=NOW)
        assert projection.burn_rate_days == 0

    async def test_weekly_trend_buckets(self, analytics, repository, categories, seeded):
        """Test the five buckets end at the start of today, oldest first."""
        shopping = await categories.get(USER_ID, "Shopping")
        await record(repository, shopping, 70, TransactionKind.EXPENSE, datetime(2024, 7, 18, tzinfo=timezone.utc))

        projection = await analytics.cash_flow(USER_ID, now=NOW)
        trend = projection.weekly_trend

        assert trend[-1].end == datetime(2024, 7, 20, tzinfo=timezone.utc)
        assert trend[0].start == datetime(2024, 6, 15, tzinfo=timezone.utc)
        assert trend[-1].expense == Decimal("70")
        assert sum(w.expense for w in trend[:-1]) == 0
