"""
Financial Score, Cash-Flow Projection and Monthly Summary

Everything here is read-only and recomputed from the ledger on demand.

Monthly figures cover the current calendar month in the user's
timezone. Balance is lifetime income minus lifetime expenses.

The score is a sum of tiered components on top of a base of 50, then
rounded and clamped to [0, 100]. It can never leave that range, no
matter how strange the inputs (zero income, deep deficits, no data).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from chatledger.models.ledger import Transaction, TransactionKind, utc_now
from chatledger.models.results import (
    CashFlowProjection,
    FinancialScore,
    MonthlySummary,
    WeeklyFlow,
)
from chatledger.parsing.dates import month_window, start_of_today, to_utc
from chatledger.services.storage import LedgerRepository


BASE_SCORE = 50
TRAILING_DAYS = 30
TREND_WEEKS = 5
PROJECTION_MONTHS = 3
RECENT_LIMIT = 3
CENTS = Decimal("0.01")
ZERO = Decimal("0")


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, ROUND_HALF_UP)


# =============================================================================
# SCORE COMPONENTS
# =============================================================================

def _savings_rate_points(savings_rate: Decimal) -> int:
    for floor, points in ((30, 30), (20, 25), (15, 20), (10, 15), (5, 10), (0, 5)):
        if savings_rate >= floor:
            return points
    return -10


def _cash_flow_points(cash_flow: Decimal, income: Decimal) -> int:
    if cash_flow > income * Decimal("0.2"):
        return 25
    if cash_flow > income * Decimal("0.1"):
        return 20
    if cash_flow > 0:
        return 15
    if cash_flow > -income * Decimal("0.1"):
        return 5
    return -15


def _emergency_fund_points(balance: Decimal, expense: Decimal) -> int:
    if balance > expense * 6:
        return 20
    if balance > expense * 3:
        return 15
    if balance > expense:
        return 10
    if balance > 0:
        return 5
    return -10


def _income_points(income: Decimal, expense: Decimal) -> int:
    if income <= 0:
        return 0
    return 15 if income > expense * 2 else 10


def _expense_ratio_points(expense_ratio: Decimal) -> int:
    for ceiling, points in ((50, 10), (70, 7), (90, 5), (100, 2)):
        if expense_ratio <= ceiling:
            return points
    return 0


def score_finances(
    income: Decimal,
    expense: Decimal,
    balance: Decimal,
    has_recent_activity: bool,
) -> FinancialScore:
    """
    Score a month of figures.

    Args:
        income: Income this calendar month
        expense: Expenses this calendar month
        balance: Lifetime balance
        has_recent_activity: Any transaction in the trailing 30 days
    """
    if income > 0:
        savings_rate = (income - expense) / income * 100
        expense_ratio = expense / income * 100
    else:
        savings_rate = ZERO
        expense_ratio = Decimal("100")

    components = {
        "savings_rate": _savings_rate_points(savings_rate),
        "cash_flow": _cash_flow_points(income - expense, income),
        "emergency_fund": _emergency_fund_points(balance, expense),
        "income": _income_points(income, expense),
        "activity": 10 if has_recent_activity else 0,
        "expense_ratio": _expense_ratio_points(expense_ratio),
    }
    score = BASE_SCORE + sum(components.values())
    return FinancialScore(score=max(0, min(100, round(score))), components=components)


# =============================================================================
# LEDGER-BACKED ANALYTICS
# =============================================================================

@dataclass
class _Totals:
    income: Decimal = ZERO
    expense: Decimal = ZERO
    count: int = 0

    def add(self, txn: Transaction) -> None:
        if txn.kind == TransactionKind.INCOME:
            self.income += txn.amount
        else:
            self.expense += txn.amount
        self.count += 1

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


def _totals(transactions: list[Transaction], start: datetime, end: datetime) -> _Totals:
    totals = _Totals()
    for txn in transactions:
        if start <= txn.occurred_at < end:
            totals.add(txn)
    return totals


class FinancialAnalytics:
    """Monthly summary, financial score and cash-flow projection for one user."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def _ledger(self, user_id: str) -> list[Transaction]:
        # Newest first
        return await self._repository.list_transactions(user_id)

    async def monthly_summary(
        self,
        user_id: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> MonthlySummary:
        now = to_utc(now or utc_now())
        return self._summarize(await self._ledger(user_id), tz, now)

    async def financial_score(
        self,
        user_id: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> FinancialScore:
        summary = await self.monthly_summary(user_id, tz=tz, now=now)
        return score_finances(
            summary.income,
            summary.expense,
            summary.balance,
            summary.has_recent_activity,
        )

    async def cash_flow(
        self,
        user_id: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> CashFlowProjection:
        """
        Trailing 30-day daily averages, calendar-month cash flow, a
        three-month balance projection and five weekly buckets ending
        at the start of today.

        burn_rate_days is None while daily cash flow is not negative,
        and 0 when the balance is already gone.
        """
        now = to_utc(now or utc_now())
        transactions = await self._ledger(user_id)
        summary = self._summarize(transactions, tz, now)

        trailing = _totals(transactions, now - timedelta(days=TRAILING_DAYS), now + timedelta(microseconds=1))
        daily_income = trailing.income / TRAILING_DAYS
        daily_expense = trailing.expense / TRAILING_DAYS
        daily_cash_flow = daily_income - daily_expense

        burn_rate_days = None
        if daily_cash_flow < 0:
            if summary.balance <= 0:
                burn_rate_days = 0
            else:
                burn_rate_days = int(summary.balance // abs(daily_cash_flow))

        today = start_of_today(now, tz)
        weekly_trend = []
        for weeks_back in range(TREND_WEEKS - 1, -1, -1):
            start = today - timedelta(days=7 * (weeks_back + 1))
            end = today - timedelta(days=7 * weeks_back)
            bucket = _totals(transactions, start, end)
            weekly_trend.append(WeeklyFlow(
                start=start,
                end=end,
                income=bucket.income,
                expense=bucket.expense,
            ))

        return CashFlowProjection(
            current_balance=summary.balance,
            daily_income=_cents(daily_income),
            daily_expense=_cents(daily_expense),
            weekly_income=_cents(daily_income * 7),
            weekly_expense=_cents(daily_expense * 7),
            monthly_cash_flow=summary.net,
            projected_balance=summary.balance + summary.net * PROJECTION_MONTHS,
            burn_rate_days=burn_rate_days,
            weekly_trend=weekly_trend,
        )

    @staticmethod
    def _summarize(transactions: list[Transaction], tz: str, now: datetime) -> MonthlySummary:
        month_start, month_end = month_window(now, tz)
        month = _totals(transactions, month_start, month_end)

        lifetime = _Totals()
        for txn in transactions:
            lifetime.add(txn)

        recent_start = now - timedelta(days=TRAILING_DAYS)
        has_recent_activity = any(recent_start <= t.occurred_at <= now for t in transactions)

        return MonthlySummary(
            month_start=month_start,
            income=month.income,
            expense=month.expense,
            balance=lifetime.net,
            transaction_count=month.count,
            has_recent_activity=has_recent_activity,
            recent=transactions[:RECENT_LIMIT],
        )
