"""
Spending Pattern Analyzer

Per-category monthly expense aggregation over a trailing window, with
a trend label and a volatility figure. Feeds budget recommendations.

Window: from the first day of the month N months before the current
month (user timezone) through the end of the current month. Only months
with spending count.
"""

import statistics
from collections import defaultdict
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import UUID

from chatledger.models.ledger import TransactionKind, utc_now
from chatledger.models.results import SpendingPattern, Trend
from chatledger.parsing.dates import add_months, local_midnight, to_utc, zone_for
from chatledger.services.storage import LedgerRepository


TREND_THRESHOLD = 0.15
CENTS = Decimal("0.01")


def classify_trend(monthly_amounts: list[Decimal]) -> Trend:
    """
    Compare the mean of the first floor(n/2) months with the last floor(n/2).

    Above +15% is increasing, below -15% decreasing. With fewer than two
    months, or a zero first half, the trend is stable.
    """
    half = len(monthly_amounts) // 2
    if half == 0:
        return Trend.STABLE

    first = sum(monthly_amounts[:half], Decimal("0")) / half
    last = sum(monthly_amounts[-half:], Decimal("0")) / half
    if first <= 0:
        return Trend.STABLE

    change = (last - first) / first
    if change > Decimal(str(TREND_THRESHOLD)):
        return Trend.INCREASING
    if change < -Decimal(str(TREND_THRESHOLD)):
        return Trend.DECREASING
    return Trend.STABLE


def volatility(monthly_amounts: list[Decimal]) -> float:
    """Population standard deviation over mean (0 when the mean is 0)."""
    if not monthly_amounts:
        return 0.0
    values = [float(a) for a in monthly_amounts]
    mean = statistics.fmean(values)
    if mean == 0:
        return 0.0
    return statistics.pstdev(values) / mean


class SpendingPatternAnalyzer:
    """Builds SpendingPattern values from the ledger."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def analyze(
        self,
        user_id: str,
        months: int = 6,
        tz: str = "UTC",
        category_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> list[SpendingPattern]:
        zone = zone_for(tz)
        now = to_utc(now or utc_now())
        current_month = now.astimezone(zone).date().replace(day=1)
        window_start = local_midnight(add_months(current_month, -months), zone)
        window_end = local_midnight(add_months(current_month, 1), zone)

        transactions = await self._repository.list_transactions(
            user_id,
            start=window_start,
            end=window_end,
            category_id=category_id,
            kind=TransactionKind.EXPENSE,
        )

        by_category: dict[UUID, dict[str, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        for txn in transactions:
            month_key = txn.occurred_at.astimezone(zone).strftime("%Y-%m")
            by_category[txn.category_id][month_key] += txn.amount

        names = {c.id: c.name for c in await self._repository.list_categories(user_id)}

        patterns = []
        for cat_id, per_month in by_category.items():
            month_keys = sorted(per_month)
            amounts = [per_month[key] for key in month_keys]
            average = (sum(amounts, Decimal("0")) / len(amounts)).quantize(CENTS, ROUND_HALF_UP)
            if average <= 0:
                continue

            patterns.append(SpendingPattern(
                category_id=cat_id,
                category_name=names.get(cat_id, "Unknown"),
                months=month_keys,
                monthly_amounts=amounts,
                monthly_average=average,
                trend=classify_trend(amounts),
                volatility=volatility(amounts),
            ))

        patterns.sort(key=lambda p: p.monthly_average, reverse=True)
        return patterns
