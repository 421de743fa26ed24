"""Read-only analytics over the ledger."""

from chatledger.analytics.patterns import (
    SpendingPatternAnalyzer,
    classify_trend,
    volatility,
)
from chatledger.analytics.score import FinancialAnalytics, score_finances

__all__ = [
    "FinancialAnalytics",
    "SpendingPatternAnalyzer",
    "classify_trend",
    "score_finances",
    "volatility",
]
