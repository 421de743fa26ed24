"""Ledger engines: categories, transactions, budgets and goals."""

from chatledger.engine.budgets import BudgetEngine, alert_tier
from chatledger.engine.categories import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY_NAME,
    CategoryRegistry,
)
from chatledger.engine.goals import (
    REFUND_CATEGORY_NAME,
    SAVINGS_CATEGORY_NAMES,
    GoalLedger,
)
from chatledger.engine.transactions import IntentSource, TransactionMaterializer

__all__ = [
    "BudgetEngine",
    "CategoryRegistry",
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY_NAME",
    "GoalLedger",
    "IntentSource",
    "REFUND_CATEGORY_NAME",
    "SAVINGS_CATEGORY_NAMES",
    "TransactionMaterializer",
    "alert_tier",
]
