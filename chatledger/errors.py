"""
Domain Errors for Chat Ledger

Every failure a command can hit is one of these. The message handler
turns them into a HandlerResult carrying `kind` and a localized reply,
so nothing reaches the user unclassified.

Storage failures are NOT here. They live next to the repository
interface (see services.storage.interface) and are reported to the user
as a transient failure.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for every classified command failure."""

    kind: str = "ledger_error"

    def __init__(self, message: str = "", suggestions: Optional[list[str]] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.suggestions = suggestions or []


class LowConfidence(LedgerError):
    """The understanding service was not sure enough (or returned junk)."""

    kind = "low_confidence"

    def __init__(self, message: str = "", confidence: Optional[float] = None):
        super().__init__(message or "Intent confidence too low")
        self.confidence = confidence


class CategoryUnresolved(LedgerError):
    """No matching category, no auto-create and no fallback available."""

    kind = "category_unresolved"


class InsufficientFunds(LedgerError):
    """A goal does not hold enough to cover the requested move."""

    kind = "insufficient_funds"

    def __init__(
        self,
        message: str = "",
        available: Decimal = Decimal("0"),
        requested: Optional[Decimal] = None,
    ):
        super().__init__(message or "Insufficient funds")
        self.available = available
        self.requested = requested


class GoalNotFound(LedgerError):
    kind = "goal_not_found"


class CategoryNotFound(LedgerError):
    kind = "category_not_found"


class BudgetNotFound(LedgerError):
    kind = "budget_not_found"


class UnderstandingServiceUnavailable(LedgerError):
    """Timeout or transport failure talking to the understanding service."""

    kind = "service_unavailable"


class ValidationError(LedgerError):
    """
    Request is well-formed but breaks a ledger rule.

    Examples: non-positive amount, duplicate name, deleting a default or
    in-use category.
    """

    kind = "validation_error"


class GoalHasFundsError(ValidationError):
    """
    Goal deletion refused because its funds must be moved first.

    `candidates` are active goals that could receive the funds.
    """

    kind = "goal_has_funds"

    def __init__(
        self,
        message: str,
        goal_name: str,
        current_amount: Decimal,
        candidates: list[str],
    ):
        super().__init__(message, suggestions=candidates)
        self.goal_name = goal_name
        self.current_amount = current_amount
        self.candidates = candidates
