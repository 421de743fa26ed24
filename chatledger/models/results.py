"""
Result Models

Values the engines return and the reply composer renders. None of these
are persisted. Budget tiers, trends and scores are always recomputed
from the ledger, never stored.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from chatledger.models.ledger import (
    BudgetPeriod,
    Category,
    Goal,
    GoalSavingsPlan,
    Transaction,
)


class AlertTier(str, Enum):
    """Budget usage tier. A pure function of (spent, amount)."""
    SILENT = "silent"
    INFO = "info"
    DANGER = "danger"
    EXCEEDED = "exceeded"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetStatus(BaseModel):
    """Spend-to-date for one budget over the window being checked."""

    budget_id: UUID
    category_id: UUID
    category_name: str
    amount: Decimal
    spent: Decimal
    period: BudgetPeriod
    window_start: datetime
    window_end: datetime
    percentage: float
    tier: AlertTier

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent


class BudgetOverview(BaseModel):
    """All budgets of a user with totals."""

    statuses: list[BudgetStatus] = Field(default_factory=list)

    @property
    def total_budget(self) -> Decimal:
        return sum((s.amount for s in self.statuses), Decimal("0"))

    @property
    def total_spent(self) -> Decimal:
        return sum((s.spent for s in self.statuses), Decimal("0"))


class BudgetAlert(BaseModel):
    """Raised after an expense pushes a budget into a non-silent tier."""

    status: BudgetStatus

    @property
    def tier(self) -> AlertTier:
        return self.status.tier


class BudgetRecommendation(BaseModel):
    """Suggested budget for a category that has none yet."""

    category_id: UUID
    category_name: str
    recommended_amount: Decimal
    monthly_average: Decimal
    trend: Trend
    volatility: float
    score: int = Field(..., ge=60, le=95, description="Confidence in the recommendation")
    risk_level: RiskLevel
    months_analyzed: int


# =============================================================================
# ANALYTICS
# =============================================================================

class SpendingPattern(BaseModel):
    """Per-category monthly spend over the analysis window."""

    category_id: UUID
    category_name: str
    months: list[str] = Field(default_factory=list, description="YYYY-MM, chronological")
    monthly_amounts: list[Decimal] = Field(default_factory=list)
    monthly_average: Decimal
    trend: Trend
    volatility: float


class WeeklyFlow(BaseModel):
    start: datetime
    end: datetime
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CashFlowProjection(BaseModel):
    """
    Short-horizon cash flow.

    burn_rate_days is None when the balance is not shrinking (indefinite).
    """

    current_balance: Decimal
    daily_income: Decimal
    daily_expense: Decimal
    weekly_income: Decimal
    weekly_expense: Decimal
    monthly_cash_flow: Decimal
    projected_balance: Decimal
    burn_rate_days: Optional[int] = None
    weekly_trend: list[WeeklyFlow] = Field(default_factory=list)

    @property
    def daily_cash_flow(self) -> Decimal:
        return self.daily_income - self.daily_expense

    @property
    def weekly_cash_flow(self) -> Decimal:
        return self.weekly_income - self.weekly_expense


class MonthlySummary(BaseModel):
    """Current calendar month in the user's timezone, plus lifetime balance."""

    month_start: datetime
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    transaction_count: int = 0
    has_recent_activity: bool = False
    recent: list[Transaction] = Field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.income - self.expense

    @property
    def savings_rate(self) -> float:
        """Percent of income kept this month (0 with no income)."""
        if self.income <= 0:
            return 0.0
        return float((self.income - self.expense) / self.income * 100)


class FinancialScore(BaseModel):
    score: int = Field(..., ge=0, le=100)
    components: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# LEDGER OPERATION OUTCOMES
# =============================================================================

class MaterializedTransaction(BaseModel):
    """A persisted transaction plus what happened around it."""

    transaction: Transaction
    category: Category
    category_created: bool = False
    budget_alert: Optional[BudgetAlert] = None
    recommendation: Optional[BudgetRecommendation] = None


class ReceiptOutcome(BaseModel):
    materialized: list[MaterializedTransaction] = Field(default_factory=list)
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> Decimal:
        return sum((m.transaction.amount for m in self.materialized), Decimal("0"))


class GoalProgress(BaseModel):
    goal_id: UUID
    name: str
    current_amount: Decimal
    target_amount: Decimal
    progress_percent: float
    is_active: bool
    deadline: Optional[datetime] = None

    @classmethod
    def from_goal(cls, goal: Goal) -> 'GoalProgress':
        return cls(
            goal_id=goal.id,
            name=goal.name,
            current_amount=goal.current_amount,
            target_amount=goal.target_amount,
            progress_percent=goal.progress_percent,
            is_active=goal.is_active,
            deadline=goal.deadline,
        )


class BoostOutcome(BaseModel):
    goal: Goal
    requested: Decimal
    applied: Decimal
    transaction: Transaction
    completed: bool = False

    @property
    def remainder(self) -> Decimal:
        """Portion of the request the goal had no room for (never moved)."""
        return self.requested - self.applied


class TransferOutcome(BaseModel):
    source: Goal
    destination: Goal
    requested: Decimal
    moved: Decimal
    destination_completed: bool = False

    @property
    def kept_in_source(self) -> Decimal:
        return self.requested - self.moved


class ReturnOutcome(BaseModel):
    goal: Goal
    returned: Decimal
    transaction: Transaction


class DeleteGoalOutcome(BaseModel):
    goal_name: str
    returned: Decimal = Decimal("0")
    refund_transaction: Optional[Transaction] = None


class PlanOutcome(BaseModel):
    goal: Goal
    plan: GoalSavingsPlan
    replaced_plan: bool = False


# =============================================================================
# CHANNEL BOUNDARY
# =============================================================================

class AttachmentKind(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"


class Attachment(BaseModel):
    kind: AttachmentKind
    data: bytes
    mime_type: str = Field(..., min_length=1)


class InboundMessage(BaseModel):
    """One message from the chat channel. Delivery is someone else's job."""

    model_config = ConfigDict(str_strip_whitespace=True)

    message_id: UUID = Field(default_factory=uuid4)
    channel_identity: str = Field(..., min_length=1)
    text: str = ""
    attachment: Optional[Attachment] = None


class SideEffect(BaseModel):
    """A ledger mutation caused by handling a message."""

    action: str
    entity_type: str
    entity_id: Optional[UUID] = None


class HandlerResult(BaseModel):
    """The single value returned for every inbound message."""

    success: bool
    message: str
    side_effects: list[SideEffect] = Field(default_factory=list)
    error_kind: Optional[str] = None
