"""
Intent Models - what the understanding service hands back

The language model is a TRANSLATOR, not an ORACLE. It turns a chat
message into one of these typed intents and nothing more. Every field
it returns is validated here, at the boundary, before any ledger code
sees it.

DESIGN DECISION: Command intents are tagged unions keyed on `action`.
Each variant declares exactly the fields it needs, so a "delete" can
never arrive without a category name and a "transfer_goal" can never
arrive without a destination. Unknown actions fail validation.

Dates: the model is asked for ISO-8601. Anything else (epoch numbers,
free text) is DISCARDED rather than guessed at, so the deterministic
date resolver gets a chance to read the raw message instead.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)

from chatledger.models.ledger import BudgetPeriod, PlanFrequency, TransactionKind


_HEX_COLOR_LENGTH = 7
DEFAULT_ICON = "📦"
DEFAULT_COLOR = "#6B7280"


def _discard_non_iso(value: object) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    # Numbers, empty strings, anything else
    return None


IsoDateTime = Annotated[Optional[datetime], BeforeValidator(_discard_non_iso)]


class IntentBase(BaseModel):
    """Fields every intent carries."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Model's self-reported confidence"
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SuggestedCategory(BaseModel):
    """A category the model proposes when nothing existing fits."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, max_length=60)
    icon: str = Field(default=DEFAULT_ICON, max_length=16)
    color: str = Field(default=DEFAULT_COLOR)
    kind: TransactionKind = TransactionKind.EXPENSE

    @field_validator('icon', mode='before')
    @classmethod
    def default_icon(cls, v):
        return v or DEFAULT_ICON

    @field_validator('color', mode='before')
    @classmethod
    def default_color(cls, v):
        # A bad color is cosmetic, not a reason to reject the intent
        if (
            isinstance(v, str)
            and len(v) == _HEX_COLOR_LENGTH
            and v.startswith("#")
            and all(c in "0123456789abcdefABCDEF" for c in v[1:])
        ):
            return v
        return DEFAULT_COLOR


class TransactionIntent(IntentBase):
    """
    One income or expense extracted from text, a transcript or a receipt line.
    """

    amount: Decimal = Field(..., gt=0)
    description: str = Field(default="Transaction", min_length=1, max_length=200)
    category_name: Optional[str] = Field(default=None, max_length=60)
    kind: TransactionKind = TransactionKind.EXPENSE
    occurred_at: IsoDateTime = None
    suggested_new_category: Optional[SuggestedCategory] = None

    @field_validator('description', mode='before')
    @classmethod
    def trim_description(cls, v):
        if isinstance(v, str):
            v = v.strip()[:200]
        return v or "Transaction"


class ReceiptExtraction(IntentBase):
    """Everything read off a receipt photo. Line items are judged one by one."""

    text: str = Field(default="", description="Raw text the model read")
    transactions: list[TransactionIntent] = Field(default_factory=list)


# =============================================================================
# BUDGET COMMANDS
# =============================================================================

class BudgetUpsertIntent(IntentBase):
    action: Literal["create", "update"]
    category_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY


class BudgetDeleteIntent(IntentBase):
    action: Literal["delete"]
    category_name: str = Field(..., min_length=1)


class BudgetCheckIntent(IntentBase):
    action: Literal["check"]
    category_name: Optional[str] = None


class BudgetListIntent(IntentBase):
    action: Literal["list"]


BudgetIntent = Annotated[
    Union[BudgetUpsertIntent, BudgetDeleteIntent, BudgetCheckIntent, BudgetListIntent],
    Field(discriminator="action"),
]


# =============================================================================
# CATEGORY COMMANDS
# =============================================================================

class CategoryCreateIntent(IntentBase):
    action: Literal["create"]
    category_name: str = Field(..., min_length=1, max_length=60)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = None
    kind: TransactionKind = TransactionKind.EXPENSE


class CategoryUpdateIntent(IntentBase):
    action: Literal["update"]
    category_name: str = Field(..., min_length=1)
    new_category_name: Optional[str] = Field(default=None, max_length=60)
    icon: Optional[str] = Field(default=None, max_length=16)
    color: Optional[str] = None
    kind: Optional[TransactionKind] = None


class CategoryDeleteIntent(IntentBase):
    action: Literal["delete"]
    category_name: str = Field(..., min_length=1)


class CategoryListIntent(IntentBase):
    action: Literal["list"]


CategoryIntent = Annotated[
    Union[CategoryCreateIntent, CategoryUpdateIntent, CategoryDeleteIntent, CategoryListIntent],
    Field(discriminator="action"),
]


# =============================================================================
# SAVINGS GOAL COMMANDS
# =============================================================================

class SaveToGoalIntent(IntentBase):
    action: Literal["save"]
    goal_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class CreateGoalIntent(IntentBase):
    action: Literal["create_goal"]
    goal_name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, description="Target amount")
    deadline: IsoDateTime = None
    category: Optional[str] = Field(default=None, max_length=50)


class ListGoalsIntent(IntentBase):
    action: Literal["list_goals"]


class CheckGoalBalanceIntent(IntentBase):
    action: Literal["check_balance"]
    goal_name: Optional[str] = None


class SetPlanIntent(IntentBase):
    action: Literal["set_plan"]
    goal_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    frequency: PlanFrequency = PlanFrequency.MONTHLY


class TransferGoalIntent(IntentBase):
    action: Literal["transfer_goal"]
    goal_name: str = Field(..., min_length=1, description="Source goal")
    target_goal_name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class ReturnFundsIntent(IntentBase):
    action: Literal["return_funds"]
    goal_name: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(default=None, gt=0, description="None returns everything")


class DeleteGoalIntent(IntentBase):
    action: Literal["delete_goal"]
    goal_name: str = Field(..., min_length=1)


SavingsIntent = Annotated[
    Union[
        SaveToGoalIntent,
        CreateGoalIntent,
        ListGoalsIntent,
        CheckGoalBalanceIntent,
        SetPlanIntent,
        TransferGoalIntent,
        ReturnFundsIntent,
        DeleteGoalIntent,
    ],
    Field(discriminator="action"),
]


# Validators for the union types (BaseModel.model_validate only covers classes)
budget_intent_adapter: TypeAdapter = TypeAdapter(BudgetIntent)
category_intent_adapter: TypeAdapter = TypeAdapter(CategoryIntent)
savings_intent_adapter: TypeAdapter = TypeAdapter(SavingsIntent)
