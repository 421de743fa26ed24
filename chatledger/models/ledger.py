"""
Core Ledger Models for Chat Ledger

These models define the strict schemas for everything the ledger stores.
They are designed to:
1. Enforce the money invariants at construction and on assignment
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Every timestamp is a timezone-aware UTC datetime and every
amount is a Decimal. There is exactly one time unit in the system, so no
code path ever has to guess whether a number means seconds or milliseconds.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _ensure_aware(value: datetime) -> datetime:
    # Naive datetimes are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(_ensure_aware)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of money. The sign is implied by the kind, never stored."""
    INCOME = "income"
    EXPENSE = "expense"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PlanFrequency(str, Enum):
    """How often a savings plan expects a contribution."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Language(str, Enum):
    """Reply locales."""
    INDONESIAN = "id"
    ENGLISH = "en"


# =============================================================================
# USER CONTEXT
# =============================================================================

class UserPreferences(BaseModel):
    """
    Per-user settings. Read-only input to every handler.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    language: Language = Language.ENGLISH
    auto_categorize: bool = True
    timezone: str = Field(default="UTC", description="IANA timezone name")

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Category(BaseModel):
    """
    A spending or income category.

    Names are unique per user (case-insensitive). Default categories are
    seeded for every new user and cannot be deleted.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=60)
    icon: str = Field(default="📦", max_length=16)
    color: str = Field(default="#6B7280", pattern=r"^#[0-9A-Fa-f]{6}$")
    kind: TransactionKind = TransactionKind.EXPENSE
    is_default: bool = False
    created_at: UTCDateTime = Field(default_factory=utc_now)

    @property
    def normalized_name(self) -> str:
        return self.name.casefold()


class Transaction(BaseModel):
    """
    A single ledger entry.

    CRITICAL: amount is always positive. Whether it adds to or subtracts
    from the balance is decided by kind alone.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    category_id: UUID
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: str = Field(default="Transaction", min_length=1, max_length=200)
    kind: TransactionKind
    occurred_at: UTCDateTime = Field(default_factory=utc_now)
    ai_generated: bool = False
    created_at: UTCDateTime = Field(default_factory=utc_now)
    updated_at: UTCDateTime = Field(default_factory=utc_now)

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign implied by kind (for balance arithmetic)."""
        return self.amount if self.kind == TransactionKind.INCOME else -self.amount


class Budget(BaseModel):
    """
    Spending limit for one category over a period window.

    There is no stored 'spent' counter. Spend is always recomputed from
    the ledger for the window being checked.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    category_id: UUID
    amount: Decimal = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_at: UTCDateTime
    end_at: UTCDateTime
    created_at: UTCDateTime = Field(default_factory=utc_now)
    updated_at: UTCDateTime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_window(self) -> 'Budget':
        if self.end_at <= self.start_at:
            raise ValueError("Budget window end must be after its start")
        return self


class Goal(BaseModel):
    """
    A savings goal.

    INVARIANT: 0 <= current_amount <= target_amount. Assignments are
    validated, so a bug that would overfill a goal raises instead of
    silently corrupting the ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[UTCDateTime] = None
    category: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Free-form tag such as 'emergency' or 'vacation'"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True
    created_at: UTCDateTime = Field(default_factory=utc_now)
    updated_at: UTCDateTime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_funds(self) -> 'Goal':
        if self.current_amount > self.target_amount:
            raise ValueError("Goal current amount cannot exceed its target")
        return self

    @property
    def headroom(self) -> Decimal:
        """How much more the goal can receive."""
        return self.target_amount - self.current_amount

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount

    @property
    def progress_percent(self) -> float:
        return float(self.current_amount / self.target_amount * 100)


class GoalBoost(BaseModel):
    """Append-only record of a deposit into a goal (the applied amount)."""

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(default=None, max_length=200)
    occurred_at: UTCDateTime = Field(default_factory=utc_now)


class GoalSavingsPlan(BaseModel):
    """
    Recurring contribution intent for a goal.

    Executing the plan on schedule belongs to an external scheduler.
    """
    model_config = ConfigDict(validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    frequency: PlanFrequency
    next_contribution_at: UTCDateTime
    is_active: bool = True
    created_at: UTCDateTime = Field(default_factory=utc_now)
    updated_at: UTCDateTime = Field(default_factory=utc_now)


# =============================================================================
# IDENTITY LINKING
# =============================================================================

class IdentityLink(BaseModel):
    """Maps a chat channel identity (e.g. a phone number) to a user."""

    channel_identity: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    created_at: UTCDateTime = Field(default_factory=utc_now)


class ActivationCode(BaseModel):
    """One-time code a user sends from the chat channel to link it."""

    code: str = Field(..., pattern=r"^[A-Z0-9]{6}$")
    user_id: str = Field(..., min_length=1)
    expires_at: UTCDateTime
    used: bool = False

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        return not self.used and (now or utc_now()) < self.expires_at
