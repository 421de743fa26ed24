"""
Goal Ledger

Savings goals and every movement of money in or out of them.

CRITICAL INVARIANTS:
1. 0 <= current_amount <= target_amount, always (the model enforces it
   on assignment, so a bug raises instead of overfilling a goal)
2. Money is conserved: main balance + sum of goal funds is unchanged by
   boost, transfer and return. Boosts are mirrored as an expense in the
   reserved Savings category, returns as income in "Goal Refund".
3. A goal that reaches its target is archived. Archived goals stay
   queryable and can still give funds away, but never receive them.
4. A goal holding funds is never deleted while another active goal
   could take them. The user must transfer or return first.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Union

import structlog

from chatledger.engine.categories import CategoryRegistry
from chatledger.engine.naming import find_exact, find_fuzzy, suggest_names
from chatledger.errors import (
    GoalHasFundsError,
    GoalNotFound,
    InsufficientFunds,
    ValidationError,
)
from chatledger.models.ledger import (
    Category,
    Goal,
    GoalBoost,
    GoalSavingsPlan,
    Language,
    PlanFrequency,
    Transaction,
    TransactionKind,
    UserPreferences,
    utc_now,
)
from chatledger.models.results import (
    BoostOutcome,
    DeleteGoalOutcome,
    GoalProgress,
    PlanOutcome,
    ReturnOutcome,
    TransferOutcome,
)
from chatledger.parsing.dates import add_months, to_utc
from chatledger.services.storage import LedgerRepository


logger = structlog.get_logger(__name__)


# Either name is recognised; new users get the one matching their language
SAVINGS_CATEGORY_NAMES = ("Tabungan", "Savings")
SAVINGS_CATEGORY_BY_LANGUAGE = {
    Language.INDONESIAN: "Tabungan",
    Language.ENGLISH: "Savings",
}
SAVINGS_ICON = "🐷"
SAVINGS_COLOR = "#10B981"

REFUND_CATEGORY_NAME = "Goal Refund"
REFUND_ICON = "↩️"
REFUND_COLOR = "#0EA5E9"


def next_contribution(frequency: PlanFrequency, now: datetime) -> datetime:
    if frequency == PlanFrequency.WEEKLY:
        return now + timedelta(days=7)
    if frequency == PlanFrequency.BIWEEKLY:
        return now + timedelta(days=14)
    shifted = add_months(now.date(), 1)
    return now.replace(year=shifted.year, month=shifted.month, day=shifted.day)


class GoalLedger:
    """Create, boost, transfer, return, delete, list and plan savings goals."""

    def __init__(self, repository: LedgerRepository, categories: CategoryRegistry):
        self._repository = repository
        self._categories = categories

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    async def find(self, user_id: str, name: str, include_inactive: bool = True) -> Goal:
        """
        Exact case-insensitive match, then a unique substring match.

        Raises:
            GoalNotFound: With close-match suggestions
        """
        goals = await self._repository.list_goals(user_id, include_inactive=include_inactive)
        # An active goal wins over an archived one with the same name
        goals.sort(key=lambda g: not g.is_active)
        goal = find_fuzzy(goals, name, key=lambda g: g.name)
        if goal is None:
            raise GoalNotFound(
                f"Goal not found: {name}",
                suggestions=suggest_names(name, [g.name for g in goals]),
            )
        return goal

    async def _find_active(self, user_id: str, name: str) -> Goal:
        goal = await self.find(user_id, name)
        if not goal.is_active:
            raise ValidationError(f"'{goal.name}' is already completed and archived")
        return goal

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def create(
        self,
        user_id: str,
        name: str,
        target_amount: Decimal,
        deadline: Optional[datetime] = None,
        tag: Optional[str] = None,
        tz: str = "UTC",
    ) -> Goal:
        """
        Raises:
            ValidationError: Non-positive target or a duplicate active name
        """
        if target_amount is None or target_amount <= 0:
            raise ValidationError("Goal target must be greater than zero")

        name = " ".join((name or "").split())
        if not name:
            raise ValidationError("Goal name is required")

        active = await self._repository.list_goals(user_id)
        if find_exact(active, name, key=lambda g: g.name) is not None:
            raise ValidationError(f"An active goal named '{name}' already exists")

        try:
            goal = Goal(
                user_id=user_id,
                name=name,
                target_amount=target_amount,
                deadline=to_utc(deadline, tz) if deadline else None,
                category=tag,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid goal: {e}")

        return await self._repository.add_goal(goal)

    async def boost(
        self,
        preferences: UserPreferences,
        goal_name: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> BoostOutcome:
        """
        Deposit into an active goal, clamped to its headroom.

        Only the applied amount moves. The rest is reported back and
        stays in the main balance.
        """
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        now = to_utc(now or utc_now())
        user_id = preferences.user_id
        goal = await self._find_active(user_id, goal_name)
        applied = min(amount, goal.headroom)

        category = await self._savings_category(preferences)
        transaction = await self._repository.add_transaction(Transaction(
            user_id=user_id,
            category_id=category.id,
            amount=applied,
            currency=preferences.default_currency,
            description=f"Savings: {goal.name}",
            kind=TransactionKind.EXPENSE,
            occurred_at=now,
        ))
        await self._repository.add_boost(GoalBoost(
            goal_id=goal.id,
            user_id=user_id,
            amount=applied,
            description=f"Boost {goal.name}",
            occurred_at=now,
        ))

        goal.current_amount = goal.current_amount + applied
        completed = self._archive_if_complete(goal)
        goal.updated_at = now
        goal = await self._repository.update_goal(goal)

        logger.info(
            "goal_boosted",
            user_id=user_id,
            goal_id=str(goal.id),
            requested=str(amount),
            applied=str(applied),
            completed=completed,
        )
        return BoostOutcome(
            goal=goal,
            requested=amount,
            applied=applied,
            transaction=transaction,
            completed=completed,
        )

    async def transfer(
        self,
        user_id: str,
        source_name: str,
        destination_name: str,
        amount: Decimal,
        now: Optional[datetime] = None,
    ) -> TransferOutcome:
        """
        Move funds between goals. The destination takes at most its
        headroom; whatever it cannot take stays in the source.

        Raises:
            ValidationError: Non-positive amount, same goal, archived destination
            InsufficientFunds: The source holds less than requested
        """
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        now = to_utc(now or utc_now())
        source = await self.find(user_id, source_name)
        destination = await self.find(user_id, destination_name)

        if source.id == destination.id:
            raise ValidationError("Source and destination must be different goals")
        if not destination.is_active:
            raise ValidationError(f"'{destination.name}' is already completed and archived")
        if source.current_amount < amount:
            raise InsufficientFunds(
                f"'{source.name}' only holds {source.current_amount}",
                available=source.current_amount,
                requested=amount,
            )

        moved = min(amount, destination.headroom)

        source.current_amount = source.current_amount - moved
        source.updated_at = now
        destination.current_amount = destination.current_amount + moved
        completed = self._archive_if_complete(destination)
        destination.updated_at = now

        source = await self._repository.update_goal(source)
        destination = await self._repository.update_goal(destination)

        return TransferOutcome(
            source=source,
            destination=destination,
            requested=amount,
            moved=moved,
            destination_completed=completed,
        )

    async def return_funds(
        self,
        preferences: UserPreferences,
        goal_name: str,
        amount: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> ReturnOutcome:
        """
        Move goal funds back to the main balance (all of them when
        amount is None, otherwise at most what the goal holds).

        Raises:
            InsufficientFunds: The goal is empty
        """
        if amount is not None and amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        goal = await self.find(preferences.user_id, goal_name)
        return await self._return(preferences, goal, amount, to_utc(now or utc_now()))

    async def delete(
        self,
        preferences: UserPreferences,
        goal_name: str,
        now: Optional[datetime] = None,
    ) -> DeleteGoalOutcome:
        """
        Delete a goal with its boosts and plans.

        A goal with funds is refused while another active goal has room
        for them. With no possible receiver its funds are returned to
        the main balance first.

        Raises:
            GoalHasFundsError: Funds must be transferred or returned first
        """
        now = to_utc(now or utc_now())
        user_id = preferences.user_id
        goal = await self.find(user_id, goal_name)

        outcome = DeleteGoalOutcome(goal_name=goal.name)
        if goal.current_amount > 0:
            candidates = [
                g.name for g in await self._repository.list_goals(user_id)
                if g.id != goal.id and g.headroom > 0
            ]
            if candidates:
                raise GoalHasFundsError(
                    f"'{goal.name}' still holds {goal.current_amount}",
                    goal_name=goal.name,
                    current_amount=goal.current_amount,
                    candidates=candidates,
                )

            returned = await self._return(preferences, goal, None, now)
            outcome.returned = returned.returned
            outcome.refund_transaction = returned.transaction

        await self._repository.delete_goal(user_id, goal.id)
        logger.info("goal_deleted", user_id=user_id, goal_id=str(goal.id), returned=str(outcome.returned))
        return outcome

    async def set_plan(
        self,
        user_id: str,
        goal_name: str,
        amount: Decimal,
        frequency: PlanFrequency = PlanFrequency.MONTHLY,
        now: Optional[datetime] = None,
    ) -> PlanOutcome:
        """Record a recurring contribution. A new plan replaces the active one."""
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        now = to_utc(now or utc_now())
        goal = await self._find_active(user_id, goal_name)

        replaced = False
        for plan in await self._repository.list_plans(user_id, goal.id):
            if plan.is_active:
                plan.is_active = False
                plan.updated_at = now
                await self._repository.save_plan(plan)
                replaced = True

        plan = await self._repository.save_plan(GoalSavingsPlan(
            goal_id=goal.id,
            user_id=user_id,
            amount=amount,
            frequency=frequency,
            next_contribution_at=next_contribution(frequency, now),
        ))
        return PlanOutcome(goal=goal, plan=plan, replaced_plan=replaced)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_goals(self, user_id: str) -> list[GoalProgress]:
        goals = await self._repository.list_goals(user_id)
        return [GoalProgress.from_goal(g) for g in goals]

    async def check_balance(
        self,
        user_id: str,
        goal_name: Optional[str] = None,
    ) -> Union[GoalProgress, list[GoalProgress]]:
        """One goal by name (archived included), or every active goal."""
        if goal_name:
            return GoalProgress.from_goal(await self.find(user_id, goal_name))
        return await self.list_goals(user_id)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _return(
        self,
        preferences: UserPreferences,
        goal: Goal,
        amount: Optional[Decimal],
        now: datetime,
    ) -> ReturnOutcome:
        if goal.current_amount <= 0:
            raise InsufficientFunds(
                f"'{goal.name}' has no funds to return",
                available=Decimal("0"),
                requested=amount,
            )

        returned = min(amount or goal.current_amount, goal.current_amount)
        category = await self._refund_category(preferences.user_id)
        transaction = await self._repository.add_transaction(Transaction(
            user_id=preferences.user_id,
            category_id=category.id,
            amount=returned,
            currency=preferences.default_currency,
            description=f"Returned from goal: {goal.name}",
            kind=TransactionKind.INCOME,
            occurred_at=now,
        ))

        goal.current_amount = goal.current_amount - returned
        goal.updated_at = now
        goal = await self._repository.update_goal(goal)
        return ReturnOutcome(goal=goal, returned=returned, transaction=transaction)

    @staticmethod
    def _archive_if_complete(goal: Goal) -> bool:
        if goal.is_complete and goal.is_active:
            goal.is_active = False
            return True
        return False

    async def _savings_category(self, preferences: UserPreferences) -> Category:
        category, _ = await self._categories.find_or_create(
            preferences.user_id,
            names=SAVINGS_CATEGORY_NAMES,
            create_as=SAVINGS_CATEGORY_BY_LANGUAGE[preferences.language],
            icon=SAVINGS_ICON,
            color=SAVINGS_COLOR,
            kind=TransactionKind.EXPENSE,
        )
        return category

    async def _refund_category(self, user_id: str) -> Category:
        category, _ = await self._categories.find_or_create(
            user_id,
            names=(REFUND_CATEGORY_NAME,),
            create_as=REFUND_CATEGORY_NAME,
            icon=REFUND_ICON,
            color=REFUND_COLOR,
            kind=TransactionKind.INCOME,
        )
        return category
