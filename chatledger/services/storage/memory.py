"""
In-Memory Storage Implementation

Used by the test-suite and for running the bot without Google Sheets.
Behaves like a real backend in the ways that matter to the engines:
- Returned models are copies, so mutating one doesn't touch storage
  until it is written back
- Category names are unique per user (case-insensitive)
- Deleting a goal cascades to its boosts and plans
"""

from datetime import datetime
from typing import Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel

from chatledger.models.audit import AuditEvent
from chatledger.models.ledger import (
    ActivationCode,
    Budget,
    Category,
    Goal,
    GoalBoost,
    GoalSavingsPlan,
    IdentityLink,
    Transaction,
    TransactionKind,
    UserPreferences,
    utc_now,
)
from chatledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    IdentityLinkRepository,
    LedgerRepository,
    NotFoundError,
)


M = TypeVar("M", bound=BaseModel)


def _copy(model: M) -> M:
    return model.model_copy(deep=True)


class InMemoryLedgerRepository(LedgerRepository):
    """Dict-backed ledger storage."""

    def __init__(self):
        self._categories: dict[UUID, Category] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._goals: dict[UUID, Goal] = {}
        self._boosts: dict[UUID, GoalBoost] = {}
        self._plans: dict[UUID, GoalSavingsPlan] = {}
        self._preferences: dict[str, UserPreferences] = {}

    # Categories

    def _name_taken(self, category: Category) -> bool:
        return any(
            c.user_id == category.user_id
            and c.id != category.id
            and c.normalized_name == category.normalized_name
            for c in self._categories.values()
        )

    async def list_categories(self, user_id: str) -> list[Category]:
        return [_copy(c) for c in self._categories.values() if c.user_id == user_id]

    async def get_category(self, user_id: str, category_id: UUID) -> Optional[Category]:
        category = self._categories.get(category_id)
        if category is None or category.user_id != user_id:
            return None
        return _copy(category)

    async def add_category(self, category: Category) -> Category:
        if self._name_taken(category):
            raise DuplicateError(f"Category already exists: {category.name}")
        self._categories[category.id] = _copy(category)
        return category

    async def update_category(self, category: Category) -> Category:
        if category.id not in self._categories:
            raise NotFoundError(f"Category not found: {category.id}")
        if self._name_taken(category):
            raise DuplicateError(f"Category already exists: {category.name}")
        self._categories[category.id] = _copy(category)
        return category

    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        category = self._categories.get(category_id)
        if category is None or category.user_id != user_id:
            return False
        del self._categories[category_id]
        return True

    # Transactions

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions[transaction.id] = _copy(transaction)
        return transaction

    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        matches = []
        for txn in self._transactions.values():
            if txn.user_id != user_id:
                continue
            if start is not None and txn.occurred_at < start:
                continue
            if end is not None and txn.occurred_at >= end:
                continue
            if category_id is not None and txn.category_id != category_id:
                continue
            if kind is not None and txn.kind != kind:
                continue
            matches.append(_copy(txn))

        matches.sort(key=lambda t: (t.occurred_at, t.created_at), reverse=True)
        return matches

    async def count_category_transactions(self, user_id: str, category_id: UUID) -> int:
        return sum(
            1 for t in self._transactions.values()
            if t.user_id == user_id and t.category_id == category_id
        )

    # Budgets

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return [_copy(b) for b in self._budgets.values() if b.user_id == user_id]

    async def get_budget_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> Optional[Budget]:
        for budget in self._budgets.values():
            if budget.user_id == user_id and budget.category_id == category_id:
                return _copy(budget)
        return None

    async def save_budget(self, budget: Budget) -> Budget:
        budget.updated_at = utc_now()
        self._budgets[budget.id] = _copy(budget)
        return budget

    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        budget = self._budgets.get(budget_id)
        if budget is None or budget.user_id != user_id:
            return False
        del self._budgets[budget_id]
        return True

    # Goals

    async def list_goals(self, user_id: str, include_inactive: bool = False) -> list[Goal]:
        return [
            _copy(g) for g in self._goals.values()
            if g.user_id == user_id and (include_inactive or g.is_active)
        ]

    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[Goal]:
        goal = self._goals.get(goal_id)
        if goal is None or goal.user_id != user_id:
            return None
        return _copy(goal)

    async def add_goal(self, goal: Goal) -> Goal:
        self._goals[goal.id] = _copy(goal)
        return goal

    async def update_goal(self, goal: Goal) -> Goal:
        if goal.id not in self._goals:
            raise NotFoundError(f"Goal not found: {goal.id}")
        goal.updated_at = utc_now()
        self._goals[goal.id] = _copy(goal)
        return goal

    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        goal = self._goals.get(goal_id)
        if goal is None or goal.user_id != user_id:
            return False
        del self._goals[goal_id]
        self._boosts = {k: b for k, b in self._boosts.items() if b.goal_id != goal_id}
        self._plans = {k: p for k, p in self._plans.items() if p.goal_id != goal_id}
        return True

    async def add_boost(self, boost: GoalBoost) -> GoalBoost:
        self._boosts[boost.id] = _copy(boost)
        return boost

    async def list_boosts(self, user_id: str, goal_id: UUID) -> list[GoalBoost]:
        boosts = [
            _copy(b) for b in self._boosts.values()
            if b.user_id == user_id and b.goal_id == goal_id
        ]
        boosts.sort(key=lambda b: b.occurred_at)
        return boosts

    async def list_plans(self, user_id: str, goal_id: UUID) -> list[GoalSavingsPlan]:
        return [
            _copy(p) for p in self._plans.values()
            if p.user_id == user_id and p.goal_id == goal_id
        ]

    async def save_plan(self, plan: GoalSavingsPlan) -> GoalSavingsPlan:
        plan.updated_at = utc_now()
        self._plans[plan.id] = _copy(plan)
        return plan

    # Preferences

    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        preferences = self._preferences.get(user_id)
        return _copy(preferences) if preferences else None

    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        self._preferences[preferences.user_id] = _copy(preferences)
        return preferences


class InMemoryIdentityLinkRepository(IdentityLinkRepository):
    """Dict-backed identity links and activation codes."""

    def __init__(self):
        self._links: dict[str, IdentityLink] = {}
        self._codes: dict[str, ActivationCode] = {}

    async def resolve_user(self, channel_identity: str) -> Optional[str]:
        link = self._links.get(channel_identity)
        return link.user_id if link else None

    async def link(self, link: IdentityLink) -> IdentityLink:
        if link.channel_identity in self._links:
            raise DuplicateError(f"Identity already linked: {link.channel_identity}")
        self._links[link.channel_identity] = _copy(link)
        return link

    async def get_activation_code(self, code: str) -> Optional[ActivationCode]:
        stored = self._codes.get(code.upper())
        return _copy(stored) if stored else None

    async def save_activation_code(self, code: ActivationCode) -> ActivationCode:
        self._codes[code.code] = _copy(code)
        return code


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
