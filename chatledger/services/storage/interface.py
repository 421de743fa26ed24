"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every ledger read and write is scoped by user_id. Time ranges are
half-open: [start, end).

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger engines need.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

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
)


class LedgerRepository(ABC):
    """
    Abstract interface for ledger storage.

    Any storage implementation (Google Sheets, in-memory, SQL)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_categories(self, user_id: str) -> list[Category]:
        """All categories of a user, in creation order."""
        pass

    @abstractmethod
    async def get_category(self, user_id: str, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    async def add_category(self, category: Category) -> Category:
        """
        Insert a new category.

        Raises:
            DuplicateError: If the user already has a category with
                this name (case-insensitive)
        """
        pass

    @abstractmethod
    async def update_category(self, category: Category) -> Category:
        """
        Raises:
            NotFoundError: If the category doesn't exist
            DuplicateError: If the new name collides with another category
        """
        pass

    @abstractmethod
    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters.

        Args:
            start: Include transactions occurring at or after this instant
            end: Include transactions occurring strictly before this instant
            category_id: Filter by category
            kind: Filter by income/expense

        Returns:
            Matching transactions, newest first
        """
        pass

    @abstractmethod
    async def count_category_transactions(self, user_id: str, category_id: UUID) -> int:
        """How many transactions reference a category (deletion guard)."""
        pass

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        pass

    @abstractmethod
    async def get_budget_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> Optional[Budget]:
        """At most one budget exists per (user, category)."""
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        """Insert or replace by id."""
        pass

    @abstractmethod
    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Goals, boosts and savings plans
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_goals(self, user_id: str, include_inactive: bool = False) -> list[Goal]:
        pass

    @abstractmethod
    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def add_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    async def update_goal(self, goal: Goal) -> Goal:
        """
        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass

    @abstractmethod
    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        """Delete a goal together with its boosts and savings plans."""
        pass

    @abstractmethod
    async def add_boost(self, boost: GoalBoost) -> GoalBoost:
        pass

    @abstractmethod
    async def list_boosts(self, user_id: str, goal_id: UUID) -> list[GoalBoost]:
        pass

    @abstractmethod
    async def list_plans(self, user_id: str, goal_id: UUID) -> list[GoalSavingsPlan]:
        pass

    @abstractmethod
    async def save_plan(self, plan: GoalSavingsPlan) -> GoalSavingsPlan:
        """Insert or replace by id."""
        pass

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        pass

    @abstractmethod
    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        pass


class IdentityLinkRepository(ABC):
    """
    Maps chat channel identities to users.

    Replaces any process-wide session map: the handler asks this
    repository on every message.
    """

    @abstractmethod
    async def resolve_user(self, channel_identity: str) -> Optional[str]:
        pass

    @abstractmethod
    async def link(self, link: IdentityLink) -> IdentityLink:
        """
        Raises:
            DuplicateError: If the identity is already linked to a user
        """
        pass

    @abstractmethod
    async def get_activation_code(self, code: str) -> Optional[ActivationCode]:
        pass

    @abstractmethod
    async def save_activation_code(self, code: ActivationCode) -> ActivationCode:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one inbound message).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
