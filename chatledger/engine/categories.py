"""
Category Registry

Owns the user's category list: default seeding, create, rename/restyle,
delete and lookup.

Protections:
- Names are unique per user, case-insensitive
- Default categories cannot be deleted
- A category referenced by any transaction cannot be deleted
- Deleting a category drops its budget

Reserved categories ("Savings"/"Tabungan" for goal boosts, "Goal Refund"
for returned goal funds) are created on first use through
`find_or_create`.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from chatledger.engine.naming import find_exact, suggest_names
from chatledger.errors import CategoryNotFound, ValidationError
from chatledger.models.intents import DEFAULT_COLOR, DEFAULT_ICON
from chatledger.models.ledger import Category, TransactionKind
from chatledger.services.storage import DuplicateError, LedgerRepository


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CategorySeed:
    name: str
    icon: str
    color: str
    kind: TransactionKind


DEFAULT_CATEGORIES: tuple[CategorySeed, ...] = (
    CategorySeed("Food & Dining", "🍽️", "#059669", TransactionKind.EXPENSE),
    CategorySeed("Transportation", "🚗", "#3B82F6", TransactionKind.EXPENSE),
    CategorySeed("Shopping", "🛒", "#F59E0B", TransactionKind.EXPENSE),
    CategorySeed("Entertainment", "🎬", "#EF4444", TransactionKind.EXPENSE),
    CategorySeed("Bills & Utilities", "🧾", "#8B5CF6", TransactionKind.EXPENSE),
    CategorySeed("Healthcare", "🏥", "#EC4899", TransactionKind.EXPENSE),
    CategorySeed("Education", "📚", "#06B6D4", TransactionKind.EXPENSE),
    CategorySeed("Other", "📦", "#6B7280", TransactionKind.EXPENSE),
    CategorySeed("Salary", "💰", "#10B981", TransactionKind.INCOME),
    CategorySeed("Investment", "📈", "#059669", TransactionKind.INCOME),
    CategorySeed("Freelance", "💻", "#3B82F6", TransactionKind.INCOME),
)

FALLBACK_CATEGORY_NAME = "Other"


class CategoryRegistry:
    """Category CRUD with default and in-use protections."""

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def ensure_defaults(self, user_id: str) -> list[Category]:
        """Seed the default set for a user who has no categories yet."""
        existing = await self._repository.list_categories(user_id)
        if existing:
            return existing

        seeded = []
        for seed in DEFAULT_CATEGORIES:
            category = Category(
                user_id=user_id,
                name=seed.name,
                icon=seed.icon,
                color=seed.color,
                kind=seed.kind,
                is_default=True,
            )
            seeded.append(await self._repository.add_category(category))
        logger.info("default_categories_seeded", user_id=user_id, count=len(seeded))
        return seeded

    async def list_all(self, user_id: str) -> list[Category]:
        return await self._repository.list_categories(user_id)

    async def find_by_name(self, user_id: str, name: str) -> Optional[Category]:
        """Exact, case-insensitive lookup."""
        return find_exact(await self.list_all(user_id), name, key=lambda c: c.name)

    async def get(self, user_id: str, name: str) -> Category:
        categories = await self.list_all(user_id)
        category = find_exact(categories, name, key=lambda c: c.name)
        if category is None:
            raise CategoryNotFound(
                f"Category not found: {name}",
                suggestions=suggest_names(name, [c.name for c in categories]),
            )
        return category

    async def create(
        self,
        user_id: str,
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        kind: TransactionKind = TransactionKind.EXPENSE,
    ) -> Category:
        """
        Raises:
            ValidationError: If the name is empty, invalid or already taken
        """
        name = " ".join((name or "").split())
        if not name:
            raise ValidationError("Category name is required")

        try:
            category = Category(
                user_id=user_id,
                name=name,
                icon=icon or DEFAULT_ICON,
                color=color or DEFAULT_COLOR,
                kind=kind,
            )
        except ValueError as e:
            raise ValidationError(f"Invalid category: {e}")

        try:
            return await self._repository.add_category(category)
        except DuplicateError:
            raise ValidationError(f"Category '{name}' already exists")

    async def find_or_create(
        self,
        user_id: str,
        names: tuple[str, ...],
        create_as: str,
        icon: str,
        color: str,
        kind: TransactionKind,
    ) -> tuple[Category, bool]:
        """
        Return the first existing category matching any of `names`, or
        create `create_as`. A concurrent duplicate falls back to lookup.

        Returns:
            (category, created)
        """
        categories = await self.list_all(user_id)
        for name in names:
            found = find_exact(categories, name, key=lambda c: c.name)
            if found is not None:
                return found, False

        try:
            category = await self._repository.add_category(
                Category(user_id=user_id, name=create_as, icon=icon, color=color, kind=kind)
            )
            return category, True
        except DuplicateError:
            found = await self.find_by_name(user_id, create_as)
            if found is None:
                raise
            return found, False

    async def update(
        self,
        user_id: str,
        name: str,
        new_name: Optional[str] = None,
        icon: Optional[str] = None,
        color: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
    ) -> Category:
        """
        Rename or restyle a category.

        Raises:
            CategoryNotFound: With close-match suggestions
            ValidationError: If the new name is taken or a field is invalid
        """
        category = await self.get(user_id, name)

        try:
            if new_name:
                category.name = " ".join(new_name.split())
            if icon:
                category.icon = icon
            if color:
                category.color = color
            if kind:
                category.kind = kind
        except ValueError as e:
            raise ValidationError(f"Invalid category update: {e}")

        try:
            return await self._repository.update_category(category)
        except DuplicateError:
            raise ValidationError(f"Category '{category.name}' already exists")

    async def delete(self, user_id: str, name: str) -> Category:
        """
        Raises:
            CategoryNotFound: With close-match suggestions
            ValidationError: If the category is a default or still in use
        """
        category = await self.get(user_id, name)

        if category.is_default:
            raise ValidationError(f"'{category.name}' is a default category and cannot be deleted")

        in_use = await self._repository.count_category_transactions(user_id, category.id)
        if in_use:
            raise ValidationError(
                f"'{category.name}' is used by {in_use} transaction(s) and cannot be deleted"
            )

        budget = await self._repository.get_budget_for_category(user_id, category.id)
        if budget is not None:
            await self._repository.delete_budget(user_id, budget.id)

        await self._repository.delete_category(user_id, category.id)
        return category
