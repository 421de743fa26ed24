"""
Transaction Materializer

Turns a validated TransactionIntent plus the user's context into exactly
one persisted Transaction.

Category resolution, first hit wins:
1. Exact (case-insensitive) match on the intent's category name
2. Auto-create the suggested new category (auto-categorize on only)
3. The user's "Other" category
4. CategoryUnresolved

CRITICAL: The budget follow-up for an expense runs AFTER the write and
is advisory. If it fails, the failure is logged and the transaction
stands.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

import structlog

from chatledger.engine.budgets import BudgetEngine
from chatledger.engine.categories import FALLBACK_CATEGORY_NAME, CategoryRegistry
from chatledger.errors import CategoryUnresolved, LowConfidence
from chatledger.models.intents import ReceiptExtraction, TransactionIntent
from chatledger.models.ledger import (
    Category,
    Transaction,
    TransactionKind,
    UserPreferences,
    utc_now,
)
from chatledger.models.results import MaterializedTransaction, ReceiptOutcome
from chatledger.parsing.dates import DateResolver, to_utc
from chatledger.services.storage import LedgerRepository, StorageError


logger = structlog.get_logger(__name__)


class IntentSource(str, Enum):
    """Where an intent came from. Each source has its own confidence bar."""
    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"


class TransactionMaterializer:
    """
    Writes transactions and triggers the budget follow-up for expenses.

    Confidence must be STRICTLY above the threshold for the source.
    Receipt line items are judged one by one against the image bar.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        categories: CategoryRegistry,
        budgets: BudgetEngine,
        resolver: Optional[DateResolver] = None,
        text_threshold: float = 0.7,
        voice_threshold: float = 0.6,
        image_threshold: float = 0.6,
    ):
        self._repository = repository
        self._categories = categories
        self._budgets = budgets
        self._resolver = resolver or DateResolver()
        self._thresholds = {
            IntentSource.TEXT: text_threshold,
            IntentSource.VOICE: voice_threshold,
            IntentSource.IMAGE: image_threshold,
        }

    def threshold_for(self, source: IntentSource) -> float:
        return self._thresholds[source]

    async def materialize(
        self,
        intent: TransactionIntent,
        preferences: UserPreferences,
        source: IntentSource = IntentSource.TEXT,
        raw_text: str = "",
        now: Optional[datetime] = None,
    ) -> MaterializedTransaction:
        """
        Persist one transaction for the intent.

        Raises:
            LowConfidence: Confidence at or below the source threshold
            CategoryUnresolved: Nothing matched and no fallback exists
        """
        threshold = self.threshold_for(source)
        if intent.confidence <= threshold:
            raise LowConfidence(
                f"Confidence {intent.confidence:.2f} is not above {threshold:.2f}",
                confidence=intent.confidence,
            )
        return await self._write(intent, preferences, raw_text, now)

    async def materialize_receipt(
        self,
        extraction: ReceiptExtraction,
        preferences: UserPreferences,
        now: Optional[datetime] = None,
    ) -> ReceiptOutcome:
        """
        Materialize every receipt line item above the image threshold.

        Categories of all accepted items are resolved before the first
        write, so an unresolvable item rejects the whole receipt with the
        ledger untouched. A storage failure after some items were written
        stops the run and reports the rest as failed.

        Raises:
            LowConfidence: When no line item was accepted
            CategoryUnresolved: When any accepted item has no category
        """
        threshold = self.threshold_for(IntentSource.IMAGE)
        outcome = ReceiptOutcome()

        accepted = []
        for item in extraction.transactions:
            if item.confidence <= threshold:
                outcome.skipped += 1
            else:
                accepted.append(item)

        if not accepted:
            raise LowConfidence(
                "No receipt line item was read confidently",
                confidence=extraction.confidence,
            )

        for item in accepted:
            await self._existing_category(item, preferences)

        for index, item in enumerate(accepted):
            try:
                outcome.materialized.append(
                    await self._write(item, preferences, extraction.text, now)
                )
            except StorageError as e:
                if not outcome.materialized:
                    raise
                outcome.failed = len(accepted) - index
                logger.warning(
                    "receipt_write_interrupted",
                    user_id=preferences.user_id,
                    written=len(outcome.materialized),
                    failed=outcome.failed,
                    error=str(e),
                )
                break

        logger.info(
            "receipt_materialized",
            user_id=preferences.user_id,
            accepted=len(outcome.materialized),
            skipped=outcome.skipped,
            failed=outcome.failed,
        )
        return outcome

    async def _write(
        self,
        intent: TransactionIntent,
        preferences: UserPreferences,
        raw_text: str,
        now: Optional[datetime],
    ) -> MaterializedTransaction:
        now = to_utc(now or utc_now())
        category, created = await self.resolve_category(intent, preferences)

        transaction = await self._repository.add_transaction(Transaction(
            user_id=preferences.user_id,
            category_id=category.id,
            amount=intent.amount,
            currency=preferences.default_currency,
            description=intent.description,
            kind=intent.kind,
            occurred_at=self._occurred_at(intent, preferences, raw_text, now),
            ai_generated=True,
        ))

        result = MaterializedTransaction(
            transaction=transaction,
            category=category,
            category_created=created,
        )
        if transaction.kind == TransactionKind.EXPENSE:
            await self._follow_up(result, preferences, now)
        return result

    def _occurred_at(
        self,
        intent: TransactionIntent,
        preferences: UserPreferences,
        raw_text: str,
        now: datetime,
    ) -> datetime:
        if intent.occurred_at is not None:
            return to_utc(intent.occurred_at, preferences.timezone)

        resolved = self._resolver.resolve(
            raw_text,
            language=preferences.language,
            tz=preferences.timezone,
            now=now,
        )
        return resolved or now

    async def resolve_category(
        self,
        intent: TransactionIntent,
        preferences: UserPreferences,
    ) -> tuple[Category, bool]:
        """
        Returns:
            (category, created)
        """
        user_id = preferences.user_id
        existing = await self._existing_category(intent, preferences)
        if existing is not None:
            return existing, False

        suggestion = intent.suggested_new_category
        category, created = await self._categories.find_or_create(
            user_id,
            names=(suggestion.name,),
            create_as=suggestion.name,
            icon=suggestion.icon,
            color=suggestion.color,
            kind=suggestion.kind,
        )
        if created:
            logger.info("category_auto_created", user_id=user_id, name=category.name)
        return category, created

    async def _existing_category(
        self,
        intent: TransactionIntent,
        preferences: UserPreferences,
    ) -> Optional[Category]:
        """
        Resolve without writing. None means the suggested category is to
        be found or created.

        Raises:
            CategoryUnresolved: Nothing matched and no fallback exists
        """
        user_id = preferences.user_id

        if intent.category_name:
            existing = await self._categories.find_by_name(user_id, intent.category_name)
            if existing is not None:
                return existing

        if preferences.auto_categorize and intent.suggested_new_category is not None:
            return None

        fallback = await self._categories.find_by_name(user_id, FALLBACK_CATEGORY_NAME)
        if fallback is not None:
            return fallback

        raise CategoryUnresolved(
            f"No category matches '{intent.category_name or intent.description}'",
            suggestions=[c.name for c in await self._categories.list_all(user_id)][:5],
        )

    async def _follow_up(
        self,
        result: MaterializedTransaction,
        preferences: UserPreferences,
        now: datetime,
    ) -> None:
        try:
            alert, recommendation = await self._budgets.after_expense(
                preferences.user_id,
                result.category,
                tz=preferences.timezone,
                now=now,
            )
        except Exception as e:
            # Advisory only: the transaction is already written
            logger.warning(
                "budget_followup_failed",
                user_id=preferences.user_id,
                transaction_id=str(result.transaction.id),
                error=str(e),
            )
            return

        result.budget_alert = alert
        result.recommendation = recommendation
