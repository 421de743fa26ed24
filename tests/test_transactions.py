"""Tests for the transaction materializer."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from chatledger.engine import IntentSource, TransactionMaterializer
from chatledger.engine.budgets import BudgetEngine
from chatledger.errors import CategoryUnresolved, LowConfidence
from chatledger.models.intents import ReceiptExtraction, SuggestedCategory, TransactionIntent
from chatledger.models.ledger import TransactionKind, UserPreferences
from chatledger.models.results import AlertTier
from chatledger.services.storage import InMemoryLedgerRepository, StorageError


USER_ID = "user-1"
NOW = datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


def kopi_intent(confidence=0.9, **overrides):
    data = dict(
        amount=Decimal("25000"),
        description="beli kopi",
        category_name="Kopi",
        kind=TransactionKind.EXPENSE,
        confidence=confidence,
        suggested_new_category=SuggestedCategory(name="Kopi", icon="☕", color="#6F4E37"),
    )
    data.update(overrides)
    return TransactionIntent(**data)


class FlakyLedgerRepository(InMemoryLedgerRepository):
    """Ledger whose transaction writes start failing after fail_after writes."""

    def __init__(self):
        super().__init__()
        self.fail_after = None
        self.writes = 0

    async def add_transaction(self, transaction):
        if self.fail_after is not None and self.writes >= self.fail_after:
            raise StorageError("sheet quota exceeded")
        self.writes += 1
        return await super().add_transaction(transaction)


class ExplodingBudgets(BudgetEngine):
    """Budget engine whose follow-up always fails."""

    def __init__(self):
        pass

    async def after_expense(self, *args, **kwargs):
        raise RuntimeError("analytics down")


class TestMaterialize:
    """Single transactions from text and voice."""

    async def test_new_category_expense_gets_recommendation(
        self, materializer, repository, preferences_id, seeded
    ):
        """Test 'beli kopi 25000' creates Kopi, one expense and a recommendation, not an alert."""
        result = await materializer.materialize(
            kopi_intent(), preferences_id, source=IntentSource.TEXT, raw_text="beli kopi 25000", now=NOW
        )

        assert result.category_created
        assert result.category.name == "Kopi"
        assert result.category.icon == "☕"

        transactions = await repository.list_transactions(USER_ID)
        assert len(transactions) == 1
        txn = transactions[0]
        assert txn.amount == Decimal("25000")
        assert txn.kind == TransactionKind.EXPENSE
        assert txn.currency == "IDR"
        assert txn.ai_generated
        assert txn.occurred_at == NOW

        assert result.budget_alert is None
        assert result.recommendation is not None
        assert result.recommendation.category_name == "Kopi"
        assert result.recommendation.recommended_amount == Decimal("27500.00")

    async def test_existing_category_matched_case_insensitively(
        self, materializer, preferences_en, seeded
    ):
        """Test an existing category is reused, nothing is created."""
        result = await materializer.materialize(
            kopi_intent(category_name="shopping", suggested_new_category=None), preferences_en, now=NOW
        )
        assert result.category.name == "Shopping"
        assert not result.category_created

    async def test_no_auto_categorize_falls_back_to_other(self, materializer, seeded):
        """Test suggestions are ignored when auto-categorize is off."""
        preferences = UserPreferences(user_id=USER_ID, auto_categorize=False)
        result = await materializer.materialize(kopi_intent(), preferences, now=NOW)
        assert result.category.name == "Other"
        assert not result.category_created

    async def test_unresolved_without_fallback(self, materializer, preferences_en):
        """Test CategoryUnresolved when nothing matches and no Other exists."""
        with pytest.raises(CategoryUnresolved):
            await materializer.materialize(
                kopi_intent(suggested_new_category=None), preferences_en, now=NOW
            )

    @pytest.mark.parametrize("source,confidence", [
        (IntentSource.TEXT, 0.7),
        (IntentSource.TEXT, 0.5),
        (IntentSource.VOICE, 0.6),
    ])
    async def test_confidence_must_be_strictly_above_threshold(
        self, materializer, repository, preferences_en, seeded, source, confidence
    ):
        """Test confidence at or below the source threshold writes nothing."""
        with pytest.raises(LowConfidence):
            await materializer.materialize(kopi_intent(confidence=confidence), preferences_en, source=source, now=NOW)
        assert await repository.list_transactions(USER_ID) == []

    async def test_voice_threshold_is_lower(self, materializer, preferences_en, seeded):
        """Test 0.65 passes for voice but not for text."""
        result = await materializer.materialize(
            kopi_intent(confidence=0.65), preferences_en, source=IntentSource.VOICE, now=NOW
        )
        assert result.transaction.amount == Decimal("25000")

    async def test_intent_date_wins(self, materializer, preferences_en, seeded):
        """Test an ISO date from the intent is used as-is."""
        result = await materializer.materialize(
            kopi_intent(occurred_at="2024-07-01"), preferences_en, raw_text="kemarin", now=NOW
        )
        assert result.transaction.occurred_at == datetime(2024, 7, 1, tzinfo=timezone.utc)

    async def test_raw_text_date_resolved(self, materializer, preferences_id, seeded):
        """Test the resolver reads the raw text when the intent has no date."""
        result = await materializer.materialize(
            kopi_intent(), preferences_id, raw_text="beli kopi kemarin 25000", now=NOW
        )
        assert result.transaction.occurred_at == datetime(2024, 7, 19, tzinfo=timezone.utc)

    async def test_non_iso_intent_date_discarded(self, materializer, preferences_en, seeded):
        """Test an epoch number from the model is ignored."""
        intent = kopi_intent(occurred_at=1720000000)
        assert intent.occurred_at is None
        result = await materializer.materialize(intent, preferences_en, now=NOW)
        assert result.transaction.occurred_at == NOW

    async def test_income_has_no_budget_follow_up(self, materializer, preferences_en, seeded):
        """Test income never triggers alerts or recommendations."""
        intent = kopi_intent(
            category_name="Salary",
            kind=TransactionKind.INCOME,
            description="gaji",
            suggested_new_category=None,
        )
        result = await materializer.materialize(intent, preferences_en, now=NOW)
        assert result.transaction.kind == TransactionKind.INCOME
        assert result.budget_alert is None
        assert result.recommendation is None

    async def test_alert_when_budget_exists(self, materializer, budgets, preferences_en, seeded):
        """Test an expense past the danger tier carries an alert and no recommendation."""
        await budgets.upsert(USER_ID, "Shopping", Decimal("30000"), now=NOW)
        result = await materializer.materialize(
            kopi_intent(category_name="Shopping", suggested_new_category=None), preferences_en, now=NOW
        )
        assert result.budget_alert.tier == AlertTier.DANGER
        assert result.recommendation is None

    async def test_follow_up_failure_keeps_transaction(self, repository, categories, preferences_en, seeded):
        """Test a failing budget follow-up does not undo the write."""
        materializer = TransactionMaterializer(repository, categories, ExplodingBudgets())
        result = await materializer.materialize(kopi_intent(), preferences_en, now=NOW)
        assert result.budget_alert is None
        assert result.recommendation is None
        assert len(await repository.list_transactions(USER_ID)) == 1


class TestReceipt:
    """Receipt line items are judged one by one."""

    async def test_low_confidence_items_skipped(self, materializer, repository, preferences_en, seeded):
        """Test items at or below the image threshold are skipped."""
        extraction = ReceiptExtraction(
            confidence=0.9,
            text="KOPI 25000 / ROTI 15000 / ???",
            transactions=[
                kopi_intent(confidence=0.9),
                kopi_intent(confidence=0.8, description="roti", amount=Decimal("15000")),
                kopi_intent(confidence=0.6, description="???", amount=Decimal("5000")),
            ],
        )
        outcome = await materializer.materialize_receipt(extraction, preferences_en, now=NOW)

        assert len(outcome.materialized) == 2
        assert outcome.skipped == 1
        assert outcome.total == Decimal("40000")
        assert len(await repository.list_transactions(USER_ID)) == 2
        # The category was auto-created once and reused
        assert [m.category_created for m in outcome.materialized] == [True, False]

    async def test_nothing_accepted_is_low_confidence(self, materializer, repository, preferences_en, seeded):
        """Test a receipt with no confident item writes nothing."""
        extraction = ReceiptExtraction(confidence=0.5, transactions=[kopi_intent(confidence=0.4)])
        with pytest.raises(LowConfidence):
            await materializer.materialize_receipt(extraction, preferences_en, now=NOW)
        assert await repository.list_transactions(USER_ID) == []

    async def test_unresolvable_item_rejects_whole_receipt(
        self, materializer, repository, categories, seeded
    ):
        """Test a later item without a category leaves the ledger untouched."""
        await categories.update(USER_ID, "Other", new_name="Misc")
        preferences = UserPreferences(user_id=USER_ID, default_currency="USD", auto_categorize=False)
        extraction = ReceiptExtraction(
            confidence=0.9,
            transactions=[
                kopi_intent(description="bus", amount=Decimal("10"), category_name="Transportation"),
                kopi_intent(
                    description="chips",
                    amount=Decimal("5"),
                    category_name="Snacks",
                    suggested_new_category=None,
                ),
            ],
        )

        with pytest.raises(CategoryUnresolved):
            await materializer.materialize_receipt(extraction, preferences, now=NOW)
        assert await repository.list_transactions(USER_ID) == []


class TestReceiptStorageFailure:
    """Storage failures while writing receipt items."""

    @pytest.fixture
    def repository(self):
        return FlakyLedgerRepository()

    async def test_failure_midway_reports_written_items(
        self, materializer, repository, preferences_en, seeded
    ):
        """Test items written before a storage failure are returned, the rest counted as failed."""
        repository.fail_after = 1
        extraction = ReceiptExtraction(
            confidence=0.9,
            transactions=[
                kopi_intent(description="bus", amount=Decimal("10"), category_name="Transportation"),
                kopi_intent(description="film", amount=Decimal("20"), category_name="Entertainment"),
                kopi_intent(description="obat", amount=Decimal("30"), category_name="Healthcare"),
            ],
        )

        outcome = await materializer.materialize_receipt(extraction, preferences_en, now=NOW)

        assert [m.transaction.description for m in outcome.materialized] == ["bus"]
        assert outcome.failed == 2
        assert len(await repository.list_transactions(USER_ID)) == 1

    async def test_failure_on_first_item_raises(
        self, materializer, repository, preferences_en, seeded
    ):
        """Test a failure before anything was written surfaces as a storage error."""
        repository.fail_after = 0
        extraction = ReceiptExtraction(
            confidence=0.9,
            transactions=[kopi_intent(description="bus", category_name="Transportation")],
        )

        with pytest.raises(StorageError):
            await materializer.materialize_receipt(extraction, preferences_en, now=NOW)
        assert await repository.list_transactions(USER_ID) == []
