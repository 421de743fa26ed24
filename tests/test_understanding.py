"""
Tests for understanding-service response parsing.

Everything the model says is validated at the boundary; junk becomes
LowConfidence, never a half-built intent.
"""

from decimal import Decimal

import pytest

from chatledger.agents import (
    extract_json,
    parse_budget,
    parse_category,
    parse_receipt,
    parse_savings,
    parse_transaction,
)
from chatledger.errors import LowConfidence
from chatledger.models.intents import (
    BudgetListIntent,
    BudgetUpsertIntent,
    CategoryUpdateIntent,
    ReturnFundsIntent,
    TransferGoalIntent,
)
from chatledger.models.ledger import BudgetPeriod, TransactionKind


class TestExtractJson:
    """Pulling the object out of a chatty response."""

    def test_code_fence(self):
        """Test JSON wrapped in a markdown fence."""
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_json(self):
        """Test leading and trailing prose is ignored."""
        assert extract_json('Sure! {"a": {"b": 2}} Hope that helps') == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["", "no json here", "{not json}", "[1, 2]"])
    def test_junk_is_low_confidence(self, text):
        """Test unusable responses raise LowConfidence."""
        with pytest.raises(LowConfidence):
            extract_json(text)


class TestParseTransaction:
    """Transaction intents."""

    def test_full_response(self):
        """Test a complete response with a suggested category."""
        intent = parse_transaction(
            '{"amount": 25000, "description": "beli kopi", "category_name": null, "kind": "expense",'
            ' "confidence": 0.92, "occurred_at": null,'
            ' "suggested_new_category": {"name": "Kopi", "icon": "☕", "color": "not-a-color"}}'
        )
        assert intent.amount == Decimal("25000")
        assert intent.kind == TransactionKind.EXPENSE
        assert intent.suggested_new_category.name == "Kopi"
        # A bad color is replaced, not fatal
        assert intent.suggested_new_category.color == "#6B7280"

    def test_non_positive_amount_rejected(self):
        """Test a zero amount is LowConfidence."""
        with pytest.raises(LowConfidence):
            parse_transaction('{"amount": 0, "confidence": 0.9}')

    def test_confidence_out_of_range_rejected(self):
        """Test confidence must be within [0, 1]."""
        with pytest.raises(LowConfidence) as exc_info:
            parse_transaction('{"amount": 10, "confidence": 1.5}')
        assert exc_info.value.confidence == 1.5

    def test_garbage_date_discarded(self):
        """Test a non-ISO date becomes None instead of failing."""
        intent = parse_transaction('{"amount": 10, "confidence": 0.9, "occurred_at": "kemarin"}')
        assert intent.occurred_at is None


class TestParseCommands:
    """Tagged-union command intents."""

    def test_budget_upsert(self):
        """Test a create action becomes an upsert intent."""
        intent = parse_budget(
            '{"action": "create", "category_name": "Food & Dining", "amount": 500000,'
            ' "period": "weekly", "confidence": 0.9}'
        )
        assert isinstance(intent, BudgetUpsertIntent)
        assert intent.period == BudgetPeriod.WEEKLY

    def test_budget_list(self):
        """Test list needs no fields beyond action and confidence."""
        assert isinstance(parse_budget('{"action": "list", "confidence": 0.9}'), BudgetListIntent)

    def test_budget_delete_requires_category(self):
        """Test a delete without a category is rejected."""
        with pytest.raises(LowConfidence):
            parse_budget('{"action": "delete", "confidence": 0.9}')

    def test_unknown_action_rejected(self):
        """Test actions outside the union are rejected."""
        with pytest.raises(LowConfidence):
            parse_budget('{"action": "explode", "confidence": 0.9}')

    def test_category_update(self):
        """Test a rename intent."""
        intent = parse_category(
            '{"action": "update", "category_name": "Kopi", "new_category_name": "Coffee", "confidence": 0.8}'
        )
        assert isinstance(intent, CategoryUpdateIntent)
        assert intent.new_category_name == "Coffee"

    def test_transfer_requires_destination(self):
        """Test transfer_goal without a destination is rejected."""
        with pytest.raises(LowConfidence):
            parse_savings('{"action": "transfer_goal", "goal_name": "Vacation", "amount": 100, "confidence": 0.9}')

    def test_transfer(self):
        """Test a complete transfer intent."""
        intent = parse_savings(
            '{"action": "transfer_goal", "goal_name": "Vacation", "target_goal_name": "Laptop",'
            ' "amount": 100, "confidence": 0.9}'
        )
        assert isinstance(intent, TransferGoalIntent)
        assert intent.target_goal_name == "Laptop"

    def test_return_all_funds(self):
        """Test a null amount means everything."""
        intent = parse_savings('{"action": "return_funds", "goal_name": "Laptop", "amount": null, "confidence": 0.9}')
        assert isinstance(intent, ReturnFundsIntent)
        assert intent.amount is None


class TestParseReceipt:
    """Receipt line items are validated one by one."""

    def test_broken_item_dropped(self):
        """Test an invalid line item is dropped, the rest survive."""
        extraction = parse_receipt(
            '{"text": "KOPI 25000", "confidence": 0.8, "transactions": ['
            '{"amount": 25000, "description": "kopi", "confidence": 0.9},'
            '{"amount": -5, "description": "diskon", "confidence": 0.9}]}'
        )
        assert extraction.text == "KOPI 25000"
        assert [t.description for t in extraction.transactions] == ["kopi"]

    def test_transactions_must_be_a_list(self):
        """Test a malformed item list is LowConfidence."""
        with pytest.raises(LowConfidence):
            parse_receipt('{"confidence": 0.8, "transactions": "kopi"}')

    def test_missing_confidence_rejected(self):
        """Test the extraction itself needs a confidence."""
        with pytest.raises(LowConfidence):
            parse_receipt('{"transactions": []}')
