"""
Tests for Chat Ledger models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with scripted external services)
3. No real API calls in tests
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from chatledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from chatledger.models.intents import SuggestedCategory, TransactionIntent
from chatledger.models.ledger import (
    ActivationCode,
    Budget,
    Category,
    Goal,
    Transaction,
    TransactionKind,
    UserPreferences,
)


class TestLedgerModels:
    """Tests for the persisted ledger models."""

    def test_naive_datetimes_become_utc(self):
        """Test every stored timestamp is timezone-aware UTC."""
        txn = Transaction(
            user_id="u",
            category_id=uuid4(),
            amount=Decimal("10"),
            kind=TransactionKind.EXPENSE,
            occurred_at=datetime(2024, 7, 20, 12, 0),
        )
        assert txn.occurred_at.tzinfo == timezone.utc

    def test_transaction_amount_must_be_positive(self):
        """Test zero amounts are rejected."""
        with pytest.raises(ValidationError):
            Transaction(user_id="u", category_id=uuid4(), amount=Decimal("0"), kind=TransactionKind.INCOME)

    def test_signed_amount(self):
        """Test expenses count negative for balances."""
        expense = Transaction(user_id="u", category_id=uuid4(), amount=Decimal("5"), kind=TransactionKind.EXPENSE)
        assert expense.signed_amount == Decimal("-5")

    def test_category_color_must_be_hex(self):
        """Test category colors are validated."""
        with pytest.raises(ValidationError):
            Category(user_id="u", name="Kopi", color="brown")

    def test_preferences_currency_uppercased(self):
        """Test currency codes are normalized."""
        assert UserPreferences(user_id="u", default_currency="idr").default_currency == "IDR"

    def test_budget_window_must_be_ordered(self):
        """Test a budget window cannot end before it starts."""
        start = datetime(2024, 7, 1, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            Budget(user_id="u", category_id=uuid4(), amount=Decimal("1"), start_at=start, end_at=start)


class TestGoalInvariant:
    """0 <= current_amount <= target_amount."""

    def test_cannot_construct_overfilled(self):
        """Test a goal above its target is rejected."""
        with pytest.raises(ValidationError):
            Goal(user_id="u", name="Laptop", target_amount=Decimal("100"), current_amount=Decimal("101"))

    def test_assignment_is_validated(self):
        """Test overfilling an existing goal raises."""
        goal = Goal(user_id="u", name="Laptop", target_amount=Decimal("100"))
        with pytest.raises(ValidationError):
            goal.current_amount = Decimal("150")

    def test_headroom_and_progress(self):
        """Test derived goal figures."""
        goal = Goal(user_id="u", name="Laptop", target_amount=Decimal("200"), current_amount=Decimal("50"))
        assert goal.headroom == Decimal("150")
        assert goal.progress_percent == 25.0
        assert not goal.is_complete


class TestActivationCode:
    """One-time activation codes."""

    def test_usable_until_expiry(self):
        """Test a fresh code is usable, an expired or used one is not."""
        now = datetime(2024, 7, 20, tzinfo=timezone.utc)
        code = ActivationCode(code="ABC123", user_id="u", expires_at=now + timedelta(minutes=5))
        assert code.is_usable(now)
        assert not code.is_usable(now + timedelta(minutes=6))
        code.used = True
        assert not code.is_usable(now)

    def test_code_format(self):
        """Test codes are six uppercase alphanumerics."""
        with pytest.raises(ValidationError):
            ActivationCode(code="abc", user_id="u", expires_at=datetime(2024, 7, 20, tzinfo=timezone.utc))


class TestIntentModels:
    """Tests for the intent boundary models."""

    def test_description_defaults(self):
        """Test an empty description falls back to a placeholder."""
        intent = TransactionIntent(amount=Decimal("10"), description="  ", confidence=0.9)
        assert intent.description == "Transaction"

    def test_suggested_category_defaults(self):
        """Test missing icon and color get defaults."""
        suggestion = SuggestedCategory(name="Kopi", icon=None, color=None)
        assert suggestion.icon
        assert suggestion.color == "#6B7280"

    def test_extra_fields_ignored(self):
        """Test unknown keys from the model are dropped."""
        intent = TransactionIntent(amount=Decimal("10"), confidence=0.9, mood="happy")
        assert not hasattr(intent, "mood")


class TestAuditModels:
    """Tests for audit event models."""

    def test_event_defaults(self):
        """Test an event gets an id, a UTC timestamp and INFO severity."""
        event = AuditEvent(event_type=AuditEventType.MESSAGE_RECEIVED, description="hi")
        assert event.event_id is not None
        assert event.timestamp.tzinfo == timezone.utc
        assert event.severity == AuditSeverity.INFO

    def test_transaction_created(self):
        """Test the builder fills entity and details."""
        correlation_id = uuid4()
        txn_id = uuid4()
        event = AuditEventBuilder.transaction_created(
            user_id="u",
            transaction_id=txn_id,
            kind="expense",
            amount=Decimal("25000"),
            category_name="Kopi",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == txn_id
        assert event.correlation_id == correlation_id
        assert event.details["category"] == "Kopi"

    def test_budget_alert_is_warning(self):
        """Test budget alerts are logged as warnings."""
        event = AuditEventBuilder.budget_alert(
            user_id="u",
            budget_id=uuid4(),
            category_name="Shopping",
            tier="danger",
            percentage=85.123,
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details["percentage"] == 85.12

    def test_goal_event_merges_details(self):
        """Test goal events carry amount and extra details."""
        event = AuditEventBuilder.goal_event(
            AuditEventType.GOAL_TRANSFERRED,
            user_id="u",
            goal_id=uuid4(),
            goal_name="Vacation",
            correlation_id=uuid4(),
            amount=Decimal("100"),
            details={"destination_goal_id": "x"},
        )
        assert event.details["goal"] == "Vacation"
        assert event.details["destination_goal_id"] == "x"
        assert "amount" in event.details

    def test_system_error(self):
        """Test error events carry code and message."""
        event = AuditEventBuilder.system_error(error_type="storage_error", error_message="down")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_code == "storage_error"

    def test_to_sheets_row(self):
        """Test the sheets row has twelve columns with JSON details."""
        event = AuditEventBuilder.external_service_error(
            service="understanding_service",
            error_message="timeout",
            correlation_id=uuid4(),
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "external_service_error"
        assert json.loads(row[9]) == {"service": "understanding_service"}
