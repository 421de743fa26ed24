"""Tests for money formatting and localized replies."""

from decimal import Decimal

import pytest

from chatledger.errors import (
    CategoryNotFound,
    GoalHasFundsError,
    InsufficientFunds,
    LowConfidence,
    ValidationError,
)
from chatledger.models.ledger import Language
from chatledger.models.results import ReceiptOutcome
from chatledger.replies import MESSAGES, ReplyComposer, format_money


class TestFormatMoney:
    """Currency-aware amounts."""

    @pytest.mark.parametrize("amount,currency,expected", [
        ("25000", "IDR", "Rp 25.000"),
        ("1250000.4", "IDR", "Rp 1.250.000"),
        ("1250.5", "USD", "$1,250.50"),
        ("3000", "JPY", "¥3,000"),
        ("-42", "USD", "-$42.00"),
        ("10", "CHF", "CHF10.00"),
    ])
    def test_format(self, amount, currency, expected):
        """Test symbols, separators and minor units per currency."""
        assert format_money(Decimal(amount), currency) == expected

    def test_lowercase_currency(self):
        """Test currency codes are case-insensitive."""
        assert format_money(Decimal("5"), "usd") == "$5.00"


class TestCatalog:
    """Both locales carry the same keys."""

    def test_same_keys(self):
        """Test no message is missing a translation."""
        assert set(MESSAGES[Language.INDONESIAN]) == set(MESSAGES[Language.ENGLISH])

    def test_unknown_language_falls_back_to_english(self):
        """Test an unsupported locale does not raise."""
        assert ReplyComposer("fr").language == Language.ENGLISH


class TestErrorReplies:
    """Error replies are localized and actionable."""

    @pytest.fixture
    def en(self):
        return ReplyComposer(Language.ENGLISH, "USD")

    @pytest.fixture
    def id_(self):
        return ReplyComposer(Language.INDONESIAN, "IDR")

    def test_suggestions_are_listed(self, en):
        """Test did-you-mean names are appended."""
        reply = en.error(CategoryNotFound("nope", suggestions=["Shopping"]))
        assert "Shopping" in reply

    def test_insufficient_funds_shows_available(self, id_):
        """Test the available amount is formatted in the user's currency."""
        reply = id_.error(InsufficientFunds("short", available=Decimal("150000")))
        assert "Rp 150.000" in reply

    def test_goal_has_funds_names_a_receiver(self, en):
        """Test the reply suggests where the funds could go."""
        reply = en.error(GoalHasFundsError(
            "has funds",
            goal_name="Vacation",
            current_amount=Decimal("1500"),
            candidates=["Laptop"],
        ))
        assert "Vacation" in reply
        assert "Laptop" in reply

    def test_validation_detail_included(self, en):
        """Test the validation message reaches the user."""
        reply = en.error(ValidationError("Goal target must be greater than zero"))
        assert "Goal target must be greater than zero" in reply

    def test_each_kind_has_a_reply(self, en, id_):
        """Test low confidence has a localized reply in both languages."""
        assert en.error(LowConfidence("meh")) != id_.error(LowConfidence("meh"))


class TestReceiptReply:
    """Receipt summaries."""

    def test_unsaved_items_are_reported(self):
        """Test items lost to a storage failure are counted in the reply."""
        reply = ReplyComposer(Language.ENGLISH, "USD").receipt_saved(ReceiptOutcome(failed=2))
        assert "2 item(s) were not saved" in reply
