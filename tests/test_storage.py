"""
Tests for the storage backends.

The Google Sheets repository runs against an in-process worksheet double,
so no network or credentials are needed.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from chatledger.audit import AuditLogger, create_correlation_id
from chatledger.config.settings import GoogleSheetsSettings, validate_all_settings
from chatledger.models.audit import AuditEvent, AuditEventType
from chatledger.models.ledger import (
    Category,
    Goal,
    GoalBoost,
    IdentityLink,
    Transaction,
    TransactionKind,
    UserPreferences,
)
from chatledger.services.storage import (
    DuplicateError,
    GoogleSheetsIdentityLinkRepository,
    GoogleSheetsLedgerRepository,
    InMemoryAuditStorage,
    InMemoryLedgerRepository,
    NotFoundError,
)
from chatledger.services.storage.google_sheets import _cell


USER_ID = "user-1"
NOW = datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for WorksheetTable."""

    def __init__(self, columns: list[str]):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name, values):
        self.rows[int(range_name[1:]) - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.settings = GoogleSheetsSettings.model_construct(
            credentials_path="unused.json",
            spreadsheet_id="sheet-id",
        )
        self.worksheets: dict[str, FakeWorksheet] = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.worksheets:
            self.worksheets[title] = FakeWorksheet(columns)
        return self.worksheets[title]


def expense(category, amount, occurred_at):
    return Transaction(
        user_id=USER_ID,
        category_id=category.id,
        amount=Decimal(amount),
        kind=TransactionKind.EXPENSE,
        occurred_at=occurred_at,
    )


class TestCell:
    """Serializing model fields to sheet cells."""

    def test_values(self):
        """Test None, enums, datetimes and decimals."""
        assert _cell(None) == ""
        assert _cell(TransactionKind.INCOME) == "income"
        assert _cell(NOW) == "2024-07-20T12:00:00+00:00"
        assert _cell(Decimal("25000.50")) == "25000.50"


class TestInMemoryLedgerRepository:
    """Behaviors the engines rely on."""

    @pytest.fixture
    def repo(self):
        return InMemoryLedgerRepository()

    async def test_returned_models_are_copies(self, repo):
        """Test mutating a listed model does not touch storage."""
        await repo.add_category(Category(user_id=USER_ID, name="Kopi"))
        listed = (await repo.list_categories(USER_ID))[0]
        listed.name = "Teh"
        assert (await repo.list_categories(USER_ID))[0].name == "Kopi"

    async def test_category_names_unique_per_user(self, repo):
        """Test a case-insensitive duplicate is rejected, other users are not affected."""
        await repo.add_category(Category(user_id=USER_ID, name="Kopi"))
        with pytest.raises(DuplicateError):
            await repo.add_category(Category(user_id=USER_ID, name="KOPI"))
        await repo.add_category(Category(user_id="user-2", name="Kopi"))

    async def test_transactions_newest_first_with_window(self, repo):
        """Test ordering and the half-open [start, end) filter."""
        category = Category(user_id=USER_ID, name="Kopi")
        for days in (3, 1, 2):
            await repo.add_transaction(expense(category, "10", NOW - timedelta(days=days)))
        await repo.add_transaction(expense(category, "10", NOW))

        found = await repo.list_transactions(USER_ID, start=NOW - timedelta(days=2), end=NOW)

        assert [t.occurred_at for t in found] == [NOW - timedelta(days=1), NOW - timedelta(days=2)]

    async def test_update_missing_goal(self, repo):
        """Test updating an unknown goal raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await repo.update_goal(Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("100")))

    async def test_goal_delete_cascades(self, repo):
        """Test boosts disappear with their goal."""
        goal = Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("100"))
        await repo.add_goal(goal)
        await repo.add_boost(GoalBoost(goal_id=goal.id, user_id=USER_ID, amount=Decimal("10")))

        assert await repo.delete_goal(USER_ID, goal.id)
        assert await repo.list_boosts(USER_ID, goal.id) == []

    async def test_other_users_goal_not_deleted(self, repo):
        """Test ownership is checked before deleting."""
        goal = Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("100"))
        await repo.add_goal(goal)
        assert not await repo.delete_goal("user-2", goal.id)


class TestGoogleSheetsLedgerRepository:
    """Row mapping and row-level writes against a worksheet double."""

    @pytest.fixture
    def client(self):
        return FakeSheetsClient()

    @pytest.fixture
    def repo(self, client):
        return GoogleSheetsLedgerRepository(client)

    async def test_category_persisted_as_row(self, repo, client):
        """Test a category becomes one row and reads back with its fields."""
        category = Category(user_id=USER_ID, name="Kopi", icon="☕", color="#6F4E37")
        await repo.add_category(category)

        sheet = client.worksheets["Categories"]
        assert sheet.rows[0][0] == "id"
        assert sheet.rows[1][2] == "Kopi"

        loaded = await repo.get_category(USER_ID, category.id)
        assert loaded == category

    async def test_duplicate_category(self, repo):
        """Test the uniqueness rule holds for the sheet backend too."""
        await repo.add_category(Category(user_id=USER_ID, name="Kopi"))
        with pytest.raises(DuplicateError):
            await repo.add_category(Category(user_id=USER_ID, name="kopi"))

    async def test_empty_cells_use_defaults(self, repo):
        """Test optional goal fields survive as None."""
        goal = Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("1500"))
        await repo.add_goal(goal)

        loaded = await repo.get_goal(USER_ID, goal.id)
        assert loaded.deadline is None
        assert loaded.description is None
        assert loaded.current_amount == Decimal("0")
        assert loaded.is_active

    async def test_update_goal_overwrites_row(self, repo, client):
        """Test an update replaces the row in place."""
        goal = Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("1500"))
        await repo.add_goal(goal)
        goal.current_amount = Decimal("500")
        goal.is_active = False
        await repo.update_goal(goal)

        assert len(client.worksheets["Goals"].rows) == 2
        assert await repo.list_goals(USER_ID) == []
        loaded = await repo.get_goal(USER_ID, goal.id)
        assert loaded.current_amount == Decimal("500")

    async def test_delete_goal_cascades(self, repo, client):
        """Test boost rows are removed with the goal."""
        keep = Goal(user_id=USER_ID, name="Vacation", target_amount=Decimal("100"))
        drop = Goal(user_id=USER_ID, name="Laptop", target_amount=Decimal("100"))
        for goal in (keep, drop):
            await repo.add_goal(goal)
            await repo.add_boost(GoalBoost(goal_id=goal.id, user_id=USER_ID, amount=Decimal("5")))

        assert await repo.delete_goal(USER_ID, drop.id)

        assert [g.name for g in await repo.list_goals(USER_ID)] == ["Vacation"]
        assert await repo.list_boosts(USER_ID, drop.id) == []
        assert len(await repo.list_boosts(USER_ID, keep.id)) == 1

    async def test_transactions_filtered_and_sorted(self, repo):
        """Test the window filter and newest-first order."""
        category = Category(user_id=USER_ID, name="Kopi")
        await repo.add_transaction(expense(category, "10", NOW - timedelta(days=5)))
        await repo.add_transaction(expense(category, "20", NOW - timedelta(days=1)))

        found = await repo.list_transactions(USER_ID, start=NOW - timedelta(days=7))
        assert [t.amount for t in found] == [Decimal("20"), Decimal("10")]
        assert found[0].kind == TransactionKind.EXPENSE

    async def test_malformed_row_skipped(self, repo, client):
        """Test a hand-edited broken row does not break reads."""
        await repo.add_category(Category(user_id=USER_ID, name="Kopi"))
        client.worksheets["Categories"].rows.append(["not-a-uuid", USER_ID, "Broken"])

        assert [c.name for c in await repo.list_categories(USER_ID)] == ["Kopi"]

    async def test_preferences_upsert(self, repo, client):
        """Test preferences are keyed by user."""
        await repo.save_preferences(UserPreferences(user_id=USER_ID, default_currency="IDR"))
        await repo.save_preferences(UserPreferences(user_id=USER_ID, default_currency="USD"))

        assert len(client.worksheets["Preferences"].rows) == 2
        assert (await repo.get_preferences(USER_ID)).default_currency == "USD"


class TestGoogleSheetsIdentityLinks:
    """Identity links in a worksheet."""

    async def test_link_once(self):
        """Test an identity resolves after linking and cannot be linked twice."""
        repo = GoogleSheetsIdentityLinkRepository(FakeSheetsClient())
        await repo.link(IdentityLink(channel_identity="+628123", user_id=USER_ID))

        assert await repo.resolve_user("+628123") == USER_ID
        with pytest.raises(DuplicateError):
            await repo.link(IdentityLink(channel_identity="+628123", user_id="user-2"))


class TestAuditTrail:
    """Audit events grouped by correlation id."""

    async def test_events_for_one_message(self):
        """Test only the events of one inbound message come back, oldest first."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await audit.log_message_received("+628123", USER_ID, False, correlation_id)
        await audit.log_message_received("+628123", USER_ID, False, create_correlation_id())
        await audit.log_external_service_error("understanding_service", "timeout", correlation_id)

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.MESSAGE_RECEIVED,
            AuditEventType.EXTERNAL_SERVICE_ERROR,
        ]

    async def test_failing_storage_does_not_raise(self):
        """Test an audit write failure is reported, not raised."""
        class BrokenStorage(InMemoryAuditStorage):
            async def append_event(self, event):
                raise RuntimeError("sheet locked")

        audit = AuditLogger(BrokenStorage())
        assert not await audit.log(AuditEvent(event_type=AuditEventType.MESSAGE_RECEIVED, description="hi"))


class TestSettingsCheck:
    """Startup validation of the settings groups."""

    def test_missing_credentials_reported(self, monkeypatch):
        """Test missing Gemini credentials are reported without raising."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        results = validate_all_settings()
        assert results["app"] is True
        assert results["gemini"] is False
        assert "gemini_error" in results
