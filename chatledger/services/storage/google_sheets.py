"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering: the engines
  validate everything before the first write)
- Limited query capabilities (we filter in Python)

One worksheet per entity, one entity per row, header in row 1.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from chatledger.config import get_settings
from chatledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
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
    ConnectionError,
    DuplicateError,
    IdentityLinkRepository,
    LedgerRepository,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column layouts, one per worksheet. The first column is the row key.
CATEGORY_COLUMNS = [
    "id", "user_id", "name", "icon", "color", "kind", "is_default", "created_at",
]
TRANSACTION_COLUMNS = [
    "id", "user_id", "category_id", "amount", "currency", "description",
    "kind", "occurred_at", "ai_generated", "created_at", "updated_at",
]
BUDGET_COLUMNS = [
    "id", "user_id", "category_id", "amount", "period",
    "start_at", "end_at", "created_at", "updated_at",
]
GOAL_COLUMNS = [
    "id", "user_id", "name", "target_amount", "current_amount", "deadline",
    "category", "description", "is_active", "created_at", "updated_at",
]
GOAL_BOOST_COLUMNS = [
    "id", "goal_id", "user_id", "amount", "description", "occurred_at",
]
SAVINGS_PLAN_COLUMNS = [
    "id", "goal_id", "user_id", "amount", "frequency",
    "next_contribution_at", "is_active", "created_at", "updated_at",
]
PREFERENCES_COLUMNS = [
    "user_id", "default_currency", "language", "auto_categorize", "timezone",
]
IDENTITY_LINK_COLUMNS = ["channel_identity", "user_id", "created_at"]
ACTIVATION_CODE_COLUMNS = ["code", "user_id", "expires_at", "used"]
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def _cell(value: Any) -> str:
    """Serialize one model field to a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for the connection.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title not in self._worksheets:
            spreadsheet = self.get_spreadsheet()
            try:
                sheet = spreadsheet.worksheet(title)
            except gspread.WorksheetNotFound:
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            self._worksheets[title] = sheet
        return self._worksheets[title]


M = TypeVar("M", bound=BaseModel)


class WorksheetTable(Generic[M]):
    """
    One worksheet holding one model type.

    Rows are mapped by column name; empty cells become missing fields so
    model defaults apply. Malformed rows are logged and skipped.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        columns: list[str],
        model: type[M],
    ):
        self._client = client
        self._title = title
        self._columns = columns
        self._model = model

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._title, self._columns)

    def to_row(self, item: M) -> list[str]:
        return [_cell(getattr(item, column)) for column in self._columns]

    def from_row(self, row: list[str]) -> M:
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        data = {
            column: safe_get(index)
            for index, column in enumerate(self._columns)
            if safe_get(index)
        }
        return self._model.model_validate(data)

    def all(self) -> list[M]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {self._title}: {e}")

        items = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                items.append(self.from_row(row))
            except ValueError as e:
                logger.warning("malformed_row_skipped", sheet=self._title, key=row[0], error=str(e))
        return items

    def append(self, item: M) -> None:
        try:
            self._sheet().append_row(self.to_row(item), value_input_option="RAW")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write {self._title}: {e}")

    def _row_numbers(self, column: str, value: str) -> list[int]:
        position = self._columns.index(column)
        all_rows = self._sheet().get_all_values()
        return [
            idx for idx, row in enumerate(all_rows[1:], start=2)  # row 1 is the header
            if len(row) > position and row[position] == value
        ]

    def replace(self, key: str, item: M) -> bool:
        """Overwrite the row whose first column equals key."""
        try:
            matches = self._row_numbers(self._columns[0], key)
            if not matches:
                return False
            self._sheet().update(range_name=f"A{matches[0]}", values=[self.to_row(item)])
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self._title}: {e}")

    def delete_where(self, column: str, value: str) -> int:
        try:
            matches = self._row_numbers(column, value)
            # Bottom-up so earlier deletions don't shift later row numbers
            for idx in sorted(matches, reverse=True):
                self._sheet().delete_rows(idx)
            return len(matches)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete from {self._title}: {e}")


class GoogleSheetsLedgerRepository(LedgerRepository):
    """
    Google Sheets implementation of ledger storage.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._categories = WorksheetTable(
            self._client, names.categories_sheet_name, CATEGORY_COLUMNS, Category
        )
        self._transactions = WorksheetTable(
            self._client, names.transactions_sheet_name, TRANSACTION_COLUMNS, Transaction
        )
        self._budgets = WorksheetTable(
            self._client, names.budgets_sheet_name, BUDGET_COLUMNS, Budget
        )
        self._goals = WorksheetTable(
            self._client, names.goals_sheet_name, GOAL_COLUMNS, Goal
        )
        self._boosts = WorksheetTable(
            self._client, names.goal_boosts_sheet_name, GOAL_BOOST_COLUMNS, GoalBoost
        )
        self._plans = WorksheetTable(
            self._client, names.savings_plans_sheet_name, SAVINGS_PLAN_COLUMNS, GoalSavingsPlan
        )
        self._preferences = WorksheetTable(
            self._client, names.preferences_sheet_name, PREFERENCES_COLUMNS, UserPreferences
        )

    # Categories

    async def list_categories(self, user_id: str) -> list[Category]:
        return [c for c in self._categories.all() if c.user_id == user_id]

    async def get_category(self, user_id: str, category_id: UUID) -> Optional[Category]:
        for category in await self.list_categories(user_id):
            if category.id == category_id:
                return category
        return None

    async def _ensure_unique_name(self, category: Category) -> None:
        for existing in await self.list_categories(category.user_id):
            if existing.id != category.id and existing.normalized_name == category.normalized_name:
                raise DuplicateError(f"Category already exists: {category.name}")

    async def add_category(self, category: Category) -> Category:
        await self._ensure_unique_name(category)
        self._categories.append(category)
        return category

    async def update_category(self, category: Category) -> Category:
        await self._ensure_unique_name(category)
        if not self._categories.replace(str(category.id), category):
            raise NotFoundError(f"Category not found: {category.id}")
        return category

    async def delete_category(self, user_id: str, category_id: UUID) -> bool:
        if await self.get_category(user_id, category_id) is None:
            return False
        return self._categories.delete_where("id", str(category_id)) > 0

    # Transactions

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        self._transactions.append(transaction)
        return transaction

    async def list_transactions(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        category_id: Optional[UUID] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        transactions = []
        for txn in self._transactions.all():
            if txn.user_id != user_id:
                continue
            if start and txn.occurred_at < start:
                continue
            if end and txn.occurred_at >= end:
                continue
            if category_id and txn.category_id != category_id:
                continue
            if kind and txn.kind != kind:
                continue
            transactions.append(txn)

        # Newest first
        transactions.sort(key=lambda t: (t.occurred_at, t.created_at), reverse=True)
        return transactions

    async def count_category_transactions(self, user_id: str, category_id: UUID) -> int:
        return len(await self.list_transactions(user_id, category_id=category_id))

    # Budgets

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return [b for b in self._budgets.all() if b.user_id == user_id]

    async def get_budget_for_category(
        self,
        user_id: str,
        category_id: UUID,
    ) -> Optional[Budget]:
        for budget in await self.list_budgets(user_id):
            if budget.category_id == category_id:
                return budget
        return None

    async def save_budget(self, budget: Budget) -> Budget:
        budget.updated_at = utc_now()
        if not self._budgets.replace(str(budget.id), budget):
            self._budgets.append(budget)
        return budget

    async def delete_budget(self, user_id: str, budget_id: UUID) -> bool:
        owned = any(b.id == budget_id for b in await self.list_budgets(user_id))
        return owned and self._budgets.delete_where("id", str(budget_id)) > 0

    # Goals

    async def list_goals(self, user_id: str, include_inactive: bool = False) -> list[Goal]:
        return [
            g for g in self._goals.all()
            if g.user_id == user_id and (include_inactive or g.is_active)
        ]

    async def get_goal(self, user_id: str, goal_id: UUID) -> Optional[Goal]:
        for goal in await self.list_goals(user_id, include_inactive=True):
            if goal.id == goal_id:
                return goal
        return None

    async def add_goal(self, goal: Goal) -> Goal:
        self._goals.append(goal)
        return goal

    async def update_goal(self, goal: Goal) -> Goal:
        goal.updated_at = utc_now()
        if not self._goals.replace(str(goal.id), goal):
            raise NotFoundError(f"Goal not found: {goal.id}")
        return goal

    async def delete_goal(self, user_id: str, goal_id: UUID) -> bool:
        if await self.get_goal(user_id, goal_id) is None:
            return False
        key = str(goal_id)
        self._boosts.delete_where("goal_id", key)
        self._plans.delete_where("goal_id", key)
        return self._goals.delete_where("id", key) > 0

    async def add_boost(self, boost: GoalBoost) -> GoalBoost:
        self._boosts.append(boost)
        return boost

    async def list_boosts(self, user_id: str, goal_id: UUID) -> list[GoalBoost]:
        boosts = [
            b for b in self._boosts.all()
            if b.user_id == user_id and b.goal_id == goal_id
        ]
        boosts.sort(key=lambda b: b.occurred_at)
        return boosts

    async def list_plans(self, user_id: str, goal_id: UUID) -> list[GoalSavingsPlan]:
        return [
            p for p in self._plans.all()
            if p.user_id == user_id and p.goal_id == goal_id
        ]

    async def save_plan(self, plan: GoalSavingsPlan) -> GoalSavingsPlan:
        plan.updated_at = utc_now()
        if not self._plans.replace(str(plan.id), plan):
            self._plans.append(plan)
        return plan

    # Preferences

    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        for preferences in self._preferences.all():
            if preferences.user_id == user_id:
                return preferences
        return None

    async def save_preferences(self, preferences: UserPreferences) -> UserPreferences:
        if not self._preferences.replace(preferences.user_id, preferences):
            self._preferences.append(preferences)
        return preferences


class GoogleSheetsIdentityLinkRepository(IdentityLinkRepository):
    """Identity links and activation codes in their own worksheets."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        names = self._client.settings
        self._links = WorksheetTable(
            self._client, names.identity_links_sheet_name, IDENTITY_LINK_COLUMNS, IdentityLink
        )
        self._codes = WorksheetTable(
            self._client, names.activation_codes_sheet_name, ACTIVATION_CODE_COLUMNS, ActivationCode
        )

    async def resolve_user(self, channel_identity: str) -> Optional[str]:
        for link in self._links.all():
            if link.channel_identity == channel_identity:
                return link.user_id
        return None

    async def link(self, link: IdentityLink) -> IdentityLink:
        if await self.resolve_user(link.channel_identity) is not None:
            raise DuplicateError(f"Identity already linked: {link.channel_identity}")
        self._links.append(link)
        return link

    async def get_activation_code(self, code: str) -> Optional[ActivationCode]:
        for stored in self._codes.all():
            if stored.code == code.upper():
                return stored
        return None

    async def save_activation_code(self, code: ActivationCode) -> ActivationCode:
        if not self._codes.replace(code.code, code):
            self._codes.append(code)
        return code


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError as e:
                logger.warning("malformed_audit_row_skipped", event_id=row[0], error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", event_id=str(event.event_id), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
