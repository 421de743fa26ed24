"""
Shared fixtures for Chat Ledger tests.

No real API calls: the ledger runs on the in-memory repositories and the
understanding service is a scripted fake.
"""

from collections import defaultdict, deque
from datetime import datetime, timezone

import pytest

from chatledger.agents import UnderstandingService
from chatledger.analytics import SpendingPatternAnalyzer
from chatledger.audit import AuditLogger
from chatledger.config import AppSettings
from chatledger.engine import BudgetEngine, CategoryRegistry, GoalLedger, TransactionMaterializer
from chatledger.models.ledger import Language, UserPreferences
from chatledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryIdentityLinkRepository,
    InMemoryLedgerRepository,
)


USER_ID = "user-1"


class FakeUnderstandingService(UnderstandingService):
    """
    Returns queued responses per method, in order.

    A queued exception is raised instead of returned.
    """

    def __init__(self):
        self._responses = defaultdict(deque)
        self.calls = []

    def queue(self, method: str, response) -> "FakeUnderstandingService":
        self._responses[method].append(response)
        return self

    def _next(self, method: str, *args):
        self.calls.append((method, args))
        if not self._responses[method]:
            raise AssertionError(f"Unexpected call to {method}")
        response = self._responses[method].popleft()
        if isinstance(response, Exception):
            raise response
        return response

    async def transcribe(self, audio, mime_type):
        return self._next("transcribe", audio, mime_type)

    async def analyze_transaction(self, text, context):
        return self._next("analyze_transaction", text, context)

    async def analyze_receipt(self, image, mime_type, context):
        return self._next("analyze_receipt", image, mime_type, context)

    async def analyze_budget(self, text, context):
        return self._next("analyze_budget", text, context)

    async def analyze_category(self, text, context):
        return self._next("analyze_category", text, context)

    async def analyze_savings(self, text, context):
        return self._next("analyze_savings", text, context)


@pytest.fixture
def now():
    """A fixed mid-month instant."""
    return datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository():
    return InMemoryLedgerRepository()


@pytest.fixture
def identity_links():
    return InMemoryIdentityLinkRepository()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def app_settings():
    return AppSettings(default_language="id", default_currency="IDR", default_timezone="UTC")


@pytest.fixture
def preferences_en():
    return UserPreferences(user_id=USER_ID, default_currency="USD", language=Language.ENGLISH)


@pytest.fixture
def preferences_id():
    return UserPreferences(user_id=USER_ID, default_currency="IDR", language=Language.INDONESIAN)


@pytest.fixture
def categories(repository):
    return CategoryRegistry(repository)


@pytest.fixture
async def seeded(categories):
    """Default categories for USER_ID."""
    return await categories.ensure_defaults(USER_ID)


@pytest.fixture
def budgets(repository, categories):
    return BudgetEngine(repository, categories, SpendingPatternAnalyzer(repository))


@pytest.fixture
def materializer(repository, categories, budgets):
    return TransactionMaterializer(repository, categories, budgets)


@pytest.fixture
def goals(repository, categories):
    return GoalLedger(repository, categories)


@pytest.fixture
def understanding():
    return FakeUnderstandingService()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)
