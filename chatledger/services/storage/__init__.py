"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local runs. Business logic only ever sees the interfaces.
"""

from chatledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    IdentityLinkRepository,
    LedgerRepository,
    NotFoundError,
    StorageError,
)
from chatledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryIdentityLinkRepository,
    InMemoryLedgerRepository,
)
from chatledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityLinkRepository,
    GoogleSheetsLedgerRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "IdentityLinkRepository",
    "LedgerRepository",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryIdentityLinkRepository",
    "InMemoryLedgerRepository",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsIdentityLinkRepository",
    "GoogleSheetsLedgerRepository",
]
