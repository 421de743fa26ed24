"""Services package."""

from chatledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityLinkRepository,
    GoogleSheetsLedgerRepository,
    IdentityLinkRepository,
    InMemoryAuditStorage,
    InMemoryIdentityLinkRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsIdentityLinkRepository",
    "GoogleSheetsLedgerRepository",
    "IdentityLinkRepository",
    "InMemoryAuditStorage",
    "InMemoryIdentityLinkRepository",
    "InMemoryLedgerRepository",
    "LedgerRepository",
    "NotFoundError",
    "StorageError",
]
