"""Understanding service package."""

from chatledger.agents.understanding import (
    GeminiUnderstandingService,
    UnderstandingContext,
    UnderstandingService,
    extract_json,
    parse_budget,
    parse_category,
    parse_receipt,
    parse_savings,
    parse_transaction,
)

__all__ = [
    "GeminiUnderstandingService",
    "UnderstandingContext",
    "UnderstandingService",
    "extract_json",
    "parse_budget",
    "parse_category",
    "parse_receipt",
    "parse_savings",
    "parse_transaction",
]
