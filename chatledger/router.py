"""
Command Router

Decides which domain a message belongs to BEFORE the understanding
service is called, so the service only has to fill in one schema.

Rules are ordered and the first match wins:
1. Exact built-in commands (help, summary, status)
2. Budget vocabulary
3. Savings / goal vocabulary
4. Category vocabulary
5. Attachment kind (audio -> voice transaction, image -> receipt)
6. Everything else is a plain transaction

Domain keywords outrank generic transaction parsing: "budget makan
500000" is a budget command even though it also looks like spending.
"""

import re
from enum import Enum
from typing import Optional

from chatledger.models.results import AttachmentKind


class Domain(str, Enum):
    TRANSACTION = "transaction"
    VOICE = "voice"
    RECEIPT = "receipt"
    BUDGET = "budget"
    SAVINGS = "savings"
    CATEGORY = "category"
    HELP = "help"
    SUMMARY = "summary"
    STATUS = "status"


BUILTIN_COMMANDS: dict[str, Domain] = {
    "help": Domain.HELP,
    "bantuan": Domain.HELP,
    "menu": Domain.HELP,
    "?": Domain.HELP,
    "saldo": Domain.SUMMARY,
    "balance": Domain.SUMMARY,
    "ringkasan": Domain.SUMMARY,
    "summary": Domain.SUMMARY,
    "status": Domain.STATUS,
}

BUDGET_KEYWORDS = ("budget", "budgets", "anggaran")

SAVINGS_KEYWORDS = (
    "tabung",
    "tabungan",
    "nabung",
    "menabung",
    "celengan",
    "goal",
    "goals",
    "target tabungan",
    "savings",
    "save to",
    "saving for",
    "return funds",
    "kembalikan dana",
)

CATEGORY_KEYWORDS = ("kategori", "category", "categories")


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern:
    alternation = "|".join(
        r"\s+".join(re.escape(word) for word in keyword.split())
        for keyword in sorted(keywords, key=len, reverse=True)
    )
    return re.compile(rf"\b(?:{alternation})\b")


_DOMAIN_RULES: list[tuple[Domain, re.Pattern]] = [
    (Domain.BUDGET, _keyword_pattern(BUDGET_KEYWORDS)),
    (Domain.SAVINGS, _keyword_pattern(SAVINGS_KEYWORDS)),
    (Domain.CATEGORY, _keyword_pattern(CATEGORY_KEYWORDS)),
]


def normalize(text: Optional[str]) -> str:
    return " ".join((text or "").lower().split())


class CommandRouter:
    """Classifies a message into exactly one Domain."""

    def classify(
        self,
        text: Optional[str],
        attachment: Optional[AttachmentKind] = None,
    ) -> Domain:
        normalized = normalize(text)

        builtin = BUILTIN_COMMANDS.get(normalized)
        if builtin is not None:
            return builtin

        for domain, pattern in _DOMAIN_RULES:
            if pattern.search(normalized):
                return domain

        if attachment == AttachmentKind.AUDIO:
            return Domain.VOICE
        if attachment == AttachmentKind.IMAGE:
            return Domain.RECEIPT

        return Domain.TRANSACTION
