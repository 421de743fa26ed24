"""
Understanding Service - natural language in, typed intents out

The LLM is a TRANSLATOR, not an ORACLE.
It converts a chat message (text, transcribed voice or a receipt photo)
into one of the intent models and nothing else. It never touches the
ledger, never computes balances and never decides whether an intent is
confident enough. That is the caller's job.

CRITICAL BOUNDARIES:
- Every request carries the full user context (categories, language,
  currency, auto-categorize flag). No session state lives here.
- Every response is validated against the intent models. Unknown
  shapes, unknown actions, non-positive amounts and missing per-action
  fields become LowConfidence ("please clarify").
- Transport failures become UnderstandingServiceUnavailable. There are
  no retries here; the message handler bounds every call with a timeout.
"""

import json
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Callable, Optional, TypeVar

import google.generativeai as genai
import pydantic
import structlog
from pydantic import BaseModel, Field

from chatledger.config import GeminiSettings, get_settings
from chatledger.errors import LowConfidence, UnderstandingServiceUnavailable
from chatledger.models.intents import (
    BudgetIntent,
    CategoryIntent,
    ReceiptExtraction,
    SavingsIntent,
    TransactionIntent,
    budget_intent_adapter,
    category_intent_adapter,
    savings_intent_adapter,
)
from chatledger.models.ledger import Language


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class UnderstandingContext(BaseModel):
    """What the model needs to know about the user, sent with every call."""

    categories: list[str] = Field(default_factory=list)
    language: Language = Language.ENGLISH
    currency: str = "USD"
    auto_categorize: bool = True
    today: Optional[date] = None


class UnderstandingService(ABC):
    """
    Abstract understanding service.

    Implementations MUST raise LowConfidence for unusable responses and
    UnderstandingServiceUnavailable for transport failures.
    """

    @abstractmethod
    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        """Speech to text. Returns the transcript."""
        pass

    @abstractmethod
    async def analyze_transaction(
        self,
        text: str,
        context: UnderstandingContext,
    ) -> TransactionIntent:
        pass

    @abstractmethod
    async def analyze_receipt(
        self,
        image: bytes,
        mime_type: str,
        context: UnderstandingContext,
    ) -> ReceiptExtraction:
        pass

    @abstractmethod
    async def analyze_budget(self, text: str, context: UnderstandingContext) -> BudgetIntent:
        pass

    @abstractmethod
    async def analyze_category(self, text: str, context: UnderstandingContext) -> CategoryIntent:
        pass

    @abstractmethod
    async def analyze_savings(self, text: str, context: UnderstandingContext) -> SavingsIntent:
        pass


# =============================================================================
# RESPONSE PARSING (shared by every implementation)
# =============================================================================

def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the JSON object out of a model response.

    Models like to wrap JSON in prose or code fences, so take everything
    between the first '{' and the last '}'.

    Raises:
        LowConfidence: No parseable object in the response
    """
    text = (text or "").strip()
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise LowConfidence("Response contained no JSON object")

    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise LowConfidence(f"Response JSON is malformed: {e}")

    if not isinstance(data, dict):
        raise LowConfidence("Response JSON is not an object")
    return data


def validate_intent(data: dict[str, Any], validate: Callable[[Any], T]) -> T:
    """Run a model/adapter validator, mapping failures to LowConfidence."""
    try:
        return validate(data)
    except pydantic.ValidationError as e:
        confidence = data.get("confidence") if isinstance(data, dict) else None
        logger.info("intent_rejected_at_boundary", errors=e.error_count())
        raise LowConfidence(
            "Response did not match any known intent",
            confidence=confidence if isinstance(confidence, (int, float)) else None,
        )


def parse_transaction(text: str) -> TransactionIntent:
    return validate_intent(extract_json(text), TransactionIntent.model_validate)


def parse_budget(text: str) -> BudgetIntent:
    return validate_intent(extract_json(text), budget_intent_adapter.validate_python)


def parse_category(text: str) -> CategoryIntent:
    return validate_intent(extract_json(text), category_intent_adapter.validate_python)


def parse_savings(text: str) -> SavingsIntent:
    return validate_intent(extract_json(text), savings_intent_adapter.validate_python)


def parse_receipt(text: str) -> ReceiptExtraction:
    """
    Receipt line items are validated one by one. A broken line item is
    dropped instead of sinking the whole receipt.
    """
    data = extract_json(text)
    raw_items = data.get("transactions") or []
    if not isinstance(raw_items, list):
        raise LowConfidence("Receipt transactions must be a list")

    items = []
    for raw in raw_items:
        try:
            items.append(TransactionIntent.model_validate(raw))
        except pydantic.ValidationError as e:
            logger.info("receipt_item_dropped", errors=e.error_count())

    return validate_intent(
        {**data, "transactions": items},
        ReceiptExtraction.model_validate,
    )


# =============================================================================
# PROMPTS
# =============================================================================

_LANGUAGE_NAMES = {
    Language.INDONESIAN: "Indonesian",
    Language.ENGLISH: "English",
}


def _context_block(context: UnderstandingContext) -> str:
    categories = ", ".join(context.categories) or "(none)"
    today = (context.today or date.today()).isoformat()
    return (
        f"User language: {_LANGUAGE_NAMES[context.language]}\n"
        f"User currency: {context.currency}\n"
        f"Today: {today}\n"
        f"Existing categories: {categories}\n"
        f"Auto-create categories: {'yes' if context.auto_categorize else 'no'}"
    )


_AMOUNT_RULES = """Amount rules:
- Return amounts as plain numbers in the user's currency
- "k" / "rb" / "ribu" means thousand, "jt" / "juta" means million
- Amounts must be positive"""


def transaction_prompt(text: str, context: UnderstandingContext) -> str:
    return f"""You are extracting ONE financial transaction from a chat message for a personal finance app.

{_context_block(context)}

Message: "{text}"

{_AMOUNT_RULES}

Respond with ONLY a JSON object in this exact format:
{{"amount": 25000, "description": "short description", "category_name": "existing category or null",
"kind": "expense" or "income", "confidence": 0.0-1.0, "occurred_at": "YYYY-MM-DD" or null,
"suggested_new_category": {{"name": "...", "icon": "emoji", "color": "#RRGGBB", "kind": "expense"}} or null}}

Important:
- Use an existing category name when one fits
- Only suggest a new category when none of the existing ones fit
- occurred_at must be an ISO date, or null if the message does not mention one
- Be conservative with confidence if the amount or meaning is unclear"""


def receipt_prompt(context: UnderstandingContext) -> str:
    return f"""You are reading a receipt photo for a personal finance app.

{_context_block(context)}

{_AMOUNT_RULES}

Respond with ONLY a JSON object in this exact format:
{{"text": "raw text you read", "confidence": 0.0-1.0,
"transactions": [{{"amount": 12000, "description": "item", "category_name": "existing category or null",
"kind": "expense", "confidence": 0.0-1.0, "occurred_at": "YYYY-MM-DD" or null,
"suggested_new_category": null}}]}}

Give each line item its own confidence. Do not invent items you cannot read."""


def budget_prompt(text: str, context: UnderstandingContext) -> str:
    return f"""You are parsing a budget command for a personal finance app.

{_context_block(context)}

Message: "{text}"

{_AMOUNT_RULES}

Respond with ONLY a JSON object. "action" is one of: create, update, delete, check, list.
- create/update: {{"action": "create", "category_name": "...", "amount": 500000, "period": "monthly" or "weekly", "confidence": 0.9}}
- delete: {{"action": "delete", "category_name": "...", "confidence": 0.9}}
- check: {{"action": "check", "category_name": "..." or null, "confidence": 0.9}}
- list: {{"action": "list", "confidence": 0.9}}"""


def category_prompt(text: str, context: UnderstandingContext) -> str:
    return f"""You are parsing a category command for a personal finance app.

{_context_block(context)}

Message: "{text}"

Respond with ONLY a JSON object. "action" is one of: create, update, delete, list.
- create: {{"action": "create", "category_name": "...", "icon": "emoji", "color": "#RRGGBB", "kind": "expense" or "income", "confidence": 0.9}}
- update: {{"action": "update", "category_name": "current name", "new_category_name": "..." or null, "icon": null, "color": null, "kind": null, "confidence": 0.9}}
- delete: {{"action": "delete", "category_name": "...", "confidence": 0.9}}
- list: {{"action": "list", "confidence": 0.9}}"""


def savings_prompt(text: str, context: UnderstandingContext) -> str:
    return f"""You are parsing a savings goal command for a personal finance app.

{_context_block(context)}

Message: "{text}"

{_AMOUNT_RULES}

Respond with ONLY a JSON object. "action" is one of:
- save: {{"action": "save", "goal_name": "...", "amount": 100000, "confidence": 0.9}}
- create_goal: {{"action": "create_goal", "goal_name": "...", "amount": 10000000, "deadline": "YYYY-MM-DD" or null, "category": "tag" or null, "confidence": 0.9}}
- list_goals: {{"action": "list_goals", "confidence": 0.9}}
- check_balance: {{"action": "check_balance", "goal_name": "..." or null, "confidence": 0.9}}
- set_plan: {{"action": "set_plan", "goal_name": "...", "amount": 500000, "frequency": "weekly" | "biweekly" | "monthly", "confidence": 0.9}}
- transfer_goal: {{"action": "transfer_goal", "goal_name": "source goal", "target_goal_name": "destination goal", "amount": 100000, "confidence": 0.9}}
- return_funds: {{"action": "return_funds", "goal_name": "...", "amount": 100000 or null, "confidence": 0.9}}
- delete_goal: {{"action": "delete_goal", "goal_name": "...", "confidence": 0.9}}"""


TRANSCRIBE_PROMPT = (
    "Transcribe this voice note exactly as spoken. "
    "Respond with ONLY the transcript, no commentary."
)


# =============================================================================
# GEMINI IMPLEMENTATION
# =============================================================================

class GeminiUnderstandingService(UnderstandingService):
    """
    Understanding service backed by Google Gemini.

    Text, audio and images all go to the same multimodal model. Audio
    and images are sent inline as {"mime_type", "data"} parts.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def _generate(self, parts: list) -> str:
        try:
            response = await self._model.generate_content_async(parts)
            return response.text.strip()
        except Exception as e:
            logger.warning("gemini_request_failed", error=str(e))
            raise UnderstandingServiceUnavailable(f"Gemini request failed: {e}") from e

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        transcript = await self._generate([
            TRANSCRIBE_PROMPT,
            {"mime_type": mime_type, "data": audio},
        ])
        if not transcript:
            raise LowConfidence("Voice note could not be transcribed")
        return transcript

    async def analyze_transaction(
        self,
        text: str,
        context: UnderstandingContext,
    ) -> TransactionIntent:
        return parse_transaction(await self._generate([transaction_prompt(text, context)]))

    async def analyze_receipt(
        self,
        image: bytes,
        mime_type: str,
        context: UnderstandingContext,
    ) -> ReceiptExtraction:
        return parse_receipt(await self._generate([
            receipt_prompt(context),
            {"mime_type": mime_type, "data": image},
        ]))

    async def analyze_budget(self, text: str, context: UnderstandingContext) -> BudgetIntent:
        return parse_budget(await self._generate([budget_prompt(text, context)]))

    async def analyze_category(self, text: str, context: UnderstandingContext) -> CategoryIntent:
        return parse_category(await self._generate([category_prompt(text, context)]))

    async def analyze_savings(self, text: str, context: UnderstandingContext) -> SavingsIntent:
        return parse_savings(await self._generate([savings_prompt(text, context)]))
