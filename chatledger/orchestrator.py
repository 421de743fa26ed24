"""
Message Handler for Chat Ledger

This module ties together all the components and defines the single
per-message flow:

    inbound message -> identity -> router -> understanding service
        -> intent -> engine -> ledger write -> budget follow-up
        -> reply -> HandlerResult

DESIGN DECISION: The handler enforces the boundaries:
- The understanding service only ever produces intents; engines decide
- Every understanding call is bounded by one timeout, with no retry
- Commands of one user are serialized (per-user asyncio.Lock)
- Every failure becomes a HandlerResult with a kind and a localized
  reply; nothing escapes unclassified
- Every step is audited under the message's correlation id

Delivery of the reply back to the chat channel is the caller's job.
"""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Optional, TypeVar
from uuid import UUID

import structlog

from chatledger.agents import GeminiUnderstandingService, UnderstandingContext, UnderstandingService
from chatledger.analytics import FinancialAnalytics, SpendingPatternAnalyzer
from chatledger.audit import AuditLogger, create_correlation_id
from chatledger.config import AppSettings, get_settings
from chatledger.engine import (
    BudgetEngine,
    CategoryRegistry,
    GoalLedger,
    IntentSource,
    TransactionMaterializer,
)
from chatledger.errors import LedgerError, LowConfidence, UnderstandingServiceUnavailable
from chatledger.models.audit import AuditEventType
from chatledger.models.intents import (
    BudgetCheckIntent,
    BudgetDeleteIntent,
    BudgetListIntent,
    BudgetUpsertIntent,
    CategoryCreateIntent,
    CategoryListIntent,
    CategoryUpdateIntent,
    CheckGoalBalanceIntent,
    CreateGoalIntent,
    IntentBase,
    ListGoalsIntent,
    ReturnFundsIntent,
    SaveToGoalIntent,
    SetPlanIntent,
    TransferGoalIntent,
)
from chatledger.models.ledger import (
    IdentityLink,
    Language,
    Transaction,
    UserPreferences,
    utc_now,
)
from chatledger.models.results import (
    AttachmentKind,
    GoalProgress,
    HandlerResult,
    InboundMessage,
    MaterializedTransaction,
    SideEffect,
)
from chatledger.parsing import DateResolver
from chatledger.replies import ReplyComposer
from chatledger.router import CommandRouter, Domain
from chatledger.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsIdentityLinkRepository,
    GoogleSheetsLedgerRepository,
    IdentityLinkRepository,
    InMemoryIdentityLinkRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
    StorageError,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

ACTIVATION_PATTERN = re.compile(r"^AKTIVASI:\s*([A-Z0-9]{6})$", re.IGNORECASE)

UNDERSTANDING_SERVICE_NAME = "understanding_service"


@dataclass
class _Turn:
    """State of one inbound message while it is being handled."""

    correlation_id: UUID
    composer: ReplyComposer
    user_id: Optional[str] = None
    side_effects: list[SideEffect] = field(default_factory=list)

    def record(self, action: str, entity_type: str, entity_id: Optional[UUID] = None) -> None:
        self.side_effects.append(SideEffect(action=action, entity_type=entity_type, entity_id=entity_id))

    def ok(self, message: str) -> HandlerResult:
        return HandlerResult(success=True, message=message, side_effects=self.side_effects)

    def fail(self, message: str, error_kind: str) -> HandlerResult:
        return HandlerResult(
            success=False,
            message=message,
            side_effects=self.side_effects,
            error_kind=error_kind,
        )


class _UserLocks:
    """
    One asyncio.Lock per user.

    An entry lives only while some command holds or waits for it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: str):
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._pending[user_id] = self._pending.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._pending[user_id] -= 1
            if not self._pending[user_id]:
                del self._pending[user_id]
                del self._locks[user_id]


class MessageHandler:
    """
    The single entry point for inbound chat messages.

    One call to `handle` per message, one HandlerResult back.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        identity_links: IdentityLinkRepository,
        understanding: UnderstandingService,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
        timeout_seconds: float = 20.0,
    ):
        self._settings = app_settings or get_settings().app
        self._repository = repository
        self._identity_links = identity_links
        self._understanding = understanding
        self._audit = audit_logger or AuditLogger()
        self._timeout = timeout_seconds

        self._router = CommandRouter()
        self._categories = CategoryRegistry(repository)
        self._analytics = FinancialAnalytics(repository)
        self._budgets = BudgetEngine(
            repository,
            self._categories,
            SpendingPatternAnalyzer(repository),
            info_percent=self._settings.budget_info_percent,
            danger_percent=self._settings.budget_danger_percent,
            exceeded_percent=self._settings.budget_exceeded_percent,
            lookback_months=self._settings.recommendation_lookback_months,
        )
        self._transactions = TransactionMaterializer(
            repository,
            self._categories,
            self._budgets,
            resolver=DateResolver(),
            text_threshold=self._settings.text_confidence_threshold,
            voice_threshold=self._settings.voice_confidence_threshold,
            image_threshold=self._settings.image_confidence_threshold,
        )
        self._goals = GoalLedger(repository, self._categories)

        self._locks = _UserLocks()

    def _default_composer(self) -> ReplyComposer:
        return ReplyComposer(self._settings.default_language, self._settings.default_currency)

    async def handle(self, message: InboundMessage) -> HandlerResult:
        """
        Handle one inbound message.

        Never raises. Classified failures carry their kind; storage
        failures are reported as transient; anything else is logged
        and reported as a generic failure.
        """
        turn = _Turn(correlation_id=create_correlation_id(), composer=self._default_composer())

        try:
            return await self._handle(message, turn)
        except LedgerError as e:
            await self._audit_rejection(e, turn)
            return turn.fail(turn.composer.error(e), e.kind)
        except StorageError as e:
            logger.warning("storage_failure", user_id=turn.user_id, error=str(e))
            await self._audit.log_error(
                error_type="storage_error",
                error_message=str(e),
                correlation_id=turn.correlation_id,
                user_id=turn.user_id,
            )
            return turn.fail(turn.composer.storage_failure(), "storage_error")
        except Exception as e:
            logger.exception("unexpected_failure", user_id=turn.user_id)
            await self._audit.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                correlation_id=turn.correlation_id,
                user_id=turn.user_id,
            )
            return turn.fail(turn.composer.unexpected_failure(), "unexpected_error")

    async def _handle(self, message: InboundMessage, turn: _Turn) -> HandlerResult:
        activation = ACTIVATION_PATTERN.match(message.text)
        if activation:
            return await self._activate(message.channel_identity, activation.group(1).upper(), turn)

        turn.user_id = await self._identity_links.resolve_user(message.channel_identity)
        await self._audit.log_message_received(
            channel_identity=message.channel_identity,
            user_id=turn.user_id,
            has_attachment=message.attachment is not None,
            correlation_id=turn.correlation_id,
        )
        if turn.user_id is None:
            return turn.fail(turn.composer.not_linked(), "not_linked")

        async with self._locks.hold(turn.user_id):
            preferences = await self._preferences(turn.user_id)
            turn.composer = ReplyComposer(preferences.language, preferences.default_currency)
            await self._categories.ensure_defaults(turn.user_id)
            return await self._dispatch(message, preferences, turn)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def _activate(self, channel_identity: str, code: str, turn: _Turn) -> HandlerResult:
        """Link a channel identity to the user who generated the code."""
        activation = await self._identity_links.get_activation_code(code)
        if activation is None or not activation.is_usable(utc_now()):
            return turn.fail(turn.composer.activation_invalid(), "activation_invalid")

        if await self._identity_links.resolve_user(channel_identity) is not None:
            return turn.fail(turn.composer.activation_taken(), "activation_taken")

        try:
            await self._identity_links.link(IdentityLink(
                channel_identity=channel_identity,
                user_id=activation.user_id,
            ))
        except DuplicateError:
            return turn.fail(turn.composer.activation_taken(), "activation_taken")

        activation.used = True
        await self._identity_links.save_activation_code(activation)

        turn.user_id = activation.user_id
        preferences = await self._preferences(activation.user_id)
        turn.composer = ReplyComposer(preferences.language, preferences.default_currency)
        await self._categories.ensure_defaults(activation.user_id)

        await self._audit.log_account_linked(
            user_id=activation.user_id,
            channel_identity=channel_identity,
            correlation_id=turn.correlation_id,
        )
        turn.record("linked", "identity_link")
        return turn.ok(turn.composer.activation_success())

    async def _preferences(self, user_id: str) -> UserPreferences:
        preferences = await self._repository.get_preferences(user_id)
        if preferences is not None:
            return preferences
        return UserPreferences(
            user_id=user_id,
            default_currency=self._settings.default_currency,
            language=Language(self._settings.default_language),
            timezone=self._settings.default_timezone,
        )

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def _dispatch(
        self,
        message: InboundMessage,
        preferences: UserPreferences,
        turn: _Turn,
    ) -> HandlerResult:
        attachment_kind = message.attachment.kind if message.attachment else None
        domain = self._router.classify(message.text, attachment_kind)
        logger.info("message_routed", user_id=preferences.user_id, domain=domain.value)

        if domain == Domain.HELP:
            return turn.ok(turn.composer.help())

        if domain == Domain.SUMMARY:
            summary = await self._analytics.monthly_summary(
                preferences.user_id, tz=preferences.timezone
            )
            return turn.ok(turn.composer.summary(summary))

        if domain == Domain.STATUS:
            score = await self._analytics.financial_score(preferences.user_id, tz=preferences.timezone)
            projection = await self._analytics.cash_flow(preferences.user_id, tz=preferences.timezone)
            return turn.ok(turn.composer.status(score, projection))

        if domain in (Domain.VOICE, Domain.RECEIPT):
            rejected = self._check_attachment(message, turn)
            if rejected is not None:
                return rejected
        elif not message.text:
            return turn.fail(turn.composer.empty_message(), "empty_message")

        context = await self._context(preferences)

        if domain == Domain.VOICE:
            return await self._voice(message, preferences, context, turn)
        if domain == Domain.RECEIPT:
            return await self._receipt(message, preferences, context, turn)
        if domain == Domain.BUDGET:
            return await self._budget(message.text, preferences, context, turn)
        if domain == Domain.CATEGORY:
            return await self._category(message.text, preferences, context, turn)
        if domain == Domain.SAVINGS:
            return await self._savings(message.text, preferences, context, turn)
        return await self._transaction(message.text, preferences, context, turn)

    def _check_attachment(self, message: InboundMessage, turn: _Turn) -> Optional[HandlerResult]:
        attachment = message.attachment
        supported = (
            self._settings.supported_audio_list
            if attachment.kind == AttachmentKind.AUDIO
            else self._settings.supported_image_list
        )
        if attachment.mime_type.lower() not in supported:
            return turn.fail(turn.composer.unsupported_attachment(), "unsupported_attachment")
        if len(attachment.data) > self._settings.max_upload_size_bytes:
            return turn.fail(
                turn.composer.attachment_too_large(self._settings.max_upload_size_mb),
                "attachment_too_large",
            )
        return None

    async def _context(self, preferences: UserPreferences) -> UnderstandingContext:
        categories = await self._categories.list_all(preferences.user_id)
        return UnderstandingContext(
            categories=[c.name for c in categories],
            language=preferences.language,
            currency=preferences.default_currency,
            auto_categorize=preferences.auto_categorize,
            today=utc_now().date(),
        )

    async def _understand(self, call: Awaitable[T]) -> T:
        """Await one understanding call under the single timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError:
            raise UnderstandingServiceUnavailable(
                f"Understanding service timed out after {self._timeout}s"
            )

    async def _parsed(self, intent: IntentBase, domain: Domain, turn: _Turn) -> None:
        await self._audit.log_intent_parsed(
            user_id=turn.user_id,
            domain=domain.value,
            action=getattr(intent, "action", domain.value),
            confidence=intent.confidence,
            correlation_id=turn.correlation_id,
        )

    def _require_confidence(self, intent: IntentBase) -> None:
        threshold = self._settings.command_confidence_threshold
        if intent.confidence <= threshold:
            raise LowConfidence(
                f"Confidence {intent.confidence:.2f} is not above {threshold:.2f}",
                confidence=intent.confidence,
            )

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def _transaction(
        self,
        text: str,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        intent = await self._understand(self._understanding.analyze_transaction(text, context))
        await self._parsed(intent, Domain.TRANSACTION, turn)

        result = await self._transactions.materialize(
            intent, preferences, source=IntentSource.TEXT, raw_text=text
        )
        await self._after_materialized(result, turn)
        return turn.ok(turn.composer.transaction_saved(result))

    async def _voice(
        self,
        message: InboundMessage,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        attachment = message.attachment
        transcript = await self._understand(
            self._understanding.transcribe(attachment.data, attachment.mime_type)
        )
        intent = await self._understand(self._understanding.analyze_transaction(transcript, context))
        await self._parsed(intent, Domain.VOICE, turn)

        result = await self._transactions.materialize(
            intent, preferences, source=IntentSource.VOICE, raw_text=transcript
        )
        await self._after_materialized(result, turn)
        return turn.ok(turn.composer.transaction_saved(result))

    async def _receipt(
        self,
        message: InboundMessage,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        attachment = message.attachment
        extraction = await self._understand(
            self._understanding.analyze_receipt(attachment.data, attachment.mime_type, context)
        )
        await self._parsed(extraction, Domain.RECEIPT, turn)

        outcome = await self._transactions.materialize_receipt(extraction, preferences)
        for item in outcome.materialized:
            await self._after_materialized(item, turn)
        return turn.ok(turn.composer.receipt_saved(outcome))

    async def _after_materialized(self, result: MaterializedTransaction, turn: _Turn) -> None:
        txn = result.transaction
        if result.category_created:
            await self._audit.log_category_event(
                event_type=AuditEventType.CATEGORY_CREATED,
                user_id=turn.user_id,
                category_id=result.category.id,
                name=result.category.name,
                correlation_id=turn.correlation_id,
                auto_created=True,
            )
            turn.record("created", "category", result.category.id)

        await self._audit.log_transaction_created(
            user_id=turn.user_id,
            transaction_id=txn.id,
            kind=txn.kind.value,
            amount=txn.amount,
            category_name=result.category.name,
            correlation_id=turn.correlation_id,
        )
        turn.record("created", "transaction", txn.id)

        if result.budget_alert is not None:
            status = result.budget_alert.status
            await self._audit.log_budget_alert(
                user_id=turn.user_id,
                budget_id=status.budget_id,
                category_name=status.category_name,
                tier=status.tier.value,
                percentage=status.percentage,
                correlation_id=turn.correlation_id,
            )
        elif result.recommendation is not None:
            await self._audit.log_budget_recommendation(
                user_id=turn.user_id,
                category_name=result.recommendation.category_name,
                recommended_amount=result.recommendation.recommended_amount,
                score=result.recommendation.score,
                correlation_id=turn.correlation_id,
            )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def _budget(
        self,
        text: str,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        intent = await self._understand(self._understanding.analyze_budget(text, context))
        self._require_confidence(intent)
        await self._parsed(intent, Domain.BUDGET, turn)

        user_id, tz = preferences.user_id, preferences.timezone

        if isinstance(intent, BudgetUpsertIntent):
            budget, category, created = await self._budgets.upsert(
                user_id, intent.category_name, intent.amount, period=intent.period, tz=tz
            )
            await self._audit.log_budget_event(
                event_type=AuditEventType.BUDGET_UPSERTED,
                user_id=user_id,
                budget_id=budget.id,
                category_name=category.name,
                correlation_id=turn.correlation_id,
                amount=budget.amount,
            )
            turn.record("created" if created else "updated", "budget", budget.id)
            return turn.ok(turn.composer.budget_saved(budget, category, created))

        if isinstance(intent, BudgetDeleteIntent):
            budget, category = await self._budgets.delete(user_id, intent.category_name)
            await self._audit.log_budget_event(
                event_type=AuditEventType.BUDGET_DELETED,
                user_id=user_id,
                budget_id=budget.id,
                category_name=category.name,
                correlation_id=turn.correlation_id,
            )
            turn.record("deleted", "budget", budget.id)
            return turn.ok(turn.composer.budget_deleted(category))

        if isinstance(intent, BudgetCheckIntent) and intent.category_name:
            status = await self._budgets.check(user_id, intent.category_name, tz=tz)
            return turn.ok(turn.composer.budget_status(status))

        overview = await self._budgets.overview(user_id, tz=tz)
        if isinstance(intent, BudgetListIntent):
            return turn.ok(turn.composer.budget_list(overview))
        return turn.ok(turn.composer.budget_overview(overview))

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def _category(
        self,
        text: str,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        intent = await self._understand(self._understanding.analyze_category(text, context))
        self._require_confidence(intent)
        await self._parsed(intent, Domain.CATEGORY, turn)

        user_id = preferences.user_id

        if isinstance(intent, CategoryListIntent):
            return turn.ok(turn.composer.category_list(await self._categories.list_all(user_id)))

        if isinstance(intent, CategoryCreateIntent):
            category = await self._categories.create(
                user_id, intent.category_name, icon=intent.icon, color=intent.color, kind=intent.kind
            )
            event_type, action = AuditEventType.CATEGORY_CREATED, "created"
            reply = turn.composer.category_created(category)
        elif isinstance(intent, CategoryUpdateIntent):
            category = await self._categories.update(
                user_id,
                intent.category_name,
                new_name=intent.new_category_name,
                icon=intent.icon,
                color=intent.color,
                kind=intent.kind,
            )
            event_type, action = AuditEventType.CATEGORY_UPDATED, "updated"
            reply = turn.composer.category_updated(category)
        else:
            category = await self._categories.delete(user_id, intent.category_name)
            event_type, action = AuditEventType.CATEGORY_DELETED, "deleted"
            reply = turn.composer.category_deleted(category)

        await self._audit.log_category_event(
            event_type=event_type,
            user_id=user_id,
            category_id=category.id,
            name=category.name,
            correlation_id=turn.correlation_id,
        )
        turn.record(action, "category", category.id)
        return turn.ok(reply)

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    async def _savings(
        self,
        text: str,
        preferences: UserPreferences,
        context: UnderstandingContext,
        turn: _Turn,
    ) -> HandlerResult:
        intent = await self._understand(self._understanding.analyze_savings(text, context))
        self._require_confidence(intent)
        await self._parsed(intent, Domain.SAVINGS, turn)

        user_id = preferences.user_id
        composer = turn.composer

        if isinstance(intent, ListGoalsIntent):
            return turn.ok(composer.goal_list(await self._goals.list_goals(user_id)))

        if isinstance(intent, CheckGoalBalanceIntent):
            balance = await self._goals.check_balance(user_id, intent.goal_name)
            if isinstance(balance, GoalProgress):
                return turn.ok(composer.goal_line(balance))
            return turn.ok(composer.goal_list(balance))

        if isinstance(intent, CreateGoalIntent):
            goal = await self._goals.create(
                user_id,
                intent.goal_name,
                intent.amount,
                deadline=intent.deadline,
                tag=intent.category,
                tz=preferences.timezone,
            )
            await self._goal_event(AuditEventType.GOAL_CREATED, goal.id, goal.name, turn, goal.target_amount)
            turn.record("created", "goal", goal.id)
            return turn.ok(composer.goal_created(goal))

        if isinstance(intent, SaveToGoalIntent):
            outcome = await self._goals.boost(preferences, intent.goal_name, intent.amount)
            await self._goal_event(
                AuditEventType.GOAL_BOOSTED,
                outcome.goal.id,
                outcome.goal.name,
                turn,
                outcome.applied,
                details={"requested": str(outcome.requested)},
            )
            await self._audit_mirror_transaction(outcome.transaction, turn)
            turn.record("boosted", "goal", outcome.goal.id)
            if outcome.completed:
                await self._goal_event(AuditEventType.GOAL_ARCHIVED, outcome.goal.id, outcome.goal.name, turn)
            return turn.ok(composer.goal_boosted(outcome))

        if isinstance(intent, TransferGoalIntent):
            outcome = await self._goals.transfer(
                user_id, intent.goal_name, intent.target_goal_name, intent.amount
            )
            await self._goal_event(
                AuditEventType.GOAL_TRANSFERRED,
                outcome.source.id,
                outcome.source.name,
                turn,
                outcome.moved,
                details={
                    "destination_goal_id": str(outcome.destination.id),
                    "requested": str(outcome.requested),
                },
            )
            turn.record("transferred", "goal", outcome.source.id)
            turn.record("received", "goal", outcome.destination.id)
            if outcome.destination_completed:
                await self._goal_event(
                    AuditEventType.GOAL_ARCHIVED, outcome.destination.id, outcome.destination.name, turn
                )
            return turn.ok(composer.goal_transferred(outcome))

        if isinstance(intent, ReturnFundsIntent):
            outcome = await self._goals.return_funds(preferences, intent.goal_name, intent.amount)
            await self._goal_event(
                AuditEventType.GOAL_FUNDS_RETURNED, outcome.goal.id, outcome.goal.name, turn, outcome.returned
            )
            await self._audit_mirror_transaction(outcome.transaction, turn)
            turn.record("returned", "goal", outcome.goal.id)
            return turn.ok(composer.goal_returned(outcome))

        if isinstance(intent, SetPlanIntent):
            outcome = await self._goals.set_plan(user_id, intent.goal_name, intent.amount, intent.frequency)
            await self._goal_event(
                AuditEventType.SAVINGS_PLAN_SET,
                outcome.goal.id,
                outcome.goal.name,
                turn,
                outcome.plan.amount,
                details={"frequency": outcome.plan.frequency.value},
            )
            turn.record("created", "savings_plan", outcome.plan.id)
            return turn.ok(composer.plan_set(outcome))

        goal = await self._goals.find(user_id, intent.goal_name)
        outcome = await self._goals.delete(preferences, intent.goal_name)
        await self._goal_event(AuditEventType.GOAL_DELETED, goal.id, outcome.goal_name, turn, outcome.returned)
        if outcome.refund_transaction is not None:
            await self._audit_mirror_transaction(outcome.refund_transaction, turn)
        turn.record("deleted", "goal", goal.id)
        return turn.ok(composer.goal_deleted(outcome))

    async def _goal_event(self, event_type, goal_id, goal_name, turn, amount=None, details=None) -> None:
        await self._audit.log_goal_event(
            event_type=event_type,
            user_id=turn.user_id,
            goal_id=goal_id,
            goal_name=goal_name,
            correlation_id=turn.correlation_id,
            amount=amount,
            details=details,
        )

    async def _audit_mirror_transaction(self, transaction: Transaction, turn: _Turn) -> None:
        category = await self._repository.get_category(transaction.user_id, transaction.category_id)
        await self._audit.log_transaction_created(
            user_id=turn.user_id,
            transaction_id=transaction.id,
            kind=transaction.kind.value,
            amount=transaction.amount,
            category_name=category.name if category else transaction.description,
            correlation_id=turn.correlation_id,
        )
        turn.record("created", "transaction", transaction.id)

    # -------------------------------------------------------------------------
    # Failures
    # -------------------------------------------------------------------------

    async def _audit_rejection(self, error: LedgerError, turn: _Turn) -> None:
        if isinstance(error, UnderstandingServiceUnavailable):
            await self._audit.log_external_service_error(
                service=UNDERSTANDING_SERVICE_NAME,
                error_message=error.message,
                correlation_id=turn.correlation_id,
                user_id=turn.user_id,
            )
        elif isinstance(error, LowConfidence) and turn.user_id is not None:
            await self._audit.log_intent_rejected(
                user_id=turn.user_id,
                domain="message",
                reason=error.message,
                correlation_id=turn.correlation_id,
                confidence=error.confidence,
            )
        else:
            logger.info("command_rejected", user_id=turn.user_id, kind=error.kind, reason=error.message)


def create_app_components(
    use_storage: bool = True,
    understanding: Optional[UnderstandingService] = None,
) -> tuple[MessageHandler, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory repositories.
        understanding: Understanding service to use. Defaults to Gemini.

    Returns:
        (message_handler, sheets_client)
    """
    settings = get_settings()
    timeout_seconds = 20.0
    sheets_client = None
    audit_storage: Optional[AuditStorageInterface] = None
    repository: LedgerRepository = InMemoryLedgerRepository()
    identity_links: IdentityLinkRepository = InMemoryIdentityLinkRepository()

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            repository = GoogleSheetsLedgerRepository(sheets_client)
            identity_links = GoogleSheetsIdentityLinkRepository(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if understanding is None:
        understanding = GeminiUnderstandingService(settings.gemini)
        timeout_seconds = settings.gemini.request_timeout_seconds

    handler = MessageHandler(
        repository=repository,
        identity_links=identity_links,
        understanding=understanding,
        audit_logger=AuditLogger(audit_storage),
        app_settings=settings.app,
        timeout_seconds=timeout_seconds,
    )
    return handler, sheets_client


__all__ = [
    "ACTIVATION_PATTERN",
    "MessageHandler",
    "create_app_components",
]
