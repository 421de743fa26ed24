"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of money movements
2. Debugging capability when the model misreads a message
3. A history the user can inspect in the spreadsheet

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (an audit failure never fails a command)
- Supports correlation IDs to trace all events of one inbound message
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from chatledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from chatledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("chatledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_message_received(
        self,
        channel_identity: str,
        user_id: Optional[str],
        has_attachment: bool,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.message_received(
            channel_identity=channel_identity,
            user_id=user_id,
            has_attachment=has_attachment,
            correlation_id=correlation_id,
        ))

    async def log_account_linked(
        self,
        user_id: str,
        channel_identity: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.account_linked(
            user_id=user_id,
            channel_identity=channel_identity,
            correlation_id=correlation_id,
        ))

    async def log_intent_parsed(
        self,
        user_id: str,
        domain: str,
        action: str,
        confidence: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.intent_parsed(
            user_id=user_id,
            domain=domain,
            action=action,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    async def log_intent_rejected(
        self,
        user_id: str,
        domain: str,
        reason: str,
        correlation_id: UUID,
        confidence: Optional[float] = None,
    ) -> None:
        await self.log(AuditEventBuilder.intent_rejected(
            user_id=user_id,
            domain=domain,
            reason=reason,
            correlation_id=correlation_id,
            confidence=confidence,
        ))

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: UUID,
        kind: str,
        amount: Decimal,
        category_name: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            category_name=category_name,
            correlation_id=correlation_id,
        ))

    async def log_category_event(
        self,
        event_type: AuditEventType,
        user_id: str,
        category_id: UUID,
        name: str,
        correlation_id: UUID,
        auto_created: bool = False,
    ) -> None:
        """Category created, updated or deleted."""
        await self.log(AuditEventBuilder.category_changed(
            event_type=event_type,
            user_id=user_id,
            category_id=category_id,
            name=name,
            correlation_id=correlation_id,
            auto_created=auto_created,
        ))

    async def log_budget_event(
        self,
        event_type: AuditEventType,
        user_id: str,
        budget_id: UUID,
        category_name: str,
        correlation_id: UUID,
        amount: Optional[Decimal] = None,
    ) -> None:
        """Budget upserted or deleted."""
        await self.log(AuditEventBuilder.budget_changed(
            event_type=event_type,
            user_id=user_id,
            budget_id=budget_id,
            category_name=category_name,
            correlation_id=correlation_id,
            amount=amount,
        ))

    async def log_budget_alert(
        self,
        user_id: str,
        budget_id: UUID,
        category_name: str,
        tier: str,
        percentage: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.budget_alert(
            user_id=user_id,
            budget_id=budget_id,
            category_name=category_name,
            tier=tier,
            percentage=percentage,
            correlation_id=correlation_id,
        ))

    async def log_budget_recommendation(
        self,
        user_id: str,
        category_name: str,
        recommended_amount: Decimal,
        score: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.budget_recommendation(
            user_id=user_id,
            category_name=category_name,
            recommended_amount=recommended_amount,
            score=score,
            correlation_id=correlation_id,
        ))

    async def log_goal_event(
        self,
        event_type: AuditEventType,
        user_id: str,
        goal_id: UUID,
        goal_name: str,
        correlation_id: UUID,
        amount: Optional[Decimal] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Any goal lifecycle or fund movement event."""
        await self.log(AuditEventBuilder.goal_event(
            event_type=event_type,
            user_id=user_id,
            goal_id=goal_id,
            goal_name=goal_name,
            correlation_id=correlation_id,
            amount=amount,
            details=details,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            user_id=user_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
        user_id: Optional[str] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
            user_id=user_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when an inbound message arrives and pass it through
    every operation the message triggers.
    """
    return uuid4()
