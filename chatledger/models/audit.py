"""
Audit Models for Chat Ledger

Every command that touches the ledger leaves a trail:
1. Complete traceability of every money movement
2. Debugging information when the model misreads a message
3. Ability to reconstruct a user's history

All events produced while handling one inbound message share the same
correlation id.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from chatledger.models.ledger import UTCDateTime, utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    One per step of the message pipeline and one per ledger mutation.
    """
    # Inbound
    MESSAGE_RECEIVED = "message_received"
    ACCOUNT_LINKED = "account_linked"
    INTENT_PARSED = "intent_parsed"
    INTENT_REJECTED = "intent_rejected"

    # Transactions and categories
    TRANSACTION_CREATED = "transaction_created"
    CATEGORY_CREATED = "category_created"
    CATEGORY_UPDATED = "category_updated"
    CATEGORY_DELETED = "category_deleted"

    # Budgets
    BUDGET_UPSERTED = "budget_upserted"
    BUDGET_DELETED = "budget_deleted"
    BUDGET_ALERT = "budget_alert"
    BUDGET_RECOMMENDATION = "budget_recommendation"

    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_BOOSTED = "goal_boosted"
    GOAL_TRANSFERRED = "goal_transferred"
    GOAL_FUNDS_RETURNED = "goal_funds_returned"
    GOAL_DELETED = "goal_deleted"
    GOAL_ARCHIVED = "goal_archived"
    SAVINGS_PLAN_SET = "savings_plan_set"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _money(value: Decimal) -> str:
    return str(value)


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: UTCDateTime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Who and what
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'budget')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - all events for one inbound message
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, user_id, entity_type,
         entity_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.user_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(user_id, txn.id, ...)
        event = AuditEventBuilder.goal_event(AuditEventType.GOAL_BOOSTED, user_id, ...)
    """

    @staticmethod
    def message_received(
        channel_identity: str,
        user_id: Optional[str],
        has_attachment: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            user_id=user_id,
            entity_type="message",
            correlation_id=correlation_id,
            description="Inbound message received",
            details={
                "channel_identity": channel_identity,
                "has_attachment": has_attachment,
            },
        )

    @staticmethod
    def account_linked(
        user_id: str,
        channel_identity: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_LINKED,
            user_id=user_id,
            entity_type="identity_link",
            correlation_id=correlation_id,
            description="Chat identity linked to account",
            details={"channel_identity": channel_identity},
        )

    @staticmethod
    def intent_parsed(
        user_id: str,
        domain: str,
        action: str,
        confidence: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_PARSED,
            user_id=user_id,
            entity_type="intent",
            correlation_id=correlation_id,
            description=f"Parsed {domain} intent '{action}' with {confidence:.0%} confidence",
            details={
                "domain": domain,
                "action": action,
                "confidence": confidence,
            },
        )

    @staticmethod
    def intent_rejected(
        user_id: str,
        domain: str,
        reason: str,
        correlation_id: UUID,
        confidence: Optional[float] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="intent",
            correlation_id=correlation_id,
            description=f"Rejected {domain} intent: {reason}"[:500],
            details={
                "domain": domain,
                "confidence": confidence,
            },
        )

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: UUID,
        kind: str,
        amount: Decimal,
        category_name: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{kind.capitalize()} of {amount} recorded in {category_name}",
            details={
                "kind": kind,
                "amount": _money(amount),
                "category": category_name,
            },
        )

    @staticmethod
    def category_changed(
        event_type: AuditEventType,
        user_id: str,
        category_id: UUID,
        name: str,
        correlation_id: UUID,
        auto_created: bool = False,
    ) -> AuditEvent:
        verb = event_type.value.split("_", 1)[1]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category {verb}: {name}",
            details={
                "name": name,
                "auto_created": auto_created,
            },
        )

    @staticmethod
    def budget_changed(
        event_type: AuditEventType,
        user_id: str,
        budget_id: UUID,
        category_name: str,
        correlation_id: UUID,
        amount: Optional[Decimal] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget {event_type.value.split('_', 1)[1]} for {category_name}",
            details={
                "category": category_name,
                "amount": _money(amount) if amount is not None else None,
            },
        )

    @staticmethod
    def budget_alert(
        user_id: str,
        budget_id: UUID,
        category_name: str,
        tier: str,
        percentage: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ALERT,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget for {category_name} at {percentage:.0f}% ({tier})",
            details={
                "category": category_name,
                "tier": tier,
                "percentage": round(percentage, 2),
            },
        )

    @staticmethod
    def budget_recommendation(
        user_id: str,
        category_name: str,
        recommended_amount: Decimal,
        score: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECOMMENDATION,
            user_id=user_id,
            entity_type="category",
            correlation_id=correlation_id,
            description=f"Recommended a budget of {recommended_amount} for {category_name}",
            details={
                "category": category_name,
                "recommended_amount": _money(recommended_amount),
                "score": score,
            },
        )

    @staticmethod
    def goal_event(
        event_type: AuditEventType,
        user_id: str,
        goal_id: UUID,
        goal_name: str,
        correlation_id: UUID,
        amount: Optional[Decimal] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        payload = {"goal": goal_name}
        if amount is not None:
            payload["amount"] = _money(amount)
        payload.update(details or {})
        label = event_type.value.replace("_", " ")
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"{label.capitalize()}: {goal_name}",
            details=payload,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
