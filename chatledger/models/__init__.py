"""
Data Models Package

This package contains all Pydantic models used in Chat Ledger.
All data flowing through the system must conform to these schemas.
"""

from chatledger.models.ledger import (
    ActivationCode,
    Budget,
    BudgetPeriod,
    Category,
    Goal,
    GoalBoost,
    GoalSavingsPlan,
    IdentityLink,
    Language,
    PlanFrequency,
    Transaction,
    TransactionKind,
    UserPreferences,
    UTCDateTime,
    utc_now,
)
from chatledger.models.intents import (
    BudgetCheckIntent,
    BudgetDeleteIntent,
    BudgetIntent,
    BudgetListIntent,
    BudgetUpsertIntent,
    CategoryCreateIntent,
    CategoryDeleteIntent,
    CategoryIntent,
    CategoryListIntent,
    CategoryUpdateIntent,
    CheckGoalBalanceIntent,
    CreateGoalIntent,
    DeleteGoalIntent,
    ListGoalsIntent,
    ReceiptExtraction,
    ReturnFundsIntent,
    SaveToGoalIntent,
    SavingsIntent,
    SetPlanIntent,
    SuggestedCategory,
    TransactionIntent,
    TransferGoalIntent,
    budget_intent_adapter,
    category_intent_adapter,
    savings_intent_adapter,
)
from chatledger.models.results import (
    AlertTier,
    Attachment,
    AttachmentKind,
    BoostOutcome,
    BudgetAlert,
    BudgetOverview,
    BudgetRecommendation,
    BudgetStatus,
    CashFlowProjection,
    DeleteGoalOutcome,
    FinancialScore,
    GoalProgress,
    HandlerResult,
    InboundMessage,
    MaterializedTransaction,
    MonthlySummary,
    PlanOutcome,
    ReceiptOutcome,
    ReturnOutcome,
    RiskLevel,
    SideEffect,
    SpendingPattern,
    TransferOutcome,
    Trend,
    WeeklyFlow,
)
from chatledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ActivationCode",
    "Budget",
    "BudgetPeriod",
    "Category",
    "Goal",
    "GoalBoost",
    "GoalSavingsPlan",
    "IdentityLink",
    "Language",
    "PlanFrequency",
    "Transaction",
    "TransactionKind",
    "UserPreferences",
    "UTCDateTime",
    "utc_now",
    # Intents
    "BudgetCheckIntent",
    "BudgetDeleteIntent",
    "BudgetIntent",
    "BudgetListIntent",
    "BudgetUpsertIntent",
    "CategoryCreateIntent",
    "CategoryDeleteIntent",
    "CategoryIntent",
    "CategoryListIntent",
    "CategoryUpdateIntent",
    "CheckGoalBalanceIntent",
    "CreateGoalIntent",
    "DeleteGoalIntent",
    "ListGoalsIntent",
    "ReceiptExtraction",
    "ReturnFundsIntent",
    "SaveToGoalIntent",
    "SavingsIntent",
    "SetPlanIntent",
    "SuggestedCategory",
    "TransactionIntent",
    "TransferGoalIntent",
    "budget_intent_adapter",
    "category_intent_adapter",
    "savings_intent_adapter",
    # Results
    "AlertTier",
    "Attachment",
    "AttachmentKind",
    "BoostOutcome",
    "BudgetAlert",
    "BudgetOverview",
    "BudgetRecommendation",
    "BudgetStatus",
    "CashFlowProjection",
    "DeleteGoalOutcome",
    "FinancialScore",
    "GoalProgress",
    "HandlerResult",
    "InboundMessage",
    "MaterializedTransaction",
    "MonthlySummary",
    "PlanOutcome",
    "ReceiptOutcome",
    "ReturnOutcome",
    "RiskLevel",
    "SideEffect",
    "SpendingPattern",
    "TransferOutcome",
    "Trend",
    "WeeklyFlow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
