"""
Data Models Package

This package contains all Pydantic models used in the Budget DSS.
All data flowing through the planning workflow must conform to these schemas.
"""

from budget_dss.models.planning import (
    AHPResult,
    AllocationScenario,
    AllocationSummary,
    AllocationWarning,
    AutoScoringResult,
    BudgetAllocationResult,
    CategoryAllocation,
    Constraint,
    CriteriaWeights,
    Criterion,
    CriterionScore,
    Debt,
    DebtAllocation,
    DebtBehavior,
    DebtStrategy,
    DebtStrategyResult,
    ENABLED_CRITERIA,
    Goal,
    GoalAllocation,
    GoalPriority,
    GoalScoreResult,
    GoalScores,
    GoalStatus,
    PaymentPlan,
    RankedAlternative,
    RiskTolerance,
    ScenarioParameters,
    StrategyScenario,
    TimelineEntry,
    TradeoffPreferences,
    TradeoffPriority,
    TradeoffResult,
    TradeoffScenario,
)
from budget_dss.models.workflow import (
    AllocationParams,
    ApplyBudgetAllocationRequest,
    ApplyDebtStrategyRequest,
    ApplyGoalDebtTradeoffRequest,
    ApplyGoalPrioritizationRequest,
    AutoScoringRequest,
    DebtPaymentInput,
    DebtStrategyRequest,
    FinalizeDSSRequest,
    FinalizeDSSResponse,
    GoalFunding,
    GoalPrioritizationRequest,
    GoalPriorityInput,
    InitializeDSSRequest,
    InitializeDSSResponse,
    MonthStateVersion,
    PlanningInputs,
    PreviewBudgetAllocationRequest,
    PreviewGoalDebtTradeoffRequest,
    ScenarioParametersOverride,
    StageName,
    StageSlot,
    StageStatus,
    StageStatusView,
    TradeoffChoice,
    ValidationIssue,
    ValidationResult,
    WorkflowState,
    WorkflowStatus,
)
from budget_dss.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Planning entities and results
    "AHPResult",
    "AllocationScenario",
    "AllocationSummary",
    "AllocationWarning",
    "AutoScoringResult",
    "BudgetAllocationResult",
    "CategoryAllocation",
    "Constraint",
    "CriteriaWeights",
    "Criterion",
    "CriterionScore",
    "Debt",
    "DebtAllocation",
    "DebtBehavior",
    "DebtStrategy",
    "DebtStrategyResult",
    "ENABLED_CRITERIA",
    "Goal",
    "GoalAllocation",
    "GoalPriority",
    "GoalScoreResult",
    "GoalScores",
    "GoalStatus",
    "PaymentPlan",
    "RankedAlternative",
    "RiskTolerance",
    "ScenarioParameters",
    "StrategyScenario",
    "TimelineEntry",
    "TradeoffPreferences",
    "TradeoffPriority",
    "TradeoffResult",
    "TradeoffScenario",
    # Workflow models
    "AllocationParams",
    "ApplyBudgetAllocationRequest",
    "ApplyDebtStrategyRequest",
    "ApplyGoalDebtTradeoffRequest",
    "ApplyGoalPrioritizationRequest",
    "AutoScoringRequest",
    "DebtPaymentInput",
    "DebtStrategyRequest",
    "FinalizeDSSRequest",
    "FinalizeDSSResponse",
    "GoalFunding",
    "GoalPrioritizationRequest",
    "GoalPriorityInput",
    "InitializeDSSRequest",
    "InitializeDSSResponse",
    "MonthStateVersion",
    "PlanningInputs",
    "PreviewBudgetAllocationRequest",
    "PreviewGoalDebtTradeoffRequest",
    "ScenarioParametersOverride",
    "StageName",
    "StageSlot",
    "StageStatus",
    "StageStatusView",
    "TradeoffChoice",
    "ValidationIssue",
    "ValidationResult",
    "WorkflowState",
    "WorkflowStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
