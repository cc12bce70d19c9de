"""
Workflow Models for Budget DSS

Wire contracts of the planning workflow (requests and responses), the
per-month session aggregate (WorkflowState), the immutable committed
result (MonthStateVersion), and validation results.

DESIGN DECISION: The session cache is an explicit aggregate with one
named slot per stage. Slots are mutated only by the orchestrator's
preview and apply operations, never by the engines.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from budget_dss.models.planning import (
    Constraint,
    Debt,
    DebtStrategy,
    Goal,
    TradeoffPreferences,
)


MONTH_ID_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"

# Tolerance for "percentages must sum to 100"
PERCENT_TOLERANCE = 1e-6


def _utcnow() -> datetime:
    return datetime.utcnow()


# =============================================================================
# STAGES
# =============================================================================

class StageName(str, Enum):
    """Workflow stages in pipeline order."""
    AUTO_SCORE = "auto_score"
    GOAL_PRIORITIZATION = "goal_prioritization"
    DEBT_STRATEGY = "debt_strategy"
    TRADEOFF = "tradeoff"
    BUDGET_ALLOCATION = "budget_allocation"
    FINALIZE = "finalize"


class StageStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class StageSlot(BaseModel):
    """
    Cached state of one stage within a month session.

    result holds the latest preview and is overwritten on every preview.
    selection holds what the user applied and survives later previews.
    """

    status: StageStatus = StageStatus.IDLE
    params: dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    applied: bool = False
    selection: Optional[Any] = None
    error: Optional[str] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# SESSION AGGREGATE
# =============================================================================

class AllocationParams(BaseModel):
    """Split of discretionary surplus between goals and debt repayment."""

    goal_allocation_pct: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        validation_alias=AliasChoices("goal_allocation_pct", "goalAllocationPct"),
    )
    debt_allocation_pct: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        validation_alias=AliasChoices("debt_allocation_pct", "debtAllocationPct"),
    )


class PlanningInputs(BaseModel):
    """Entities the session plans over, captured at initialization."""

    monthly_income: float = Field(..., ge=0)
    goals: list[Goal] = Field(default_factory=list)
    debts: list[Debt] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)

    @property
    def active_goals(self) -> list[Goal]:
        return [g for g in self.goals if g.is_active]

    @property
    def has_goals(self) -> bool:
        return len(self.active_goals) > 0

    @property
    def has_debts(self) -> bool:
        return len(self.debts) > 0

    @property
    def fixed_costs(self) -> float:
        """Sum of all constraint minimums."""
        return sum(c.minimum_amount for c in self.constraints)

    @property
    def total_minimum_payment(self) -> float:
        return sum(d.minimum_payment for d in self.debts)


class WorkflowState(BaseModel):
    """
    Per-month planning session.

    CRITICAL: Nothing in here is durable. Only finalize turns a session into
    a MonthStateVersion.
    """

    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    correlation_id: UUID
    inputs: PlanningInputs
    stages: list[StageName]
    slots: dict[StageName, StageSlot] = Field(default_factory=dict)
    allocation_params: AllocationParams = Field(default_factory=AllocationParams)
    custom_weights: Optional[dict[str, float]] = None
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime
    last_updated: datetime = Field(default_factory=_utcnow)

    def slot(self, stage: StageName) -> StageSlot:
        if stage not in self.slots:
            self.slots[stage] = StageSlot()
        return self.slots[stage]

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    def applied_selection(self, stage: StageName) -> Optional[Any]:
        slot = self.slots.get(stage)
        if slot is None or not slot.applied:
            return None
        return slot.selection


# =============================================================================
# REQUESTS AND RESPONSES
# =============================================================================

class InitializeDSSRequest(BaseModel):
    monthly_income: float = Field(..., ge=0)
    goals: list[Goal] = Field(default_factory=list)
    debts: list[Debt] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)


class InitializeDSSResponse(BaseModel):
    month_id: str
    status: str
    expires_in: str
    message: str
    goal_count: int
    debt_count: int
    constraint_count: int
    monthly_income: float
    stages: list[StageName]


class AutoScoringRequest(BaseModel):
    """Goals and income default to the session's when omitted."""

    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    monthly_income: Optional[float] = Field(default=None, ge=0)
    goals: Optional[list[Goal]] = None
    goal_allocation_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class GoalPrioritizationRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    criteria_ratings: Optional[dict[str, float]] = None
    criteria_weights: Optional[dict[str, float]] = None
    goals: Optional[list[Goal]] = None


class ApplyGoalPrioritizationRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    accepted_ranking: list[str] = Field(..., min_length=1)


class DebtStrategyRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    debts: Optional[list[Debt]] = None
    total_debt_budget: Optional[float] = Field(default=None, ge=0)


class ApplyDebtStrategyRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    selected_strategy: DebtStrategy


class PreviewGoalDebtTradeoffRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    preferences: TradeoffPreferences = Field(default_factory=TradeoffPreferences)


class ApplyGoalDebtTradeoffRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    goal_allocation_percent: float = Field(..., ge=0.0, le=100.0)
    debt_allocation_percent: float = Field(..., ge=0.0, le=100.0)

    @model_validator(mode='after')
    def validate_split(self) -> 'ApplyGoalDebtTradeoffRequest':
        total = self.goal_allocation_percent + self.debt_allocation_percent
        if abs(total - 100.0) > PERCENT_TOLERANCE:
            raise ValueError(
                f"goal_allocation_percent + debt_allocation_percent must equal 100 (got {total})"
            )
        return self


class ScenarioParametersOverride(BaseModel):
    """Fields left as None keep the scenario's defaults."""

    scenario_type: str = Field(..., min_length=1)
    goal_contribution_factor: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    flexible_spending_level: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    emergency_fund_percent: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    goals_percent: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    flexible_percent: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class PreviewBudgetAllocationRequest(BaseModel):
    """
    goal_allocation_pct defaults to the applied tradeoff split.

    debt_allocation_pct is only checked against goal_allocation_pct. Debt
    amounts come from the applied debt strategy's payment plans (minimum
    payments without one), and supplying it adds a low-severity warning.
    """

    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    goal_allocation_pct: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    debt_allocation_pct: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=100.0,
        description="Accepted for symmetry with goal_allocation_pct; not used for debt amounts",
    )
    scenario_overrides: list[ScenarioParametersOverride] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_split(self) -> 'PreviewBudgetAllocationRequest':
        if self.goal_allocation_pct is not None and self.debt_allocation_pct is not None:
            total = self.goal_allocation_pct + self.debt_allocation_pct
            if total > 100.0 + PERCENT_TOLERANCE:
                raise ValueError(
                    f"goal_allocation_pct + debt_allocation_pct cannot exceed 100 (got {total})"
                )
        types = [o.scenario_type for o in self.scenario_overrides]
        if len(types) != len(set(types)):
            raise ValueError("scenario_overrides contains duplicate scenario types")
        return self


class ApplyBudgetAllocationRequest(BaseModel):
    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    selected_scenario: str = Field(..., min_length=1)
    allocations: Optional[dict[str, float]] = None

    @field_validator('allocations')
    @classmethod
    def validate_amounts(cls, v: Optional[dict[str, float]]) -> Optional[dict[str, float]]:
        if v is not None:
            for category_id, amount in v.items():
                if amount < 0:
                    raise ValueError(f"Allocation for {category_id} cannot be negative")
        return v


class GoalPriorityInput(BaseModel):
    goal_id: str = Field(..., min_length=1)
    priority: float = Field(..., ge=0.0, le=1.0)
    method: str = "ahp"


class TradeoffChoice(BaseModel):
    scenario_type: Optional[str] = None
    goal_allocation_pct: float = Field(..., ge=0.0, le=100.0)
    debt_allocation_pct: float = Field(..., ge=0.0, le=100.0)
    expected_outcome: Optional[str] = None

    @model_validator(mode='after')
    def validate_split(self) -> 'TradeoffChoice':
        total = self.goal_allocation_pct + self.debt_allocation_pct
        if abs(total - 100.0) > PERCENT_TOLERANCE:
            raise ValueError(
                f"goal_allocation_pct + debt_allocation_pct must equal 100 (got {total})"
            )
        return self


class GoalFunding(BaseModel):
    goal_id: str = Field(..., min_length=1)
    suggested_amount: float = Field(..., ge=0)
    user_adjusted_amount: Optional[float] = Field(default=None, ge=0)

    @property
    def effective_amount(self) -> float:
        if self.user_adjusted_amount is not None:
            return self.user_adjusted_amount
        return self.suggested_amount


class DebtPaymentInput(BaseModel):
    debt_id: str = Field(..., min_length=1)
    minimum_payment: float = Field(..., ge=0)
    suggested_payment: float = Field(..., ge=0)
    user_adjusted_payment: Optional[float] = Field(default=None, ge=0)

    @property
    def effective_payment(self) -> float:
        if self.user_adjusted_payment is not None:
            return self.user_adjusted_payment
        return self.suggested_payment


class FinalizeDSSRequest(BaseModel):
    """
    Everything that gets committed for the month, in one request.

    base_version, when supplied, is the month state version the caller
    previewed against; finalize refuses to commit over a newer one.
    """

    use_auto_scoring: bool = False
    goal_priorities: list[GoalPriorityInput] = Field(default_factory=list)
    debt_strategy: Optional[DebtStrategy] = None
    tradeoff_choice: Optional[TradeoffChoice] = None
    budget_allocations: dict[str, float] = Field(default_factory=dict)
    goal_fundings: list[GoalFunding] = Field(default_factory=list)
    debt_payments: list[DebtPaymentInput] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)
    base_version: Optional[int] = Field(default=None, ge=0)

    @property
    def category_total(self) -> float:
        return sum(self.budget_allocations.values())

    @property
    def goal_total(self) -> float:
        return sum(f.effective_amount for f in self.goal_fundings)

    @property
    def debt_total(self) -> float:
        return sum(p.effective_payment for p in self.debt_payments)

    @property
    def total_allocated(self) -> float:
        return self.category_total + self.goal_total + self.debt_total


class StageStatusView(BaseModel):
    stage: StageName
    status: StageStatus
    applied: bool = False
    error: Optional[str] = None


class WorkflowStatus(BaseModel):
    month_id: str
    stages: list[StageStatusView] = Field(default_factory=list)
    current_step: Optional[StageName] = None
    completed_steps: list[StageName] = Field(default_factory=list)
    is_complete: bool = False
    can_proceed: bool = False
    last_updated: Optional[datetime] = None


class FinalizeDSSResponse(BaseModel):
    month_id: str
    message: str
    new_state_version: int
    to_be_budgeted: float
    status: str
    workflow: WorkflowStatus


# =============================================================================
# COMMITTED MONTH STATE
# =============================================================================

class MonthStateVersion(BaseModel):
    """
    One committed version of a month's plan.

    CRITICAL: Append-only and immutable once created. Produced only by
    finalize.
    """
    model_config = ConfigDict(frozen=True)

    month_id: str = Field(..., pattern=MONTH_ID_PATTERN)
    version: int = Field(..., ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    monthly_income: float = Field(..., ge=0)
    goal_priorities: list[GoalPriorityInput] = Field(default_factory=list)
    debt_strategy: Optional[DebtStrategy] = None
    tradeoff_choice: Optional[TradeoffChoice] = None
    category_allocations: dict[str, float] = Field(default_factory=dict)
    goal_fundings: list[GoalFunding] = Field(default_factory=list)
    debt_payments: list[DebtPaymentInput] = Field(default_factory=list)
    total_allocated: float = Field(..., ge=0)
    to_be_budgeted: float
    notes: Optional[str] = None
    correlation_id: Optional[UUID] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'exceeds_income', 'unknown_id', 'invalid_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating a workflow request against the session."""

    subject: str = Field(
        ...,
        description="What was validated (e.g., 'finalize', 'apply_goal_prioritization')"
    )
    validated_at: datetime = Field(
        default_factory=_utcnow
    )
    is_valid: bool
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    # Warnings don't block but should be shown
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]
