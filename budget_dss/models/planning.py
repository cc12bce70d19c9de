"""
Planning Data Models for Budget DSS

These models define the schemas of the household entities the planning
pipeline reads (goals, debts, spending constraints) and of every result
the pipeline stages produce.

DESIGN DECISION: Entities are READ-ONLY inputs. The DSS never mutates a
goal's current amount or a debt's balance; those belong to the outer
application. Stage results are plain data so they can be cached in a
workflow session, serialized into a month state, and audited.

Amounts are single-currency floats. Rounding happens only at the edges
(reported amounts), never inside the simulations.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class GoalPriority(str, Enum):
    """Declared importance of a goal."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class GoalStatus(str, Enum):
    """
    Goal lifecycle status.

    Only ACTIVE goals take part in planning.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class DebtBehavior(str, Enum):
    """
    How a debt can be repaid.

    CRITICAL: Only REVOLVING debts accept extra payments. Installment and
    interest-only debts are always paid exactly at their minimum.
    """
    REVOLVING = "revolving"
    INSTALLMENT = "installment"
    INTEREST_ONLY = "interest_only"


class Criterion(str, Enum):
    """Goal scoring criteria."""
    FEASIBILITY = "feasibility"
    IMPORTANCE = "importance"
    URGENCY = "urgency"
    IMPACT = "impact"  # Kept in the data model, carries weight 0


# Criteria that take part in scoring. IMPACT is deliberately absent.
ENABLED_CRITERIA: tuple[Criterion, ...] = (
    Criterion.FEASIBILITY,
    Criterion.IMPORTANCE,
    Criterion.URGENCY,
)


class DebtStrategy(str, Enum):
    """Debt repayment orderings."""
    AVALANCHE = "avalanche"  # Highest interest rate first
    SNOWBALL = "snowball"    # Smallest balance first


class TradeoffPriority(str, Enum):
    """Where the user leans between goals and debt."""
    DEBT_FIRST = "debt_first"
    BALANCED = "balanced"
    GOALS_FIRST = "goals_first"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


# =============================================================================
# INPUT ENTITIES
# =============================================================================

class Goal(BaseModel):
    """
    A savings goal owned by the household.

    Accepts both the snake_case wire names and the camelCase names used by
    the goal listing API (targetAmount, currentAmount, targetDate).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: float = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("target_amount", "targetAmount"),
    )
    current_amount: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("current_amount", "currentAmount"),
    )
    target_date: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("target_date", "targetDate"),
    )
    priority: GoalPriority = GoalPriority.MEDIUM
    status: GoalStatus = GoalStatus.ACTIVE
    category: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("category", "type"),
    )

    @property
    def remaining_amount(self) -> float:
        """Amount still needed to reach the target."""
        return max(0.0, self.target_amount - self.current_amount)

    @property
    def is_active(self) -> bool:
        return self.status == GoalStatus.ACTIVE


class Debt(BaseModel):
    """
    A debt the household is repaying.

    interest_rate is an annual decimal (0.18 = 18%). Values above 1 are
    treated as percentages and normalized.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    current_balance: float = Field(..., ge=0)
    interest_rate: float = Field(default=0.0, ge=0)
    minimum_payment: float = Field(default=0.0, ge=0)
    behavior: DebtBehavior = DebtBehavior.REVOLVING

    @field_validator('interest_rate')
    @classmethod
    def normalize_rate(cls, v: float) -> float:
        """Guard against a percent passed where a decimal is expected."""
        if v > 1.0:
            return v / 100.0
        return v

    @property
    def is_adjustable(self) -> bool:
        """Can this debt receive payments above its minimum?"""
        return self.behavior == DebtBehavior.REVOLVING

    @property
    def monthly_rate(self) -> float:
        return self.interest_rate / 12.0


class Constraint(BaseModel):
    """
    A spending constraint for one category.

    Non-flexible: minimum_amount is a hard floor.
    Flexible: spending may range within [minimum_amount, maximum_amount].
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    category_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    minimum_amount: float = Field(..., ge=0)
    maximum_amount: Optional[float] = Field(default=None, ge=0)
    is_flexible: bool = False
    priority: int = 0

    @model_validator(mode='after')
    def validate_band(self) -> 'Constraint':
        if self.maximum_amount is not None and self.maximum_amount < self.minimum_amount:
            raise ValueError("Maximum amount cannot be below minimum amount")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.category_id

    def effective_maximum(self, multiplier: float = 1.5) -> float:
        """Upper bound of the band; implied from the minimum when absent."""
        if not self.is_flexible:
            return self.minimum_amount
        if self.maximum_amount is not None:
            return self.maximum_amount
        return self.minimum_amount * multiplier


# =============================================================================
# CRITERIA WEIGHTS
# =============================================================================

class CriteriaWeights(BaseModel):
    """
    Weights of the scoring criteria.

    Enabled criteria must sum to 1. The impact criterion is retained in the
    data but its weight is always forced to 0.
    """

    feasibility: float = Field(..., ge=0.0, le=1.0)
    importance: float = Field(..., ge=0.0, le=1.0)
    urgency: float = Field(..., ge=0.0, le=1.0)
    impact: float = Field(default=0.0, ge=0.0, le=1.0)

    @model_validator(mode='after')
    def validate_sum(self) -> 'CriteriaWeights':
        self.impact = 0.0
        total = sum(getattr(self, c.value) for c in ENABLED_CRITERIA)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Criteria weights must sum to 1 (got {total:.6f})")
        return self

    def weight(self, criterion: Criterion) -> float:
        return getattr(self, criterion.value)

    def as_dict(self) -> dict[str, float]:
        return {c.value: getattr(self, c.value) for c in Criterion}


# =============================================================================
# GOAL SCORING RESULTS
# =============================================================================

class CriterionScore(BaseModel):
    score: float = Field(..., ge=0.0, le=1.0)
    reason: str


class GoalScores(BaseModel):
    feasibility: CriterionScore
    importance: CriterionScore
    urgency: CriterionScore


class GoalScoreResult(BaseModel):
    """Sub-scores and weighted total for one goal."""

    goal_id: str
    goal_name: str
    scores: GoalScores
    total_score: float = Field(..., ge=0.0, le=1.0)
    months_left: Optional[int] = None
    required_monthly: float = Field(default=0.0, ge=0)

    def score_for(self, criterion: Criterion) -> float:
        if criterion == Criterion.IMPACT:
            return 0.0
        return getattr(self.scores, criterion.value).score


class AutoScoringResult(BaseModel):
    goals: list[GoalScoreResult] = Field(default_factory=list)
    default_criteria_weights: dict[str, float]
    criteria_weights_used: dict[str, float]
    available_capacity: float = 0.0


# =============================================================================
# AHP RESULTS
# =============================================================================

class RankedAlternative(BaseModel):
    alternative_id: str
    alternative_name: str
    rank: int = Field(..., ge=1)
    priority: float = Field(..., ge=0.0, le=1.0)


class AHPResult(BaseModel):
    """
    Output of the AHP prioritizer.

    Priorities over the ranked goals sum to 1. Consistency is informational
    only and never blocks the workflow.
    """

    ranking: list[RankedAlternative] = Field(default_factory=list)
    alternative_priorities: dict[str, float] = Field(default_factory=dict)
    local_priorities: dict[str, dict[str, float]] = Field(default_factory=dict)
    criteria_weights: dict[str, float]
    consistency_ratio: float = Field(..., ge=0.0)
    lambda_max: float = 0.0
    is_consistent: bool
    warnings: list[str] = Field(default_factory=list)

    def priority_of(self, goal_id: str) -> Optional[float]:
        return self.alternative_priorities.get(goal_id)


# =============================================================================
# DEBT STRATEGY RESULTS
# =============================================================================

class TimelineEntry(BaseModel):
    month: int = Field(..., ge=1)
    start_balance: float
    interest: float
    payment: float
    end_balance: float


class PaymentPlan(BaseModel):
    """
    Repayment plan for a single debt under one strategy.

    monthly_payment and extra_payment describe the first simulated month,
    which is the month being planned.
    """

    debt_id: str
    debt_name: str
    minimum_payment: float = 0.0
    monthly_payment: float
    extra_payment: float = 0.0
    total_interest: float = 0.0
    payoff_month: Optional[int] = None
    timeline: list[TimelineEntry] = Field(default_factory=list)


class StrategyScenario(BaseModel):
    strategy: DebtStrategy
    total_interest: float = 0.0
    months_to_debt_free: Optional[int] = None
    monthly_allocation: float = 0.0
    payment_plans: list[PaymentPlan] = Field(default_factory=list)
    is_feasible: bool = True
    infeasible_reason: Optional[str] = None
    first_debt_cleared: Optional[int] = None
    interest_saved: float = 0.0
    # Per simulated month, the ids of debts that received extra payment, in order
    extra_recipients: list[list[str]] = Field(default_factory=list)


class DebtStrategyResult(BaseModel):
    recommended_strategy: Optional[DebtStrategy] = None
    reasoning: str = ""
    key_facts: list[str] = Field(default_factory=list)
    scenarios: list[StrategyScenario] = Field(default_factory=list)
    fixed_payments: list[PaymentPlan] = Field(default_factory=list)
    is_feasible: bool = True
    budget_deficit: float = 0.0
    total_minimum_payment: float = 0.0
    total_debt_budget: float = 0.0

    def scenario_for(self, strategy: DebtStrategy) -> Optional[StrategyScenario]:
        for scenario in self.scenarios:
            if scenario.strategy == strategy:
                return scenario
        return None


# =============================================================================
# TRADEOFF RESULTS
# =============================================================================

class TradeoffPreferences(BaseModel):
    priority: TradeoffPriority = TradeoffPriority.BALANCED
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE
    psychological_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    accept_investment_risk: bool = True


class TradeoffScenario(BaseModel):
    name: str
    debt_percent: float = Field(..., ge=0.0, le=100.0)
    goal_percent: float = Field(..., ge=0.0, le=100.0)
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    months_to_debt_free: Optional[int] = None
    debt_free_change_months: Optional[int] = None
    goals_funded_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    monthly_goal_amount: float = 0.0
    monthly_extra_debt_amount: float = 0.0


class TradeoffResult(BaseModel):
    recommended_strategy: str
    recommended_goal_allocation: float = Field(..., ge=0.0, le=100.0)
    scenarios: list[TradeoffScenario] = Field(default_factory=list)
    reasoning: str = ""


# =============================================================================
# BUDGET ALLOCATION RESULTS
# =============================================================================

class ScenarioParameters(BaseModel):
    """Knobs that distinguish one allocation scenario from another."""

    scenario_type: str = Field(..., min_length=1)
    goal_contribution_factor: float = Field(default=1.0, ge=0.0, le=2.0)
    flexible_spending_level: float = Field(default=0.5, ge=0.0, le=1.0)
    emergency_fund_percent: float = Field(default=0.2, ge=0.0, le=1.0)
    goals_percent: float = Field(default=0.5, ge=0.0, le=1.0)
    flexible_percent: float = Field(default=0.2, ge=0.0, le=1.0)


class CategoryAllocation(BaseModel):
    category_id: str
    category_name: str
    amount: float = Field(..., ge=0)
    minimum: float = 0.0
    maximum: float = 0.0
    is_flexible: bool = False
    priority: int = 0


class GoalAllocation(BaseModel):
    goal_id: str
    goal_name: str
    amount: float = Field(..., ge=0)
    priority_weight: float = 0.0
    required_monthly: float = 0.0
    remaining_amount: float = 0.0


class DebtAllocation(BaseModel):
    debt_id: str
    debt_name: str
    amount: float = Field(..., ge=0)
    minimum_payment: float = 0.0
    extra_payment: float = 0.0
    is_adjustable: bool = True


class AllocationWarning(BaseModel):
    type: str
    message: str
    severity: str = Field(default="medium", pattern="^(low|medium|high)$")
    entity_id: Optional[str] = None


class AllocationSummary(BaseModel):
    total_income: float
    total_allocated: float
    surplus: float
    savings_rate: float
    mandatory_expenses: float = 0.0
    flexible_expenses: float = 0.0
    total_debt_payments: float = 0.0
    total_goal_contributions: float = 0.0
    emergency_fund: float = 0.0


class AllocationScenario(BaseModel):
    """One complete allocation proposal for the month."""

    scenario_type: str
    parameters: ScenarioParameters
    summary: AllocationSummary
    category_allocations: list[CategoryAllocation] = Field(default_factory=list)
    goal_allocations: list[GoalAllocation] = Field(default_factory=list)
    debt_allocations: list[DebtAllocation] = Field(default_factory=list)
    feasibility_score: float = Field(..., ge=0.0, le=100.0)
    is_feasible: bool = True
    warnings: list[AllocationWarning] = Field(default_factory=list)

    @property
    def line_item_total(self) -> float:
        """Sum of category, goal and debt line items."""
        return (
            sum(a.amount for a in self.category_allocations)
            + sum(a.amount for a in self.goal_allocations)
            + sum(a.amount for a in self.debt_allocations)
        )


class BudgetAllocationResult(BaseModel):
    total_income: float
    scenarios: list[AllocationScenario] = Field(default_factory=list)
    is_feasible: bool = True

    def scenario(self, scenario_type: str) -> Optional[AllocationScenario]:
        for scenario in self.scenarios:
            if scenario.scenario_type == scenario_type:
                return scenario
        return None
