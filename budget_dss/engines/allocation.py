"""
Budget Allocator

Turns constraints, prioritized goals and the applied debt plan into
complete allocation scenarios for the month.

Order of allocation within a scenario:
1. Non-flexible categories at their minimum (unconditional)
2. Flexible categories interpolated inside their band
3. Debts, from the applied strategy's payment plans
4. Discretionary pools: emergency fund, goals, extra flexible spending
5. Goals by priority inside the goals pool

CRITICAL: Debt payment plans are an input. The allocator never runs its
own amortization.
"""

import math
from typing import Mapping, Optional, Sequence

from budget_dss.models.planning import (
    AllocationScenario,
    AllocationSummary,
    AllocationWarning,
    BudgetAllocationResult,
    CategoryAllocation,
    Constraint,
    Debt,
    DebtAllocation,
    Goal,
    GoalAllocation,
    PaymentPlan,
    ScenarioParameters,
)


DEFAULT_MIN_GOAL_CONTRIBUTION = 100000.0
DEFAULT_FLEXIBLE_MAX_MULTIPLIER = 1.5

DEFAULT_SCENARIOS: tuple[ScenarioParameters, ...] = (
    ScenarioParameters(
        scenario_type="safe",
        goal_contribution_factor=0.8,
        flexible_spending_level=0.0,
        emergency_fund_percent=0.3,
        goals_percent=0.4,
        flexible_percent=0.1,
    ),
    ScenarioParameters(
        scenario_type="balanced",
        goal_contribution_factor=1.0,
        flexible_spending_level=0.5,
        emergency_fund_percent=0.2,
        goals_percent=0.5,
        flexible_percent=0.2,
    ),
)

_PARAMETER_FIELDS = (
    "goal_contribution_factor",
    "flexible_spending_level",
    "emergency_fund_percent",
    "goals_percent",
    "flexible_percent",
)

EPSILON = 1e-6


def resolve_scenarios(overrides: Sequence[Mapping] = ()) -> list[ScenarioParameters]:
    """
    Default scenarios with overrides applied.

    An override for a known scenario replaces only the fields it sets. An
    override for an unknown scenario type must set every parameter and is
    appended after the defaults.

    Raises:
        ValueError: If a new scenario type is missing parameters
    """
    by_type = {s.scenario_type: s for s in DEFAULT_SCENARIOS}
    order = [s.scenario_type for s in DEFAULT_SCENARIOS]

    for override in overrides:
        scenario_type = override["scenario_type"]
        fields = {k: v for k, v in override.items() if k in _PARAMETER_FIELDS and v is not None}
        if scenario_type in by_type:
            by_type[scenario_type] = by_type[scenario_type].model_copy(update=fields)
            # Re-run field validation on the merged parameters
            by_type[scenario_type] = ScenarioParameters(**by_type[scenario_type].model_dump())
        else:
            missing = [f for f in _PARAMETER_FIELDS if f not in fields]
            if missing:
                raise ValueError(
                    f"New scenario '{scenario_type}' is missing parameters: {', '.join(missing)}"
                )
            by_type[scenario_type] = ScenarioParameters(scenario_type=scenario_type, **fields)
            order.append(scenario_type)

    return [by_type[t] for t in order]


def _goal_weights(goals: Sequence[Goal], priorities: Mapping[str, float]) -> dict[str, float]:
    total = sum(max(0.0, priorities.get(g.id, 0.0)) for g in goals)
    if total <= 0:
        return {g.id: 1.0 / len(goals) for g in goals} if goals else {}
    return {g.id: max(0.0, priorities.get(g.id, 0.0)) / total for g in goals}


def distribute_goal_pool(
    goals: Sequence[Goal],
    pool: float,
    priorities: Mapping[str, float],
    contribution_factor: float = 1.0,
    min_contribution: float = DEFAULT_MIN_GOAL_CONTRIBUTION,
) -> dict[str, float]:
    """
    Split the goals pool by priority.

    Each goal gets pool * weight * contribution_factor, capped at its
    remaining amount, with the total capped at the pool. When the pool is
    nonzero every goal is raised to min(min_contribution, remaining) if
    all floors fit, trimming the excess above floors proportionally.
    Otherwise floors are granted in priority order until the pool runs
    out. Amounts are rounded down to whole units.

    Returns:
        {goal_id: amount} for every goal passed in
    """
    eligible = [g for g in goals if g.remaining_amount > 0]
    amounts = {g.id: 0.0 for g in goals}
    if not eligible or pool <= 0:
        return amounts

    weights = _goal_weights(eligible, priorities)
    for goal in eligible:
        amounts[goal.id] = min(pool * weights[goal.id] * contribution_factor, goal.remaining_amount)

    allocated = sum(amounts.values())
    if allocated > pool:
        scale = pool / allocated
        for goal_id in amounts:
            amounts[goal_id] *= scale

    if min_contribution > 0:
        floors = {g.id: min(min_contribution, g.remaining_amount) for g in eligible}
        if sum(floors.values()) <= pool + EPSILON:
            for goal_id, floor_amount in floors.items():
                amounts[goal_id] = max(amounts[goal_id], floor_amount)
            overflow = sum(amounts.values()) - pool
            if overflow > EPSILON:
                excess = {gid: amounts[gid] - floors[gid] for gid in floors}
                excess_total = sum(excess.values())
                for goal_id in floors:
                    amounts[goal_id] -= overflow * excess[goal_id] / excess_total
        else:
            # Rank order, ties by input order
            ranked = sorted(
                enumerate(eligible),
                key=lambda item: (-weights[item[1].id], item[0]),
            )
            left = pool
            for _, goal in ranked:
                grant = min(floors[goal.id], left)
                amounts[goal.id] = grant
                left -= grant

    return {goal_id: float(math.floor(amount + EPSILON)) for goal_id, amount in amounts.items()}


def _allocate_categories(
    constraints: Sequence[Constraint],
    income: float,
    level: float,
    multiplier: float,
    warnings: list[AllocationWarning],
) -> list[CategoryAllocation]:
    allocations = []
    for c in constraints:
        maximum = c.effective_maximum(multiplier)
        amount = c.minimum_amount
        if c.is_flexible:
            amount = c.minimum_amount + level * (maximum - c.minimum_amount)
        allocations.append(CategoryAllocation(
            category_id=c.category_id,
            category_name=c.display_name,
            amount=amount,
            minimum=c.minimum_amount,
            maximum=maximum,
            is_flexible=c.is_flexible,
            priority=c.priority,
        ))

    total = sum(a.amount for a in allocations)
    floors = sum(a.minimum for a in allocations)
    if total > income + EPSILON and floors <= income + EPSILON:
        overflow = total - income
        headroom = sum(a.amount - a.minimum for a in allocations if a.is_flexible)
        for a in allocations:
            if a.is_flexible and headroom > 0:
                a.amount -= overflow * (a.amount - a.minimum) / headroom
        warnings.append(AllocationWarning(
            type="flexible_reduced",
            message=f"Flexible spending lowered by {overflow:,.0f} to stay within income",
            severity="low",
        ))
    return allocations


def _allocate_debts(
    debts: Sequence[Debt],
    payment_plans: Optional[Sequence[PaymentPlan]],
    surplus: float,
    warnings: list[AllocationWarning],
) -> list[DebtAllocation]:
    plans = {p.debt_id: p for p in payment_plans or ()}
    if payment_plans is None and debts:
        warnings.append(AllocationWarning(
            type="no_debt_strategy",
            message="No debt strategy applied; debts receive minimum payments only",
            severity="low",
        ))

    allocations = []
    for debt in debts:
        minimum = debt.minimum_payment
        required = min(minimum, debt.current_balance)
        if not debt.is_adjustable:
            amount = minimum
        elif debt.id in plans:
            amount = plans[debt.id].monthly_payment
            if amount + EPSILON < required:
                warnings.append(AllocationWarning(
                    type="debt_minimum_shortfall",
                    message=(
                        f"Payment plan for {debt.name} pays {amount:,.0f}, below its "
                        f"minimum {required:,.0f}; raised to the minimum"
                    ),
                    severity="high",
                    entity_id=debt.id,
                ))
                amount = required
        else:
            amount = required
        allocations.append(DebtAllocation(
            debt_id=debt.id,
            debt_name=debt.name,
            amount=amount,
            minimum_payment=minimum,
            extra_payment=max(0.0, amount - minimum),
            is_adjustable=debt.is_adjustable,
        ))

    total = sum(a.amount for a in allocations)
    if total > surplus + EPSILON:
        extras = sum(a.extra_payment for a in allocations)
        cut = min(extras, total - max(0.0, surplus))
        if cut > 0:
            for a in allocations:
                if a.extra_payment > 0:
                    reduction = cut * a.extra_payment / extras
                    a.amount -= reduction
                    a.extra_payment -= reduction
            warnings.append(AllocationWarning(
                type="debt_extra_reduced",
                message=f"Extra debt payments reduced by {cut:,.0f} to fit the surplus",
                severity="medium",
            ))
    return allocations


def _raise_flexible(categories: list[CategoryAllocation], pool: float) -> float:
    """Spread the flexible pool over headroom; returns the amount used."""
    headroom = [max(0.0, a.maximum - a.amount) if a.is_flexible else 0.0 for a in categories]
    total_headroom = sum(headroom)
    used = min(pool, total_headroom)
    if used <= 0:
        return 0.0
    for a, room in zip(categories, headroom):
        a.amount += used * room / total_headroom
    return used


def allocate_scenario(
    params: ScenarioParameters,
    monthly_income: float,
    constraints: Sequence[Constraint],
    goals: Sequence[Goal],
    goal_priorities: Mapping[str, float],
    goal_requirements: Mapping[str, float],
    debts: Sequence[Debt],
    payment_plans: Optional[Sequence[PaymentPlan]] = None,
    goal_allocation_pct: Optional[float] = None,
    min_goal_contribution: float = DEFAULT_MIN_GOAL_CONTRIBUTION,
    flexible_max_multiplier: float = DEFAULT_FLEXIBLE_MAX_MULTIPLIER,
) -> AllocationScenario:
    """Build one allocation scenario."""
    warnings: list[AllocationWarning] = []
    active_goals = [g for g in goals if g.is_active]

    categories = _allocate_categories(
        constraints, monthly_income, params.flexible_spending_level,
        flexible_max_multiplier, warnings,
    )
    floors = sum(a.minimum for a in categories)
    is_feasible = floors <= monthly_income + EPSILON
    if not is_feasible:
        for a in categories:
            a.amount = a.minimum
        warnings.append(AllocationWarning(
            type="constraints_exceed_income",
            message=f"Category minimums exceed income by {floors - monthly_income:,.0f}",
            severity="high",
        ))

    category_total = sum(a.amount for a in categories)
    surplus = monthly_income - category_total

    debt_allocations = _allocate_debts(debts, payment_plans, surplus, warnings)
    debt_total = sum(a.amount for a in debt_allocations)
    if debt_total > max(0.0, surplus) + EPSILON:
        is_feasible = False
        warnings.append(AllocationWarning(
            type="debt_minimums_exceed_surplus",
            message=f"Debt payments exceed what is left after categories by {debt_total - max(0.0, surplus):,.0f}",
            severity="high",
        ))

    emergency = 0.0
    goal_amounts = {g.id: 0.0 for g in active_goals}
    discretionary = max(0.0, surplus - debt_total)
    if discretionary > 0:
        goals_percent = params.goals_percent
        if goal_allocation_pct is not None:
            goals_percent = min(goals_percent, goal_allocation_pct / 100.0)
        percents = [params.emergency_fund_percent, goals_percent, params.flexible_percent]
        percent_total = sum(percents)
        if percent_total > 1.0:
            percents = [p / percent_total for p in percents]
        emergency_pool, goals_pool, flexible_pool = (discretionary * p for p in percents)

        emergency = emergency_pool
        _raise_flexible(categories, flexible_pool)
        goal_amounts = distribute_goal_pool(
            active_goals, goals_pool, goal_priorities,
            params.goal_contribution_factor, min_goal_contribution,
        )

    weights = _goal_weights(active_goals, goal_priorities)
    goal_allocations = []
    for goal in active_goals:
        required = goal_requirements.get(goal.id, 0.0)
        amount = goal_amounts.get(goal.id, 0.0)
        goal_allocations.append(GoalAllocation(
            goal_id=goal.id,
            goal_name=goal.name,
            amount=amount,
            priority_weight=weights.get(goal.id, 0.0),
            required_monthly=required,
            remaining_amount=goal.remaining_amount,
        ))
        if amount + EPSILON < required:
            warnings.append(AllocationWarning(
                type="goal_shortfall",
                message=f"Goal '{goal.name}' shortfall {required - amount:,.0f}/month",
                severity="medium",
                entity_id=goal.id,
            ))

    category_total = sum(a.amount for a in categories)
    goal_total = sum(a.amount for a in goal_allocations)
    total_allocated = category_total + goal_total + debt_total + emergency
    if total_allocated > monthly_income + EPSILON:
        warnings.append(AllocationWarning(
            type="exceeds_income",
            message=f"Allocations exceed income by {total_allocated - monthly_income:,.0f}",
            severity="high",
        ))

    needs = floors + sum(a.minimum_payment for a in debt_allocations)
    needs += sum(goal_requirements.get(g.id, 0.0) for g in active_goals)
    met = sum(min(a.amount, a.minimum) for a in categories)
    met += sum(min(a.amount, a.minimum_payment) for a in debt_allocations)
    met += sum(min(a.amount, a.required_monthly) for a in goal_allocations)
    score = met / needs if needs > 0 else 1.0
    if total_allocated > monthly_income and total_allocated > 0:
        score *= monthly_income / total_allocated

    mandatory = sum(a.amount for a in categories if not a.is_flexible)
    savings = goal_total + emergency
    return AllocationScenario(
        scenario_type=params.scenario_type,
        parameters=params,
        summary=AllocationSummary(
            total_income=monthly_income,
            total_allocated=total_allocated,
            surplus=monthly_income - total_allocated,
            savings_rate=(savings / monthly_income * 100.0) if monthly_income > 0 else 0.0,
            mandatory_expenses=mandatory,
            flexible_expenses=category_total - mandatory,
            total_debt_payments=debt_total,
            total_goal_contributions=goal_total,
            emergency_fund=emergency,
        ),
        category_allocations=categories,
        goal_allocations=goal_allocations,
        debt_allocations=debt_allocations,
        feasibility_score=round(min(100.0, max(0.0, score * 100.0)), 2),
        is_feasible=is_feasible,
        warnings=warnings,
    )


def allocate_budget(
    monthly_income: float,
    constraints: Sequence[Constraint],
    goals: Sequence[Goal],
    goal_priorities: Mapping[str, float],
    goal_requirements: Mapping[str, float],
    debts: Sequence[Debt],
    payment_plans: Optional[Sequence[PaymentPlan]] = None,
    goal_allocation_pct: Optional[float] = None,
    scenarios: Optional[Sequence[ScenarioParameters]] = None,
    min_goal_contribution: float = DEFAULT_MIN_GOAL_CONTRIBUTION,
    flexible_max_multiplier: float = DEFAULT_FLEXIBLE_MAX_MULTIPLIER,
) -> BudgetAllocationResult:
    """
    Produce one AllocationScenario per scenario parameter set.

    Args:
        monthly_income: Income of the planning month
        constraints: Category constraints
        goals: Goals; only active ones are funded
        goal_priorities: Priority weight per goal id
        goal_requirements: Required monthly contribution per goal id
        debts: All debts of the session
        payment_plans: Applied strategy plans plus fixed-debt plans, or None
        goal_allocation_pct: Goal share of the applied tradeoff, caps goals_percent
        scenarios: Scenario parameters; safe and balanced when omitted
        min_goal_contribution: Per-goal floor when the goals pool is nonzero
        flexible_max_multiplier: Implied maximum for open-ended flexible bands
    """
    results = [
        allocate_scenario(
            params, monthly_income, constraints, goals, goal_priorities,
            goal_requirements, debts, payment_plans, goal_allocation_pct,
            min_goal_contribution, flexible_max_multiplier,
        )
        for params in (scenarios if scenarios is not None else DEFAULT_SCENARIOS)
    ]
    return BudgetAllocationResult(
        total_income=monthly_income,
        scenarios=results,
        is_feasible=any(s.is_feasible for s in results),
    )
