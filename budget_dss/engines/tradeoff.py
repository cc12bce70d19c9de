"""
Goal-Debt Tradeoff Optimizer

Scores a fixed grid of goal/debt splits of the discretionary pool and
recommends one. Percentages on a candidate refer to that pool: income
minus constraint minimums minus debt minimum payments.
"""

from typing import Mapping, Optional, Sequence

from budget_dss.engines.debt_strategy import (
    DEFAULT_MAX_MONTHS,
    simulate_strategy,
    split_debts,
)
from budget_dss.models.planning import (
    Debt,
    DebtStrategy,
    RiskTolerance,
    TradeoffPreferences,
    TradeoffPriority,
    TradeoffResult,
    TradeoffScenario,
)


DEFAULT_STEP_PERCENT = 25

# (debt weight, goal weight) per declared priority
BASE_WEIGHTS = {
    TradeoffPriority.DEBT_FIRST: (0.7, 0.3),
    TradeoffPriority.BALANCED: (0.5, 0.5),
    TradeoffPriority.GOALS_FIRST: (0.3, 0.7),
}

CONSERVATIVE_GOAL_FACTOR = 0.9
AGGRESSIVE_GOAL_FACTOR = 1.1

# Largest share of the score psychological_weight can hand to quick wins
QUICK_WIN_SHARE = 0.25


def candidate_percents(step: int = DEFAULT_STEP_PERCENT) -> list[int]:
    """Goal percentages 0..100 in the given step, always including 100."""
    if step < 1:
        raise ValueError("step must be at least 1")
    percents = list(range(0, 100, step))
    percents.append(100)
    return percents


def scenario_name(goal_percent: int) -> str:
    if goal_percent == 0:
        return "debt_focus"
    if goal_percent == 100:
        return "goal_focus"
    if goal_percent == 50:
        return "balanced"
    if goal_percent < 50:
        return f"debt_leaning_{goal_percent}"
    return f"goal_leaning_{goal_percent}"


def preference_weights(preferences: TradeoffPreferences) -> tuple[float, float]:
    """(debt weight, goal weight) after risk adjustment, summing to 1."""
    debt_w, goal_w = BASE_WEIGHTS[preferences.priority]
    if preferences.risk_tolerance == RiskTolerance.CONSERVATIVE:
        goal_w *= CONSERVATIVE_GOAL_FACTOR
    elif (
        preferences.risk_tolerance == RiskTolerance.AGGRESSIVE
        and preferences.accept_investment_risk
    ):
        goal_w *= AGGRESSIVE_GOAL_FACTOR
    total = debt_w + goal_w
    return debt_w / total, goal_w / total


def goals_funded_ratio(
    goal_amount: float,
    requirements: Mapping[str, float],
    priorities: Mapping[str, float],
) -> float:
    """
    Fraction of goals whose required monthly contribution is met when
    goal_amount is split by priority.
    """
    if not requirements:
        return 1.0
    total_priority = sum(priorities.get(g, 0.0) for g in requirements)
    met = 0
    for goal_id, required in requirements.items():
        if total_priority > 0:
            share = goal_amount * priorities.get(goal_id, 0.0) / total_priority
        else:
            share = goal_amount / len(requirements)
        if share + 1e-6 >= required:
            met += 1
    return met / len(requirements)


def _tie_break(priority: TradeoffPriority, goal_percent: int) -> float:
    if priority == TradeoffPriority.DEBT_FIRST:
        return goal_percent
    if priority == TradeoffPriority.GOALS_FIRST:
        return -goal_percent
    return abs(goal_percent - 50)


def optimize_tradeoff(
    debts: Sequence[Debt],
    discretionary_pool: float,
    goal_requirements: Mapping[str, float],
    goal_priorities: Mapping[str, float],
    preferences: TradeoffPreferences,
    strategy: Optional[DebtStrategy] = None,
    step: int = DEFAULT_STEP_PERCENT,
    max_months: int = DEFAULT_MAX_MONTHS,
    baseline_months: Optional[int] = None,
) -> TradeoffResult:
    """
    Score goal/debt splits and recommend the best.

    Args:
        debts: All debts of the session
        discretionary_pool: Income left after constraint and debt minimums
        goal_requirements: Required monthly contribution per goal id
        goal_priorities: Priority weight per goal id (AHP or auto-scores)
        preferences: User preferences
        strategy: Debt ordering used for the projection; avalanche if None
        step: Candidate granularity in percent
        max_months: Amortization cap
        baseline_months: Months to debt-free under the applied debt plan;
            debt_free_change_months is measured against it. A minimums-only
            projection is used when None

    Returns:
        TradeoffResult with one scenario per candidate, in goal-percent order
    """
    pool = max(0.0, discretionary_pool)
    ordering = strategy or DebtStrategy.AVALANCHE
    revolving, _ = split_debts(debts)
    minimums = sum(d.minimum_payment for d in revolving)

    if baseline_months is None and revolving:
        baseline = simulate_strategy(
            revolving, minimums, ordering, max_months, include_timeline=False
        )
        baseline_months = baseline.months_to_debt_free

    projections = []
    for goal_percent in candidate_percents(step):
        goal_amount = pool * goal_percent / 100.0
        extra = pool - goal_amount
        months = 0
        first_cleared = None
        if revolving:
            projection = simulate_strategy(
                revolving, minimums + extra, ordering, max_months, include_timeline=False
            )
            months = projection.months_to_debt_free
            first_cleared = projection.first_debt_cleared
        projections.append((goal_percent, goal_amount, extra, months, first_cleared))

    feasible_months = [p[3] for p in projections if p[3] is not None]
    best_months = min(feasible_months) if feasible_months else 0
    worst_months = max(feasible_months) if feasible_months else 0

    debt_w, goal_w = preference_weights(preferences)
    quick_share = 0.0
    if preferences.priority == TradeoffPriority.BALANCED:
        quick_share = QUICK_WIN_SHARE * preferences.psychological_weight

    scenarios = []
    for goal_percent, goal_amount, extra, months, first_cleared in projections:
        if months is None:
            debt_score = 0.0
        elif worst_months > best_months:
            debt_score = (worst_months - months) / (worst_months - best_months)
        else:
            debt_score = 1.0

        funded = goals_funded_ratio(goal_amount, goal_requirements, goal_priorities)
        combined = debt_w * debt_score + goal_w * funded
        if quick_share > 0:
            quick_win = 1.0 / first_cleared if first_cleared else 0.0
            combined = (1.0 - quick_share) * combined + quick_share * quick_win

        change = None
        if months is not None and baseline_months is not None:
            change = months - baseline_months

        scenarios.append(TradeoffScenario(
            name=scenario_name(goal_percent),
            debt_percent=float(100 - goal_percent),
            goal_percent=float(goal_percent),
            score=round(min(1.0, max(0.0, combined)) * 100.0, 2),
            months_to_debt_free=months if revolving else None,
            debt_free_change_months=change,
            goals_funded_ratio=funded,
            monthly_goal_amount=goal_amount,
            monthly_extra_debt_amount=extra,
        ))

    best = min(
        scenarios,
        key=lambda s: (-s.score, _tie_break(preferences.priority, int(s.goal_percent))),
    )

    reasoning = (
        f"{best.name} scores {best.score:.0f}/100: "
        f"{best.goals_funded_ratio:.0%} of goals fully funded"
    )
    if best.months_to_debt_free is not None:
        reasoning += f", debt-free in {best.months_to_debt_free} month(s)"
    reasoning += f" (weights: debt {debt_w:.2f}, goals {goal_w:.2f})."

    return TradeoffResult(
        recommended_strategy=best.name,
        recommended_goal_allocation=best.goal_percent,
        scenarios=scenarios,
        reasoning=reasoning,
    )
