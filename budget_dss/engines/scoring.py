"""
Goal Scorer

Rates each active goal on feasibility, importance and urgency, all in
[0, 1], and combines them with the criteria weights.

Pure: the planning date and capacity figures come in as arguments.
"""

import math
from datetime import date
from typing import Optional

from budget_dss.engines.weights import default_weights
from budget_dss.models.planning import (
    AutoScoringResult,
    CriteriaWeights,
    Criterion,
    CriterionScore,
    ENABLED_CRITERIA,
    Goal,
    GoalPriority,
    GoalScoreResult,
    GoalScores,
)


DAYS_PER_MONTH = 30
UNDATED_GOAL_MONTHS = 12

IMPORTANCE_BY_PRIORITY = {
    GoalPriority.CRITICAL: 1.0,
    GoalPriority.HIGH: 0.75,
    GoalPriority.MEDIUM: 0.5,
    GoalPriority.LOW: 0.25,
}


def months_until(target: Optional[date], as_of: date) -> int:
    """
    Whole 30-day months from as_of to target, rounded up.

    Returns 0 when the target has passed, UNDATED_GOAL_MONTHS when there
    is no target date. A target later in the same month counts as 1.
    """
    if target is None:
        return UNDATED_GOAL_MONTHS
    days = (target - as_of).days
    if days < 0:
        return 0
    return max(1, math.ceil(days / DAYS_PER_MONTH))


def available_capacity(
    monthly_income: float,
    fixed_costs: float,
    goal_allocation_pct: Optional[float] = None,
) -> float:
    """Monthly amount that can go to goals overall."""
    capacity = max(0.0, monthly_income - fixed_costs)
    if goal_allocation_pct is not None:
        capacity = min(capacity, monthly_income * goal_allocation_pct / 100.0)
    return capacity


def required_monthly(goal: Goal, months_left: int) -> float:
    if goal.remaining_amount <= 0:
        return 0.0
    return goal.remaining_amount / max(1, months_left)


def _feasibility(goal: Goal, months_left: int, share: float) -> CriterionScore:
    if goal.remaining_amount <= 0:
        return CriterionScore(score=1.0, reason="Goal is already fully funded")
    if months_left == 0:
        return CriterionScore(score=0.0, reason="Target date has passed")

    needed = required_monthly(goal, months_left)
    score = min(1.0, share / needed) if needed > 0 else 1.0
    return CriterionScore(
        score=score,
        reason=f"Needs {needed:,.0f}/month, about {share:,.0f}/month is available",
    )


def _importance(goal: Goal) -> CriterionScore:
    score = IMPORTANCE_BY_PRIORITY[goal.priority]
    return CriterionScore(score=score, reason=f"Declared priority is {goal.priority.value}")


def _urgency(goal: Goal, months_left: int) -> CriterionScore:
    if months_left == 0:
        return CriterionScore(score=1.0, reason="Target date has passed")
    score = 1.0 / (1.0 + (months_left - 1) / 12.0)
    if goal.target_date is None:
        reason = f"No target date, treated as {UNDATED_GOAL_MONTHS} months out"
    else:
        reason = f"{months_left} month(s) until the target date"
    return CriterionScore(score=score, reason=reason)


def total_score(scores: GoalScores, weights: CriteriaWeights) -> float:
    total = sum(getattr(scores, c.value).score * weights.weight(c) for c in ENABLED_CRITERIA)
    return min(1.0, max(0.0, total))


def score_goals(
    goals: list[Goal],
    monthly_income: float,
    fixed_costs: float,
    as_of: date,
    goal_allocation_pct: Optional[float] = None,
    weights: Optional[CriteriaWeights] = None,
) -> AutoScoringResult:
    """
    Score every active goal.

    Args:
        goals: Goals to score; non-active ones are ignored
        monthly_income: Income of the planning month
        fixed_costs: Sum of constraint minimums
        as_of: Planning date, the first day of the planning month
        goal_allocation_pct: Optional cap on the share of income for goals
        weights: Criteria weights; the even default when omitted

    Returns:
        AutoScoringResult with one entry per active goal, in input order
    """
    defaults = default_weights()
    used = weights or CriteriaWeights(**defaults)

    active = [g for g in goals if g.is_active]
    capacity = available_capacity(monthly_income, fixed_costs, goal_allocation_pct)
    share = capacity / len(active) if active else 0.0

    results = []
    for goal in active:
        months_left = months_until(goal.target_date, as_of)
        scores = GoalScores(
            feasibility=_feasibility(goal, months_left, share),
            importance=_importance(goal),
            urgency=_urgency(goal, months_left),
        )
        results.append(GoalScoreResult(
            goal_id=goal.id,
            goal_name=goal.name,
            scores=scores,
            total_score=total_score(scores, used),
            months_left=months_left,
            required_monthly=required_monthly(goal, months_left),
        ))

    return AutoScoringResult(
        goals=results,
        default_criteria_weights=defaults,
        criteria_weights_used=used.as_dict(),
        available_capacity=capacity,
    )


def criterion_scores(result: GoalScoreResult) -> dict[str, float]:
    """Flat {criterion: score} view including impact at 0."""
    return {c.value: result.score_for(c) for c in Criterion}
