"""
Tests for the goal scorer.
"""

import pytest
from datetime import date

from budget_dss.engines.scoring import (
    available_capacity,
    criterion_scores,
    months_until,
    required_monthly,
    score_goals,
)
from budget_dss.models.planning import CriteriaWeights, Goal, GoalPriority, GoalStatus


AS_OF = date(2025, 1, 1)


def make_goal(goal_id, remaining, target_date=None, priority=GoalPriority.MEDIUM, **kwargs):
    return Goal(
        id=goal_id,
        name=f"Goal {goal_id}",
        target_amount=remaining,
        current_amount=0,
        target_date=target_date,
        priority=priority,
        **kwargs,
    )


class TestMonthsUntil:

    def test_no_target_date(self):
        assert months_until(None, AS_OF) == 12

    def test_past_target(self):
        assert months_until(date(2024, 12, 31), AS_OF) == 0

    def test_rounds_up(self):
        assert months_until(date(2025, 3, 2), AS_OF) == 2  # 60 days
        assert months_until(date(2025, 3, 3), AS_OF) == 3  # 61 days

    def test_same_month_counts_as_one(self):
        assert months_until(date(2025, 1, 1), AS_OF) == 1


class TestCapacity:

    def test_income_minus_fixed_costs(self):
        assert available_capacity(1000, 400) == 600

    def test_never_negative(self):
        assert available_capacity(1000, 1400) == 0

    def test_capped_by_goal_allocation_pct(self):
        assert available_capacity(1000, 400, goal_allocation_pct=20) == 200

    def test_required_monthly(self):
        goal = make_goal("g1", 1200)
        assert required_monthly(goal, 6) == 200
        assert required_monthly(goal, 0) == 1200


class TestScoreGoals:
    """Tests for per-goal sub-scores and totals."""

    def test_fully_feasible_goal(self):
        goal = make_goal("g1", 1200, date(2025, 6, 28))  # 6 months
        result = score_goals([goal], 1000, 400, AS_OF)
        scores = result.goals[0].scores
        assert scores.feasibility.score == 1.0
        assert result.goals[0].required_monthly == pytest.approx(200)
        assert result.available_capacity == 600

    def test_feasibility_is_capacity_share_over_requirement(self):
        goals = [
            make_goal("g1", 6000, date(2025, 6, 28)),  # needs 1000/month
            make_goal("g2", 100, date(2025, 6, 28)),
        ]
        result = score_goals(goals, 1000, 400, AS_OF)
        assert result.goals[0].scores.feasibility.score == pytest.approx(0.3)
        assert result.goals[1].scores.feasibility.score == 1.0

    def test_past_target_is_infeasible_and_urgent(self):
        goal = make_goal("g1", 500, date(2024, 11, 1))
        scores = score_goals([goal], 1000, 0, AS_OF).goals[0].scores
        assert scores.feasibility.score == 0.0
        assert scores.urgency.score == 1.0

    def test_importance_mapping(self):
        goals = [
            make_goal("c", 100, priority=GoalPriority.CRITICAL),
            make_goal("h", 100, priority=GoalPriority.HIGH),
            make_goal("m", 100, priority=GoalPriority.MEDIUM),
            make_goal("l", 100, priority=GoalPriority.LOW),
        ]
        result = score_goals(goals, 1000, 0, AS_OF)
        assert [g.scores.importance.score for g in result.goals] == [1.0, 0.75, 0.5, 0.25]

    def test_urgency_decreases_with_time(self):
        soon = make_goal("soon", 100, date(2025, 1, 20))
        later = make_goal("later", 100, date(2026, 1, 1))
        result = score_goals([soon, later], 1000, 0, AS_OF)
        assert result.goals[0].scores.urgency.score == 1.0
        assert result.goals[1].scores.urgency.score < result.goals[0].scores.urgency.score

    def test_inactive_goals_ignored(self):
        goals = [
            make_goal("g1", 100),
            make_goal("g2", 100, status=GoalStatus.COMPLETED),
        ]
        result = score_goals(goals, 1000, 0, AS_OF)
        assert [g.goal_id for g in result.goals] == ["g1"]

    def test_total_uses_weights(self):
        goal = make_goal("g1", 100, priority=GoalPriority.LOW)
        weights = CriteriaWeights(feasibility=0.0, importance=1.0, urgency=0.0)
        result = score_goals([goal], 1000, 0, AS_OF, weights=weights)
        assert result.goals[0].total_score == pytest.approx(0.25)
        assert result.criteria_weights_used["importance"] == 1.0

    def test_default_weights_reported(self):
        result = score_goals([make_goal("g1", 100)], 1000, 0, AS_OF)
        assert result.default_criteria_weights["impact"] == 0.0
        assert sum(result.default_criteria_weights.values()) == pytest.approx(1.0)

    def test_criterion_scores_include_impact(self):
        result = score_goals([make_goal("g1", 100)], 1000, 0, AS_OF)
        flat = criterion_scores(result.goals[0])
        assert flat["impact"] == 0.0
        assert set(flat) == {"feasibility", "importance", "urgency", "impact"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
