"""
Tests for the budget allocator.
"""

import pytest

from budget_dss.engines.allocation import (
    allocate_budget,
    distribute_goal_pool,
    resolve_scenarios,
)
from budget_dss.engines.debt_strategy import plan_debt_strategies
from budget_dss.models.planning import (
    Constraint,
    Debt,
    DebtBehavior,
    DebtStrategy,
    Goal,
    PaymentPlan,
)


RENT = Constraint(category_id="rent", name="Rent", minimum_amount=4000)
FOOD = Constraint(category_id="food", name="Food", minimum_amount=1000, maximum_amount=2000, is_flexible=True)


def goal(goal_id, remaining):
    return Goal(id=goal_id, name=f"Goal {goal_id}", target_amount=remaining)


class TestResolveScenarios:

    def test_defaults(self):
        scenarios = resolve_scenarios()
        assert [s.scenario_type for s in scenarios] == ["safe", "balanced"]

    def test_partial_override_of_known_scenario(self):
        scenarios = resolve_scenarios([{"scenario_type": "safe", "goals_percent": 0.1}])
        safe = scenarios[0]
        assert safe.goals_percent == 0.1
        assert safe.emergency_fund_percent == 0.3

    def test_new_scenario_needs_every_parameter(self):
        with pytest.raises(ValueError):
            resolve_scenarios([{"scenario_type": "aggressive", "goals_percent": 0.8}])

    def test_new_scenario_appended(self):
        scenarios = resolve_scenarios([{
            "scenario_type": "aggressive",
            "goal_contribution_factor": 1.5,
            "flexible_spending_level": 0.2,
            "emergency_fund_percent": 0.1,
            "goals_percent": 0.8,
            "flexible_percent": 0.1,
        }])
        assert [s.scenario_type for s in scenarios] == ["safe", "balanced", "aggressive"]


class TestDistributeGoalPool:
    """Tests for the per-goal floor policy."""

    def test_proportional_split(self):
        amounts = distribute_goal_pool(
            [goal("g1", 1_000_000), goal("g2", 1_000_000)],
            500_000,
            {"g1": 0.6, "g2": 0.4},
        )
        assert amounts == {"g1": 300_000, "g2": 200_000}

    def test_floor_raises_small_share_and_trims_excess(self):
        amounts = distribute_goal_pool(
            [goal("g1", 1_000_000), goal("g2", 1_000_000)],
            250_000,
            {"g1": 0.9, "g2": 0.1},
        )
        assert amounts == {"g1": 150_000, "g2": 100_000}

    def test_floors_granted_in_rank_order_when_pool_is_short(self):
        amounts = distribute_goal_pool(
            [goal("g1", 1_000_000), goal("g2", 1_000_000), goal("g3", 1_000_000)],
            150_000,
            {"g1": 0.2, "g2": 0.5, "g3": 0.3},
        )
        assert amounts == {"g1": 0.0, "g2": 100_000, "g3": 50_000}

    def test_capped_at_remaining(self):
        amounts = distribute_goal_pool([goal("g1", 50_000)], 500_000, {"g1": 1.0})
        assert amounts == {"g1": 50_000}

    def test_empty_pool(self):
        amounts = distribute_goal_pool([goal("g1", 1000)], 0, {"g1": 1.0})
        assert amounts == {"g1": 0.0}

    def test_amounts_rounded_down(self):
        amounts = distribute_goal_pool(
            [goal("g1", 1_000_000), goal("g2", 1_000_000)],
            1_000_001,
            {"g1": 0.5, "g2": 0.5},
            min_contribution=0,
        )
        assert amounts == {"g1": 500_000, "g2": 500_000}


class TestAllocateBudget:
    """Tests for complete scenarios."""

    def test_safe_scenario(self):
        result = allocate_budget(10_000, [RENT, FOOD], [], {}, {}, [])
        safe = result.scenario("safe")
        by_id = {a.category_id: a for a in safe.category_allocations}
        assert by_id["rent"].amount == 4000
        # 1000 at level 0, plus 10% of the 5000 surplus
        assert by_id["food"].amount == pytest.approx(1500)
        assert safe.summary.emergency_fund == pytest.approx(1500)
        assert safe.summary.total_allocated == pytest.approx(7000)
        assert safe.summary.surplus == pytest.approx(3000)

    def test_balanced_scenario_fills_flexible_headroom(self):
        result = allocate_budget(10_000, [RENT, FOOD], [], {}, {}, [])
        balanced = result.scenario("balanced")
        by_id = {a.category_id: a for a in balanced.category_allocations}
        assert by_id["food"].amount == pytest.approx(2000)
        assert balanced.summary.total_allocated == pytest.approx(6900)

    def test_non_flexible_at_minimum_and_within_income(self):
        result = allocate_budget(
            10_000, [RENT, FOOD], [goal("g1", 5000)], {"g1": 1.0}, {"g1": 500}, [],
            min_goal_contribution=100,
        )
        for scenario in result.scenarios:
            assert scenario.line_item_total <= scenario.summary.total_income + 1e-6
            assert scenario.summary.total_allocated <= scenario.summary.total_income + 1e-6
            rent = next(a for a in scenario.category_allocations if a.category_id == "rent")
            assert rent.amount == 4000
            assert 0 <= scenario.feasibility_score <= 100

    def test_minimums_above_income_are_infeasible(self):
        result = allocate_budget(3000, [RENT], [], {}, {}, [])
        safe = result.scenario("safe")
        assert result.is_feasible is False
        assert safe.is_feasible is False
        assert safe.category_allocations[0].amount == 4000
        assert any(w.type == "constraints_exceed_income" for w in safe.warnings)

    def test_applied_plans_used_verbatim(self):
        card = Debt(id="d1", name="Card", current_balance=1000, interest_rate=0.2, minimum_payment=100)
        plans = [PaymentPlan(debt_id="d1", debt_name="Card", minimum_payment=100, monthly_payment=400)]
        result = allocate_budget(10_000, [], [], {}, {}, [card], payment_plans=plans)
        debt = result.scenario("safe").debt_allocations[0]
        assert debt.amount == 400
        assert debt.extra_payment == 300

    def test_fixed_debts_get_exactly_minimum(self):
        loan = Debt(
            id="loan", name="Loan", current_balance=50_000,
            minimum_payment=700, behavior=DebtBehavior.INSTALLMENT,
        )
        plans = [PaymentPlan(debt_id="loan", debt_name="Loan", monthly_payment=5000)]
        result = allocate_budget(10_000, [], [], {}, {}, [loan], payment_plans=plans)
        assert result.scenario("balanced").debt_allocations[0].amount == 700

    def test_warns_without_applied_strategy(self):
        card = Debt(id="d1", name="Card", current_balance=1000, minimum_payment=100)
        result = allocate_budget(10_000, [], [], {}, {}, [card])
        safe = result.scenario("safe")
        assert safe.debt_allocations[0].amount == 100
        assert any(w.type == "no_debt_strategy" for w in safe.warnings)

    def test_extra_payments_reduced_to_fit_surplus(self):
        card = Debt(id="d1", name="Card", current_balance=1000, minimum_payment=100)
        rent = Constraint(category_id="rent", minimum_amount=800)
        plans = [PaymentPlan(debt_id="d1", debt_name="Card", minimum_payment=100, monthly_payment=400)]
        result = allocate_budget(1000, [rent], [], {}, {}, [card], payment_plans=plans)
        debt = result.scenario("safe").debt_allocations[0]
        assert debt.amount == pytest.approx(200)
        assert debt.extra_payment == pytest.approx(100)
        assert any(w.type == "debt_extra_reduced" for w in result.scenario("safe").warnings)

    def test_plan_below_minimum_raised_with_warning(self):
        card = Debt(id="d1", name="Card", current_balance=5000, minimum_payment=500)
        plans = [PaymentPlan(debt_id="d1", debt_name="Card", minimum_payment=500, monthly_payment=0)]
        result = allocate_budget(10_000, [RENT], [], {}, {}, [card], payment_plans=plans)
        safe = result.scenario("safe")
        assert safe.debt_allocations[0].amount == 500
        assert safe.is_feasible is True
        assert any(
            w.type == "debt_minimum_shortfall" and w.entity_id == "d1" for w in safe.warnings
        )

    def test_infeasible_debt_budget_plans_pay_minimums(self):
        card = Debt(
            id="d1", name="Card", current_balance=5_000_000,
            interest_rate=0.18, minimum_payment=500_000,
        )
        debt_result = plan_debt_strategies([card], 100_000)
        assert debt_result.is_feasible is False
        avalanche = debt_result.scenario_for(DebtStrategy.AVALANCHE)

        rent = Constraint(category_id="rent", minimum_amount=10_000_000)
        result = allocate_budget(
            30_000_000, [rent], [], {}, {}, [card], payment_plans=avalanche.payment_plans,
        )
        for scenario in result.scenarios:
            debt = scenario.debt_allocations[0]
            assert debt.amount >= debt.minimum_payment
            assert scenario.is_feasible is True

    def test_debt_minimums_beyond_surplus_are_infeasible(self):
        card = Debt(id="d1", name="Card", current_balance=5000, minimum_payment=300)
        rent = Constraint(category_id="rent", minimum_amount=900)
        result = allocate_budget(1000, [rent], [], {}, {}, [card])
        safe = result.scenario("safe")
        assert safe.debt_allocations[0].amount == 300
        assert safe.is_feasible is False
        assert result.is_feasible is False
        assert any(w.type == "debt_minimums_exceed_surplus" for w in safe.warnings)

    def test_goal_share_capped_by_tradeoff(self):
        result = allocate_budget(
            10_000, [], [goal("g1", 100_000)], {"g1": 1.0}, {"g1": 0}, [],
            goal_allocation_pct=10, min_goal_contribution=0,
        )
        balanced = result.scenario("balanced")
        assert balanced.goal_allocations[0].amount == 1000

    def test_goal_shortfall_warning(self):
        result = allocate_budget(
            1000, [], [goal("g1", 100_000)], {"g1": 1.0}, {"g1": 5000}, [],
            min_goal_contribution=0,
        )
        warnings = result.scenario("safe").warnings
        assert any(w.type == "goal_shortfall" and w.entity_id == "g1" for w in warnings)

    def test_end_to_end_example(self):
        """Income 30M with one mandatory and one flexible category, two goals, one card."""
        constraints = [
            Constraint(category_id="housing", minimum_amount=10_000_000),
            Constraint(
                category_id="living",
                minimum_amount=2_000_000,
                maximum_amount=4_000_000,
                is_flexible=True,
            ),
        ]
        goals = [goal("g1", 12_000_000), goal("g2", 6_000_000)]
        card = Debt(
            id="d1", name="Card", current_balance=5_000_000,
            interest_rate=0.18, minimum_payment=500_000,
        )

        debt_result = plan_debt_strategies([card], 3_000_000)
        avalanche = debt_result.scenario_for(DebtStrategy.AVALANCHE)
        assert avalanche.months_to_debt_free <= 2
        assert avalanche.payment_plans[0].extra_payment == pytest.approx(2_500_000)

        result = allocate_budget(
            30_000_000,
            constraints,
            goals,
            {"g1": 0.6, "g2": 0.4},
            {"g1": 2_000_000, "g2": 2_000_000},
            [card],
            payment_plans=avalanche.payment_plans,
            goal_allocation_pct=20,
        )
        balanced = result.scenario("balanced")
        assert balanced.summary.total_allocated <= 30_000_000
        assert 0 <= balanced.feasibility_score <= 100
        assert balanced.debt_allocations[0].amount == pytest.approx(3_000_000)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
