"""
Tests for the debt strategy planner.
"""

import pytest

from budget_dss.engines.debt_strategy import (
    fixed_payment_plans,
    plan_debt_strategies,
    simulate_strategy,
    split_debts,
    total_minimum_payment,
)
from budget_dss.models.planning import Debt, DebtBehavior, DebtStrategy


def card(debt_id, balance, rate, minimum):
    return Debt(
        id=debt_id,
        name=f"Card {debt_id}",
        current_balance=balance,
        interest_rate=rate,
        minimum_payment=minimum,
    )


MIXED_DEBTS = [
    card("a", 1000, 0.24, 50),
    card("b", 3000, 0.12, 60),
    card("c", 500, 0.06, 25),
]


def debts_open_in_month(scenario, month):
    """
    (debt_id, start_balance) for debts still owing after their minimum
    payment in the given month, i.e. the ones that can take extra.
    """
    open_debts = []
    for plan in scenario.payment_plans:
        for entry in plan.timeline:
            if entry.month != month:
                continue
            if entry.start_balance + entry.interest - plan.minimum_payment > 0.01:
                open_debts.append((plan.debt_id, entry.start_balance))
    return open_debts


class TestSimulation:
    """Tests for the amortization loop."""

    def test_single_debt_example(self):
        """A 5,000,000 balance at 18% with a 3,000,000 budget clears in 2 months."""
        debt = card("d1", 5_000_000, 0.18, 500_000)
        scenario = simulate_strategy([debt], 3_000_000, DebtStrategy.AVALANCHE)

        plan = scenario.payment_plans[0]
        assert scenario.is_feasible is True
        assert scenario.months_to_debt_free == 2
        assert plan.payoff_month == 2
        assert plan.extra_payment == pytest.approx(2_500_000)
        assert plan.monthly_payment == pytest.approx(3_000_000)
        assert scenario.total_interest == pytest.approx(75_000 + 31_125)

    def test_avalanche_pays_highest_rate_first(self):
        rates = {d.id: d.interest_rate for d in MIXED_DEBTS}
        scenario = simulate_strategy(MIXED_DEBTS, 400, DebtStrategy.AVALANCHE)
        assert scenario.is_feasible
        for month, recipients in enumerate(scenario.extra_recipients, start=1):
            if not recipients:
                continue
            open_ids = [debt_id for debt_id, _ in debts_open_in_month(scenario, month)]
            assert rates[recipients[0]] == max(rates[d] for d in open_ids)

    def test_snowball_pays_smallest_balance_first(self):
        scenario = simulate_strategy(MIXED_DEBTS, 400, DebtStrategy.SNOWBALL)
        assert scenario.is_feasible
        for month, recipients in enumerate(scenario.extra_recipients, start=1):
            if not recipients:
                continue
            balances = dict(debts_open_in_month(scenario, month))
            assert balances[recipients[0]] == min(balances.values())

    def test_avalanche_interest_not_above_snowball(self):
        avalanche = simulate_strategy(MIXED_DEBTS, 400, DebtStrategy.AVALANCHE)
        snowball = simulate_strategy(MIXED_DEBTS, 400, DebtStrategy.SNOWBALL)
        assert avalanche.total_interest <= snowball.total_interest + 1e-9

    def test_cap_reached_is_infeasible(self):
        """Minimums below the interest never clear the debt."""
        debt = card("d1", 10_000, 0.24, 100)
        scenario = simulate_strategy([debt], 100, DebtStrategy.AVALANCHE, max_months=600)
        assert scenario.is_feasible is False
        assert scenario.months_to_debt_free is None
        assert scenario.payment_plans[0].payoff_month is None
        assert "600" in scenario.infeasible_reason
        assert len(scenario.extra_recipients) == 600

    def test_all_balances_cleared_when_budget_covers_minimums(self):
        scenario = simulate_strategy(MIXED_DEBTS, 135.01, DebtStrategy.AVALANCHE)
        assert scenario.is_feasible is True
        for plan in scenario.payment_plans:
            assert plan.timeline[-1].end_balance <= 0.01

    def test_timeline_can_be_skipped(self):
        scenario = simulate_strategy(MIXED_DEBTS, 400, DebtStrategy.AVALANCHE, include_timeline=False)
        assert all(plan.timeline == [] for plan in scenario.payment_plans)


class TestDebtSplit:

    def test_fixed_debts_excluded_from_simulation(self):
        loan = Debt(
            id="loan",
            name="Car loan",
            current_balance=20_000,
            interest_rate=0.08,
            minimum_payment=500,
            behavior=DebtBehavior.INSTALLMENT,
        )
        paid_off = card("zero", 0, 0.2, 10)
        revolving, fixed = split_debts([loan, paid_off, MIXED_DEBTS[0]])
        assert [d.id for d in revolving] == ["a"]
        assert [d.id for d in fixed] == ["loan"]
        assert total_minimum_payment([loan, paid_off, MIXED_DEBTS[0]]) == 550

    def test_fixed_payment_plans_pay_minimum(self):
        loan = Debt(
            id="loan",
            name="Mortgage interest",
            current_balance=100_000,
            minimum_payment=900,
            behavior=DebtBehavior.INTEREST_ONLY,
        )
        plan = fixed_payment_plans([loan])[0]
        assert plan.monthly_payment == 900
        assert plan.extra_payment == 0.0


class TestPlanDebtStrategies:
    """Tests for the strategy comparison."""

    def test_budget_below_minimums_reports_deficit(self):
        result = plan_debt_strategies(MIXED_DEBTS, 100)
        assert result.is_feasible is False
        assert result.recommended_strategy is None
        assert result.budget_deficit == pytest.approx(35)
        assert all(not s.is_feasible for s in result.scenarios)

    def test_infeasible_plans_still_carry_minimums(self):
        result = plan_debt_strategies(MIXED_DEBTS + [card("d", 10, 0.1, 40)], 100)
        for scenario in result.scenarios:
            payments = {p.debt_id: p.monthly_payment for p in scenario.payment_plans}
            assert payments == {"a": 50, "b": 60, "c": 25, "d": 10}
            assert scenario.monthly_allocation == pytest.approx(145)

    def test_recommends_lower_interest(self):
        result = plan_debt_strategies(MIXED_DEBTS, 400)
        avalanche = result.scenario_for(DebtStrategy.AVALANCHE)
        snowball = result.scenario_for(DebtStrategy.SNOWBALL)
        assert result.is_feasible is True
        assert result.recommended_strategy == DebtStrategy.AVALANCHE
        assert avalanche.interest_saved == pytest.approx(
            snowball.total_interest - avalanche.total_interest
        )
        assert result.reasoning
        assert result.key_facts

    def test_tie_goes_to_avalanche(self):
        result = plan_debt_strategies([card("d1", 5_000_000, 0.18, 500_000)], 3_000_000)
        assert result.recommended_strategy == DebtStrategy.AVALANCHE
        assert "tie-break" in result.reasoning

    def test_fixed_debt_budget_taken_first(self):
        loan = Debt(
            id="loan",
            name="Car loan",
            current_balance=20_000,
            minimum_payment=500,
            behavior=DebtBehavior.INSTALLMENT,
        )
        result = plan_debt_strategies([loan, card("d1", 1000, 0.2, 100)], 900)
        avalanche = result.scenario_for(DebtStrategy.AVALANCHE)
        assert [p.debt_id for p in result.fixed_payments] == ["loan"]
        assert [p.debt_id for p in avalanche.payment_plans] == ["d1"]
        # 400 left for the card in the first month
        assert avalanche.payment_plans[0].monthly_payment == pytest.approx(400)
        assert avalanche.monthly_allocation == pytest.approx(900)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
