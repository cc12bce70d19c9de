"""
Debt Strategy Planner

Simulates avalanche and snowball repayment over a fixed monthly debt
budget and compares them.

CRITICAL: The simulation is bounded by max_months. A budget that never
clears the debts yields an infeasible scenario, not an endless loop.

Installment and interest-only debts never take part in the simulation.
They are paid exactly at their minimum and that money comes off the
budget first.
"""

from typing import Optional, Sequence

from budget_dss.models.planning import (
    Debt,
    DebtStrategy,
    DebtStrategyResult,
    PaymentPlan,
    StrategyScenario,
    TimelineEntry,
)


DEFAULT_MAX_MONTHS = 600

# Balances at or below this are considered paid off
PAID_OFF_EPSILON = 0.01


def _priority_key(strategy: DebtStrategy):
    """Sort key over (index, debt, current balance) tuples."""
    if strategy == DebtStrategy.AVALANCHE:
        return lambda item: (-item[1].interest_rate, item[2], item[0])
    return lambda item: (item[2], -item[1].interest_rate, item[0])


def split_debts(debts: Sequence[Debt]) -> tuple[list[Debt], list[Debt]]:
    """(revolving debts with a balance, fixed-payment debts)"""
    revolving = [d for d in debts if d.is_adjustable and d.current_balance > PAID_OFF_EPSILON]
    fixed = [d for d in debts if not d.is_adjustable]
    return revolving, fixed


def total_minimum_payment(debts: Sequence[Debt]) -> float:
    revolving, fixed = split_debts(debts)
    return sum(d.minimum_payment for d in revolving) + sum(d.minimum_payment for d in fixed)


def fixed_payment_plans(debts: Sequence[Debt]) -> list[PaymentPlan]:
    return [
        PaymentPlan(
            debt_id=d.id,
            debt_name=d.name,
            minimum_payment=d.minimum_payment,
            monthly_payment=d.minimum_payment,
            extra_payment=0.0,
        )
        for d in debts
    ]


def simulate_strategy(
    debts: Sequence[Debt],
    monthly_budget: float,
    strategy: DebtStrategy,
    max_months: int = DEFAULT_MAX_MONTHS,
    include_timeline: bool = True,
) -> StrategyScenario:
    """
    Amortize revolving debts under one ordering.

    Each month every unpaid debt accrues interest, receives its minimum
    (or its balance, if smaller), and the rest of the budget cascades as
    extra payment down the priority order. The order is re-evaluated every
    month against the balances at the start of that month.

    Args:
        debts: Revolving debts; fixed-payment debts must already be excluded
        monthly_budget: Budget for these debts alone
        strategy: Which ordering to use
        max_months: Iteration cap
        include_timeline: Record per-debt monthly entries

    Returns:
        StrategyScenario; is_feasible is False when the cap is reached
    """
    balances = [d.current_balance for d in debts]
    interest = [0.0] * len(debts)
    payoff: list[Optional[int]] = [None] * len(debts)
    first_payment = [0.0] * len(debts)
    first_extra = [0.0] * len(debts)
    timelines: list[list[TimelineEntry]] = [[] for _ in debts]
    recipients: list[list[str]] = []
    key = _priority_key(strategy)

    month = 0
    while any(b > PAID_OFF_EPSILON for b in balances) and month < max_months:
        month += 1
        start = list(balances)
        paid = [0.0] * len(debts)
        budget_left = monthly_budget

        for i, debt in enumerate(debts):
            if start[i] <= PAID_OFF_EPSILON:
                continue
            accrued = start[i] * debt.monthly_rate
            interest[i] += accrued
            balances[i] = start[i] + accrued
            payment = min(debt.minimum_payment, balances[i], max(0.0, budget_left))
            balances[i] -= payment
            paid[i] += payment
            budget_left -= payment

        ordered = sorted(
            ((i, d, start[i]) for i, d in enumerate(debts) if start[i] > PAID_OFF_EPSILON),
            key=key,
        )
        month_recipients = []
        for i, debt, _ in ordered:
            if budget_left <= PAID_OFF_EPSILON:
                break
            if balances[i] <= PAID_OFF_EPSILON:
                continue
            extra = min(budget_left, balances[i])
            balances[i] -= extra
            paid[i] += extra
            budget_left -= extra
            month_recipients.append(debt.id)
            if month == 1:
                first_extra[i] = extra
        recipients.append(month_recipients)

        for i, debt in enumerate(debts):
            if start[i] <= PAID_OFF_EPSILON:
                continue
            if month == 1:
                first_payment[i] = paid[i]
            if include_timeline:
                timelines[i].append(TimelineEntry(
                    month=month,
                    start_balance=start[i],
                    interest=start[i] * debt.monthly_rate,
                    payment=paid[i],
                    end_balance=max(0.0, balances[i]),
                ))
            if balances[i] <= PAID_OFF_EPSILON and payoff[i] is None:
                balances[i] = 0.0
                payoff[i] = month

    plans = [
        PaymentPlan(
            debt_id=d.id,
            debt_name=d.name,
            minimum_payment=d.minimum_payment,
            monthly_payment=first_payment[i],
            extra_payment=first_extra[i],
            total_interest=interest[i],
            payoff_month=payoff[i],
            timeline=timelines[i],
        )
        for i, d in enumerate(debts)
    ]

    unpaid = [d.name for i, d in enumerate(debts) if payoff[i] is None]
    is_feasible = not unpaid
    payoffs = [p for p in payoff if p is not None]

    return StrategyScenario(
        strategy=strategy,
        total_interest=sum(interest),
        months_to_debt_free=(max(payoffs) if payoffs else 0) if is_feasible else None,
        monthly_allocation=sum(first_payment),
        payment_plans=plans,
        is_feasible=is_feasible,
        infeasible_reason=(
            None if is_feasible
            else f"Not paid off within {max_months} months: {', '.join(unpaid)}"
        ),
        first_debt_cleared=min(payoffs) if payoffs else None,
        extra_recipients=recipients,
    )


def _infeasible_scenario(strategy: DebtStrategy, debts: Sequence[Debt], reason: str) -> StrategyScenario:
    """Minimum payments only; the budget cannot cover them, so nothing is simulated."""
    plans = [
        PaymentPlan(
            debt_id=d.id,
            debt_name=d.name,
            minimum_payment=d.minimum_payment,
            monthly_payment=min(d.minimum_payment, d.current_balance),
        )
        for d in debts
    ]
    return StrategyScenario(
        strategy=strategy,
        monthly_allocation=sum(p.monthly_payment for p in plans),
        payment_plans=plans,
        is_feasible=False,
        infeasible_reason=reason,
    )


def _recommend(
    avalanche: StrategyScenario,
    snowball: StrategyScenario,
) -> Optional[StrategyScenario]:
    feasible = [s for s in (avalanche, snowball) if s.is_feasible]
    if not feasible:
        return None
    # Lower interest, then fewer months, then avalanche (listed first)
    return min(
        feasible,
        key=lambda s: (round(s.total_interest, 2), s.months_to_debt_free or 0),
    )


def _explain(
    recommended: StrategyScenario,
    other: StrategyScenario,
) -> tuple[str, list[str]]:
    facts = []
    name = recommended.strategy.value.capitalize()
    other_name = other.strategy.value

    if not other.is_feasible:
        reasoning = f"{name} is the only strategy that clears the debts within the horizon."
    elif recommended.interest_saved > 0.005:
        reasoning = (
            f"{name} costs {recommended.interest_saved:,.0f} less in interest than {other_name}."
        )
    else:
        reasoning = (
            f"Both strategies cost the same interest; {recommended.strategy.value} is chosen "
            "as the tie-break."
        )

    facts.append(f"Total interest: {recommended.total_interest:,.0f}")
    if recommended.months_to_debt_free is not None:
        facts.append(f"Debt-free in {recommended.months_to_debt_free} month(s)")
    if other.is_feasible:
        facts.append(f"Interest saved vs {other_name}: {recommended.interest_saved:,.0f}")
        months_saved = (other.months_to_debt_free or 0) - (recommended.months_to_debt_free or 0)
        if months_saved > 0:
            facts.append(f"Debt-free {months_saved} month(s) sooner than {other_name}")
        if (
            other.first_debt_cleared is not None
            and recommended.first_debt_cleared is not None
            and other.first_debt_cleared < recommended.first_debt_cleared
        ):
            facts.append(
                f"{other_name.capitalize()} clears its first debt sooner "
                f"(month {other.first_debt_cleared} vs {recommended.first_debt_cleared})"
            )
    return reasoning, facts


def plan_debt_strategies(
    debts: Sequence[Debt],
    total_debt_budget: float,
    max_months: int = DEFAULT_MAX_MONTHS,
    include_timeline: bool = True,
) -> DebtStrategyResult:
    """
    Compare avalanche and snowball for a monthly debt budget.

    A budget below the sum of minimum payments makes both strategies
    infeasible and reports the deficit.
    """
    revolving, fixed = split_debts(debts)
    fixed_plans = fixed_payment_plans(fixed)
    fixed_total = sum(d.minimum_payment for d in fixed)
    minimums = fixed_total + sum(d.minimum_payment for d in revolving)

    if total_debt_budget + 1e-9 < minimums:
        deficit = minimums - total_debt_budget
        reason = f"Debt budget is {deficit:,.0f} short of the minimum payments"
        return DebtStrategyResult(
            recommended_strategy=None,
            reasoning=reason,
            key_facts=[
                f"Minimum payments total {minimums:,.0f}",
                f"Debt budget is {total_debt_budget:,.0f}",
            ],
            scenarios=[
                _infeasible_scenario(DebtStrategy.AVALANCHE, revolving, reason),
                _infeasible_scenario(DebtStrategy.SNOWBALL, revolving, reason),
            ],
            fixed_payments=fixed_plans,
            is_feasible=False,
            budget_deficit=deficit,
            total_minimum_payment=minimums,
            total_debt_budget=total_debt_budget,
        )

    revolving_budget = total_debt_budget - fixed_total
    avalanche = simulate_strategy(
        revolving, revolving_budget, DebtStrategy.AVALANCHE, max_months, include_timeline
    )
    snowball = simulate_strategy(
        revolving, revolving_budget, DebtStrategy.SNOWBALL, max_months, include_timeline
    )
    for scenario in (avalanche, snowball):
        scenario.monthly_allocation += fixed_total

    if avalanche.is_feasible and snowball.is_feasible:
        avalanche.interest_saved = max(0.0, snowball.total_interest - avalanche.total_interest)
        snowball.interest_saved = max(0.0, avalanche.total_interest - snowball.total_interest)

    recommended = _recommend(avalanche, snowball)
    if recommended is None:
        reasoning = f"Neither strategy clears the debts within {max_months} months at this budget."
        key_facts = [f"Minimum payments total {minimums:,.0f}"]
    else:
        other = snowball if recommended is avalanche else avalanche
        reasoning, key_facts = _explain(recommended, other)

    return DebtStrategyResult(
        recommended_strategy=recommended.strategy if recommended else None,
        reasoning=reasoning,
        key_facts=key_facts,
        scenarios=[avalanche, snowball],
        fixed_payments=fixed_plans,
        is_feasible=recommended is not None,
        budget_deficit=0.0,
        total_minimum_payment=minimums,
        total_debt_budget=total_debt_budget,
    )
