"""
Planning Engines Package

Pure computations behind each workflow stage. Engines take everything
they need as arguments and never touch session state or storage.
"""

from budget_dss.engines.ahp import analyze_matrix, prioritize
from budget_dss.engines.allocation import (
    DEFAULT_SCENARIOS,
    allocate_budget,
    distribute_goal_pool,
    resolve_scenarios,
)
from budget_dss.engines.debt_strategy import plan_debt_strategies, simulate_strategy
from budget_dss.engines.scoring import score_goals
from budget_dss.engines.tradeoff import optimize_tradeoff
from budget_dss.engines.weights import (
    default_weights,
    ratings_to_weights,
    rebalance,
    resolve_weights,
)

__all__ = [
    "DEFAULT_SCENARIOS",
    "allocate_budget",
    "analyze_matrix",
    "default_weights",
    "distribute_goal_pool",
    "optimize_tradeoff",
    "plan_debt_strategies",
    "prioritize",
    "ratings_to_weights",
    "rebalance",
    "resolve_scenarios",
    "resolve_weights",
    "score_goals",
    "simulate_strategy",
]
