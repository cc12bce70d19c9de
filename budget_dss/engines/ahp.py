"""
Goal Prioritizer (AHP)

Builds the pairwise-comparison matrix implied by the goals' weighted
criterion scores, estimates its principal eigenvector by power iteration,
and reports Saaty's consistency ratio.

The consistency check is informational. An inconsistent matrix produces
a warning, never an error.
"""

from typing import Sequence

import numpy as np

from budget_dss.models.planning import (
    AHPResult,
    CriteriaWeights,
    ENABLED_CRITERIA,
    GoalScoreResult,
    RankedAlternative,
)


# Saaty's random consistency index by matrix size
RANDOM_INDEX = {
    1: 0.0,
    2: 0.0,
    3: 0.58,
    4: 0.90,
    5: 1.12,
    6: 1.24,
    7: 1.32,
    8: 1.41,
    9: 1.45,
    10: 1.49,
    11: 1.51,
    12: 1.48,
    13: 1.56,
    14: 1.57,
    15: 1.59,
}
RANDOM_INDEX_MAX = 1.59

DEFAULT_CONSISTENCY_THRESHOLD = 0.10

# Scores of 0 would make the ratios undefined
SCORE_FLOOR = 0.01

MAX_ITERATIONS = 1000
TOLERANCE = 1e-12


def random_index(n: int) -> float:
    return RANDOM_INDEX.get(n, RANDOM_INDEX_MAX)


def principal_eigenvector(matrix: np.ndarray) -> tuple[np.ndarray, float]:
    """
    Power iteration on a positive square matrix.

    Returns:
        (priority vector normalized to sum 1, lambda_max)
    """
    n = matrix.shape[0]
    vector = np.full(n, 1.0 / n)
    for _ in range(MAX_ITERATIONS):
        product = matrix @ vector
        next_vector = product / product.sum()
        if np.max(np.abs(next_vector - vector)) < TOLERANCE:
            vector = next_vector
            break
        vector = next_vector

    lambda_max = float(np.mean((matrix @ vector) / vector))
    return vector, lambda_max


def consistency_ratio(lambda_max: float, n: int) -> float:
    """CR = CI / RI(n), clamped at 0. Matrices of size 2 or less are consistent."""
    if n <= 2:
        return 0.0
    ci = (lambda_max - n) / (n - 1)
    return max(0.0, ci / random_index(n))


def analyze_matrix(matrix: Sequence[Sequence[float]]) -> tuple[list[float], float, float]:
    """
    Eigenvector and consistency of an arbitrary pairwise matrix.

    Returns:
        (priorities, lambda_max, consistency_ratio)

    Raises:
        ValueError: If the matrix is not square or has non-positive entries
    """
    array = np.asarray(matrix, dtype=float)
    if array.ndim != 2 or array.shape[0] != array.shape[1] or array.shape[0] == 0:
        raise ValueError("Pairwise matrix must be square and non-empty")
    if np.any(array <= 0):
        raise ValueError("Pairwise matrix entries must be positive")

    vector, lambda_max = principal_eigenvector(array)
    return vector.tolist(), lambda_max, consistency_ratio(lambda_max, array.shape[0])


def score_matrix(goal_scores: Sequence[GoalScoreResult]) -> np.ndarray:
    """Rows are goals, columns the enabled criteria, floored at SCORE_FLOOR."""
    scores = np.array(
        [[g.score_for(c) for c in ENABLED_CRITERIA] for g in goal_scores],
        dtype=float,
    )
    return np.maximum(scores, SCORE_FLOOR)


def pairwise_matrix(scores: np.ndarray, weights: CriteriaWeights) -> np.ndarray:
    """A[i][j] = sum over criteria of w_c * s_ic / s_jc."""
    n = scores.shape[0]
    matrix = np.zeros((n, n))
    for k, criterion in enumerate(ENABLED_CRITERIA):
        w = weights.weight(criterion)
        if w == 0:
            continue
        column = scores[:, k]
        matrix += w * np.outer(column, 1.0 / column)
    return matrix


def prioritize(
    goal_scores: Sequence[GoalScoreResult],
    weights: CriteriaWeights,
    threshold: float = DEFAULT_CONSISTENCY_THRESHOLD,
) -> AHPResult:
    """
    Rank goals by AHP priority.

    Ties are broken by input order. Priorities over the ranked goals sum
    to 1.
    """
    criteria_weights = weights.as_dict()
    n = len(goal_scores)
    if n == 0:
        return AHPResult(
            criteria_weights=criteria_weights,
            consistency_ratio=0.0,
            is_consistent=True,
        )

    scores = score_matrix(goal_scores)
    matrix = pairwise_matrix(scores, weights)
    vector, lambda_max = principal_eigenvector(matrix)
    cr = consistency_ratio(lambda_max, n)

    local = {}
    for k, criterion in enumerate(ENABLED_CRITERIA):
        column = scores[:, k]
        normalized = column / column.sum()
        local[criterion.value] = {
            g.goal_id: float(p) for g, p in zip(goal_scores, normalized)
        }

    order = sorted(range(n), key=lambda i: (-round(float(vector[i]), 12), i))
    ranking = [
        RankedAlternative(
            alternative_id=goal_scores[i].goal_id,
            alternative_name=goal_scores[i].goal_name,
            rank=rank,
            priority=float(vector[i]),
        )
        for rank, i in enumerate(order, start=1)
    ]

    is_consistent = cr <= threshold
    warnings = []
    if not is_consistent:
        warnings.append(
            f"Consistency ratio {cr:.3f} exceeds {threshold:.2f}; "
            "the comparisons are not fully transitive"
        )

    return AHPResult(
        ranking=ranking,
        alternative_priorities={g.goal_id: float(p) for g, p in zip(goal_scores, vector)},
        local_priorities=local,
        criteria_weights=criteria_weights,
        consistency_ratio=cr,
        lambda_max=lambda_max,
        is_consistent=is_consistent,
        warnings=warnings,
    )
