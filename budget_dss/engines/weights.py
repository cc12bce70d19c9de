"""
Criteria weights for goal scoring.

Weights are plain {criterion: weight} dicts at this layer so they can be
passed straight through wire payloads and session state. The impact
criterion is always present with weight 0.
"""

from typing import Mapping, Optional

from budget_dss.models.planning import ENABLED_CRITERIA, CriteriaWeights, Criterion


RATING_MIN = 1.0
RATING_MAX = 10.0
DEFAULT_RATING = 5.0


def default_weights() -> dict[str, float]:
    """Even split over the enabled criteria."""
    share = 1.0 / len(ENABLED_CRITERIA)
    weights = {c.value: share for c in ENABLED_CRITERIA}
    weights[Criterion.IMPACT.value] = 0.0
    return weights


def _complete(weights: Mapping[str, float]) -> dict[str, float]:
    result = {c.value: float(weights.get(c.value, 0.0)) for c in ENABLED_CRITERIA}
    result[Criterion.IMPACT.value] = 0.0
    return result


def ratings_to_weights(ratings: Mapping[str, float]) -> dict[str, float]:
    """
    Convert 1-10 importance ratings into weights summing to 1.

    Missing criteria are rated 5. Ratings for impact are ignored.

    Raises:
        ValueError: On an unknown criterion or a rating outside 1-10
    """
    known = {c.value for c in Criterion}
    for key, value in ratings.items():
        if key not in known:
            raise ValueError(f"Unknown criterion: {key}")
        if key == Criterion.IMPACT.value:
            continue
        if not RATING_MIN <= value <= RATING_MAX:
            raise ValueError(
                f"Rating for {key} must be between {RATING_MIN:g} and {RATING_MAX:g} (got {value})"
            )

    raw = {c.value: float(ratings.get(c.value, DEFAULT_RATING)) for c in ENABLED_CRITERIA}
    total = sum(raw.values())
    return _complete({k: v / total for k, v in raw.items()})


def normalize_weights(weights: Mapping[str, float]) -> dict[str, float]:
    """
    Scale user weights over the enabled criteria to sum to 1.

    Raises:
        ValueError: On negative weights or when all enabled weights are zero
    """
    for key, value in weights.items():
        if value < 0:
            raise ValueError(f"Weight for {key} cannot be negative")

    enabled = {c.value: float(weights.get(c.value, 0.0)) for c in ENABLED_CRITERIA}
    total = sum(enabled.values())
    if total <= 0:
        raise ValueError("At least one enabled criterion needs a positive weight")
    return _complete({k: v / total for k, v in enabled.items()})


def rebalance(
    weights: Mapping[str, float],
    changed_key: str,
    new_value: float,
) -> dict[str, float]:
    """
    Set one criterion's weight and redistribute the remainder.

    The other enabled criteria share 1 - new_value in proportion to their
    previous weights, or evenly when those previously summed to 0. The
    input mapping is not modified.

    Raises:
        ValueError: If changed_key is impact or not a criterion
    """
    enabled_keys = [c.value for c in ENABLED_CRITERIA]
    if changed_key not in enabled_keys:
        raise ValueError(f"Criterion {changed_key} is not enabled and cannot be weighted")

    value = min(1.0, max(0.0, float(new_value)))
    remainder = 1.0 - value
    others = [k for k in enabled_keys if k != changed_key]

    result = {changed_key: value}
    if len(others) == 1:
        result[others[0]] = remainder
    else:
        previous = {k: max(0.0, float(weights.get(k, 0.0))) for k in others}
        previous_sum = sum(previous.values())
        for key in others:
            if previous_sum > 0:
                result[key] = remainder * previous[key] / previous_sum
            else:
                result[key] = remainder / len(others)

    return _complete(result)


def resolve_weights(
    criteria_weights: Optional[Mapping[str, float]] = None,
    criteria_ratings: Optional[Mapping[str, float]] = None,
    session_weights: Optional[Mapping[str, float]] = None,
) -> CriteriaWeights:
    """
    Pick the weights a prioritization run should use.

    Explicit weights win over ratings, ratings over the session's custom
    weights, and those over the even default.
    """
    if criteria_weights:
        resolved = normalize_weights(criteria_weights)
    elif criteria_ratings:
        resolved = ratings_to_weights(criteria_ratings)
    elif session_weights:
        resolved = normalize_weights(session_weights)
    else:
        resolved = default_weights()
    return CriteriaWeights(**resolved)
