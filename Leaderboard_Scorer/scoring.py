from __future__ import annotations

import math

from .constants import LeaderboardType

# Revenue contributes per 1000 currency units, capped at 100 units
REVENUE_UNIT = 1000
REVENUE_CAP = 100


def _m(metrics: dict, key: str) -> float:
    value = metrics.get(key)
    if value is None or isinstance(value, bool):
        return 0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0
    return 0 if math.isnan(value) else value


def _revenue_points(metrics: dict) -> float:
    return min(_m(metrics, "revenue") / REVENUE_UNIT, REVENUE_CAP)


def provider_score(m: dict) -> float:
    return (
        _m(m, "successfulDeliveries") * 10
        + _m(m, "customerRating") * 20
        + _m(m, "onTimeDeliveryRate") * 2
        + (100 - _m(m, "cancellationRate")) * 1
        + _revenue_points(m) * 5
    )


def seller_score(m: dict) -> float:
    return (
        _m(m, "confirmedOrders") * 10
        + _m(m, "conversionRate") * 3
        + _m(m, "deliveredOrders") * 5
        + (100 - _m(m, "returnRate")) * 2
        + _revenue_points(m) * 5
    )


def call_center_agent_score(m: dict) -> float:
    return (
        _m(m, "confirmedOrders") * 15
        + _m(m, "deliveredOrders") * 20
        + _m(m, "callSuccessRate") * 2
        + _m(m, "orderConfirmationRate") * 3
        + _m(m, "customerSatisfactionScore") * 25
        + _m(m, "dailyTargetAchievement") * 1
    )


_SCORERS = {
    LeaderboardType.PROVIDER: provider_score,
    LeaderboardType.SELLER: seller_score,
    LeaderboardType.CALL_CENTER_AGENT: call_center_agent_score,
}


def calculate_total_score(leaderboard_type, metrics: dict) -> float:
    """
    Weighted total for one participant. Relative ranking score, not a percentage;
    unknown types and non-finite results score 0.
    """
    try:
        scorer = _SCORERS[LeaderboardType(leaderboard_type)]
    except ValueError:
        return 0
    metrics = metrics or {}
    # No activity at all ranks at the bottom, not at the rate-complement floor
    if not any(_m(metrics, key) for key in metrics):
        return 0
    score = scorer(metrics)
    if math.isnan(score) or math.isinf(score):
        return 0
    return score
