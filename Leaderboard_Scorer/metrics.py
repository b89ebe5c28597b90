"""
Per-participant metrics for the leaderboard engine.

Reads are funnelled through `collect_records`, which asks the repository for
the raw orders and ratings of one participant inside a window. Everything
after that is pure: `compute_metrics` reduces the fetched documents to the
role-specific bundle, so scoring and tests never need a live database.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable

from .constants import (
    CALL_STATUS_ANSWERED,
    METRIC_FIELDS_FOR_TYPE,
    ORDER_STATUS_CONFIRMED,
    LeaderboardType,
    parse_type,
)

DEFAULT_DELIVERED_STATUSES = (ORDER_STATUS_CONFIRMED,)


# ---------- Numeric helpers ----------
def _num(value) -> float:
    """Coerce a stored value to a finite float; anything unusable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(out) or math.isinf(out):
        return 0.0
    return out


def _ratio_pct(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0


def _same_id(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


def sanitize_metrics(metrics: dict[str, object]) -> dict[str, object]:
    """Return a copy where every NaN / inf / missing numeric is 0."""
    clean: dict[str, object] = {}
    for key, value in metrics.items():
        if value is None or (isinstance(value, float) and not math.isfinite(value)):
            clean[key] = 0
        else:
            clean[key] = value
    return clean


def empty_metrics(leaderboard_type: LeaderboardType | str) -> dict[str, object]:
    return {field: 0 for field in METRIC_FIELDS_FOR_TYPE[parse_type(leaderboard_type)]}


# ---------- Provider ----------
def provider_metrics(orders: list[dict], ratings: list[dict]) -> dict[str, object]:
    total = len(orders)
    successful = sum(1 for o in orders if o.get("status") == ORDER_STATUS_CONFIRMED)
    revenue = sum(_num(o.get("finalTotalPrice")) for o in orders)

    durations_h = []
    for o in orders:
        created, delivered = o.get("createdAt"), o.get("deliveredAt")
        if isinstance(created, datetime) and isinstance(delivered, datetime) and delivered >= created:
            durations_h.append((delivered - created).total_seconds() / 3600)

    on_time = min(95, _ratio_pct(successful, total)) if total > 0 else 0
    cancellation = max(0, 100 - on_time) if total > 0 else 0

    scores = [_num(r.get("overallScore")) for r in ratings]

    return {
        "totalDeliveries": total,
        "successfulDeliveries": successful,
        "avgDeliveryTime": _mean(durations_h),
        "customerRating": _mean(scores),
        "totalRatingCount": len(scores),
        "onTimeDeliveryRate": on_time,
        "cancellationRate": cancellation,
        "revenue": revenue,
        "avgOrderValue": revenue / total if total > 0 else 0,
    }


# ---------- Seller ----------
def seller_metrics(
    orders: list[dict], delivered_statuses: Iterable[str] = DEFAULT_DELIVERED_STATUSES
) -> dict[str, object]:
    delivered_statuses = set(delivered_statuses)
    total = len(orders)
    confirmed = sum(1 for o in orders if o.get("status") == ORDER_STATUS_CONFIRMED)
    delivered = sum(1 for o in orders if o.get("status") in delivered_statuses)
    conversion = _ratio_pct(confirmed, total)
    revenue = sum(_num(o.get("finalTotalPrice")) for o in orders)

    return {
        "totalOrders": total,
        "confirmedOrders": confirmed,
        "deliveredOrders": delivered,
        "conversionRate": conversion,
        # Sellers are not rated
        "customerRating": 0,
        "totalRatingCount": 0,
        "revenue": revenue,
        "avgOrderValue": revenue / total if total > 0 else 0,
        # Heuristic until returns are tracked: falls as conversion rises
        "returnRate": max(0, 5 - conversion / 20) if total > 0 else 0,
    }


# ---------- Call-center agent ----------
def _call_attempts(order: dict) -> list[dict]:
    return [a for a in (order.get("callAttempts") or []) if isinstance(a, dict)]


def call_center_agent_metrics(agent_id, orders: list[dict], ratings: list[dict]) -> dict[str, object]:
    total_calls = 0
    for o in orders:
        attempts = o.get("totalCallAttempts")
        total_calls += int(_num(attempts)) if attempts is not None else len(_call_attempts(o))

    successful_calls = sum(
        1 for o in orders if any(a.get("status") == CALL_STATUS_ANSWERED for a in _call_attempts(o))
    )
    confirmed = sum(
        1
        for o in orders
        if o.get("status") == ORDER_STATUS_CONFIRMED and _same_id(o.get("assignedAgent"), agent_id)
    )

    durations_s = []
    for o in orders:
        for a in _call_attempts(o):
            if not _same_id(a.get("callCenterAgent"), agent_id):
                continue
            duration = _num((a.get("recording") or {}).get("duration"))
            if duration:
                durations_s.append(duration)

    call_success = _ratio_pct(successful_calls, total_calls)
    confirmation = _ratio_pct(confirmed, len(orders))
    scores = [_num(r.get("finalScore")) for r in ratings]

    return {
        "totalCalls": total_calls,
        "successfulCalls": successful_calls,
        "confirmedOrders": confirmed,
        # No separate delivery signal for agents; confirmed orders stand in
        "deliveredOrders": confirmed,
        "callSuccessRate": call_success,
        "avgCallDuration": _mean(durations_s) / 60,
        "orderConfirmationRate": confirmation,
        "customerSatisfactionScore": _mean(scores),
        "totalCustomerRatings": len(scores),
        "dailyTargetAchievement": min(100, confirmation * 1.2),
    }


# ---------- Entry points ----------
def collect_records(repository, leaderboard_type, participant_id: str, start: datetime, end: datetime) -> dict[str, list]:
    """Fetch the raw documents one participant's metrics are computed from."""
    leaderboard_type = parse_type(leaderboard_type)

    if leaderboard_type is LeaderboardType.PROVIDER:
        return {
            "orders": repository.find_provider_orders(participant_id, start, end),
            "ratings": repository.find_provider_ratings(participant_id, start, end),
        }
    if leaderboard_type is LeaderboardType.SELLER:
        return {
            "orders": repository.find_seller_orders(participant_id, start, end),
            "ratings": [],
        }
    return {
        "orders": repository.find_agent_orders(participant_id, start, end),
        "ratings": repository.find_agent_ratings_overlapping(participant_id, start, end),
    }


def compute_metrics(
    leaderboard_type,
    participant_id: str,
    records: dict[str, list],
    delivered_statuses: Iterable[str] = DEFAULT_DELIVERED_STATUSES,
) -> dict[str, object]:
    leaderboard_type = parse_type(leaderboard_type)
    orders = records.get("orders") or []
    ratings = records.get("ratings") or []

    if leaderboard_type is LeaderboardType.PROVIDER:
        metrics = provider_metrics(orders, ratings)
    elif leaderboard_type is LeaderboardType.SELLER:
        metrics = seller_metrics(orders, delivered_statuses)
    else:
        metrics = call_center_agent_metrics(participant_id, orders, ratings)

    return sanitize_metrics(metrics)


def aggregate(
    repository,
    leaderboard_type,
    participant_id: str,
    start: datetime,
    end: datetime,
    delivered_statuses: Iterable[str] = DEFAULT_DELIVERED_STATUSES,
) -> dict[str, object]:
    leaderboard_type = parse_type(leaderboard_type)
    records = collect_records(repository, leaderboard_type, participant_id, start, end)
    logging.debug(
        "[LeaderboardScorer] %s %s: %d orders, %d ratings in window",
        leaderboard_type.value,
        participant_id,
        len(records["orders"]),
        len(records["ratings"]),
    )
    return compute_metrics(leaderboard_type, participant_id, records, delivered_statuses)
