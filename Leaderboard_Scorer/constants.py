from enum import Enum


class LeaderboardType(str, Enum):
    PROVIDER = "provider"
    SELLER = "seller"
    CALL_CENTER_AGENT = "call_center_agent"


class LeaderboardPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL_TIME = "all_time"


# Platform user roles backing each leaderboard
USER_ROLE_FOR_TYPE: dict[LeaderboardType, str] = {
    LeaderboardType.PROVIDER: "provider",
    LeaderboardType.SELLER: "seller",
    LeaderboardType.CALL_CENTER_AGENT: "call_center",
}

# Snapshot document key holding the role-specific metrics bundle
METRICS_KEY_FOR_TYPE: dict[LeaderboardType, str] = {
    LeaderboardType.PROVIDER: "providerMetrics",
    LeaderboardType.SELLER: "sellerMetrics",
    LeaderboardType.CALL_CENTER_AGENT: "callCenterAgentMetrics",
}

PROVIDER_METRIC_FIELDS = (
    "totalDeliveries",
    "successfulDeliveries",
    "avgDeliveryTime",
    "customerRating",
    "totalRatingCount",
    "onTimeDeliveryRate",
    "cancellationRate",
    "revenue",
    "avgOrderValue",
)

SELLER_METRIC_FIELDS = (
    "totalOrders",
    "confirmedOrders",
    "deliveredOrders",
    "conversionRate",
    "customerRating",
    "totalRatingCount",
    "revenue",
    "avgOrderValue",
    "returnRate",
)

CALL_CENTER_AGENT_METRIC_FIELDS = (
    "totalCalls",
    "successfulCalls",
    "confirmedOrders",
    "deliveredOrders",
    "callSuccessRate",
    "avgCallDuration",
    "orderConfirmationRate",
    "customerSatisfactionScore",
    "totalCustomerRatings",
    "dailyTargetAchievement",
)

METRIC_FIELDS_FOR_TYPE: dict[LeaderboardType, tuple[str, ...]] = {
    LeaderboardType.PROVIDER: PROVIDER_METRIC_FIELDS,
    LeaderboardType.SELLER: SELLER_METRIC_FIELDS,
    LeaderboardType.CALL_CENTER_AGENT: CALL_CENTER_AGENT_METRIC_FIELDS,
}

ORDER_STATUS_CONFIRMED = "confirmed"
CALL_STATUS_ANSWERED = "answered"
PROVIDER_RATING_ACTIVE = "ACTIVE"
AGENT_RATING_SUBMITTED = "SUBMITTED"


def parse_type(value) -> LeaderboardType:
    """Accepts enum members or their string values; raises ValueError otherwise."""
    try:
        return LeaderboardType(value)
    except ValueError:
        raise ValueError(f"Unknown leaderboard type: {value!r}") from None


def parse_period(value) -> LeaderboardPeriod:
    try:
        return LeaderboardPeriod(value)
    except ValueError:
        raise ValueError(f"Unknown leaderboard period: {value!r}") from None
