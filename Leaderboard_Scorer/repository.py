"""
MongoDB access for the leaderboard engine.

The engine only talks to the narrow interface below; `MongoLeaderboardRepository`
implements it on top of the platform's collections. Every pymongo failure is
re-raised as `DataAccessError` so callers can isolate it per participant or
per bucket.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, UpdateOne
from pymongo.errors import PyMongoError

from .constants import AGENT_RATING_SUBMITTED, PROVIDER_RATING_ACTIVE
from .errors import DataAccessError

USERS = "users"
ORDERS = "orders"
PROVIDER_RATINGS = "providerratings"
AGENT_RATINGS = "agentratings"
LEADERBOARDS = "leaderboards"

# Compound indexes of the snapshot collection
LEADERBOARD_INDEXES = [
    [
        ("leaderboardType", ASCENDING),
        ("period", ASCENDING),
        ("periodStartDate", ASCENDING),
        ("periodEndDate", ASCENDING),
        ("isActive", ASCENDING),
        ("totalScore", DESCENDING),
    ],
    [("userId", ASCENDING), ("leaderboardType", ASCENDING), ("period", ASCENDING), ("periodStartDate", ASCENDING)],
    [("userRole", ASCENDING), ("leaderboardType", ASCENDING), ("period", ASCENDING), ("isActive", ASCENDING), ("rank", ASCENDING)],
    [("leaderboardType", ASCENDING), ("period", ASCENDING), ("isActive", ASCENDING), ("lastUpdated", DESCENDING)],
]


def to_object_id(value):
    """Platform ids are ObjectIds; leave anything that is not a 24-hex string untouched."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


@contextmanager
def _store_op(operation: str):
    try:
        yield
    except PyMongoError as e:
        logging.error("[LeaderboardRepo] %s failed: %s", operation, e)
        raise DataAccessError(operation, e) from e


def _window(start: datetime, end: datetime) -> dict:
    return {"$gte": start, "$lte": end}


def _around(moment: datetime, tolerance: timedelta) -> dict:
    # Strict on both ends, same as windows_match on the read path
    return {"$gt": moment - tolerance, "$lt": moment + tolerance}


class MongoLeaderboardRepository:
    def __init__(self, db):
        self.db = db

    # ---------- Participants ----------
    def find_participants(self, role: str, status: str = "approved") -> list[dict]:
        with _store_op(f"find_participants({role})"):
            cursor = self.db[USERS].find(
                {"role": role, "status": status},
                {"name": 1, "businessName": 1, "role": 1},
            ).sort("_id", ASCENDING)
            return [
                {
                    "id": str(doc["_id"]),
                    "name": doc.get("name"),
                    "businessName": doc.get("businessName"),
                    "role": doc.get("role", role),
                }
                for doc in cursor
            ]

    def find_users(self, user_ids: list[str]) -> dict[str, dict]:
        if not user_ids:
            return {}
        with _store_op("find_users"):
            cursor = self.db[USERS].find(
                {"_id": {"$in": [to_object_id(u) for u in user_ids]}},
                {"name": 1, "businessName": 1, "email": 1, "country": 1, "serviceType": 1},
            )
            return {str(doc["_id"]): doc for doc in cursor}

    # ---------- Raw records ----------
    def find_provider_orders(self, provider_id: str, start: datetime, end: datetime) -> list[dict]:
        with _store_op("find_provider_orders"):
            return list(
                self.db[ORDERS].find(
                    {"providerId": to_object_id(provider_id), "createdAt": _window(start, end)},
                    {"status": 1, "finalTotalPrice": 1, "createdAt": 1, "deliveredAt": 1},
                )
            )

    def find_seller_orders(self, seller_id: str, start: datetime, end: datetime) -> list[dict]:
        with _store_op("find_seller_orders"):
            return list(
                self.db[ORDERS].find(
                    {"sellerId": to_object_id(seller_id), "createdAt": _window(start, end)},
                    {"status": 1, "finalTotalPrice": 1, "createdAt": 1},
                )
            )

    def find_agent_orders(self, agent_id: str, start: datetime, end: datetime) -> list[dict]:
        oid = to_object_id(agent_id)
        with _store_op("find_agent_orders"):
            return list(
                self.db[ORDERS].find(
                    {
                        "$or": [{"assignedAgent": oid}, {"callAttempts.callCenterAgent": oid}],
                        "createdAt": _window(start, end),
                    },
                    {"status": 1, "assignedAgent": 1, "callAttempts": 1, "totalCallAttempts": 1},
                )
            )

    def find_provider_ratings(self, provider_id: str, start: datetime, end: datetime) -> list[dict]:
        with _store_op("find_provider_ratings"):
            return list(
                self.db[PROVIDER_RATINGS].find(
                    {
                        "providerId": to_object_id(provider_id),
                        "status": PROVIDER_RATING_ACTIVE,
                        "createdAt": _window(start, end),
                    },
                    {"overallScore": 1},
                )
            )

    def find_agent_ratings_overlapping(self, agent_id: str, start: datetime, end: datetime) -> list[dict]:
        # Any intersection counts, not only ratings contained in the window
        with _store_op("find_agent_ratings_overlapping"):
            return list(
                self.db[AGENT_RATINGS].find(
                    {
                        "agentId": to_object_id(agent_id),
                        "status": AGENT_RATING_SUBMITTED,
                        "periodStart": {"$lte": end},
                        "periodEnd": {"$gte": start},
                    },
                    {"finalScore": 1, "periodStart": 1, "periodEnd": 1},
                )
            )

    # ---------- Snapshot rows ----------
    def find_existing_entry(
        self,
        user_id: str,
        leaderboard_type: str,
        period: str,
        start: datetime,
        end: datetime,
        tolerance: timedelta,
        match_latest: bool = False,
    ) -> dict | None:
        query: dict = {"userId": to_object_id(user_id), "leaderboardType": leaderboard_type, "period": period}
        with _store_op("find_existing_entry"):
            if match_latest:
                query["isActive"] = True
                return self.db[LEADERBOARDS].find_one(query, sort=[("lastUpdated", DESCENDING)])
            query["periodStartDate"] = _around(start, tolerance)
            query["periodEndDate"] = _around(end, tolerance)
            return self.db[LEADERBOARDS].find_one(query)

    def insert_entry(self, doc: dict):
        doc = dict(doc, userId=to_object_id(doc["userId"]))
        doc.setdefault("createdAt", doc.get("lastUpdated"))
        doc.setdefault("updatedAt", doc.get("lastUpdated"))
        with _store_op("insert_entry"):
            return self.db[LEADERBOARDS].insert_one(doc).inserted_id

    def update_entry(self, entry_id, fields: dict) -> None:
        fields = dict(fields, userId=to_object_id(fields["userId"]))
        fields.setdefault("updatedAt", fields.get("lastUpdated"))
        with _store_op("update_entry"):
            self.db[LEADERBOARDS].update_one({"_id": entry_id}, {"$set": fields})

    def assign_ranks(self, ranks: list[tuple[object, int]]) -> None:
        if not ranks:
            return
        with _store_op("assign_ranks"):
            self.db[LEADERBOARDS].bulk_write(
                [UpdateOne({"_id": entry_id}, {"$set": {"rank": rank}}) for entry_id, rank in ranks],
                ordered=True,
            )

    def deactivate_bucket(
        self,
        leaderboard_type: str,
        period: str,
        start: datetime,
        end: datetime,
        tolerance: timedelta,
        match_window: bool = True,
    ) -> int:
        query: dict = {"leaderboardType": leaderboard_type, "period": period, "isActive": True}
        if match_window:
            query["periodStartDate"] = _around(start, tolerance)
            query["periodEndDate"] = _around(end, tolerance)
        with _store_op("deactivate_bucket"):
            result = self.db[LEADERBOARDS].update_many(query, {"$set": {"isActive": False}})
            return result.modified_count

    def deactivate_others(
        self,
        leaderboard_type: str,
        period: str,
        start: datetime,
        end: datetime,
        tolerance: timedelta,
        keep_ids: list,
        match_window: bool = True,
    ) -> int:
        """Soft-delete active rows of the bucket that the current run did not rank."""
        query: dict = {
            "leaderboardType": leaderboard_type,
            "period": period,
            "isActive": True,
            "_id": {"$nin": list(keep_ids)},
        }
        if match_window:
            query["periodStartDate"] = _around(start, tolerance)
            query["periodEndDate"] = _around(end, tolerance)
        with _store_op("deactivate_others"):
            result = self.db[LEADERBOARDS].update_many(query, {"$set": {"isActive": False}})
            return result.modified_count

    def find_active_entries(self, leaderboard_type: str, period: str) -> list[dict]:
        with _store_op("find_active_entries"):
            return list(
                self.db[LEADERBOARDS]
                .find({"leaderboardType": leaderboard_type, "period": period, "isActive": True})
                .sort("lastUpdated", DESCENDING)
            )

    def ensure_indexes(self) -> None:
        # Idempotent
        for keys in LEADERBOARD_INDEXES:
            try:
                self.db[LEADERBOARDS].create_index(keys)
            except PyMongoError as e:
                logging.warning("[LeaderboardRepo] create_index %s failed: %s", keys, e)
