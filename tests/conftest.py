"""
Shared fixtures: an in-memory stand-in for the Mongo repository so the engine
and the HTTP function run without a database.
"""
import itertools
import threading
from datetime import datetime, timezone

import pytest

from Leaderboard_Scorer.engine import LeaderboardEngine
from Leaderboard_Scorer.errors import DataAccessError
from Leaderboard_Scorer.periods import windows_match

# Wednesday; Feb 2024 is a leap month
FIXED_NOW = datetime(2024, 2, 14, 10, 30, tzinfo=timezone.utc)


def ranges_overlap(start_a, end_a, start_b, end_b):
    """Any intersection, mirroring the periodStart/periodEnd query of the Mongo repository."""
    return start_a <= end_b and end_a >= start_b


class InMemoryRepository:
    def __init__(self):
        self.users = []
        self.orders = []
        self.provider_ratings = []
        self.agent_ratings = []
        self.leaderboards = []
        # (method name, participant id) pairs that raise DataAccessError
        self.fail_on = set()
        self.fail_roles = set()
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ---------- seeding ----------
    def add_user(self, user_id, role, status="approved", name=None):
        self.users.append({"_id": user_id, "role": role, "status": status, "name": name or user_id})

    def add_order(self, **doc):
        doc.setdefault("createdAt", FIXED_NOW)
        self.orders.append(doc)

    def _maybe_fail(self, method, participant_id):
        if (method, participant_id) in self.fail_on:
            raise DataAccessError(method, RuntimeError("simulated outage"))

    # ---------- participants ----------
    def find_participants(self, role, status="approved"):
        if role in self.fail_roles:
            raise DataAccessError(f"find_participants({role})")
        return [
            {"id": u["_id"], "name": u.get("name"), "businessName": None, "role": u["role"]}
            for u in self.users
            if u["role"] == role and u["status"] == status
        ]

    def find_users(self, user_ids):
        return {u["_id"]: u for u in self.users if u["_id"] in set(user_ids)}

    # ---------- raw records ----------
    def _orders(self, field, participant_id, start, end):
        return [o for o in self.orders if o.get(field) == participant_id and start <= o["createdAt"] <= end]

    def find_provider_orders(self, provider_id, start, end):
        self._maybe_fail("find_provider_orders", provider_id)
        return self._orders("providerId", provider_id, start, end)

    def find_seller_orders(self, seller_id, start, end):
        self._maybe_fail("find_seller_orders", seller_id)
        return self._orders("sellerId", seller_id, start, end)

    def find_agent_orders(self, agent_id, start, end):
        self._maybe_fail("find_agent_orders", agent_id)
        return [
            o
            for o in self.orders
            if start <= o["createdAt"] <= end
            and (
                o.get("assignedAgent") == agent_id
                or any(a.get("callCenterAgent") == agent_id for a in o.get("callAttempts", []))
            )
        ]

    def find_provider_ratings(self, provider_id, start, end):
        return [
            r
            for r in self.provider_ratings
            if r["providerId"] == provider_id and r["status"] == "ACTIVE" and start <= r["createdAt"] <= end
        ]

    def find_agent_ratings_overlapping(self, agent_id, start, end):
        return [
            r
            for r in self.agent_ratings
            if r["agentId"] == agent_id
            and r["status"] == "SUBMITTED"
            and ranges_overlap(r["periodStart"], r["periodEnd"], start, end)
        ]

    # ---------- snapshot rows ----------
    def find_existing_entry(self, user_id, leaderboard_type, period, start, end, tolerance, match_latest=False):
        rows = [
            r
            for r in self.leaderboards
            if r["userId"] == user_id and r["leaderboardType"] == leaderboard_type and r["period"] == period
        ]
        if match_latest:
            rows = [r for r in rows if r["isActive"]]
            return max(rows, key=lambda r: r["lastUpdated"], default=None)
        for r in rows:
            if windows_match(r["periodStartDate"], r["periodEndDate"], start, end, tolerance):
                return r
        return None

    def insert_entry(self, doc):
        with self._lock:
            row = dict(doc, _id=next(self._ids))
            self.leaderboards.append(row)
            return row["_id"]

    def _row(self, entry_id):
        return next(r for r in self.leaderboards if r["_id"] == entry_id)

    def update_entry(self, entry_id, fields):
        with self._lock:
            self._row(entry_id).update(fields)

    def assign_ranks(self, ranks):
        with self._lock:
            for entry_id, rank in ranks:
                self._row(entry_id)["rank"] = rank

    def deactivate_bucket(self, leaderboard_type, period, start, end, tolerance, match_window=True):
        return self.deactivate_others(leaderboard_type, period, start, end, tolerance, [], match_window)

    def deactivate_others(self, leaderboard_type, period, start, end, tolerance, keep_ids, match_window=True):
        modified = 0
        with self._lock:
            for r in self.leaderboards:
                if r["leaderboardType"] != leaderboard_type or r["period"] != period or not r["isActive"]:
                    continue
                if r["_id"] in keep_ids:
                    continue
                if match_window and not windows_match(r["periodStartDate"], r["periodEndDate"], start, end, tolerance):
                    continue
                r["isActive"] = False
                modified += 1
        return modified

    def find_active_entries(self, leaderboard_type, period):
        rows = [
            dict(r)
            for r in self.leaderboards
            if r["leaderboardType"] == leaderboard_type and r["period"] == period and r["isActive"]
        ]
        return sorted(rows, key=lambda r: r["lastUpdated"], reverse=True)

    # ---------- assertions helpers ----------
    def bucket_rows(self, leaderboard_type, period):
        return [
            r
            for r in self.leaderboards
            if r["leaderboardType"] == leaderboard_type and r["period"] == period and r["isActive"]
        ]


class Clock:
    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def repo():
    return InMemoryRepository()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def engine(repo, clock):
    return LeaderboardEngine(repo, config={"max_workers": 4}, now_fn=clock)


@pytest.fixture
def three_sellers(repo):
    """$500 over 3/5 confirmed, nothing, $1200 over 4/4 confirmed."""
    for seller in ("seller-a", "seller-b", "seller-c"):
        repo.add_user(seller, "seller")
    for i in range(5):
        repo.add_order(sellerId="seller-a", status="confirmed" if i < 3 else "pending", finalTotalPrice=100)
    for _ in range(4):
        repo.add_order(sellerId="seller-c", status="confirmed", finalTotalPrice=300)
    return repo
