from __future__ import annotations

import concurrent.futures
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from .config import build_config
from .constants import (
    METRICS_KEY_FOR_TYPE,
    USER_ROLE_FOR_TYPE,
    LeaderboardPeriod,
    LeaderboardType,
    parse_period,
    parse_type,
)
from .errors import LeaderboardError
from .metrics import collect_records, compute_metrics
from .periods import resolve_period, windows_match
from .scoring import calculate_total_score

# Placeholder rank for rows inserted before the ranking pass of their run
UNRANKED = 9999


def resolve_timezone(name):
    if not name or str(name).upper() == "UTC":
        return timezone.utc
    return ZoneInfo(str(name))


class LeaderboardEngine:
    """
    Scores every eligible participant of a (type, period) bucket, persists one
    snapshot row per participant and assigns dense ranks over the run.
    """

    def __init__(self, repository, config: dict | None = None, now_fn: Callable[[], datetime] | None = None):
        self.repository = repository
        self.config = build_config(config)
        self.tolerance = timedelta(minutes=float(self.config["window_tolerance_minutes"]))
        self.max_workers = int(self.config["max_workers"])
        tz = resolve_timezone(self.config.get("timezone"))
        self._now = now_fn or (lambda: datetime.now(tz))

    # ---------- Helpers ----------
    def resolve_window(self, period) -> tuple[datetime, datetime]:
        return resolve_period(period, self._now(), self.config.get("all_time_anchor"))

    def _metrics_for(self, leaderboard_type: LeaderboardType, participant_id: str, start, end):
        records = collect_records(self.repository, leaderboard_type, participant_id, start, end)
        metrics = compute_metrics(
            leaderboard_type, participant_id, records, self.config.get("delivered_statuses") or ()
        )
        score = calculate_total_score(leaderboard_type, metrics)
        if not isinstance(score, (int, float)) or not math.isfinite(score):
            score = 0
        has_records = bool(records.get("orders") or records.get("ratings"))
        return metrics, score, has_records

    def _participants(self, leaderboard_type: LeaderboardType) -> list[dict]:
        role = USER_ROLE_FOR_TYPE[leaderboard_type]
        return self.repository.find_participants(role, str(self.config.get("approved_status") or "approved"))

    def _fan_out(self, participants: list[dict], task: Callable[[dict], object], label: str) -> list:
        """
        Run `task` for every participant on a bounded pool.

        Results come back in participant order, not completion order; a failed
        participant is logged and left out without cancelling the others.
        """
        if not participants:
            return []
        workers = max(1, min(self.max_workers, len(participants)))
        results = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [(p, executor.submit(task, p)) for p in participants]
            for participant, future in futures:
                try:
                    results.append(future.result())
                except Exception:
                    logging.exception(
                        "[LeaderboardScorer] %s: skipping participant %s", label, participant.get("id")
                    )
        return results

    # ---------- Upsert / rank ----------
    def _upsert_participant(self, leaderboard_type, period, start, end, participant: dict) -> dict:
        participant_id = participant["id"]
        metrics, score, _ = self._metrics_for(leaderboard_type, participant_id, start, end)

        if period is LeaderboardPeriod.ALL_TIME:
            # The all-time end is always "now", so only the latest row can be the same bucket
            existing = self.repository.find_existing_entry(
                participant_id, leaderboard_type.value, period.value, start, end, self.tolerance, match_latest=True
            )
        else:
            existing = self.repository.find_existing_entry(
                participant_id, leaderboard_type.value, period.value, start, end, self.tolerance
            )

        doc = {
            "userId": participant_id,
            "userRole": participant.get("role") or USER_ROLE_FOR_TYPE[leaderboard_type],
            "leaderboardType": leaderboard_type.value,
            "period": period.value,
            "periodStartDate": start,
            "periodEndDate": end,
            "totalScore": score,
            METRICS_KEY_FOR_TYPE[leaderboard_type]: metrics,
            "lastUpdated": self._now(),
            "isActive": True,
        }

        if existing:
            if existing.get("rank") not in (None, UNRANKED):
                doc["previousRank"] = existing["rank"]
            self.repository.update_entry(existing["_id"], doc)
            entry_id = existing["_id"]
        else:
            doc["rank"] = UNRANKED
            entry_id = self.repository.insert_entry(doc)

        return {"entryId": entry_id, "userId": participant_id, "totalScore": score}

    def update_leaderboard(self, leaderboard_type, period) -> list[dict]:
        """Recompute one bucket; returns [{userId, totalScore, rank}] in rank order."""
        leaderboard_type = parse_type(leaderboard_type)
        period = parse_period(period)
        start, end = self.resolve_window(period)

        participants = self._participants(leaderboard_type)
        logging.info(
            "[LeaderboardScorer] Updating %s/%s for %d participants (start=%s, end=%s)",
            leaderboard_type.value,
            period.value,
            len(participants),
            start.isoformat(),
            end.isoformat(),
        )

        scored = self._fan_out(
            participants,
            lambda p: self._upsert_participant(leaderboard_type, period, start, end, p),
            f"{leaderboard_type.value}/{period.value}",
        )

        # Only after every participant of the run is scored; sorted() is stable on ties
        ranked = sorted(scored, key=lambda r: r["totalScore"], reverse=True)
        self.repository.assign_ranks([(r["entryId"], i) for i, r in enumerate(ranked, start=1)])
        # Rows of skipped or no longer eligible participants would keep a stale rank
        retired = self.repository.deactivate_others(
            leaderboard_type.value,
            period.value,
            start,
            end,
            self.tolerance,
            [r["entryId"] for r in ranked],
            match_window=period is not LeaderboardPeriod.ALL_TIME,
        )
        if retired:
            logging.info(
                "[LeaderboardScorer] %s/%s: deactivated %d row(s) not ranked in this run",
                leaderboard_type.value,
                period.value,
                retired,
            )

        logging.info(
            "[LeaderboardScorer] Ranked %d/%d participants for %s/%s",
            len(ranked),
            len(participants),
            leaderboard_type.value,
            period.value,
        )
        return [
            {"userId": r["userId"], "totalScore": r["totalScore"], "rank": i}
            for i, r in enumerate(ranked, start=1)
        ]

    def update_all_leaderboards(self) -> dict[tuple[str, str], bool]:
        outcome: dict[tuple[str, str], bool] = {}
        for leaderboard_type in LeaderboardType:
            for period in LeaderboardPeriod:
                key = (leaderboard_type.value, period.value)
                try:
                    self.update_leaderboard(leaderboard_type, period)
                    outcome[key] = True
                except Exception:
                    logging.exception(
                        "[LeaderboardScorer] Failed to update leaderboard %s %s", *key
                    )
                    outcome[key] = False
        failed = [k for k, ok in outcome.items() if not ok]
        if failed:
            logging.warning("[LeaderboardScorer] %d bucket(s) failed: %s", len(failed), failed)
        return outcome

    def reset_leaderboard(self, leaderboard_type, period) -> int:
        """Soft-delete the current bucket; history rows are kept."""
        leaderboard_type = parse_type(leaderboard_type)
        period = parse_period(period)
        start, end = self.resolve_window(period)
        modified = self.repository.deactivate_bucket(
            leaderboard_type.value,
            period.value,
            start,
            end,
            self.tolerance,
            match_window=period is not LeaderboardPeriod.ALL_TIME,
        )
        logging.info(
            "[LeaderboardScorer] Reset %s/%s: %d row(s) deactivated", leaderboard_type.value, period.value, modified
        )
        return modified

    # ---------- Read path ----------
    def get_leaderboard(self, leaderboard_type, period, limit: int | None = 50) -> list[dict]:
        leaderboard_type = parse_type(leaderboard_type)
        period = parse_period(period)
        start, end = self.resolve_window(period)

        try:
            rows = self.repository.find_active_entries(leaderboard_type.value, period.value)
        except LeaderboardError:
            logging.exception(
                "[LeaderboardScorer] Error fetching leaderboard %s/%s", leaderboard_type.value, period.value
            )
            return []

        in_bucket = [
            r for r in rows if windows_match(r["periodStartDate"], r["periodEndDate"], start, end, self.tolerance)
        ]
        rows = dedupe_latest(in_bucket)
        rows.sort(key=lambda r: r.get("rank") or UNRANKED)
        if limit is None:
            return rows
        return rows[: max(0, int(limit))]

    def get_participant_position(self, leaderboard_type, period, participant_id: str) -> dict | None:
        """
        Live rank of one participant computed from raw records, not snapshots.
        Only participants with activity in the window take part; None when the
        participant has none.

        Cost grows with the role: every approved participant is aggregated on
        each call (one or two store reads per participant, on the bounded pool).
        """
        leaderboard_type = parse_type(leaderboard_type)
        period = parse_period(period)
        start, end = self.resolve_window(period)
        participant_id = str(participant_id)

        def score_live(p: dict):
            _, score, has_records = self._metrics_for(leaderboard_type, p["id"], start, end)
            return {"userId": p["id"], "score": score, "active": has_records}

        results = self._fan_out(
            self._participants(leaderboard_type), score_live, f"position {leaderboard_type.value}/{period.value}"
        )
        active = sorted((r for r in results if r["active"]), key=lambda r: r["score"], reverse=True)

        for i, r in enumerate(active, start=1):
            if r["userId"] == participant_id:
                return {"rank": i, "score": r["score"], "totalParticipants": len(active)}
        return None


# ---------- Pure helpers ----------
def dedupe_latest(rows: list[dict]) -> list[dict]:
    """Keep one row per participant: the one with the latest lastUpdated."""
    latest: dict[str, dict] = {}
    for row in rows:
        user_id = str(row["userId"])
        current = latest.get(user_id)
        if current is None or row["lastUpdated"] > current["lastUpdated"]:
            latest[user_id] = row
    return list(latest.values())


def rank_change(rank, previous_rank) -> str | None:
    if previous_rank is None or rank is None:
        return None
    if rank < previous_rank:
        return "up"
    if rank > previous_rank:
        return "down"
    return "same"


def paginate(rows: list, page: int, limit: int) -> dict:
    """Slice already-ordered rows into the paginated leaderboard shape."""
    page = max(1, int(page))
    limit = max(1, int(limit))
    total = len(rows)
    skip = (page - 1) * limit
    return {
        "entries": rows[skip : skip + limit],
        "totalCount": total,
        "hasNextPage": page * limit < total,
        "hasPreviousPage": page > 1,
        "totalPages": math.ceil(total / limit),
        "currentPage": page,
    }
