from __future__ import annotations

import logging
from datetime import datetime, timezone

import azure.functions as func

from utils.db_utils import ConnectionStringMissing, get_db, get_db_name

from .config import load_ranking_config
from .constants import LeaderboardPeriod, LeaderboardType, parse_period, parse_type
from .engine import LeaderboardEngine, dedupe_latest, paginate, rank_change
from .errors import ConfigurationError, DataAccessError, LeaderboardError
from .metrics import aggregate
from .periods import resolve_period
from .repository import MongoLeaderboardRepository
from .scoring import calculate_total_score

__all__ = [
    "LeaderboardEngine",
    "LeaderboardPeriod",
    "LeaderboardType",
    "MongoLeaderboardRepository",
    "ConfigurationError",
    "DataAccessError",
    "LeaderboardError",
    "aggregate",
    "build_engine",
    "calculate_total_score",
    "dedupe_latest",
    "paginate",
    "rank_change",
    "resolve_period",
    "run",
]


def build_engine(db=None, ensure_indexes: bool = False) -> LeaderboardEngine:
    """Engine wired to MongoDB with the config stored in the `config` collection."""
    if db is None:
        try:
            db = get_db()
        except ConnectionStringMissing as e:
            raise ConfigurationError(str(e)) from e
    repository = MongoLeaderboardRepository(db)
    if ensure_indexes:
        repository.ensure_indexes()
    return LeaderboardEngine(repository, config=load_ranking_config(db))


# ---------- Runner ----------
def run(leaderboard_type: str | None = None, period: str | None = None, db=None) -> dict:
    """Recompute one bucket, or every bucket when type and period are both omitted."""
    logging.info("[LeaderboardScorer] Connecting to MongoDB database '%s'", get_db_name())
    engine = build_engine(db, ensure_indexes=True)

    if leaderboard_type is None and period is None:
        outcome = engine.update_all_leaderboards()
        return {f"{t}/{p}": ok for (t, p), ok in outcome.items()}

    if leaderboard_type is None or period is None:
        raise ValueError("leaderboard_type and period must be given together")

    leaderboard_type, period = parse_type(leaderboard_type), parse_period(period)
    ranked = engine.update_leaderboard(leaderboard_type, period)
    return {f"{leaderboard_type.value}/{period.value}": True, "ranked": len(ranked)}


def main(mytimer: func.TimerRequest) -> None:
    """Azure Functions timer entrypoint."""
    trigger_time = datetime.now(timezone.utc).isoformat()
    logging.info("[LeaderboardScorer] Timer fired at %s", trigger_time)
    if getattr(mytimer, "past_due", False):
        logging.warning("[LeaderboardScorer] Timer is running past due.")

    try:
        outcome = run()
    except Exception:
        logging.exception("[LeaderboardScorer] Leaderboard refresh failed to start")
        raise

    failed = [k for k, ok in outcome.items() if not ok]
    logging.info(
        "[LeaderboardScorer] Completed leaderboard refresh: %d bucket(s), %d failed",
        len(outcome),
        len(failed),
    )
