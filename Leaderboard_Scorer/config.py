from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from pymongo.errors import PyMongoError

from .errors import ConfigurationError

# --- Ranking config ---
CONFIG_COLLECTION = "config"
CONFIG_DOC_ID = "Leaderboard_Ranking"
SCHEMA_VERSION = "2025-06-01.r1"

DEFAULT_RANKING_CONFIG: dict[str, object] = {
    # Snapshot rows within this distance of the resolved window belong to the same bucket
    "window_tolerance_minutes": 60,
    # Worker threads used to score participants of one bucket
    "max_workers": 8,
    "all_time_anchor": "2020-01-01",
    "timezone": "UTC",
    # Order statuses counted as delivered for sellers
    "delivered_statuses": ["confirmed"],
    "approved_status": "approved",
}

_config_cache: dict[str, object] | None = None


def _env_overrides() -> dict[str, object]:
    overrides: dict[str, object] = {}
    workers = os.getenv("LEADERBOARD_MAX_WORKERS")
    if workers:
        try:
            overrides["max_workers"] = int(workers)
        except ValueError:
            raise ConfigurationError(f"LEADERBOARD_MAX_WORKERS must be an integer, got {workers!r}") from None
    tz_name = os.getenv("LEADERBOARD_TIMEZONE")
    if tz_name:
        overrides["timezone"] = tz_name
    return overrides


def validate_config(cfg: dict[str, object]) -> dict[str, object]:
    try:
        tolerance = float(cfg["window_tolerance_minutes"])
        workers = int(cfg["max_workers"])
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid ranking config: {e}") from e
    if tolerance <= 0:
        raise ConfigurationError("window_tolerance_minutes must be positive")
    if workers < 1:
        raise ConfigurationError("max_workers must be at least 1")
    cfg["window_tolerance_minutes"] = tolerance
    cfg["max_workers"] = workers
    cfg["delivered_statuses"] = list(cfg.get("delivered_statuses") or ["confirmed"])
    return cfg


def build_config(stored_defaults: dict | None = None) -> dict[str, object]:
    """Defaults, then values stored in Mongo, then env overrides."""
    stored = stored_defaults if isinstance(stored_defaults, dict) else {}
    cfg: dict[str, object] = {**DEFAULT_RANKING_CONFIG, **stored, **_env_overrides()}
    return validate_config(cfg)


def load_ranking_config(db, use_cache: bool = True) -> dict[str, object]:
    """
    Load ranking config from the `config` collection.
    Bootstraps a Leaderboard_Ranking document with defaults if missing.
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    try:
        doc = db[CONFIG_COLLECTION].find_one({"_id": CONFIG_DOC_ID})
        if not doc:
            now = datetime.now(timezone.utc)
            doc = {
                "_id": CONFIG_DOC_ID,
                "module": "Leaderboard",
                "schema": "Leaderboard_Ranking",
                "schema_version": SCHEMA_VERSION,
                "status": "active",
                "description": "Runtime settings for leaderboard scoring and rank assignment.",
                "createdAt": now,
                "updatedAt": now,
                "defaults": dict(DEFAULT_RANKING_CONFIG),
                "meta": {
                    "notes": "Auto-created by Leaderboard_Scorer. Safe to edit values under `defaults`.",
                },
            }
            db[CONFIG_COLLECTION].insert_one(doc)
            logging.info("[LeaderboardScorer] Bootstrapped %s config document", CONFIG_DOC_ID)
    except PyMongoError as e:
        logging.warning("[LeaderboardScorer] Could not read ranking config, using defaults: %s", e)
        doc = {}

    cfg = build_config(doc.get("defaults"))
    _config_cache = cfg
    return cfg


def reset_config_cache() -> None:
    global _config_cache
    _config_cache = None
