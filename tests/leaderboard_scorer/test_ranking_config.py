"""
Ranking config: defaults, stored overrides, env overrides and bootstrapping
of the Leaderboard_Ranking document.
"""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import PyMongoError

from Leaderboard_Scorer.config import (
    CONFIG_DOC_ID,
    DEFAULT_RANKING_CONFIG,
    SCHEMA_VERSION,
    build_config,
    load_ranking_config,
    reset_config_cache,
)
from Leaderboard_Scorer.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("LEADERBOARD_MAX_WORKERS", raising=False)
    monkeypatch.delenv("LEADERBOARD_TIMEZONE", raising=False)
    reset_config_cache()
    yield
    reset_config_cache()


class TestBuildConfig:
    def test_defaults(self):
        cfg = build_config()
        assert cfg["window_tolerance_minutes"] == 60
        assert cfg["max_workers"] == DEFAULT_RANKING_CONFIG["max_workers"]
        assert cfg["delivered_statuses"] == ["confirmed"]

    def test_stored_values_override_defaults(self):
        cfg = build_config({"max_workers": "3", "delivered_statuses": ["confirmed", "delivered"]})
        assert cfg["max_workers"] == 3
        assert cfg["delivered_statuses"] == ["confirmed", "delivered"]

    def test_env_overrides_stored_values(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_MAX_WORKERS", "2")
        monkeypatch.setenv("LEADERBOARD_TIMEZONE", "Asia/Kolkata")
        cfg = build_config({"max_workers": 16})
        assert cfg["max_workers"] == 2
        assert cfg["timezone"] == "Asia/Kolkata"

    def test_bad_env_value(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_MAX_WORKERS", "lots")
        with pytest.raises(ConfigurationError):
            build_config()

    @pytest.mark.parametrize(
        "stored",
        [{"window_tolerance_minutes": 0}, {"max_workers": 0}, {"window_tolerance_minutes": "soon"}],
    )
    def test_invalid_values(self, stored):
        with pytest.raises(ConfigurationError):
            build_config(stored)


class TestLoadRankingConfig:
    """The config document is read once per process and created when missing."""

    def test_bootstraps_missing_document(self):
        db = MagicMock()
        coll = db.__getitem__.return_value
        coll.find_one.return_value = None

        cfg = load_ranking_config(db)

        doc = coll.insert_one.call_args[0][0]
        assert doc["_id"] == CONFIG_DOC_ID
        assert doc["schema_version"] == SCHEMA_VERSION
        assert doc["defaults"] == DEFAULT_RANKING_CONFIG
        assert cfg["max_workers"] == DEFAULT_RANKING_CONFIG["max_workers"]

    def test_stored_document_is_used_and_cached(self):
        db = MagicMock()
        coll = db.__getitem__.return_value
        coll.find_one.return_value = {"_id": CONFIG_DOC_ID, "defaults": {"window_tolerance_minutes": 30}}

        first = load_ranking_config(db)
        second = load_ranking_config(db)

        assert first["window_tolerance_minutes"] == 30
        assert second is first
        coll.find_one.assert_called_once()
        coll.insert_one.assert_not_called()

    def test_store_failure_falls_back_to_defaults(self):
        db = MagicMock()
        db.__getitem__.return_value.find_one.side_effect = PyMongoError("down")

        cfg = load_ranking_config(db, use_cache=False)
        assert cfg["window_tolerance_minutes"] == 60
