"""Tests for settings, engine configuration and logging setup."""

import logging

import pytest
import structlog

from p2p_matching.core.config import Settings, get_settings
from p2p_matching.core.logging import configure_logging, search_context
from p2p_matching.matching.config import MatchingConfig, QueueConfig, ScoringConfig
from p2p_matching.matching.engine import MatchingEngine


def test_default_config_is_valid():
    config = MatchingConfig()
    config.validate_config()

    assert config.ranking.max_candidates == 10
    assert config.ranking.algorithm_version == "2.0.0"
    assert config.risk.default_risk_score == 50
    assert config.settlement.method_multipliers["zelle"] == 1.5


def test_inverted_queue_ratios_rejected():
    config = MatchingConfig(queue=QueueConfig(low_supply_ratio=2.5, high_supply_ratio=2.0))

    with pytest.raises(ValueError):
        config.validate_config()


def test_unreachable_risk_threshold_rejected():
    config = MatchingConfig(scoring=ScoringConfig(risk_penalty_threshold=1000))

    with pytest.raises(ValueError):
        config.validate_config()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("MATCHING_MAX_CANDIDATES", "3")
    monkeypatch.setenv("MATCHING_PROVIDER_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("DEBUG", "true")

    config = MatchingConfig.from_settings(Settings())

    assert config.ranking.max_candidates == 3
    assert config.risk.provider_timeout_seconds == 0.5
    assert config.debug is True


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_engine_from_settings(metrics):
    engine = MatchingEngine.from_settings(
        Settings(MATCHING_MAX_CANDIDATES=4, MATCHING_ALGORITHM_VERSION="2.1.0"),
        metrics=metrics,
    )

    assert engine.config.ranking.max_candidates == 4
    assert engine.get_stats()["algorithm_version"] == "2.1.0"


def test_search_context_binds_and_resets():
    configure_logging("production", level=logging.WARNING)

    with search_context(request_id="d-1") as search_id:
        bound = structlog.contextvars.get_contextvars()
        assert bound["search_id"] == search_id
        assert bound["request_id"] == "d-1"

    assert "search_id" not in structlog.contextvars.get_contextvars()


def test_search_context_accepts_explicit_id():
    with search_context(search_id="fixed") as search_id:
        assert search_id == "fixed"
