"""Tests for matching metrics."""

import pytest

from p2p_matching.matching import metrics as metrics_module
from p2p_matching.matching.engine import MatchingEngine
from p2p_matching.matching.metrics import (
    MatchingMetrics,
    ScoreDistribution,
    get_metrics,
    reset_metrics,
)
from p2p_matching.matching.models import MatchingCandidate, MatchingResult, SearchMetadata


def _matched_result(deposit, withdrawal, score, reasons, time_ms=4.0):
    candidate = MatchingCandidate(
        deposit_request=deposit,
        withdrawal_request=withdrawal,
        score=score,
        match_reasons=reasons,
    )
    return MatchingResult(
        request_id=deposit.id,
        candidates=[candidate],
        best_match=candidate,
        search_metadata=SearchMetadata(
            total_candidates=1, search_time_ms=time_ms, pool_size=3, eligible_count=1
        ),
    )


def test_score_distribution_buckets():
    distribution = ScoreDistribution()
    for score in (460, 350, 250, 120, 40, 400):
        distribution.add_score(score)

    summary = distribution.get_summary()

    assert summary["counts"] == {
        "very_high": 2,
        "high": 1,
        "medium": 1,
        "low": 1,
        "very_low": 1,
    }
    assert summary["very_high_pct"] == pytest.approx(2 / 6)


def test_empty_distribution_summary():
    assert ScoreDistribution().get_summary() == {}


def test_add_match_results(metrics, make_deposit, make_withdrawal):
    metrics.add_match_result(
        _matched_result(make_deposit(), make_withdrawal(), 460, ["Exact Amount Match"], 4.0)
    )
    metrics.add_match_result(
        _matched_result(
            make_deposit(), make_withdrawal(), 360, ["Exact Amount Match", "High priority request"], 8.0
        )
    )
    metrics.add_match_result(
        MatchingResult(
            request_id="lonely",
            no_match_reason="No eligible counterparties",
            search_metadata=SearchMetadata(search_time_ms=3.0),
        )
    )

    summary = metrics.get_summary()

    assert summary["searches"]["total"] == 3
    assert summary["searches"]["matched"] == 2
    assert summary["searches"]["no_match_reasons"] == {"No eligible counterparties": 1}
    assert metrics.success_rate == pytest.approx(2 / 3)
    assert metrics.avg_search_time_ms == pytest.approx(5.0)
    assert metrics.max_search_time_ms == pytest.approx(8.0)
    assert metrics.avg_best_score == pytest.approx(410.0)
    assert summary["reasons"]["Exact Amount Match"]["occurrences"] == 2
    assert summary["reasons"]["High priority request"]["avg_score"] == pytest.approx(360.0)
    assert summary["candidates"]["total_pool_size"] == 6


def test_success_rate_without_searches():
    assert MatchingMetrics().success_rate == 0.0


def test_reset_metrics():
    before = get_metrics()
    before.total_searches = 7

    reset_metrics()

    assert get_metrics() is not before
    assert get_metrics().total_searches == 0
    assert metrics_module._global_metrics is get_metrics()


@pytest.mark.asyncio
async def test_engine_opts_into_global_metrics(make_deposit, make_withdrawal, now):
    reset_metrics()
    engine = MatchingEngine(metrics=get_metrics())

    await engine.find_matches(make_deposit(), [make_withdrawal()], now=now)

    assert get_metrics().total_searches == 1
    assert get_metrics().total_matched == 1


@pytest.mark.asyncio
async def test_default_engines_keep_separate_metrics(make_deposit, make_withdrawal, now):
    reset_metrics()
    first, second = MatchingEngine(), MatchingEngine()

    await first.find_matches(make_deposit(), [make_withdrawal()], now=now)

    assert first.metrics is not second.metrics
    assert first.get_stats()["success_rate"] == 1.0
    assert second.get_stats()["success_rate"] == 0.0
    assert get_metrics().total_searches == 0
