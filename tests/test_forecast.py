"""Tests for predictive analysis."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from p2p_matching.matching.engine import MatchingEngine
from p2p_matching.matching.forecast import (
    BALANCED_MARKET,
    INSUFFICIENT_HISTORY,
    SHORT_WITHDRAWALS,
    HistoricalPatterns,
    HistoryPatternAnalyzer,
    PredictiveAnalyzer,
    StaticPatternAnalyzer,
)
from p2p_matching.matching.models import MatchRecord, PaymentMethod, RequestType
from p2p_matching.matching.providers import PatternAnalyzer, ProviderError

DAY = datetime(2025, 11, 4, tzinfo=timezone.utc)


class BrokenPatternAnalyzer(PatternAnalyzer):
    async def analyze(self, payment_method, amount, timeframe_hours):
        raise ProviderError("history store unavailable")


def _record(hour, type=RequestType.DEPOSIT, amount="100", method=PaymentMethod.VENMO, matched=True):
    created = DAY + timedelta(hours=hour)
    return MatchRecord(
        payment_method=method,
        type=type,
        amount=Decimal(amount),
        created_at=created,
        matched_at=created + timedelta(minutes=10) if matched else None,
    )


@pytest.fixture
def history():
    """Eight venmo $100 requests between 10:00 and 18:00, six of them matched."""
    return [
        _record(10),
        _record(10, type=RequestType.WITHDRAWAL),
        _record(10, matched=False),
        _record(12, type=RequestType.WITHDRAWAL),
        _record(12),
        _record(18, type=RequestType.WITHDRAWAL),
        _record(18, type=RequestType.WITHDRAWAL, matched=False),
        _record(14),
        # Ignored: other rail, other amount
        _record(9, method=PaymentMethod.ZELLE),
        _record(9, amount="250"),
    ]


@pytest.mark.asyncio
async def test_no_history_forecast():
    forecast = await PredictiveAnalyzer().predict_matching_opportunities(
        PaymentMethod.VENMO, 100
    )

    assert forecast.predicted_matches == 0
    assert forecast.confidence == 0.0
    assert forecast.recommended_timing_windows == []
    assert forecast.market_conditions_summary == INSUFFICIENT_HISTORY


@pytest.mark.asyncio
async def test_history_pattern_analyzer(history):
    patterns = await HistoryPatternAnalyzer(history).analyze(PaymentMethod.VENMO, 100, 24)

    assert patterns.sample_size == 8
    assert patterns.success_rate == pytest.approx(0.75)
    assert patterns.average_wait_minutes == pytest.approx(10.0)
    assert patterns.deposit_count == 4
    assert patterns.withdrawal_count == 4
    assert patterns.observed_hours == pytest.approx(8.0)
    assert patterns.hourly_activity == {10: 3, 12: 2, 18: 2, 14: 1}
    assert patterns.amount_distribution == {"100": 8, "250": 1}


@pytest.mark.asyncio
async def test_forecast_from_history(history):
    analyzer = PredictiveAnalyzer(HistoryPatternAnalyzer(history))

    forecast = await analyzer.predict_matching_opportunities("venmo", Decimal("100"), 24)

    # One request per hour, 24 hours, 75% success
    assert forecast.predicted_matches == 18
    assert forecast.confidence == pytest.approx(8 / 28)
    assert forecast.recommended_timing_windows == [
        "10:00-11:00 UTC",
        "12:00-13:00 UTC",
        "18:00-19:00 UTC",
    ]
    assert forecast.market_conditions_summary == BALANCED_MARKET


@pytest.mark.asyncio
async def test_confidence_is_capped():
    patterns = HistoricalPatterns(
        sample_size=10_000,
        success_rate=1.0,
        deposit_count=5_000,
        withdrawal_count=5_000,
        observed_hours=100,
    )
    analyzer = PredictiveAnalyzer(StaticPatternAnalyzer(patterns))

    forecast = await analyzer.predict_matching_opportunities(PaymentMethod.ZELLE, 50)

    assert forecast.confidence == pytest.approx(0.95)


def test_market_conditions_short_withdrawals():
    patterns = HistoricalPatterns(sample_size=5, deposit_count=4, withdrawal_count=1)

    assert PredictiveAnalyzer.market_conditions(patterns) == SHORT_WITHDRAWALS


@pytest.mark.asyncio
async def test_broken_analyzer_degrades():
    analyzer = PredictiveAnalyzer(BrokenPatternAnalyzer())

    forecast = await analyzer.predict_matching_opportunities(PaymentMethod.VENMO, 100)

    assert forecast.predicted_matches == 0
    assert forecast.market_conditions_summary == INSUFFICIENT_HISTORY


@pytest.mark.asyncio
async def test_invalid_forecast_arguments():
    analyzer = PredictiveAnalyzer()

    with pytest.raises(ValueError):
        await analyzer.predict_matching_opportunities(PaymentMethod.VENMO, 100, timeframe_hours=0)
    with pytest.raises(ValueError):
        await analyzer.predict_matching_opportunities(PaymentMethod.VENMO, 0)


@pytest.mark.asyncio
async def test_engine_forecast_uses_injected_analyzer(history, metrics):
    engine = MatchingEngine(pattern_analyzer=HistoryPatternAnalyzer(history), metrics=metrics)

    forecast = await engine.predict_matching_opportunities(PaymentMethod.VENMO, 100, 12)

    assert forecast.predicted_matches == 9
