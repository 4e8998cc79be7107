"""
Predictive analysis of matching opportunities.

The forecaster only sees summarized history through a ``PatternAnalyzer``;
swapping the analyzer changes the model's inputs without touching the
matching pipeline.

Forecast model:
    rate              = matching-amount requests per observed hour
    predicted_matches = floor(rate * timeframe_hours * success_rate)
    confidence        = min(0.95, n / (n + 20)) for n matching-amount samples
    timing windows    = three busiest hours of day (UTC)
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Iterable

import structlog
from pydantic import BaseModel, Field

from p2p_matching.matching.models import (
    MatchingForecast,
    MatchRecord,
    PaymentMethod,
    RequestType,
)
from p2p_matching.matching.providers import PatternAnalyzer
from p2p_matching.matching.risk import call_with_timeout

logger = structlog.get_logger()

CONFIDENCE_CAP = 0.95
CONFIDENCE_HALF_SAMPLE = 20
TIMING_WINDOWS = 3

INSUFFICIENT_HISTORY = "Insufficient history to forecast matching conditions"
BALANCED_MARKET = "Supply meets demand - good matching conditions"
SHORT_WITHDRAWALS = "Withdrawal supply is short - deposits may wait longer than usual"
SHORT_DEPOSITS = "Deposit demand is short - withdrawals may wait longer than usual"


class HistoricalPatterns(BaseModel):
    """Summary of past activity for one rail and amount."""

    hourly_activity: dict[int, int] = Field(
        default_factory=dict, description="Hour of day (UTC) -> request count"
    )
    amount_distribution: dict[str, int] = Field(
        default_factory=dict, description="Amount -> request count on the rail"
    )
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    average_wait_minutes: float | None = None
    sample_size: int = Field(default=0, ge=0, description="Requests at the amount")
    deposit_count: int = Field(default=0, ge=0)
    withdrawal_count: int = Field(default=0, ge=0)
    observed_hours: float = Field(default=0.0, ge=0.0)


class StaticPatternAnalyzer(PatternAnalyzer):
    """Returns fixed patterns regardless of the query."""

    def __init__(self, patterns: HistoricalPatterns | None = None):
        self.patterns = patterns or HistoricalPatterns()

    async def analyze(
        self, payment_method: PaymentMethod, amount, timeframe_hours: float
    ) -> HistoricalPatterns:
        return self.patterns


class HistoryPatternAnalyzer(PatternAnalyzer):
    """Derives patterns from a snapshot of completed request history."""

    def __init__(self, records: Iterable[MatchRecord]):
        self.records = list(records)

    async def analyze(
        self, payment_method: PaymentMethod, amount, timeframe_hours: float
    ) -> HistoricalPatterns:
        return self.summarize(payment_method, Decimal(str(amount)))

    def summarize(self, payment_method: PaymentMethod, amount: Decimal) -> HistoricalPatterns:
        """Aggregate the rail's records, focusing on those at ``amount``."""
        rail = [r for r in self.records if r.payment_method is PaymentMethod(payment_method)]
        at_amount = [r for r in rail if r.amount == amount]

        if not at_amount:
            return HistoricalPatterns(
                amount_distribution=_amount_distribution(rail),
            )

        matched = [r for r in at_amount if r.matched_at is not None]
        waits = [r.wait_minutes for r in matched]
        sides = Counter(r.type for r in at_amount)

        return HistoricalPatterns(
            hourly_activity=dict(Counter(_utc_hour(r.created_at) for r in at_amount)),
            amount_distribution=_amount_distribution(rail),
            success_rate=len(matched) / len(at_amount),
            average_wait_minutes=sum(waits) / len(waits) if waits else None,
            sample_size=len(at_amount),
            deposit_count=sides[RequestType.DEPOSIT],
            withdrawal_count=sides[RequestType.WITHDRAWAL],
            observed_hours=_observed_hours(r.created_at for r in at_amount),
        )


def _utc_hour(moment: datetime) -> int:
    offset = moment.utcoffset()
    if offset is None:
        return moment.hour
    return (moment - offset).hour


def _amount_distribution(records: list[MatchRecord]) -> dict[str, int]:
    return dict(Counter(str(r.amount) for r in records))


def _observed_hours(moments: Iterable[datetime]) -> float:
    """Span covered by the samples, never less than one hour."""
    moments = list(moments)
    span = (max(moments) - min(moments)).total_seconds() / 3600
    return max(span, 1.0)


class PredictiveAnalyzer:
    """Forecasts matching opportunities from historical patterns."""

    def __init__(
        self,
        pattern_analyzer: PatternAnalyzer | None = None,
        timeout_seconds: float = 2.0,
    ):
        """
        Args:
            pattern_analyzer: History source (default: no history)
            timeout_seconds: Upper bound on the pattern analysis call
        """
        self.pattern_analyzer = pattern_analyzer or StaticPatternAnalyzer()
        self.timeout_seconds = timeout_seconds

    async def predict_matching_opportunities(
        self,
        payment_method: PaymentMethod | str,
        amount: Decimal | float | int,
        timeframe_hours: float = 24,
    ) -> MatchingForecast:
        """
        Forecast matching opportunities for a rail and amount.

        Args:
            payment_method: Rail to forecast
            amount: Transfer amount of interest
            timeframe_hours: Forecast horizon

        Returns:
            MatchingForecast

        Raises:
            ValueError: If amount or timeframe is not positive
        """
        method = PaymentMethod(payment_method)
        if Decimal(str(amount)) <= 0:
            raise ValueError("amount must be positive")
        if timeframe_hours <= 0:
            raise ValueError("timeframe_hours must be positive")

        try:
            patterns = await call_with_timeout(
                self.pattern_analyzer.analyze(method, amount, timeframe_hours),
                self.timeout_seconds,
                operation_name="pattern_analysis",
            )
        except Exception as e:
            logger.warning(
                "pattern_analysis_degraded",
                payment_method=method.value,
                error=str(e),
            )
            patterns = HistoricalPatterns()

        return MatchingForecast(
            predicted_matches=self.predict_matches(patterns, timeframe_hours),
            confidence=self.prediction_confidence(patterns),
            recommended_timing_windows=self.recommended_timing(patterns),
            market_conditions_summary=self.market_conditions(patterns),
        )

    @staticmethod
    def predict_matches(patterns: HistoricalPatterns, timeframe_hours: float) -> int:
        if patterns.sample_size == 0 or patterns.observed_hours <= 0:
            return 0
        rate = patterns.sample_size / patterns.observed_hours
        return int(math.floor(rate * timeframe_hours * patterns.success_rate))

    @staticmethod
    def prediction_confidence(patterns: HistoricalPatterns) -> float:
        n = patterns.sample_size
        return min(CONFIDENCE_CAP, n / (n + CONFIDENCE_HALF_SAMPLE))

    @staticmethod
    def recommended_timing(patterns: HistoricalPatterns) -> list[str]:
        """Busiest hours first; ties go to the earlier hour."""
        busiest = sorted(patterns.hourly_activity.items(), key=lambda kv: (-kv[1], kv[0]))
        return [
            f"{hour:02d}:00-{(hour + 1) % 24:02d}:00 UTC"
            for hour, count in busiest[:TIMING_WINDOWS]
            if count > 0
        ]

    @staticmethod
    def market_conditions(patterns: HistoricalPatterns) -> str:
        if patterns.sample_size == 0:
            return INSUFFICIENT_HISTORY
        if patterns.deposit_count == 0:
            return SHORT_DEPOSITS
        ratio = patterns.withdrawal_count / patterns.deposit_count
        if ratio < 0.5:
            return SHORT_WITHDRAWALS
        if ratio > 2:
            return SHORT_DEPOSITS
        return BALANCED_MARKET
