"""
Risk assessment for proposed pairings.

Risk signals are additive. Collaborator calls are bounded by the
configured timeout; a failed or slow call degrades to a conservative
default instead of failing the candidacy.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from p2p_matching.matching.config import RiskConfig
from p2p_matching.matching.models import PaymentRequest, RiskAssessment
from p2p_matching.matching.providers import (
    GeoComparator,
    NullGeoComparator,
    ProviderTimeoutError,
    RiskProvider,
    StaticRiskProvider,
)

logger = structlog.get_logger()

T = TypeVar("T")

GEO_FACTOR = "Geographic mismatch may increase fraud risk"
GEO_MITIGATION = "Require additional verification for cross-region matches"
TIMING_FACTOR = "Requests are far apart in time"
TIMING_MITIGATION = "Prioritize recent requests for matching"
AMOUNT_FACTOR = "Unusual transaction amount"
AMOUNT_MITIGATION = "Require enhanced verification for large amounts"
LOOKUP_FACTOR = "Reputation lookup unavailable"
LOOKUP_MITIGATION = "Manually review counterparty history before release"


async def call_with_timeout(
    call: Awaitable[T], timeout: float, operation_name: str = "operation"
) -> T:
    """
    Await a collaborator call with an upper time bound.

    Raises:
        ProviderTimeoutError: If the call does not finish within ``timeout``
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ProviderTimeoutError(
            f"{operation_name} exceeded {timeout:.2f}s"
        ) from e


class RiskAssessor:
    """Composes geography, timing, amount and reputation risk."""

    def __init__(
        self,
        config: RiskConfig | None = None,
        risk_provider: RiskProvider | None = None,
        geo_comparator: GeoComparator | None = None,
    ):
        """
        Args:
            config: Risk weights and thresholds
            risk_provider: Reputation service (default: everyone scores 0)
            geo_comparator: Geo-compare service (default: never mismatched)
        """
        self.config = config or RiskConfig()
        self.risk_provider = risk_provider or StaticRiskProvider()
        self.geo_comparator = geo_comparator or NullGeoComparator()

    async def assess(
        self, deposit: PaymentRequest, withdrawal: PaymentRequest
    ) -> RiskAssessment:
        """
        Assess the risk of pairing ``deposit`` with ``withdrawal``.

        Returns:
            RiskAssessment with score, factors, mitigations and recommendation
        """
        assessment = RiskAssessment()

        mismatch, geo_ok = await self._geo_mismatch(deposit, withdrawal)
        if not geo_ok:
            assessment.degraded = True
        if mismatch:
            assessment.add_factor(
                self.config.geographic_mismatch_score, GEO_FACTOR, GEO_MITIGATION
            )

        gap_hours = abs((deposit.created_at - withdrawal.created_at).total_seconds()) / 3600
        if gap_hours > self.config.timing_gap_hours:
            assessment.add_factor(
                self.config.timing_gap_score, TIMING_FACTOR, TIMING_MITIGATION
            )

        if self.is_unusual_amount(deposit) or self.is_unusual_amount(withdrawal):
            assessment.add_factor(
                self.config.unusual_amount_score, AMOUNT_FACTOR, AMOUNT_MITIGATION
            )

        (deposit_risk, deposit_ok), (withdrawal_risk, withdrawal_ok) = await asyncio.gather(
            self._customer_risk(deposit.customer_id),
            self._customer_risk(withdrawal.customer_id),
        )
        assessment.risk_score += (deposit_risk + withdrawal_risk) / 2
        if not (deposit_ok and withdrawal_ok):
            assessment.degraded = True
            assessment.risk_factors.append(LOOKUP_FACTOR)
            assessment.mitigation_strategies.append(LOOKUP_MITIGATION)

        assessment.recommended = assessment.risk_score < self.config.recommend_below
        return assessment

    def is_unusual_amount(self, request: PaymentRequest) -> bool:
        return request.amount > self.config.unusual_amount_threshold

    async def _customer_risk(self, customer_id: str) -> tuple[float, bool]:
        """Return (risk, lookup_succeeded), clamped to [0, 100]."""
        try:
            raw = await call_with_timeout(
                self.risk_provider.get_risk(customer_id),
                self.config.provider_timeout_seconds,
                operation_name="risk_lookup",
            )
        except Exception as e:
            logger.warning(
                "risk_lookup_degraded",
                customer_id=customer_id,
                default_risk=self.config.default_risk_score,
                error=str(e),
            )
            return float(self.config.default_risk_score), False
        return float(min(max(raw, 0), 100)), True

    async def _geo_mismatch(
        self, deposit: PaymentRequest, withdrawal: PaymentRequest
    ) -> tuple[bool, bool]:
        """Return (mismatch, comparison_succeeded). Failures count as a mismatch."""
        try:
            mismatch = await call_with_timeout(
                self.geo_comparator.mismatch(deposit, withdrawal),
                self.config.provider_timeout_seconds,
                operation_name="geo_compare",
            )
        except Exception as e:
            logger.warning(
                "geo_compare_degraded",
                deposit_id=deposit.id,
                withdrawal_id=withdrawal.id,
                error=str(e),
            )
            return True, False
        return bool(mismatch), True
