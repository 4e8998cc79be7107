"""Tests for risk assessment and collaborator degradation."""

import asyncio
from datetime import timedelta

import pytest

from p2p_matching.matching.config import RiskConfig
from p2p_matching.matching.models import GeoLocation
from p2p_matching.matching.providers import (
    ProviderTimeoutError,
    RegionGeoComparator,
    StaticRiskProvider,
)
from p2p_matching.matching.risk import (
    AMOUNT_FACTOR,
    GEO_FACTOR,
    LOOKUP_FACTOR,
    TIMING_FACTOR,
    RiskAssessor,
    call_with_timeout,
)


def _located(region: str) -> GeoLocation:
    return GeoLocation(latitude=40.0, longitude=-75.0, region=region)


@pytest.mark.asyncio
async def test_low_risk_pair_is_recommended(make_deposit, make_withdrawal):
    assessment = await RiskAssessor().assess(make_deposit(), make_withdrawal())

    assert assessment.risk_score == 0.0
    assert assessment.risk_factors == []
    assert assessment.recommended is True
    assert assessment.degraded is False


@pytest.mark.asyncio
async def test_unusual_amount_adds_twenty(make_deposit, make_withdrawal):
    assessment = await RiskAssessor().assess(
        make_deposit(amount="1500"), make_withdrawal(amount="1500")
    )

    assert assessment.risk_score == pytest.approx(20.0)
    assert AMOUNT_FACTOR in assessment.risk_factors
    assert assessment.recommended is True


@pytest.mark.asyncio
async def test_unusual_amount_with_reputation_is_not_recommended(make_deposit, make_withdrawal):
    assessor = RiskAssessor(risk_provider=StaticRiskProvider({"alice": 20, "bob": 40}))

    assessment = await assessor.assess(
        make_deposit(amount="1500", customer_id="alice"),
        make_withdrawal(amount="1500", customer_id="bob"),
    )

    # 20 (unusual) + (20 + 40) / 2
    assert assessment.risk_score == pytest.approx(50.0)
    assert assessment.recommended is False


@pytest.mark.asyncio
async def test_timing_gap(make_deposit, make_withdrawal, now):
    deposit = make_deposit(created_at=now - timedelta(hours=25))

    assessment = await RiskAssessor().assess(deposit, make_withdrawal())

    assert assessment.risk_score == pytest.approx(10.0)
    assert assessment.risk_factors == [TIMING_FACTOR]
    assert assessment.mitigation_strategies == ["Prioritize recent requests for matching"]


@pytest.mark.asyncio
async def test_region_geo_comparator(make_deposit, make_withdrawal):
    assessor = RiskAssessor(geo_comparator=RegionGeoComparator())

    mismatched = await assessor.assess(
        make_deposit(location=_located("New York")),
        make_withdrawal(location=_located("California")),
    )
    same_region = await assessor.assess(
        make_deposit(location=_located("New York")),
        make_withdrawal(location=_located("new-york, ")),
    )
    no_region = await assessor.assess(make_deposit(), make_withdrawal())

    assert GEO_FACTOR in mismatched.risk_factors
    assert mismatched.risk_score == pytest.approx(15.0)
    assert same_region.risk_factors == []
    assert no_region.risk_factors == []


@pytest.mark.asyncio
async def test_reputation_is_clamped(make_deposit, make_withdrawal):
    assessor = RiskAssessor(risk_provider=StaticRiskProvider(default=250))

    assessment = await assessor.assess(make_deposit(), make_withdrawal())

    assert assessment.risk_score == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_failing_reputation_degrades_to_default(
    make_deposit, make_withdrawal, failing_risk_provider
):
    assessor = RiskAssessor(risk_provider=failing_risk_provider)

    assessment = await assessor.assess(make_deposit(), make_withdrawal())

    assert assessment.risk_score == pytest.approx(50.0)
    assert assessment.degraded is True
    assert LOOKUP_FACTOR in assessment.risk_factors
    assert assessment.recommended is False


@pytest.mark.asyncio
async def test_slow_reputation_times_out(make_deposit, make_withdrawal, slow_risk_provider):
    """A lookup slower than the timeout falls back instead of blocking."""
    assessor = RiskAssessor(
        RiskConfig(provider_timeout_seconds=0.05, default_risk_score=40),
        risk_provider=slow_risk_provider,
    )

    assessment = await assessor.assess(make_deposit(), make_withdrawal())

    assert assessment.risk_score == pytest.approx(40.0)
    assert assessment.degraded is True


@pytest.mark.asyncio
async def test_failing_geo_counts_as_mismatch(
    make_deposit, make_withdrawal, failing_geo_comparator
):
    assessor = RiskAssessor(geo_comparator=failing_geo_comparator)

    assessment = await assessor.assess(make_deposit(), make_withdrawal())

    assert GEO_FACTOR in assessment.risk_factors
    assert assessment.risk_score == pytest.approx(15.0)
    assert assessment.degraded is True


@pytest.mark.asyncio
async def test_call_with_timeout_raises_provider_timeout():
    with pytest.raises(ProviderTimeoutError):
        await call_with_timeout(asyncio.sleep(1), 0.01, operation_name="sleep")
