import asyncio
import itertools
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import p2p_matching` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from p2p_matching.matching.metrics import MatchingMetrics  # noqa: E402
from p2p_matching.matching.models import (  # noqa: E402
    PaymentMethod,
    PaymentRequest,
    RequestType,
)
from p2p_matching.matching.providers import (  # noqa: E402
    GeoComparator,
    ProviderError,
    RiskProvider,
)

NOW = datetime(2025, 11, 5, 12, 0, 0, tzinfo=timezone.utc)


class FailingRiskProvider(RiskProvider):
    """Reputation service that is always down."""

    async def get_risk(self, customer_id: str) -> int:
        raise ProviderError(f"reputation service unavailable for {customer_id}")


class SlowRiskProvider(RiskProvider):
    """Reputation service that never answers within the timeout."""

    def __init__(self, delay: float = 1.0):
        self.delay = delay

    async def get_risk(self, customer_id: str) -> int:
        await asyncio.sleep(self.delay)
        return 0


class FailingGeoComparator(GeoComparator):
    async def mismatch(self, first: PaymentRequest, second: PaymentRequest) -> bool:
        raise ProviderError("geo service unavailable")


@pytest.fixture
def now():
    """Fixed reference time for every test."""
    return NOW


@pytest.fixture
def make_request():
    """Factory for payment requests with unique ids and customers."""
    counter = itertools.count(1)

    def _make(
        type=RequestType.DEPOSIT,
        amount="100",
        payment_method=PaymentMethod.VENMO,
        created_at=None,
        expires_at=None,
        **kwargs,
    ):
        n = next(counter)
        kwargs.setdefault("id", f"{RequestType(type).value[0]}-{n}")
        kwargs.setdefault("customer_id", f"cust-{n}")
        return PaymentRequest(
            type=type,
            amount=Decimal(str(amount)),
            payment_method=payment_method,
            created_at=created_at or NOW,
            expires_at=expires_at or NOW + timedelta(days=1),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_deposit(make_request):
    def _make(**kwargs):
        return make_request(type=RequestType.DEPOSIT, **kwargs)

    return _make


@pytest.fixture
def make_withdrawal(make_request):
    def _make(**kwargs):
        return make_request(type=RequestType.WITHDRAWAL, **kwargs)

    return _make


@pytest.fixture
def failing_risk_provider():
    return FailingRiskProvider()


@pytest.fixture
def slow_risk_provider():
    return SlowRiskProvider(delay=1.0)


@pytest.fixture
def failing_geo_comparator():
    return FailingGeoComparator()


@pytest.fixture
def metrics():
    """Isolated metrics instance so tests don't share the global one."""
    return MatchingMetrics()
