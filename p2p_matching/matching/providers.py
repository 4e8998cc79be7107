"""
Collaborator interfaces for the matching engine.

The engine never performs I/O itself. Reputation lookups, geographic
comparison, fraud-pattern checks and historical pattern analysis are
injected through these interfaces so production services and
deterministic test doubles are interchangeable.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from rapidfuzz import fuzz

from p2p_matching.matching.models import PaymentMethod, PaymentRequest


class RiskProvider(ABC):
    """Per-customer reputation service."""

    @abstractmethod
    async def get_risk(self, customer_id: str) -> int:
        """
        Look up a customer's reputation risk.

        Args:
            customer_id: Customer identifier

        Returns:
            Risk score in [0, 100], higher is riskier

        Raises:
            ProviderError: If the lookup fails
        """
        pass


class GeoComparator(ABC):
    """Decides whether two requests come from mismatched geographies."""

    @abstractmethod
    async def mismatch(self, first: PaymentRequest, second: PaymentRequest) -> bool:
        """
        Compare the geography of two requests.

        Returns:
            True if the requests should be treated as cross-region
        """
        pass


class SuspiciousPatternCheck(ABC):
    """Fraud-signal hook consulted by the eligibility filter."""

    @abstractmethod
    def is_suspicious(self, request: PaymentRequest, counterparty: PaymentRequest) -> bool:
        """Return True to exclude ``counterparty`` for ``request``."""
        pass


class PatternAnalyzer(ABC):
    """Source of historical matching patterns for forecasting."""

    @abstractmethod
    async def analyze(
        self,
        payment_method: PaymentMethod,
        amount,
        timeframe_hours: float,
    ):
        """
        Summarize historical activity relevant to a forecast.

        Returns:
            HistoricalPatterns for the rail and amount
        """
        pass


class StaticRiskProvider(RiskProvider):
    """Deterministic reputation lookups backed by a mapping."""

    def __init__(self, scores: Optional[Mapping[str, int]] = None, default: int = 0):
        self.scores = dict(scores or {})
        self.default = default

    async def get_risk(self, customer_id: str) -> int:
        return self.scores.get(customer_id, self.default)


class NullGeoComparator(GeoComparator):
    """Never reports a mismatch. Used when no geo service is configured."""

    async def mismatch(self, first: PaymentRequest, second: PaymentRequest) -> bool:
        return False


_REGION_NOISE = re.compile(r"[^a-z0-9 ]+")


def normalize_region(region: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    cleaned = _REGION_NOISE.sub(" ", region.lower())
    return " ".join(cleaned.split())


class RegionGeoComparator(GeoComparator):
    """
    Flags a mismatch when both requests carry region labels that differ.

    Labels are compared with rapidfuzz token-sort similarity so formatting
    differences ("New York" vs "new-york, ") do not count as a mismatch.
    Requests without a region are never flagged.
    """

    def __init__(self, min_similarity: float = 0.85):
        """
        Args:
            min_similarity: Similarity (0-1) at or above which regions are equal
        """
        self.min_similarity = min_similarity

    def similarity(self, first: str, second: str) -> float:
        return fuzz.token_sort_ratio(normalize_region(first), normalize_region(second)) / 100.0

    async def mismatch(self, first: PaymentRequest, second: PaymentRequest) -> bool:
        region_a = first.location.region if first.location else None
        region_b = second.location.region if second.location else None
        if not region_a or not region_b:
            return False
        return self.similarity(region_a, region_b) < self.min_similarity


class NoSuspiciousPatterns(SuspiciousPatternCheck):
    """Default fraud hook: every pairing passes."""

    def is_suspicious(self, request: PaymentRequest, counterparty: PaymentRequest) -> bool:
        return False


class BlocklistPatternCheck(SuspiciousPatternCheck):
    """Excludes pairings involving blocked customers or previously paired customers."""

    def __init__(
        self,
        blocked_customers: Optional[set[str]] = None,
        blocked_pairs: Optional[set[frozenset[str]]] = None,
    ):
        self.blocked_customers = set(blocked_customers or set())
        self.blocked_pairs = set(blocked_pairs or set())

    def is_suspicious(self, request: PaymentRequest, counterparty: PaymentRequest) -> bool:
        if counterparty.customer_id in self.blocked_customers:
            return True
        pair = frozenset((request.customer_id, counterparty.customer_id))
        return pair in self.blocked_pairs


class ProviderError(Exception):
    """Base exception for collaborator failures."""

    pass


class ProviderTimeoutError(ProviderError):
    """Raised when a collaborator call exceeds its timeout."""

    pass
