"""Data models for payment requests, candidates and matching results."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RequestType(str, Enum):
    """Side of the queue a request sits on."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"

    @property
    def counterpart(self) -> RequestType:
        if self is RequestType.DEPOSIT:
            return RequestType.WITHDRAWAL
        return RequestType.DEPOSIT


class PaymentMethod(str, Enum):
    """Supported P2P rails."""

    VENMO = "venmo"
    CASHAPP = "cashapp"
    PAYPAL = "paypal"
    ZELLE = "zelle"


class RequestStatus(str, Enum):
    """Lifecycle status, owned by the queue manager."""

    PENDING = "pending"
    MATCHED = "matched"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class RequestPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class PaymentDetails(BaseModel):
    """Rail-specific contact info for the off-platform transfer."""

    username: str | None = Field(default=None, description="Venmo/Cash App/PayPal handle")
    phone_number: str | None = Field(default=None, description="Zelle phone number")
    email: str | None = Field(default=None, description="PayPal or Zelle email")
    full_name: str | None = Field(default=None, description="Name for verification")


class GeoLocation(BaseModel):
    """Approximate customer location attached by the queue manager."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    region: str | None = Field(default=None, description="State / region label")

    def distance_km(self, other: GeoLocation) -> float:
        """Great-circle (haversine) distance to another location."""
        earth_radius_km = 6371.0
        lat1, lon1 = math.radians(self.latitude), math.radians(self.longitude)
        lat2, lon2 = math.radians(other.latitude), math.radians(other.longitude)
        dlat = lat2 - lat1
        dlon = lon2 - lon1
        a = (
            math.sin(dlat / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        )
        return 2 * earth_radius_km * math.asin(math.sqrt(a))


class MatchedWith(BaseModel):
    """Reference to the counterparty once the queue manager commits a match."""

    request_id: str
    customer_id: str
    matched_at: datetime


class PaymentRequest(BaseModel):
    """A pending deposit or withdrawal, as read from the queue snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Request identifier")
    customer_id: str = Field(..., description="Owning customer")
    type: RequestType
    payment_method: PaymentMethod
    amount: Decimal = Field(..., gt=0, description="Transfer amount")
    currency: str = Field(default="USD")
    status: RequestStatus = Field(default=RequestStatus.PENDING)
    priority: RequestPriority = Field(default=RequestPriority.NORMAL)
    created_at: datetime
    expires_at: datetime
    payment_details: PaymentDetails = Field(default_factory=PaymentDetails)
    matched_with: MatchedWith | None = None

    # Snapshot enrichment
    customer_rating: float | None = Field(
        default=None, ge=0.0, le=5.0, description="Customer reputation rating (0-5)"
    )
    location: GeoLocation | None = None

    @field_validator("created_at", "expires_at")
    @classmethod
    def _require_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("timestamps must be timezone-aware")
        return value

    def age_ms(self, now: datetime) -> float:
        """Milliseconds since the request was created."""
        return (now - self.created_at).total_seconds() * 1000

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


class RiskAssessment(BaseModel):
    """Composite risk for one deposit/withdrawal pairing."""

    risk_score: float = Field(default=0.0, ge=0.0)
    risk_factors: list[str] = Field(default_factory=list)
    mitigation_strategies: list[str] = Field(default_factory=list)
    recommended: bool = True
    degraded: bool = Field(
        default=False, description="A collaborator call fell back to a default"
    )

    def add_factor(self, score: float, factor: str, mitigation: str) -> None:
        """Add a triggered risk factor and its mitigation."""
        self.risk_score += score
        self.risk_factors.append(factor)
        self.mitigation_strategies.append(mitigation)


class MatchingCandidate(BaseModel):
    """A proposed deposit/withdrawal pairing with its computed score."""

    deposit_request: PaymentRequest
    withdrawal_request: PaymentRequest
    score: float = Field(default=0.0, ge=0.0)
    match_reasons: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    estimated_settlement_time: int = Field(
        default=0, ge=0, description="Estimated minutes to settle"
    )
    risk: RiskAssessment | None = None
    rank: int | None = Field(default=None, description="Rank among candidates (1=best)")

    def counterparty_of(self, request: PaymentRequest) -> PaymentRequest:
        """Return the side of the pairing that is not ``request``."""
        if request.type is RequestType.DEPOSIT:
            return self.withdrawal_request
        return self.deposit_request

    def get_score_breakdown(self) -> dict:
        return {
            "deposit_id": self.deposit_request.id,
            "withdrawal_id": self.withdrawal_request.id,
            "score": self.score,
            "reasons": list(self.match_reasons),
            "risk_score": self.risk.risk_score if self.risk else None,
            "risk_factors": list(self.risk_factors),
            "estimated_settlement_time": self.estimated_settlement_time,
        }


class SearchMetadata(BaseModel):
    total_candidates: int = Field(default=0, description="Scored candidates before truncation")
    search_time_ms: float = Field(default=0.0, ge=0.0)
    algorithm_version: str = "2.0.0"
    pool_size: int = Field(default=0, description="Requests offered to the filter")
    eligible_count: int = Field(default=0, description="Requests passing eligibility")
    excluded_count: int = Field(default=0, description="Counterparties excluded by the caller")
    search_id: str | None = None


class MatchingResult(BaseModel):
    """Ranked candidates for one request."""

    request_id: str
    candidates: list[MatchingCandidate] = Field(default_factory=list)
    best_match: MatchingCandidate | None = None
    no_match_reason: str | None = None
    search_metadata: SearchMetadata = Field(default_factory=SearchMetadata)

    @property
    def matched(self) -> bool:
        return self.best_match is not None

    def get_match_summary(self) -> dict:
        best = self.best_match
        return {
            "request_id": self.request_id,
            "matched": self.matched,
            "best_score": best.score if best else None,
            "deposit_id": best.deposit_request.id if best else None,
            "withdrawal_id": best.withdrawal_request.id if best else None,
            "candidates": len(self.candidates),
            "total_candidates": self.search_metadata.total_candidates,
            "no_match_reason": self.no_match_reason,
            "search_time_ms": self.search_metadata.search_time_ms,
        }


class Queue(BaseModel):
    """Read-only view of one rail's pending deposits and withdrawals."""

    payment_method: PaymentMethod
    deposit_queue: list[PaymentRequest] = Field(default_factory=list)
    withdrawal_queue: list[PaymentRequest] = Field(default_factory=list)
    total_matched: int = Field(default=0, ge=0)
    last_match_time: datetime | None = None


class QueueOptimization(BaseModel):
    """Queue health report. Wait times may be ``inf`` when a side is empty."""

    payment_method: PaymentMethod | None = None
    recommendations: list[str] = Field(default_factory=list)
    expected_wait_times: dict[str, float] = Field(default_factory=dict)
    demand_supply_ratio: float = 0.0
    amount_overlap: float = 0.0
    bottleneck_amounts: list[Decimal] = Field(default_factory=list)


class QueueMatchProposal(BaseModel):
    """Conflict-free pairings proposed for a whole queue."""

    payment_method: PaymentMethod
    proposals: list[MatchingCandidate] = Field(default_factory=list)
    unmatched_deposit_ids: list[str] = Field(default_factory=list)
    unmatched_withdrawal_ids: list[str] = Field(default_factory=list)

    @property
    def total_proposed(self) -> int:
        return len(self.proposals)


class MatchRecord(BaseModel):
    """One historical request outcome, used for forecasting."""

    payment_method: PaymentMethod
    type: RequestType
    amount: Decimal = Field(..., gt=0)
    created_at: datetime
    matched_at: datetime | None = Field(default=None, description="None if never matched")

    @property
    def wait_minutes(self) -> float | None:
        if self.matched_at is None:
            return None
        return (self.matched_at - self.created_at).total_seconds() / 60


class MatchingForecast(BaseModel):
    """Forecast of matching opportunities for a rail and amount."""

    predicted_matches: int = Field(default=0, ge=0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    recommended_timing_windows: list[str] = Field(default_factory=list)
    market_conditions_summary: str = ""
