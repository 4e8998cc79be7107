"""Configuration for the matching engine.

Score Composition:
------------------
For one deposit/withdrawal pair the scorer adds up:
   - rule scores      : base_score + summed condition weights, per firing rule
   - time score       : max(0, 100 - combined age in hours / 2)
   - exact bonus      : +50 when amounts are identical
   - priority bonus   : +20 when either request is high priority
and then subtracts the risk score when it exceeds ``risk_penalty_threshold``.
The total is clamped at zero.

Risk Composition:
-----------------
   - geographic mismatch     : +15
   - creation gap over 24h   : +10
   - amount over 1000        : +20
   - reputation              : average of both customers' lookups (0-100)
A pairing is "recommended" while its risk score stays below 50.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from p2p_matching.core.config import Settings


class ScoringConfig(BaseModel):
    """Bonuses and decay applied on top of rule scores."""

    time_score_ceiling: float = Field(
        default=100.0, ge=0.0, description="Time score for two brand-new requests"
    )
    time_decay_window_ms: int = Field(
        default=2 * 3_600_000,
        ge=1,
        description="Combined age (ms) that removes one point of time score",
    )
    exact_amount_bonus: float = Field(
        default=50.0, ge=0.0, description="Bonus for identical amounts"
    )
    priority_bonus: float = Field(
        default=20.0, ge=0.0, description="Bonus when either side is high priority"
    )
    risk_penalty_threshold: float = Field(
        default=30.0,
        ge=0.0,
        description="Risk scores above this are subtracted from the total",
    )


class RiskConfig(BaseModel):
    """Weights and thresholds for risk composition."""

    geographic_mismatch_score: float = Field(default=15.0, ge=0.0)
    timing_gap_score: float = Field(default=10.0, ge=0.0)
    timing_gap_hours: float = Field(
        default=24.0, gt=0.0, description="Creation gap that counts as risky"
    )
    unusual_amount_score: float = Field(default=20.0, ge=0.0)
    unusual_amount_threshold: Decimal = Field(
        default=Decimal("1000"), gt=0, description="Amounts above this are unusual"
    )
    recommend_below: float = Field(
        default=50.0, gt=0.0, description="Pairings below this risk are recommended"
    )
    default_risk_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Reputation substituted when a lookup fails or times out",
    )
    provider_timeout_seconds: float = Field(
        default=2.0, gt=0.0, le=60.0, description="Timeout per collaborator call"
    )

    def risk_penalty_cap(self) -> float:
        """Highest risk score the assessor can produce (reputation tops out at 100)."""
        return (
            self.geographic_mismatch_score
            + self.timing_gap_score
            + self.unusual_amount_score
            + 100.0
        )


class SettlementConfig(BaseModel):
    """Inputs to the settlement-time estimate."""

    base_minutes: float = Field(default=30.0, gt=0.0)
    method_multipliers: dict[str, float] = Field(
        default_factory=lambda: {
            "venmo": 1.0,
            "cashapp": 1.0,
            "paypal": 1.2,
            "zelle": 1.5,
        }
    )
    large_amount_threshold: Decimal = Field(default=Decimal("500"), gt=0)
    large_amount_multiplier: float = Field(default=1.5, ge=1.0)


class RankingConfig(BaseModel):
    """Candidate truncation and result metadata."""

    max_candidates: int = Field(
        default=10, ge=1, le=1000, description="Candidates kept after ranking"
    )
    algorithm_version: str = Field(default="2.0.0")
    drop_zero_scores: bool = Field(
        default=True, description="Discard candidates whose clamped score is 0"
    )


class QueueConfig(BaseModel):
    """Thresholds for queue health recommendations."""

    avg_match_time_minutes: float = Field(default=30.0, gt=0.0)
    low_supply_ratio: float = Field(
        default=0.5, ge=0.0, description="Below this, withdrawals are scarce"
    )
    high_supply_ratio: float = Field(
        default=2.0, ge=0.0, description="Above this, deposits are scarce"
    )
    min_amount_overlap: float = Field(default=0.3, ge=0.0, le=1.0)
    bottleneck_ratio: float = Field(
        default=3.0, gt=0.0, description="Deposit/withdrawal count ratio per amount"
    )

    def validate_ratios(self) -> None:
        """Ensure low_supply_ratio < high_supply_ratio.

        Raises ValueError if the supply thresholds are inverted.
        """
        if not self.low_supply_ratio < self.high_supply_ratio:
            raise ValueError("Queue ratios must satisfy: low_supply < high_supply")


class MatchingConfig(BaseModel):
    """Main configuration for the matching engine."""

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)

    debug: bool = Field(default=False, description="Enable per-candidate debug logs")

    def validate_config(self) -> None:
        """Validate cross-field constraints.

        Raises ValueError if the configuration is inconsistent.
        """
        self.queue.validate_ratios()

        if self.risk.risk_penalty_cap() < self.scoring.risk_penalty_threshold:
            raise ValueError(
                "risk_penalty_threshold exceeds the maximum reachable risk score"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> MatchingConfig:
        """Create MatchingConfig from process settings."""
        return cls(
            risk=RiskConfig(
                default_risk_score=settings.MATCHING_DEFAULT_RISK_SCORE,
                provider_timeout_seconds=settings.MATCHING_PROVIDER_TIMEOUT_SECONDS,
            ),
            ranking=RankingConfig(
                max_candidates=settings.MATCHING_MAX_CANDIDATES,
                algorithm_version=settings.MATCHING_ALGORITHM_VERSION,
            ),
            queue=QueueConfig(
                avg_match_time_minutes=settings.MATCHING_AVG_MATCH_TIME_MINUTES,
            ),
            debug=settings.DEBUG,
        )
