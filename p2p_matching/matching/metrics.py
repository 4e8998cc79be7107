"""Metrics tracking for the matching engine."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from p2p_matching.matching.models import MatchingResult

logger = logging.getLogger(__name__)


class ReasonContribution(BaseModel):
    """Tracks how often a match reason appears on best matches."""

    reason: str
    occurrences: int = 0
    total_score: float = 0.0
    avg_score: float = 0.0

    def update(self, score: float) -> None:
        """Record a best match carrying this reason."""
        self.occurrences += 1
        self.total_score += score
        self.avg_score = self.total_score / self.occurrences


class ScoreDistribution(BaseModel):
    """Distribution of best-match scores."""

    very_high: int = Field(default=0, description="Score >= 400")
    high: int = Field(default=0, description="300 <= score < 400")
    medium: int = Field(default=0, description="200 <= score < 300")
    low: int = Field(default=0, description="100 <= score < 200")
    very_low: int = Field(default=0, description="Score < 100")

    def add_score(self, score: float) -> None:
        """Add a score to the distribution."""
        if score >= 400:
            self.very_high += 1
        elif score >= 300:
            self.high += 1
        elif score >= 200:
            self.medium += 1
        elif score >= 100:
            self.low += 1
        else:
            self.very_low += 1

    def get_summary(self) -> dict[str, Any]:
        """Get distribution summary."""
        total = self.very_high + self.high + self.medium + self.low + self.very_low
        if total == 0:
            return {}

        return {
            "very_high_pct": self.very_high / total,
            "high_pct": self.high / total,
            "medium_pct": self.medium / total,
            "low_pct": self.low / total,
            "very_low_pct": self.very_low / total,
            "counts": {
                "very_high": self.very_high,
                "high": self.high,
                "medium": self.medium,
                "low": self.low,
                "very_low": self.very_low,
            },
        }


class MatchingMetrics(BaseModel):
    """Running metrics over every search the engine performs."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Searches
    total_searches: int = 0
    total_matched: int = 0
    total_no_match: int = 0
    no_match_reasons: dict[str, int] = Field(default_factory=dict)

    # Candidates
    total_pool_size: int = 0
    total_eligible: int = 0
    total_candidates: int = 0
    avg_candidates_per_search: float = 0.0

    # Timing
    total_search_time_ms: float = 0.0
    avg_search_time_ms: float = 0.0
    max_search_time_ms: float = 0.0

    # Scores
    score_distribution: ScoreDistribution = Field(default_factory=ScoreDistribution)
    avg_best_score: float = 0.0
    reason_contributions: dict[str, ReasonContribution] = Field(default_factory=dict)

    def add_match_result(self, result: MatchingResult) -> None:
        """
        Add a matching result to metrics.

        Args:
            result: Result returned by a search
        """
        meta = result.search_metadata
        self.total_searches += 1
        self.last_updated = datetime.now(timezone.utc)

        self.total_pool_size += meta.pool_size
        self.total_eligible += meta.eligible_count
        self.total_candidates += meta.total_candidates
        self.avg_candidates_per_search = self.total_candidates / self.total_searches

        self.total_search_time_ms += meta.search_time_ms
        self.avg_search_time_ms = self.total_search_time_ms / self.total_searches
        self.max_search_time_ms = max(self.max_search_time_ms, meta.search_time_ms)

        best = result.best_match
        if best is None:
            self.total_no_match += 1
            reason = result.no_match_reason or "unknown"
            self.no_match_reasons[reason] = self.no_match_reasons.get(reason, 0) + 1
            return

        self.total_matched += 1
        self.score_distribution.add_score(best.score)

        # Incremental average
        self.avg_best_score = (
            self.avg_best_score * (self.total_matched - 1) + best.score
        ) / self.total_matched

        for reason in best.match_reasons:
            if reason not in self.reason_contributions:
                self.reason_contributions[reason] = ReasonContribution(reason=reason)
            self.reason_contributions[reason].update(best.score)

    @property
    def success_rate(self) -> float:
        if self.total_searches == 0:
            return 0.0
        return self.total_matched / self.total_searches

    def get_summary(self) -> dict[str, Any]:
        """
        Get comprehensive metrics summary.

        Returns:
            Dictionary of all metrics
        """
        return {
            "timing": {
                "started_at": self.started_at.isoformat(),
                "last_updated": self.last_updated.isoformat(),
                "duration_seconds": (
                    self.last_updated - self.started_at
                ).total_seconds(),
            },
            "searches": {
                "total": self.total_searches,
                "matched": self.total_matched,
                "no_match": self.total_no_match,
                "success_rate": self.success_rate,
                "no_match_reasons": dict(self.no_match_reasons),
            },
            "candidates": {
                "total_pool_size": self.total_pool_size,
                "total_eligible": self.total_eligible,
                "total_scored": self.total_candidates,
                "avg_per_search": self.avg_candidates_per_search,
            },
            "search_time_ms": {
                "average": self.avg_search_time_ms,
                "max": self.max_search_time_ms,
            },
            "scores": {
                "average_best": self.avg_best_score,
                "distribution": self.score_distribution.get_summary(),
            },
            "reasons": {
                name: {
                    "occurrences": contrib.occurrences,
                    "avg_score": contrib.avg_score,
                }
                for name, contrib in self.reason_contributions.items()
            },
        }


# Global metrics instance
_global_metrics = MatchingMetrics()


def get_metrics() -> MatchingMetrics:
    """Get global metrics instance."""
    return _global_metrics


def reset_metrics() -> None:
    """Reset global metrics."""
    global _global_metrics
    _global_metrics = MatchingMetrics()
    logger.info("Matching metrics reset")
