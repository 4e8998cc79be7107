"""Ranking and result packaging for scored candidates."""

from __future__ import annotations

import logging

from p2p_matching.matching.config import RankingConfig
from p2p_matching.matching.models import (
    MatchingCandidate,
    MatchingResult,
    PaymentRequest,
    SearchMetadata,
)

logger = logging.getLogger(__name__)

NO_ELIGIBLE_REASON = "No eligible counterparties"
NOT_PENDING_REASON = "Request is not pending"
EXPIRED_REASON = "Request has expired"
ZERO_SCORE_REASON = "All candidates scored zero"


class CandidateRanker:
    """Orders candidates deterministically and builds the MatchingResult."""

    def __init__(self, config: RankingConfig | None = None):
        self.config = config or RankingConfig()

    @staticmethod
    def sort_key(request: PaymentRequest, candidate: MatchingCandidate) -> tuple:
        """Score descending, then counterparty created_at ascending, then id."""
        counterparty = candidate.counterparty_of(request)
        return (-candidate.score, counterparty.created_at, counterparty.id)

    def rank_candidates(
        self, request: PaymentRequest, candidates: list[MatchingCandidate]
    ) -> list[MatchingCandidate]:
        """
        Rank candidates by score (highest first) and assign 1-based ranks.

        Args:
            request: The request the candidates were scored for
            candidates: Scored candidates

        Returns:
            Ranked copies of the candidates
        """
        if not candidates:
            return []

        ranked = sorted(candidates, key=lambda c: self.sort_key(request, c))
        ranked = [c.model_copy(update={"rank": i}) for i, c in enumerate(ranked, start=1)]

        logger.info(
            f"[RANKER] Candidates ranked | "
            f"Best: {ranked[0].counterparty_of(request).id} ({ranked[0].score:.2f}) | "
            f"Worst: {ranked[-1].counterparty_of(request).id} ({ranked[-1].score:.2f})"
        )
        return ranked

    def create_match_result(
        self,
        request: PaymentRequest,
        candidates: list[MatchingCandidate],
        metadata: SearchMetadata,
        max_candidates: int | None = None,
    ) -> MatchingResult:
        """
        Rank, truncate and package candidates.

        Zero-score candidates are dropped first when ``drop_zero_scores`` is set.
        ``metadata.total_candidates`` is filled with the pre-truncation count.

        Raises:
            ValueError: If ``max_candidates`` is given and below 1
        """
        if max_candidates is None:
            limit = self.config.max_candidates
        elif max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")
        else:
            limit = max_candidates

        scored = candidates
        if self.config.drop_zero_scores:
            scored = [c for c in candidates if c.score > 0]

        ranked = self.rank_candidates(request, scored)
        top = ranked[:limit]

        metadata.total_candidates = len(scored)
        result = MatchingResult(
            request_id=request.id,
            candidates=top,
            best_match=top[0] if top else None,
            search_metadata=metadata,
        )

        if not top:
            result.no_match_reason = ZERO_SCORE_REASON if candidates else NO_ELIGIBLE_REASON

        return result

    def no_match(
        self, request: PaymentRequest, reason: str, metadata: SearchMetadata
    ) -> MatchingResult:
        return MatchingResult(
            request_id=request.id,
            no_match_reason=reason,
            search_metadata=metadata,
        )
