"""Main matching engine that orchestrates the request-matching process."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Sequence

from p2p_matching.core.config import Settings, get_settings
from p2p_matching.core.logging import search_context
from p2p_matching.matching.config import MatchingConfig
from p2p_matching.matching.eligibility import EligibilityFilter
from p2p_matching.matching.forecast import PredictiveAnalyzer
from p2p_matching.matching.metrics import MatchingMetrics
from p2p_matching.matching.models import (
    MatchingForecast,
    MatchingResult,
    PaymentMethod,
    PaymentRequest,
    Queue,
    QueueMatchProposal,
    QueueOptimization,
    RequestStatus,
    RequestType,
    SearchMetadata,
)
from p2p_matching.matching.providers import (
    GeoComparator,
    PatternAnalyzer,
    RiskProvider,
    SuspiciousPatternCheck,
)
from p2p_matching.matching.queue import QueueOptimizer
from p2p_matching.matching.ranking import (
    EXPIRED_REASON,
    NO_ELIGIBLE_REASON,
    NOT_PENDING_REASON,
    CandidateRanker,
)
from p2p_matching.matching.risk import RiskAssessor
from p2p_matching.matching.rules import MatchingRule, RuleSet, default_rule_set
from p2p_matching.matching.scorer import MatchScorer

logger = logging.getLogger(__name__)


class InvalidRequestError(ValueError):
    """Raised when a query request is on the wrong side for the operation."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MatchingEngine:
    """
    Main matching engine for P2P deposit/withdrawal requests.

    Orchestrates:
    1. Eligibility filtering
    2. Rule-based scoring with risk assessment
    3. Ranking and truncation
    4. Metrics recording

    The engine reads snapshots only. Claiming a counterparty, persisting
    the match and status transitions belong to the queue manager, which
    re-invokes ``find_matches`` with ``exclude_ids`` when a claim loses a race.
    """

    def __init__(
        self,
        config: MatchingConfig | None = None,
        rule_set: RuleSet | None = None,
        risk_provider: RiskProvider | None = None,
        geo_comparator: GeoComparator | None = None,
        pattern_check: SuspiciousPatternCheck | None = None,
        pattern_analyzer: PatternAnalyzer | None = None,
        metrics: MatchingMetrics | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Initialize matching engine.

        Args:
            config: Matching configuration
            rule_set: Rules to score with (default: ``default_rule_set()``)
            risk_provider: Reputation service
            geo_comparator: Geo-compare service
            pattern_check: Fraud-signal hook for the eligibility filter
            pattern_analyzer: History source for forecasts
            metrics: Metrics sink (default: a fresh per-engine instance;
                pass ``get_metrics()`` to share the process-wide one)
            clock: Source of "now" (default: UTC wall clock)

        Raises:
            ValueError: If the configuration is inconsistent
        """
        self.config = config or MatchingConfig()
        self.config.validate_config()
        self.rule_set = rule_set if rule_set is not None else default_rule_set()
        self.metrics = metrics if metrics is not None else MatchingMetrics()
        self.clock = clock or _utcnow

        # Initialize components
        self.eligibility = EligibilityFilter(pattern_check)
        self.risk_assessor = RiskAssessor(self.config.risk, risk_provider, geo_comparator)
        self.scorer = MatchScorer(self.config, self.rule_set, self.risk_assessor)
        self.ranker = CandidateRanker(self.config.ranking)
        self.queue_optimizer = QueueOptimizer(self.config.queue)
        self.forecaster = PredictiveAnalyzer(
            pattern_analyzer, timeout_seconds=self.config.risk.provider_timeout_seconds
        )

        logger.info(
            f"Matching engine initialized successfully "
            f"(rules: {self.rule_set.active_rules}/{self.rule_set.total_rules} active, "
            f"version: {self.config.ranking.algorithm_version})"
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> MatchingEngine:
        """Build an engine whose configuration comes from process settings."""
        settings = settings or get_settings()
        return cls(config=MatchingConfig.from_settings(settings), **kwargs)

    # Rule management. Each call swaps in a new immutable RuleSet; searches
    # already running keep the set they started with.

    def get_matching_rules(self) -> tuple[MatchingRule, ...]:
        return self.rule_set.rules

    def add_matching_rule(self, rule: MatchingRule) -> None:
        self._set_rule_set(self.rule_set.with_rule(rule))
        logger.info(f"[RULES] Added rule '{rule.id}' ({rule.name})")

    def update_matching_rule(self, rule_id: str, **changes: Any) -> None:
        """
        Apply ``changes`` to an existing rule.

        Raises:
            KeyError: If no rule has ``rule_id``
        """
        self._set_rule_set(self.rule_set.with_updates(rule_id, **changes))
        logger.info(f"[RULES] Updated rule '{rule_id}': {sorted(changes)}")

    def remove_matching_rule(self, rule_id: str) -> None:
        self._set_rule_set(self.rule_set.without_rule(rule_id))
        logger.info(f"[RULES] Removed rule '{rule_id}'")

    def _set_rule_set(self, rule_set: RuleSet) -> None:
        self.rule_set = rule_set
        self.scorer.rule_set = rule_set

    # Searches

    async def find_matches(
        self,
        request: PaymentRequest,
        pool: Sequence[PaymentRequest],
        exclude_ids: Iterable[str] = (),
        max_candidates: int | None = None,
        now: datetime | None = None,
        rule_set: RuleSet | None = None,
    ) -> MatchingResult:
        """
        Find ranked counterparties for a request.

        Args:
            request: Deposit or withdrawal looking for a counterparty
            pool: Opposite-side requests from the queue snapshot
            exclude_ids: Counterparty ids already claimed elsewhere
            max_candidates: Override for the candidate limit
            now: Reference time (default: engine clock)
            rule_set: Per-call rule override

        Returns:
            MatchingResult; never raises for "no match"

        Raises:
            ValueError: If ``max_candidates`` is given and below 1
        """
        if max_candidates is not None and max_candidates < 1:
            raise ValueError("max_candidates must be at least 1")

        result = await self._search(
            request, pool, exclude_ids, max_candidates, now, rule_set
        )
        self.metrics.add_match_result(result)
        return result

    async def find_matches_for_deposit(
        self,
        deposit: PaymentRequest,
        withdrawal_pool: Sequence[PaymentRequest],
        **kwargs: Any,
    ) -> MatchingResult:
        """
        Find withdrawal counterparties for a deposit.

        Raises:
            InvalidRequestError: If ``deposit`` is not a deposit request
        """
        if deposit.type is not RequestType.DEPOSIT:
            raise InvalidRequestError(f"Request {deposit.id} is not a deposit")
        return await self.find_matches(deposit, withdrawal_pool, **kwargs)

    async def find_matches_for_withdrawal(
        self,
        withdrawal: PaymentRequest,
        deposit_pool: Sequence[PaymentRequest],
        **kwargs: Any,
    ) -> MatchingResult:
        """
        Find deposit counterparties for a withdrawal.

        Raises:
            InvalidRequestError: If ``withdrawal`` is not a withdrawal request
        """
        if withdrawal.type is not RequestType.WITHDRAWAL:
            raise InvalidRequestError(f"Request {withdrawal.id} is not a withdrawal")
        return await self.find_matches(withdrawal, deposit_pool, **kwargs)

    async def _search(
        self,
        request: PaymentRequest,
        pool: Sequence[PaymentRequest],
        exclude_ids: Iterable[str] = (),
        max_candidates: int | None = None,
        now: datetime | None = None,
        rule_set: RuleSet | None = None,
    ) -> MatchingResult:
        now = now or self.clock()
        rules = rule_set if rule_set is not None else self.rule_set
        excluded = frozenset(exclude_ids)
        started = time.perf_counter()

        with search_context(request_id=request.id) as search_id:
            metadata = SearchMetadata(
                algorithm_version=self.config.ranking.algorithm_version,
                pool_size=len(pool),
                excluded_count=sum(1 for r in pool if r.id in excluded),
                search_id=search_id,
            )

            logger.info(
                f"[MATCH] Starting search for {request.type.value} {request.id} | "
                f"Amount: {request.amount} {request.currency} | "
                f"Method: {request.payment_method.value} | Pool: {len(pool)}"
            )

            if request.status is not RequestStatus.PENDING:
                result = self.ranker.no_match(request, NOT_PENDING_REASON, metadata)
            elif request.is_expired(now):
                result = self.ranker.no_match(request, EXPIRED_REASON, metadata)
            else:
                # Step 1: Eligibility
                eligible = self.eligibility.filter_counterparties(
                    request, pool, now, excluded
                )
                metadata.eligible_count = len(eligible)

                if not eligible:
                    if logger.isEnabledFor(logging.DEBUG):
                        logger.debug(
                            f"[MATCH] Exclusions: "
                            f"{self.eligibility.explain(request, pool, now, excluded)}"
                        )
                    result = self.ranker.no_match(request, NO_ELIGIBLE_REASON, metadata)
                else:
                    # Step 2: Score
                    candidates = await self.scorer.score_all_candidates(
                        request, eligible, now, rules
                    )
                    # Step 3: Rank
                    result = self.ranker.create_match_result(
                        request, candidates, metadata, max_candidates
                    )

            result.search_metadata.search_time_ms = (time.perf_counter() - started) * 1000

            if result.matched:
                logger.info(
                    f"[MATCH] ✓ Search completed for {request.id} | "
                    f"Best: {result.best_match.counterparty_of(request).id} "
                    f"({result.best_match.score:.2f}) | "
                    f"Candidates: {len(result.candidates)}/{metadata.total_candidates}"
                )
            else:
                logger.info(
                    f"[MATCH] No match for {request.id}: {result.no_match_reason}"
                )

        return result

    async def propose_queue_matches(
        self, queue: Queue, now: datetime | None = None
    ) -> QueueMatchProposal:
        """
        Propose a conflict-free set of pairings for a whole queue.

        Deposits are visited oldest first; each takes its best remaining
        withdrawal, which is then unavailable to later deposits. Nothing is
        committed.

        Args:
            queue: Queue snapshot for one rail
            now: Reference time (default: engine clock)

        Returns:
            QueueMatchProposal
        """
        now = now or self.clock()
        claimed: set[str] = set()
        proposal = QueueMatchProposal(payment_method=queue.payment_method)

        deposits = sorted(queue.deposit_queue, key=lambda r: (r.created_at, r.id))
        for deposit in deposits:
            result = await self._search(
                deposit, queue.withdrawal_queue, exclude_ids=claimed, now=now
            )
            if result.best_match is None:
                proposal.unmatched_deposit_ids.append(deposit.id)
                continue
            claimed.add(result.best_match.withdrawal_request.id)
            proposal.proposals.append(result.best_match)

        proposal.unmatched_withdrawal_ids = [
            w.id for w in queue.withdrawal_queue if w.id not in claimed
        ]

        logger.info(
            f"[QUEUE] {queue.payment_method.value}: proposed {proposal.total_proposed} matches | "
            f"Unmatched deposits: {len(proposal.unmatched_deposit_ids)} | "
            f"Unmatched withdrawals: {len(proposal.unmatched_withdrawal_ids)}"
        )
        return proposal

    # Analytics

    def optimize_queue(self, queue: Queue) -> QueueOptimization:
        return self.queue_optimizer.optimize_queue(queue)

    async def predict_matching_opportunities(
        self,
        payment_method: PaymentMethod | str,
        amount: Decimal | float | int,
        timeframe_hours: float = 24,
    ) -> MatchingForecast:
        return await self.forecaster.predict_matching_opportunities(
            payment_method, amount, timeframe_hours
        )

    def get_stats(self) -> dict[str, Any]:
        """Rule counts, algorithm version and observed performance."""
        return {
            "total_rules": self.rule_set.total_rules,
            "active_rules": self.rule_set.active_rules,
            "algorithm_version": self.config.ranking.algorithm_version,
            "average_matching_time_ms": self.metrics.avg_search_time_ms,
            "success_rate": self.metrics.success_rate,
        }


# Convenience functions
async def find_matches(
    request: PaymentRequest,
    pool: Sequence[PaymentRequest],
    config: MatchingConfig | None = None,
    **kwargs: Any,
) -> MatchingResult:
    """
    Convenience function to run one search with default collaborators.

    Args:
        request: Request looking for a counterparty
        pool: Opposite-side requests
        config: Matching configuration
        **kwargs: Passed through to ``MatchingEngine.find_matches``

    Returns:
        Matching result
    """
    engine = MatchingEngine(config)
    return await engine.find_matches(request, pool, **kwargs)
