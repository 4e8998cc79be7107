"""Scoring for deposit/withdrawal candidate pairs."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from p2p_matching.matching.config import MatchingConfig, SettlementConfig
from p2p_matching.matching.models import (
    MatchingCandidate,
    PaymentMethod,
    PaymentRequest,
    RequestPriority,
    RequestType,
)
from p2p_matching.matching.risk import RiskAssessor
from p2p_matching.matching.rules import MatchingRules, RuleSet, default_rule_set

logger = logging.getLogger(__name__)

EXACT_AMOUNT_REASON = "Exact amount match"
HIGH_PRIORITY_REASON = "High priority request"


def estimate_settlement_time(
    payment_method: PaymentMethod | str,
    amount: Decimal | float | int,
    config: SettlementConfig | None = None,
) -> int:
    """
    Estimate minutes for the counterparties to complete the transfer.

    ``base * method multiplier``, times the large-amount multiplier above the
    threshold, rounded half-up.
    """
    config = config or SettlementConfig()
    method = PaymentMethod(payment_method).value
    minutes = config.base_minutes * config.method_multipliers.get(method, 1.0)
    if Decimal(str(amount)) > config.large_amount_threshold:
        minutes *= config.large_amount_multiplier
    return int(math.floor(minutes + 0.5))


class MatchScorer:
    """Scores candidate pairs against a rule set."""

    def __init__(
        self,
        config: MatchingConfig | None = None,
        rule_set: RuleSet | None = None,
        risk_assessor: RiskAssessor | None = None,
    ):
        """
        Initialize match scorer.

        Args:
            config: Matching configuration
            rule_set: Rules to apply (default: ``default_rule_set()``)
            risk_assessor: Risk assessor (default: no geo, zero reputation risk)
        """
        self.config = config or MatchingConfig()
        self.rule_set = rule_set if rule_set is not None else default_rule_set()
        self.rules = MatchingRules()
        self.risk_assessor = risk_assessor or RiskAssessor(self.config.risk)

    def time_score(
        self, deposit: PaymentRequest, withdrawal: PaymentRequest, now: datetime
    ) -> float:
        """Linear decay on the combined age of both requests."""
        scoring = self.config.scoring
        combined_age_ms = deposit.age_ms(now) + withdrawal.age_ms(now)
        return max(
            0.0, scoring.time_score_ceiling - combined_age_ms / scoring.time_decay_window_ms
        )

    def rule_score(
        self,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
        rule_set: RuleSet | None = None,
    ) -> tuple[float, list[str]]:
        """Sum the scores of every enabled rule that fires, with their names."""
        rule_set = rule_set if rule_set is not None else self.rule_set
        total = 0.0
        reasons: list[str] = []
        for rule in rule_set.enabled_rules:
            score = self.rules.evaluate_rule(rule, deposit, withdrawal, now)
            if score > 0:
                total += score
                reasons.append(rule.name)
        return total, reasons

    async def score_candidate(
        self,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
        rule_set: RuleSet | None = None,
    ) -> MatchingCandidate:
        """
        Score a single deposit/withdrawal pair.

        Args:
            deposit: Deposit request
            withdrawal: Withdrawal request
            now: Reference time for ages
            rule_set: Per-call rule override

        Returns:
            Scored candidate (score clamped at 0)
        """
        scoring = self.config.scoring

        # 1. Rules
        total, reasons = self.rule_score(deposit, withdrawal, now, rule_set)

        # 2. Time decay
        total += self.time_score(deposit, withdrawal, now)

        # 3. Exact amount bonus
        if deposit.amount == withdrawal.amount:
            total += scoring.exact_amount_bonus
            reasons.append(EXACT_AMOUNT_REASON)

        # 4. Priority bonus
        if RequestPriority.HIGH in (deposit.priority, withdrawal.priority):
            total += scoring.priority_bonus
            reasons.append(HIGH_PRIORITY_REASON)

        # 5. Risk penalty
        risk = await self.risk_assessor.assess(deposit, withdrawal)
        risk_factors: list[str] = []
        if risk.risk_score > scoring.risk_penalty_threshold:
            total -= risk.risk_score
            risk_factors.extend(risk.risk_factors)

        candidate = MatchingCandidate(
            deposit_request=deposit,
            withdrawal_request=withdrawal,
            score=max(0.0, total),
            match_reasons=reasons,
            risk_factors=risk_factors,
            estimated_settlement_time=estimate_settlement_time(
                deposit.payment_method, deposit.amount, self.config.settlement
            ),
            risk=risk,
        )

        if self.config.debug:
            logger.debug(
                f"Scored pair {deposit.id}/{withdrawal.id}: {candidate.score:.2f}",
                extra={"breakdown": candidate.get_score_breakdown()},
            )

        return candidate

    async def score_all_candidates(
        self,
        request: PaymentRequest,
        counterparties: Sequence[PaymentRequest],
        now: datetime,
        rule_set: RuleSet | None = None,
    ) -> list[MatchingCandidate]:
        """
        Score ``request`` against every counterparty.

        A candidate whose scoring raises is logged and skipped.

        Returns:
            Scored candidates, in counterparty order
        """
        logger.info(f"[SCORER] Starting scoring for {len(counterparties)} candidates")

        pairs = [self._orient(request, other) for other in counterparties]
        outcomes = await asyncio.gather(
            *(self.score_candidate(d, w, now, rule_set) for d, w in pairs),
            return_exceptions=True,
        )

        candidates: list[MatchingCandidate] = []
        for other, outcome in zip(counterparties, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"[SCORER] Failed to score candidate {other.id}: {outcome}",
                    exc_info=outcome,
                )
                continue
            candidates.append(outcome)

        if candidates:
            avg_score = sum(c.score for c in candidates) / len(candidates)
            logger.info(
                f"[SCORER] Scored {len(candidates)}/{len(counterparties)} candidates | "
                f"Average score: {avg_score:.2f}"
            )
        return candidates

    @staticmethod
    def _orient(
        request: PaymentRequest, other: PaymentRequest
    ) -> tuple[PaymentRequest, PaymentRequest]:
        """Return (deposit, withdrawal) regardless of which side ``request`` is."""
        if request.type is RequestType.DEPOSIT:
            return request, other
        return other, request
