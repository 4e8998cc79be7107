"""Eligibility filtering: narrows a request pool to legal counterparties."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, Sequence

from p2p_matching.matching.models import PaymentRequest, RequestStatus
from p2p_matching.matching.providers import NoSuspiciousPatterns, SuspiciousPatternCheck

logger = logging.getLogger(__name__)

REASON_WRONG_TYPE = "same_side"
REASON_METHOD = "payment_method_mismatch"
REASON_AMOUNT = "amount_mismatch"
REASON_STATUS = "not_pending"
REASON_EXPIRED = "expired"
REASON_SAME_CUSTOMER = "same_customer"
REASON_SUSPICIOUS = "suspicious_pattern"
REASON_EXCLUDED = "excluded_by_caller"


class EligibilityFilter:
    """Hard filter applied before any scoring."""

    def __init__(self, pattern_check: SuspiciousPatternCheck | None = None):
        """
        Args:
            pattern_check: Fraud-signal hook (default: every pairing passes)
        """
        self.pattern_check = pattern_check or NoSuspiciousPatterns()

    def exclusion_reason(
        self,
        request: PaymentRequest,
        counterparty: PaymentRequest,
        now: datetime,
        exclude_ids: frozenset[str] = frozenset(),
    ) -> str | None:
        """
        Return why ``counterparty`` cannot pair with ``request``, or None.

        Checks run cheapest first; the suspicious-pattern hook runs last.
        """
        if counterparty.id in exclude_ids:
            return REASON_EXCLUDED
        if counterparty.type is not request.type.counterpart:
            return REASON_WRONG_TYPE
        if counterparty.payment_method is not request.payment_method:
            return REASON_METHOD
        if counterparty.amount != request.amount:
            return REASON_AMOUNT
        if counterparty.status is not RequestStatus.PENDING:
            return REASON_STATUS
        if counterparty.is_expired(now):
            return REASON_EXPIRED
        if counterparty.customer_id == request.customer_id:
            return REASON_SAME_CUSTOMER
        if self.pattern_check.is_suspicious(request, counterparty):
            return REASON_SUSPICIOUS
        return None

    def explain(
        self,
        request: PaymentRequest,
        pool: Iterable[PaymentRequest],
        now: datetime,
        exclude_ids: Iterable[str] = (),
    ) -> dict[str, str | None]:
        """Map every pool request id to its exclusion reason (None if eligible)."""
        excluded = frozenset(exclude_ids)
        return {
            candidate.id: self.exclusion_reason(request, candidate, now, excluded)
            for candidate in pool
        }

    def filter_counterparties(
        self,
        request: PaymentRequest,
        pool: Sequence[PaymentRequest],
        now: datetime,
        exclude_ids: Iterable[str] = (),
    ) -> list[PaymentRequest]:
        """
        Return the members of ``pool`` that may legally pair with ``request``.

        Args:
            request: The request looking for a counterparty
            pool: Opposite-side requests from the queue snapshot
            now: Reference time for expiry
            exclude_ids: Counterparty ids already claimed elsewhere

        Returns:
            Eligible counterparties, in pool order
        """
        excluded = frozenset(exclude_ids)
        eligible: list[PaymentRequest] = []
        rejections: Counter[str] = Counter()

        for candidate in pool:
            reason = self.exclusion_reason(request, candidate, now, excluded)
            if reason is None:
                eligible.append(candidate)
            else:
                rejections[reason] += 1

        if rejections:
            logger.debug(
                f"[FILTER] Request {request.id}: excluded {sum(rejections.values())} | "
                + ", ".join(f"{k}={v}" for k, v in sorted(rejections.items()))
            )
        logger.info(
            f"[FILTER] Request {request.id}: {len(eligible)}/{len(pool)} eligible counterparties"
        )
        return eligible
